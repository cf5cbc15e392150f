"""Core primitives: records, splicing, encodings, compression distance, models.

Windows of market data are compared through the size of their compressed
text encodings; the nearest stored windows vote on direction.
"""
