from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import requests

from ..config import AppConfig
from ..core.records import MarketRecord
from ..errors import FetchError, InvalidConfiguration
from ..utils.retry import with_retries


logger = logging.getLogger(__name__)

AGGS_PATH = "/v2/aggs/ticker/{ticker}/range/{multiplier}/{timespan}/{start}/{end}"
PAGE_LIMIT = 50_000

DateLike = Union[str, date, datetime]


class MarketType(str, Enum):
    STOCK = "stock"
    CRYPTO = "crypto"

    @classmethod
    def parse(cls, value: str) -> "MarketType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidConfiguration(f"invalid market type: {value!r}") from None


def _as_day(value: DateLike) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def polygon_ticker(ticker: str, market: MarketType) -> str:
    if market is MarketType.CRYPTO and not ticker.startswith("X:"):
        return "X:" + ticker
    return ticker


def bar_to_record(bar: Dict[str, Any]) -> MarketRecord:
    close = float(bar["c"])
    return MarketRecord(
        timestamp=int(bar["t"]),
        open=float(bar["o"]),
        high=float(bar["h"]),
        low=float(bar["l"]),
        close=close,
        volume=float(bar.get("v", 0.0)),
        vwap=float(bar.get("vw", close)),
    )


class PolygonClient:
    """Aggregate bars from the Polygon REST API."""

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        if not config.env.POLYGON_API_KEY:
            raise InvalidConfiguration("POLYGON_API_KEY is not set")
        self.config = config
        self.base_url = config.env.POLYGON_BASE_URL.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        rt = self.config.runtime
        query = dict(params or {})
        query["apiKey"] = self.config.env.POLYGON_API_KEY

        def call() -> Dict[str, Any]:
            resp = self.session.get(url, params=query, timeout=rt.network_timeout_sec)
            resp.raise_for_status()
            return resp.json()

        try:
            payload = with_retries(
                call,
                max_attempts=rt.max_retries,
                base_seconds=rt.backoff_base_sec,
                cap_seconds=rt.backoff_cap_sec,
                retry_on=(requests.RequestException,),
            )
        except requests.RequestException as exc:
            raise FetchError(f"request to {url} failed: {exc}") from exc
        if payload.get("status") == "ERROR":
            raise FetchError(payload.get("error") or payload.get("message") or "polygon returned an error")
        return payload

    def fetch_aggregates(
        self,
        ticker: str,
        start: DateLike,
        end: DateLike,
        market: Union[MarketType, str] = MarketType.STOCK,
        timespan: str = "hour",
        multiplier: int = 1,
    ) -> List[MarketRecord]:
        """All bars between ``start`` and ``end`` (inclusive days), oldest first."""
        if not isinstance(market, MarketType):
            market = MarketType.parse(market)
        url = self.base_url + AGGS_PATH.format(
            ticker=polygon_ticker(ticker, market),
            multiplier=multiplier,
            timespan=timespan,
            start=_as_day(start),
            end=_as_day(end),
        )
        params: Optional[Dict[str, Any]] = {"adjusted": "true", "sort": "asc", "limit": PAGE_LIMIT}
        records: List[MarketRecord] = []
        pages = 0
        while url:
            payload = self._get(url, params)
            pages += 1
            records.extend(bar_to_record(bar) for bar in payload.get("results") or [])
            url = payload.get("next_url") or ""
            params = None  # next_url already carries the query
        records.sort(key=lambda r: r.timestamp)
        logger.info("fetched aggregates", extra={"ticker": ticker, "bars": len(records), "pages": pages})
        return records
