from __future__ import annotations

import logging
import random
import time
from typing import Callable, Tuple, Type, TypeVar


T = TypeVar("T")

logger = logging.getLogger(__name__)


def exponential_backoff(
    attempt: int,
    base_seconds: float,
    cap_seconds: float,
) -> float:
    return min(cap_seconds, base_seconds * (2 ** max(0, attempt - 1)))


def with_retries(
    func: Callable[[], T],
    max_attempts: int,
    base_seconds: float,
    cap_seconds: float,
    jitter_fraction: float = 0.1,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds, sleeping with jittered backoff between tries.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised
    once ``max_attempts`` is reached.
    """
    attempt = 1
    while True:
        try:
            return func()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            delay = exponential_backoff(attempt, base_seconds, cap_seconds)
            jitter = delay * jitter_fraction * (2 * random.random() - 1)
            logger.warning(
                "retrying after error",
                extra={"attempt": attempt, "delay_sec": round(delay, 3), "error": str(exc)},
            )
            sleep(max(0.0, delay + jitter))
            attempt += 1
