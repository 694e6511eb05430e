"""
Exponential backoff schedule for webhook redelivery.

Retries are declarative: the engine only computes when the next attempt is
due and stores it on the record. Waking up at that time belongs to an
external poller.

    attempt:  1    2     3     4     5
    delay:    60s  120s  240s  480s  960s   (capped at 24h)
"""

from datetime import datetime, timedelta
from typing import Optional

BASE_DELAY_MS = 60_000
MAX_DELAY_MS = 86_400_000
MAX_ATTEMPTS = 5


def backoff_delay_ms(
    attempts: int,
    base_delay_ms: int = BASE_DELAY_MS,
    max_delay_ms: int = MAX_DELAY_MS,
) -> int:
    """
    Delay before the next attempt after ``attempts`` failed attempts.

    ``min(base * 2^(attempts-1), max)``. The exponent is clamped so very
    large attempt counts do not build huge integers.
    """
    exponent = max(attempts - 1, 0)
    if exponent >= max_delay_ms.bit_length():
        return max_delay_ms
    return min(base_delay_ms * (2 ** exponent), max_delay_ms)


def is_exhausted(attempts: int, max_attempts: int = MAX_ATTEMPTS) -> bool:
    return attempts >= max_attempts


def next_retry_at(
    now: datetime,
    attempts: int,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay_ms: int = BASE_DELAY_MS,
    max_delay_ms: int = MAX_DELAY_MS,
) -> Optional[datetime]:
    """When the next attempt is due, or None once retries are exhausted."""
    if is_exhausted(attempts, max_attempts):
        return None
    return now + timedelta(milliseconds=backoff_delay_ms(attempts, base_delay_ms, max_delay_ms))
