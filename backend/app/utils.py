"""
Shared utility functions.
"""

import logging
import math
import re
import time
from typing import Any, Awaitable, Callable, Generic, Iterable, Iterator, Optional, TypeVar
import uuid as uuid_mod
from datetime import datetime, timezone
from fastapi import HTTPException

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_uuid(value: str, field_name: str = "id") -> uuid_mod.UUID:
    """
    Parse a string as UUID, raising a 400 HTTPException on invalid input
    instead of letting a bare ValueError bubble up as a 500.
    """
    try:
        return uuid_mod.UUID(str(value))
    except (ValueError, AttributeError):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid UUID for '{field_name}': {value!r}",
        )


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  UPSTREAM FIELD COERCION
# ══════════════════════════════════════════════════════════════════════

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([kKmMbB]?)")

_SUFFIX_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def numeric_or_zero(value: Any, allow_suffix: bool = False) -> float:
    """
    Coerce an upstream numeric field to float, never raising.

    - None, empty strings, NaN/inf and unparseable values -> 0.0
    - bools -> 0.0 (upstream never sends flags in numeric fields)
    - numeric strings are read from their leading number: "12.5abc" -> 12.5
    - thousands separators are ignored: "1,234.5" -> 1234.5
    - with allow_suffix, K/M/B scale the value: "1.5K" -> 1500.0, "2M" -> 2000000.0
      (only spreadsheet-style figures carry suffixes; API fields do not)
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    match = _LEADING_NUMBER.match(str(value).replace(",", ""))
    if not match:
        return 0.0
    number = float(match.group(1))
    suffix = match.group(2).lower()
    if allow_suffix and suffix:
        number *= _SUFFIX_MULTIPLIERS[suffix]
    return number if math.isfinite(number) else 0.0


def int_or_zero(value: Any) -> int:
    """Integer flavour of numeric_or_zero; fractions are truncated toward zero."""
    return int(numeric_or_zero(value))


def primary_status(statuses: Any) -> Optional[str]:
    """
    Canonical order status: the first entry of the upstream status array.
    Orders with several items carry one status per item; the first wins.
    """
    if isinstance(statuses, str):
        return statuses or None
    if isinstance(statuses, (list, tuple)) and statuses:
        return str(statuses[0])
    return None


_UPSTREAM_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


def parse_upstream_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a Lazada timestamp ("2024-01-15 10:20:30 +0800", ISO 8601, or epoch ms)
    into a naive UTC datetime. Returns None when the value can't be read.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value).strip()
        parsed = None
        for fmt in _UPSTREAM_DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                logger.warning(f"Unparseable upstream timestamp: {text!r}")
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def chunked(items: list, size: int) -> Iterator[list]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ══════════════════════════════════════════════════════════════════════
#  TTL CACHE — explicit cached value instead of module-level state
# ══════════════════════════════════════════════════════════════════════

class TTLCache(Generic[T]):
    """
    A single cached value with a time-to-live.
    The loader is awaited on first use, after `ttl_seconds`, on `get(force=True)`,
    and after `invalidate()`.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.value: Optional[T] = None
        self.fetched_at: Optional[float] = None

    @property
    def is_fresh(self) -> bool:
        return self.fetched_at is not None and (self._clock() - self.fetched_at) < self.ttl_seconds

    async def get(self, force: bool = False) -> T:
        if force or not self.is_fresh:
            self.value = await self._loader()
            self.fetched_at = self._clock()
        return self.value

    def invalidate(self) -> None:
        self.value = None
        self.fetched_at = None


def first_present(data: dict, keys: Iterable[str], default: Any = None) -> Any:
    """Return the first non-empty value among `keys` in `data`."""
    for key in keys:
        val = data.get(key)
        if val not in (None, ""):
            return val
    return default
