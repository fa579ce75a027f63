"""Date normalization in the upstream's civil timezone."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Callable, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from .logging import get_logger

__all__ = ["today_in", "normalize_date", "query_date_param"]

logger = get_logger(__name__)

_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_MONTH_DAY = re.compile(r"^(\d{1,2})/(\d{1,2})$")


def today_in(tz: ZoneInfo) -> date:
    return datetime.now(tz).date()


def query_date_param(tz: ZoneInfo, today: Optional[date] = None) -> str:
    """Today's date as ``YYYYMMDD`` for the upstream date parameter."""
    return (today or today_in(tz)).strftime("%Y%m%d")


DateRule = Tuple[str, re.Pattern, Callable[[re.Match, date], date]]

DATE_RULES: Sequence[DateRule] = (
    (
        "iso",
        _ISO_PREFIX,
        lambda m, today: date(int(m.group(1)), int(m.group(2)), int(m.group(3))),
    ),
    (
        "compact",
        _COMPACT,
        lambda m, today: date(int(m.group(1)), int(m.group(2)), int(m.group(3))),
    ),
    (
        "month_day",
        _MONTH_DAY,
        lambda m, today: date(today.year, int(m.group(1)), int(m.group(2))),
    ),
)


def normalize_date(
    raw: Optional[str],
    tz: ZoneInfo,
    today: Optional[date] = None,
) -> str:
    """Return an ISO ``YYYY-MM-DD`` string for ``raw``.

    Absent or unrecognized input resolves to today in ``tz``.  A date after
    today is logged, not rejected: it usually means a dialect mismatch.
    """
    today = today or today_in(tz)
    text = (raw or "").strip()
    if not text:
        return today.isoformat()

    for name, pattern, build in DATE_RULES:
        match = pattern.match(text)
        if not match:
            continue
        try:
            parsed = build(match, today)
        except ValueError:
            logger.warning("date_invalid", raw=text, format=name)
            return today.isoformat()
        if parsed > today:
            logger.warning(
                "date_in_future",
                raw=text,
                parsed=parsed.isoformat(),
                today=today.isoformat(),
                timezone=tz.key,
            )
        return parsed.isoformat()

    logger.info("date_unrecognized", raw=text)
    return today.isoformat()
