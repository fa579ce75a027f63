"""Configuration loader for the market price engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigurationError
from .regions import REGION_KEYWORDS
from .resolver import FIELD_CANDIDATES


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is not None:
        value = value.strip()
        if value == "":
            return default
        return value
    return default


def _get_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be an integer") from exc


def _get_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a number") from exc


def _get_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    value_lower = value.lower()
    if value_lower in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if value_lower in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError(f"Environment variable {key} must be a boolean")


@dataclass(slots=True, frozen=True)
class UpstreamParams:
    """Query parameter names understood by the upstream endpoint."""

    auth: str = "serviceKey"
    page: str = "pageNo"
    rows: str = "numOfRows"
    product: str = "p_productname"
    date: str = "trgDate"
    constant: Mapping[str, str] = field(default_factory=lambda: {"dataType": "JSON"})


@dataclass(slots=True)
class AppConfig:
    api_key: str
    base_url: str
    timezone: ZoneInfo
    http_timeout: float
    request_timeout: float
    max_pages: int
    rows_per_page: int
    grade_aware: bool
    send_query_date: bool
    http_user_agent: str
    log_level: str
    params: UpstreamParams = field(default_factory=UpstreamParams)
    region_keywords: Mapping[str, Sequence[str]] = field(default_factory=lambda: REGION_KEYWORDS)
    field_candidates: Mapping[str, Sequence[str]] = field(default_factory=lambda: FIELD_CANDIDATES)

    @property
    def timezone_name(self) -> str:
        return self.timezone.key


DEFAULT_BASE_URL = "http://apis.data.go.kr/B552845/katRealTime/trades"
DEFAULT_USER_AGENT = "market-prices/1.0"


def load_config() -> AppConfig:
    api_key = _get_env("PUBLIC_DATA_API_KEY") or _get_env("AT_MARKET_API_KEY")
    if not api_key:
        raise ConfigurationError("PUBLIC_DATA_API_KEY or AT_MARKET_API_KEY must be set")

    base_url = _get_env("AT_MARKET_API_URL", DEFAULT_BASE_URL)

    tz_name = _get_env("TIMEZONE", "Asia/Seoul")
    try:
        timezone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unable to load timezone '{tz_name}'") from exc

    return AppConfig(
        api_key=api_key,
        base_url=base_url,
        timezone=timezone,
        http_timeout=_get_float("HTTP_TIMEOUT_SECONDS", 10.0),
        request_timeout=_get_float("REQUEST_TIMEOUT_SECONDS", 30.0),
        max_pages=max(1, _get_int("MARKET_MAX_PAGES", 5)),
        rows_per_page=max(1, _get_int("MARKET_ROWS_PER_PAGE", 500)),
        grade_aware=_get_bool("MARKET_GRADE_AWARE", True),
        send_query_date=_get_bool("MARKET_QUERY_DATE", True),
        http_user_agent=_get_env("HTTP_USER_AGENT", DEFAULT_USER_AGENT),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
    )
