"""Locate the item list inside the upstream JSON envelope."""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .exceptions import DecodeError
from .logging import get_logger
from .models import DecodedPage, RawRecord, RawResponse

logger = get_logger(__name__)

Path = Tuple[str, ...]

# (name, items path, result code path, result message path), tried in order.
ENVELOPES: Sequence[Tuple[str, Path, Path, Path]] = (
    (
        "response.body.items.item",
        ("response", "body", "items", "item"),
        ("response", "header", "resultCode"),
        ("response", "header", "resultMsg"),
    ),
    (
        "body.items.item",
        ("body", "items", "item"),
        ("header", "resultCode"),
        ("header", "resultMsg"),
    ),
    (
        "data.item",
        ("data", "item"),
        ("data", "error_code"),
        ("data", "error_msg"),
    ),
    ("item", ("item",), ("resultCode",), ("resultMsg",)),
)

SUCCESS_CODES = frozenset({"", "0", "00", "000"})
NO_DATA_PHRASES = (
    "no data",
    "nodata",
    "데이터 없음",
    "조회된 데이터가 없습니다",
    "결과가 없습니다",
)


def decode(response: RawResponse) -> DecodedPage:
    """Extract the raw items from one upstream page.

    Never raises: parse failures and unknown shapes come back as an empty
    page so the caller can treat them as "no data".
    """
    try:
        payload = parse_payload(response)
    except DecodeError as exc:
        logger.warning(
            "decode_failed",
            page=response.page,
            content_type=response.content_type,
            error=str(exc),
            preview=response.text[:200],
        )
        return DecodedPage()
    return decode_payload(payload, page=response.page)


def parse_payload(response: RawResponse) -> Any:
    text = response.text.strip()
    if not text:
        raise DecodeError("empty response body")
    if "xml" in response.content_type.lower() or text.startswith("<"):
        raise DecodeError(f"non-JSON response ({response.content_type or 'unknown type'})")
    try:
        return json.loads(text)
    except ValueError as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc


def decode_payload(payload: Any, page: int = 1) -> DecodedPage:
    if not isinstance(payload, Mapping):
        logger.warning("unexpected_payload_type", page=page, type=type(payload).__name__)
        return DecodedPage()

    for name, items_path, code_path, message_path in ENVELOPES:
        raw_items = _dig(payload, items_path)
        code = _as_text(_dig(payload, code_path))
        message = _as_text(_dig(payload, message_path))
        if raw_items is None and code is None:
            continue

        decoded = DecodedPage(status_code=code, status_message=message, envelope=name)
        if code is not None and code not in SUCCESS_CODES:
            logger.warning("provider_status", page=page, code=code, message=message)
            if _is_no_data(message):
                decoded.no_data = True
                return decoded

        if raw_items is None:
            logger.info("empty_envelope", page=page, envelope=name, code=code)
            return decoded
        decoded.items = _as_items(raw_items)
        logger.info("decoded_page", page=page, envelope=name, items=len(decoded.items))
        return decoded

    logger.warning("unknown_envelope", page=page, keys=sorted(str(key) for key in payload))
    return DecodedPage()


def _dig(payload: Any, path: Path) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _as_items(value: Any) -> List[RawRecord]:
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, Mapping)]
    return []


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


def _is_no_data(message: Optional[str]) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return any(phrase in lowered for phrase in NO_DATA_PHRASES)
