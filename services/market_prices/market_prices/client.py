"""HTTP client for the paginated upstream price endpoint."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional

import httpx

from .config import UpstreamParams
from .decoder import decode
from .exceptions import TransportError
from .logging import get_logger
from .models import Query, RawResponse

logger = get_logger(__name__)


class ProviderClient:
    """Fetches raw quote pages for one commodity, one page at a time."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float,
        user_agent: str,
        params: UpstreamParams | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.params = params or UpstreamParams()
        self._api_key = api_key
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self._transport = transport

    async def fetch_pages(
        self,
        query: Query,
        max_pages: int,
        rows_per_page: int,
        timeout: Optional[float] = None,
        query_date: Optional[str] = None,
    ) -> List[RawResponse]:
        """Request pages sequentially until a short page or the page budget.

        A failure on the first page raises TransportError. A failure on a
        later page ends pagination and keeps the pages already collected.
        """
        pages: List[RawResponse] = []
        request_timeout = timeout if timeout is not None else self.timeout

        async with httpx.AsyncClient(
            timeout=request_timeout,
            headers=self._headers,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for page in range(1, max_pages + 1):
                params = self._page_params(query, page, rows_per_page, query_date)
                logger.info(
                    "fetch_page",
                    url=self._masked_url(params),
                    page=page,
                    rows=rows_per_page,
                    product=query.product_name,
                )
                try:
                    response = await client.get(self.base_url, params=params)
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    if page == 1:
                        raise TransportError(_describe(exc), page=page) from exc
                    logger.warning("page_fetch_failed", page=page, error=_describe(exc))
                    break

                raw = RawResponse(
                    page=page,
                    status=response.status_code,
                    content_type=response.headers.get("content-type", ""),
                    text=response.text,
                )
                raw = replace(raw, decoded=decode(raw))
                pages.append(raw)

                item_count = len(raw.decoded.items)
                if item_count == 0:
                    logger.info("empty_page", page=page)
                    break
                if item_count < rows_per_page:
                    logger.info("last_page", page=page, items=item_count)
                    break

        return pages

    def _page_params(
        self,
        query: Query,
        page: int,
        rows_per_page: int,
        query_date: Optional[str],
    ) -> Dict[str, str]:
        names = self.params
        params = {
            names.auth: self._api_key,
            names.page: str(page),
            names.rows: str(rows_per_page),
            names.product: query.product_name,
        }
        params.update(names.constant)
        if query_date:
            params[names.date] = query_date
        return params

    def _masked_url(self, params: Dict[str, str]) -> str:
        masked = dict(params)
        masked[self.params.auth] = "***"
        return str(httpx.URL(self.base_url, params=masked))


def _describe(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return f"timeout: {type(exc).__name__}"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return f"{type(exc).__name__}: {exc}"
