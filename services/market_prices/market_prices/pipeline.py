"""Pipeline orchestrator: fetch, decode, normalize, aggregate.

``MarketPriceEngine.fetch`` never raises for per-call failures.  Timeouts,
transport errors, undecodable payloads and unexpected faults in any stage
are logged and turn into an empty result with a zero average.  Partial
work is discarded when the call is cut short.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from .aggregate import average_price, deduplicate, sort_records
from .client import ProviderClient
from .config import AppConfig
from .dates import normalize_date, query_date_param, today_in
from .decoder import decode
from .exceptions import MarketPriceError, RecordRejected
from .grades import classify
from .logging import PipelineLogger
from .models import AggregateResult, CanonicalPriceRecord, Query, RawRecord
from .regions import REGION_KEYWORDS, matches_region
from .resolver import FIELD_CANDIDATES, resolve
from .units import normalize

NATIONWIDE_MARKET = "전국 평균"


class PipelineStage(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECODING = "decoding"
    NORMALIZING = "normalizing"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class _RunState:
    log: PipelineLogger
    stage: PipelineStage = PipelineStage.IDLE

    def enter(self, stage: PipelineStage, **fields) -> None:
        self.stage = stage
        self.log.stage(stage.value, **fields)


class MarketPriceEngine:
    def __init__(
        self,
        client: ProviderClient,
        timezone: ZoneInfo,
        max_pages: int = 5,
        rows_per_page: int = 500,
        request_timeout: float = 30.0,
        grade_aware: bool = True,
        send_query_date: bool = True,
        region_keywords: Mapping[str, Sequence[str]] = REGION_KEYWORDS,
        field_candidates: Mapping[str, Sequence[str]] = FIELD_CANDIDATES,
        logger: PipelineLogger | None = None,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self.client = client
        self.timezone = timezone
        self.max_pages = max_pages
        self.rows_per_page = rows_per_page
        self.request_timeout = request_timeout
        self.grade_aware = grade_aware
        self.send_query_date = send_query_date
        self.region_keywords = region_keywords
        self.field_candidates = field_candidates
        self.logger = logger or PipelineLogger()
        self._clock = clock or (lambda: today_in(timezone))

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        client: ProviderClient,
        logger: PipelineLogger | None = None,
    ) -> "MarketPriceEngine":
        return cls(
            client=client,
            timezone=config.timezone,
            max_pages=config.max_pages,
            rows_per_page=config.rows_per_page,
            request_timeout=config.request_timeout,
            grade_aware=config.grade_aware,
            send_query_date=config.send_query_date,
            region_keywords=config.region_keywords,
            field_candidates=config.field_candidates,
            logger=logger,
        )

    async def fetch(
        self,
        query: Query,
        timeout: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
        grade_aware: Optional[bool] = None,
    ) -> AggregateResult:
        """Run the whole pipeline for ``query`` within one overall timeout.

        Setting ``cancel`` aborts any in-flight request and resolves to the
        empty result.
        """
        state = _RunState(log=self.logger.bind(product=query.product_name, region=query.region))
        budget = self.request_timeout if timeout is None else timeout
        by_grade = self.grade_aware if grade_aware is None else grade_aware

        work = asyncio.create_task(self._run(query, by_grade, state))
        watcher = asyncio.create_task(cancel.wait()) if cancel is not None else None
        waiters = {work} if watcher is None else {work, watcher}
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=budget, return_when=asyncio.FIRST_COMPLETED
            )
            if work in done:
                return work.result()

            reason = "cancelled" if watcher is not None and watcher in done else "timeout"
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            state.log.absorbed(
                state.stage.value,
                asyncio.TimeoutError(f"pipeline {reason} after {budget}s budget")
                if reason == "timeout"
                else asyncio.CancelledError("cancelled by caller"),
            )
            state.enter(PipelineStage.FAILED, reason=reason)
            state.enter(PipelineStage.DONE, records=0)
            return AggregateResult.empty()
        finally:
            for task in (work, watcher):
                if task is not None and not task.done():
                    task.cancel()

    async def _run(self, query: Query, by_grade: bool, state: _RunState) -> AggregateResult:
        try:
            state.enter(PipelineStage.FETCHING, max_pages=self.max_pages)
            query_date = query_date_param(self.timezone, self._clock()) if self.send_query_date else None
            pages = await self.client.fetch_pages(
                query,
                max_pages=self.max_pages,
                rows_per_page=self.rows_per_page,
                query_date=query_date,
            )

            state.enter(PipelineStage.DECODING, pages=len(pages))
            items: List[RawRecord] = []
            for page in pages:
                decoded = page.decoded if page.decoded is not None else decode(page)
                if decoded.no_data:
                    state.log.info("provider_no_data", page=page.page, code=decoded.status_code)
                    break
                items.extend(decoded.items)

            state.enter(PipelineStage.NORMALIZING, items=len(items))
            records = self.normalize_items(items, query, log=state.log)

            state.enter(PipelineStage.AGGREGATING, records=len(records))
            result = self.aggregate(records, by_grade)
        except MarketPriceError as exc:
            return self._fail(state, exc)
        except Exception as exc:
            state.log.warning("pipeline_unexpected_error", stage=state.stage.value, exc_info=True)
            return self._fail(state, exc)

        state.enter(
            PipelineStage.DONE,
            records=result.count,
            average_price=result.average_price,
            min_price=result.min_price(),
            max_price=result.max_price(),
        )
        return result

    def _fail(self, state: _RunState, exc: BaseException) -> AggregateResult:
        state.log.absorbed(state.stage.value, exc)
        state.enter(PipelineStage.FAILED)
        state.enter(PipelineStage.DONE, records=0)
        return AggregateResult.empty()

    def build_result(
        self,
        items: Iterable[RawRecord],
        query: Query,
        grade_aware: Optional[bool] = None,
    ) -> AggregateResult:
        """Normalize and aggregate already-decoded items without any I/O."""
        by_grade = self.grade_aware if grade_aware is None else grade_aware
        return self.aggregate(self.normalize_items(items, query), by_grade)

    def normalize_items(
        self,
        items: Iterable[RawRecord],
        query: Query,
        log: PipelineLogger | None = None,
    ) -> List[CanonicalPriceRecord]:
        log = log or self.logger
        today = self._clock()
        records: List[CanonicalPriceRecord] = []
        excluded = 0
        for item in items:
            try:
                record = self.normalize_record(item, query, today)
            except RecordRejected as exc:
                log.rejected(exc.reason, exc.keys or sorted(str(key) for key in item))
                continue
            if record is None:
                excluded += 1
                continue
            records.append(record)
        if excluded:
            log.info("region_excluded", region=query.region, count=excluded)
        return records

    def normalize_record(
        self,
        item: RawRecord,
        query: Query,
        today: date,
    ) -> Optional[CanonicalPriceRecord]:
        """Build one canonical record; None when the region filter excludes it."""
        fields = resolve(item, self.field_candidates)
        market_name = fields.market_name or NATIONWIDE_MARKET
        if not matches_region(market_name, query.region, self.region_keywords):
            return None

        product_name = fields.product_name or query.product_name
        try:
            priced = normalize(fields.price, fields.unit_descriptor, product_name, fields.unit)
        except RecordRejected as exc:
            raise RecordRejected(exc.reason, keys=[str(key) for key in item]) from exc

        return CanonicalPriceRecord(
            market_name=market_name,
            product_name=product_name,
            grade=classify(fields.grade, fields.grade_hints, fields.product_name),
            price=priced.price,
            unit=priced.unit,
            date=normalize_date(fields.date, self.timezone, today),
        )

    def aggregate(
        self,
        records: Iterable[CanonicalPriceRecord],
        grade_aware: bool,
    ) -> AggregateResult:
        ordered = sort_records(deduplicate(records, by_grade=grade_aware))
        return AggregateResult(records=ordered, average_price=average_price(ordered))
