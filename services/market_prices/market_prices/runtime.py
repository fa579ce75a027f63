"""Runtime wiring for callers embedding the engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx

from .client import ProviderClient
from .config import AppConfig, load_config
from .logging import PipelineLogger, configure_logging, get_logger
from .models import AggregateResult, Query
from .pipeline import MarketPriceEngine


@dataclass(slots=True)
class Runtime:
    config: AppConfig
    client: ProviderClient
    engine: MarketPriceEngine

    async def fetch(
        self,
        product_name: str,
        region: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AggregateResult:
        return await self.engine.fetch(
            Query(product_name=product_name, region=region),
            timeout=timeout,
            cancel=cancel,
        )

    def run_query(
        self,
        product_name: str,
        region: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> AggregateResult:
        """Synchronous wrapper for callers without an event loop."""
        return asyncio.run(self.fetch(product_name, region=region, timeout=timeout))


def build_runtime(
    config: AppConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Runtime:
    """Load configuration and wire the engine; raises ConfigurationError."""
    cfg = config or load_config()
    configure_logging(cfg.log_level)

    client = ProviderClient(
        base_url=cfg.base_url,
        api_key=cfg.api_key,
        timeout=cfg.http_timeout,
        user_agent=cfg.http_user_agent,
        params=cfg.params,
        transport=transport,
    )
    engine = MarketPriceEngine.from_config(
        cfg,
        client,
        logger=PipelineLogger(get_logger("market_prices.pipeline")),
    )
    get_logger(__name__).info(
        "runtime_ready",
        base_url=cfg.base_url,
        timezone=cfg.timezone_name,
        max_pages=cfg.max_pages,
        rows_per_page=cfg.rows_per_page,
    )
    return Runtime(config=cfg, client=client, engine=engine)
