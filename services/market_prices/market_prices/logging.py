"""Logging utilities for structured output."""

from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for JSON logs."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


class PipelineLogger:
    """Structured events emitted by the orchestrator.

    One ``pipeline_stage`` event per state transition and one
    ``pipeline_error_absorbed`` event per error that is turned into an
    empty or shorter result instead of being raised.
    """

    def __init__(self, logger: Any | None = None, **context: Any) -> None:
        base = logger if logger is not None else get_logger("market_prices.pipeline")
        self._logger = base.bind(**context) if context else base

    def bind(self, **context: Any) -> "PipelineLogger":
        return PipelineLogger(self._logger.bind(**context))

    def stage(self, stage: str, **fields: Any) -> None:
        self._logger.info("pipeline_stage", stage=stage, **fields)

    def absorbed(self, stage: str, error: BaseException, **fields: Any) -> None:
        self._logger.warning(
            "pipeline_error_absorbed",
            stage=stage,
            error_type=type(error).__name__,
            error=str(error),
            **fields,
        )

    def rejected(self, reason: str, keys: list[str], **fields: Any) -> None:
        self._logger.info("record_rejected", reason=reason, keys=keys, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._logger.info(event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._logger.warning(event, **fields)
