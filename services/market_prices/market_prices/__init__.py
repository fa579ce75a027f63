"""Normalization engine for public wholesale market price feeds."""

__all__ = [
    "config",
    "models",
    "client",
    "decoder",
    "resolver",
    "units",
    "grades",
    "dates",
    "regions",
    "aggregate",
    "pipeline",
    "runtime",
]
