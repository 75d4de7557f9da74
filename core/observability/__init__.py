"""
Observability Module for the Ledger Sync Pipeline

Provides:
- Structured logging with correlation IDs (sync run, ledger file, stage)
- Per-stage diagnostic summaries
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    log_stage_summary,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "log_stage_summary",
]
