"""
Structured Logging with Correlation IDs

Every record emitted inside ``with_correlation`` carries the active sync run,
ledger file, episode, Temporal workflow and pipeline stage. Stage code logs
plain messages plus ``extra_fields``; the formatter decides how they render:

- JSON (one object per line) for workers and log shipping
- Human-readable for local runs:
  ``2026-01-16 12:00:00 [INFO ] inference.engine [sync-001/infer]: Date pass complete inferred=42``

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(sync_run_id="sync-001", stage="match"):
        logger.info("Matching locations", extra_fields={"candidates": 12})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers that tie a log line to its sync run."""
    sync_run_id: Optional[str] = None
    ledger_file: Optional[str] = None
    episode: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_run_id: Optional[str] = None
    activity_name: Optional[str] = None
    task_queue: Optional[str] = None
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """New context with the given non-None values layered on top."""
        data = self.to_dict()
        data.update({k: v for k, v in kwargs.items() if v is not None})
        return CorrelationContext(**data)

    def label(self) -> str:
        """Short ``run/workflow/file:name/stage`` label, "-" when empty."""
        parts = []
        if self.sync_run_id:
            parts.append(self.sync_run_id)
        if self.workflow_id:
            parts.append(self.workflow_id[:12])
        if self.ledger_file:
            parts.append(f"file:{self.ledger_file}")
        if self.stage:
            parts.append(self.stage)
        return "/".join(parts) or "-"


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "correlation_context",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


@contextmanager
def with_correlation(**kwargs):
    """Layer correlation IDs onto the current context for the enclosed block.

    Nested blocks add to the outer context; each block restores what was
    there before on exit, including when an exception escapes.
    """
    token = _correlation_context.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


# =============================================================================
# Formatters
# =============================================================================

class _CorrelatedFormatter(logging.Formatter):
    """Shared access to the correlation context and per-call fields."""

    @staticmethod
    def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
        return getattr(record, "extra_fields", None) or {}


class StructuredFormatter(_CorrelatedFormatter):
    """One JSON object per record: base fields, correlation IDs, extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_correlation_context().to_dict(),
            **self.extra_fields(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(_CorrelatedFormatter):
    """Single-line text with the correlation label and ``key=value`` extras."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        line = (
            f"{timestamp} [{record.levelname:5}] {record.name} "
            f"[{get_correlation_context().label()}]: {record.getMessage()}"
        )
        fields = self.extra_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger with Correlation Support
# =============================================================================

class CorrelatedLogger:
    """Wrapper over a stdlib logger that accepts ``extra_fields`` on every call."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, level: int, msg: str, *args, extra_fields: Optional[Dict[str, Any]] = None, exc_info=False):
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "(unknown file)",
            0,
            msg,
            args,
            sys.exc_info() if exc_info else None,
        )
        record.extra_fields = extra_fields or {}
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self.log(logging.ERROR, msg, *args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)

    def isEnabledFor(self, level) -> bool:
        return self._logger.isEnabledFor(level)


# =============================================================================
# Configuration
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False
_handler: Optional[logging.Handler] = None

# Top-level packages whose loggers follow the configured level
PIPELINE_LOGGERS = (
    "activities",
    "workflows",
    "extraction",
    "budget",
    "location_resolver",
    "inference",
    "overhead",
    "reconciliation",
)


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
    include_temporal: bool = True,
    force: bool = False,
):
    """Install one stdout handler on the root logger.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
        json_format: Use StructuredFormatter instead of HumanReadableFormatter
        include_temporal: Keep the Temporal SDK loggers at INFO
        force: Replace an earlier configuration (entry points call this
            after module-level loggers have installed the defaults)
    """
    global _configured, _handler

    if _configured and not force:
        return

    level = _resolve_level(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.setLevel(level)
    root.addHandler(handler)
    _handler = handler

    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    if include_temporal:
        logging.getLogger("temporalio").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for ``name`` (typically ``__name__``)."""
    if name not in _loggers:
        if not _configured:
            configure_logging()
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]


def log_stage_summary(stage: str, **counters):
    """Log a pipeline stage's diagnostic counters under ``reconciliation.<stage>``."""
    get_logger(f"reconciliation.{stage}").info(f"Stage complete: {stage}", extra_fields=counters)
