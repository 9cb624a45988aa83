"""Logging for paybridge.

Exposes a module-level ``logger`` that carries structured dimensions.
Dimensions are attached with ``with_context`` and show up as JSON fields
outside local development, or as a ``[k=v ...]`` suffix locally.

Usage:
    from paybridge.core.logging import logger

    log = logger.with_context(gateway="stripe", event_id="evt_123")
    log.info("Processing webhook event")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

from paybridge.core.config import settings

_LOGGER_NAME = "paybridge"


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        dimensions = getattr(record, "dimensions", None)
        if isinstance(dimensions, dict):
            log_data.update(dimensions)

        return json.dumps(log_data, default=str)


class LocalFormatter(logging.Formatter):
    """Human-readable formatter used for local development."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        dimensions = getattr(record, "dimensions", None)
        if dimensions:
            dims = " ".join(f"{k}={v}" for k, v in dimensions.items())
            message = f"{message} [{dims}]"
        return message


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that carries structured dimensions and an optional prefix."""

    def __init__(
        self,
        logger: logging.Logger,
        dimensions: Optional[Dict[str, Any]] = None,
        prefix: str = "",
    ) -> None:
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})
        self.prefix = prefix

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["dimensions"] = {**self.dimensions, **extra.get("dimensions", {})}
        kwargs["extra"] = extra
        if self.prefix:
            msg = f"{self.prefix}{msg}"
        return msg, kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a new logger with additional dimensions. None values are dropped."""
        merged = {**self.dimensions}
        merged.update({k: v for k, v in dimensions.items() if v is not None})
        return ContextualLogger(self.logger, merged, self.prefix)

    def with_prefix(self, prefix: str) -> "ContextualLogger":
        """Return a new logger that prepends ``prefix`` to every message."""
        return ContextualLogger(self.logger, self.dimensions, prefix)


def _configure_base_logger() -> logging.Logger:
    base = logging.getLogger(_LOGGER_NAME)
    if base.handlers:
        return base

    handler = logging.StreamHandler(sys.stdout)
    if settings.local_development:
        handler.setFormatter(LocalFormatter())
    else:
        handler.setFormatter(JSONFormatter())

    base.addHandler(handler)
    base.setLevel(settings.LOG_LEVEL.upper())
    base.propagate = False
    return base


logger = ContextualLogger(_configure_base_logger())
