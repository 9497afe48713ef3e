"""Contextual logging for Depsera.

Every component logs through a ``ContextualLogger``: a ``logging.LoggerAdapter`` that
carries a dict of dimensions (team id, component, trigger type, ...) and merges them
into each record's ``extra``. Dimensions are appended to the rendered line so log
output stays greppable without a structured backend.
"""

import logging
import sys
from typing import Any, Dict, MutableMapping, Optional, Tuple

from depsera.core.config import settings


class _DimensionFormatter(logging.Formatter):
    """Formatter that renders logger dimensions after the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        dimensions = getattr(record, "dimensions", None)
        if not dimensions:
            return base
        rendered = " ".join(f"{k}={v}" for k, v in sorted(dimensions.items()))
        return f"{base} [{rendered}]"


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that carries persistent dimensions."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[Dict[str, Any]] = None):
        """Initialize the adapter.

        Args:
            logger: Underlying stdlib logger
            dimensions: Key/value pairs attached to every record
        """
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["dimensions"] = {**self.dimensions, **extra.pop("dimensions", {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a child logger with additional dimensions.

        Args:
            **dimensions: Dimensions to add on top of the current ones

        Returns:
            New ContextualLogger sharing the same underlying logger
        """
        return ContextualLogger(self.logger, {**self.dimensions, **dimensions})


class LoggerConfigurator:
    """Creates configured loggers."""

    _configured = False

    @classmethod
    def _configure_root(cls) -> None:
        if cls._configured:
            return
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            _DimensionFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root = logging.getLogger("depsera")
        root.addHandler(handler)
        root.setLevel(settings.LOG_LEVEL)
        root.propagate = settings.TESTING
        cls._configured = True

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: Optional[Dict[str, Any]] = None
    ) -> ContextualLogger:
        """Configure and return a contextual logger.

        Args:
            name: Logger name, usually a dotted module path under ``depsera``
            dimensions: Initial dimensions for the logger

        Returns:
            ContextualLogger for the given name
        """
        cls._configure_root()
        return ContextualLogger(logging.getLogger(name), dimensions)


logger = LoggerConfigurator.configure_logger("depsera")
