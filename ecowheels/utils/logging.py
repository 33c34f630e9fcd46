"""structlog and stdlib logging set up to share one stdout stream."""

import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from ecowheels.config import Settings, get_settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "passlib")


def _stdlib_handler(log_format: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%H:%M:%S")
        )
    return handler


def _render_processors(settings: Settings) -> list[Any]:
    if settings.log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=settings.environment == "development")]


def setup_logging() -> None:
    """Route stdlib and structlog output to stdout in the configured format."""
    settings = get_settings()
    level = logging.getLevelName(settings.log_level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_stdlib_handler(settings.log_format))
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_render_processors(settings),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(environment=settings.environment)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class WorkflowLogger:
    """Logger for order lifecycle events."""

    def __init__(self, component: str):
        self.component = component
        self.logger = get_logger(component)

    def log_transition(
        self,
        action: str,
        order_id: str,
        driver_id: str,
        duration_ms: float | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an applied order transition."""
        if duration_ms is not None:
            kwargs["duration_ms"] = round(duration_ms, 2)
        self.logger.info(
            "order_transition",
            component=self.component,
            action=action,
            order_id=order_id,
            driver_id=driver_id,
            **kwargs,
        )

    def log_rejection(
        self,
        action: str,
        order_id: str,
        driver_id: str | None,
        reason: str,
        **kwargs: Any,
    ) -> None:
        """Log a transition refused before any write."""
        self.logger.warning(
            "order_transition_rejected",
            component=self.component,
            action=action,
            order_id=order_id,
            driver_id=driver_id,
            reason=reason,
            **kwargs,
        )

    def log_side_effect(
        self,
        collection: str,
        document_id: str,
        order_id: str,
        **kwargs: Any,
    ) -> None:
        """Log an append-only record written alongside a transition."""
        self.logger.info(
            "side_effect_recorded",
            component=self.component,
            collection=collection,
            document_id=document_id,
            order_id=order_id,
            **kwargs,
        )

    def log_error(
        self,
        error: str,
        order_id: str,
        **kwargs: Any,
    ) -> None:
        """Log an error."""
        self.logger.error(
            "workflow_error",
            component=self.component,
            order_id=order_id,
            error=error,
            **kwargs,
        )
