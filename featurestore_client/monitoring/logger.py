"""
Structured logging configuration.
"""
import logging
import os
import sys
import structlog
from typing import Any, Dict, Optional

from ..config import LOG_CONFIG

LOG_FORMATS = ("json", "console")


def _add_schema_defaults(service_name: str, environment: str):
    """
    Ensure a minimum schema for log filtering.

    Every event carries `service`, `environment`, `component`, `featurestore`
    and `operation`; failures also carry `error_kind`.
    """

    def _processor(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_name = str(event_dict.get("event", "") or "").strip() or "log"
        event_dict["event"] = event_name

        event_dict.setdefault("service", service_name)
        event_dict.setdefault("environment", environment)

        if not event_dict.get("component"):
            event_dict["component"] = event_dict.get("logger") or "featurestore"

        event_dict.setdefault("featurestore", None)
        event_dict.setdefault("operation", None)
        if "kind" in event_dict and "error_kind" not in event_dict:
            event_dict["error_kind"] = event_dict.pop("kind")
        return event_dict

    return _processor


def _renderer(fmt: str):
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer()


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structured logging for the client.

    Args:
        level: Log level name (LOG_LEVEL / LOG_CONFIG by default).
        fmt: "json" or "console" (LOG_FORMAT / LOG_CONFIG by default).
    """
    raw_level = (level or os.getenv("LOG_LEVEL", LOG_CONFIG.get("level", "INFO"))).upper()
    log_level = getattr(logging, raw_level, logging.INFO)
    fmt = (fmt or os.getenv("LOG_FORMAT", LOG_CONFIG.get("format", "json"))).lower()
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unsupported log format '{fmt}', expected one of {LOG_FORMATS}")
    service_name = os.getenv("LOG_SERVICE_NAME", "featurestore-client").strip() or "featurestore-client"
    environment = os.getenv("ENVIRONMENT", "local").strip() or "local"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_schema_defaults(service_name=service_name, environment=environment),
            _renderer(fmt),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(component: Optional[str] = None, **context: Any):
    """
    Return a structured logger with optional bound context.
    """
    logger = structlog.get_logger(component) if component else structlog.get_logger()
    return logger.bind(**context) if context else logger
