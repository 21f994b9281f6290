"""
Structured logging configuration.

Uses structlog for JSON-formatted logs. Payment flow events carry the
attempt, customer and gateway order ids bound for the current attempt.
Auth tokens and gateway signatures are masked before rendering, whether
they arrive as event fields or inside a nested payload.
"""
import logging
import sys
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog
from pythonjsonlogger import jsonlogger

from khata_pay.config import Settings, get_settings

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset(
    {
        "auth_token",
        "authorization",
        "token",
        "signature",
        "razorpay_signature",
    }
)

# Ids every payment event should expose at the top level
PAYMENT_CONTEXT_KEYS = ("attempt_id", "customer_id", "order_id", "payment_id")

EventDict = Dict[str, Any]
Processor = Callable[[Any, str, EventDict], EventDict]


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask bearer tokens and gateway signatures anywhere in the event."""
    return _redact(event_dict)


def lift_payment_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Promote payment ids found in a nested ``payload`` dict to the event.

    Widget and backend payloads are sometimes logged whole; their ids
    should still be searchable as top-level fields.
    """
    payload = event_dict.get("payload")
    if isinstance(payload, Mapping):
        for key in PAYMENT_CONTEXT_KEYS:
            for candidate in (key, f"razorpay_{key}"):
                if key not in event_dict and payload.get(candidate):
                    event_dict[key] = payload[candidate]
    return event_dict


def app_context_processor(settings: Settings) -> Processor:
    """Build a processor stamping app name and environment on each event."""

    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["app_name"] = settings.app_name
        event_dict["app_env"] = settings.app_env
        return event_dict

    return add_app_context


def build_processors(settings: Settings) -> List[Any]:
    """Processor chain shared by every khata_pay logger."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        lift_payment_context,
        redact_sensitive_fields,
        app_context_processor(settings),
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging with JSON formatter.

    Args:
        settings: Optional settings (defaults to cached settings)
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
        )
    )
    root_logger.addHandler(handler)

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
        max_payment_amount_minor_units=settings.max_payment_amount_minor_units,
    )
