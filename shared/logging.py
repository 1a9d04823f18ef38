"""
Shared logging configuration for the decision engine.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, List, Optional
from contextvars import ContextVar, Token

# Context variables for correlation IDs
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
unit_key_var: ContextVar[Optional[str]] = ContextVar('unit_key', default=None)
decision_id_var: ContextVar[Optional[str]] = ContextVar('decision_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    # Extract service name from logger name
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        service_name = logger_name.split(".")[0]
        event_dict["service"] = service_name

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    unit_key = unit_key_var.get()
    if unit_key:
        event_dict["unit_key"] = unit_key

    decision_id = decision_id_var.get()
    if decision_id:
        event_dict["decision_id"] = decision_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_decision_context(unit_key: Optional[str] = None, decision_id: Optional[str] = None) -> List[Token]:
    """Set unit and decision context in logging.

    Returns the tokens to pass to ``reset_decision_context``.
    """
    tokens = []
    if unit_key:
        tokens.append(unit_key_var.set(unit_key))
    if decision_id:
        tokens.append(decision_id_var.set(decision_id))
    return tokens


def reset_decision_context(tokens: List[Token]):
    """Restore unit and decision context to what it was before ``set_decision_context``."""
    for token in reversed(tokens):
        token.var.reset(token)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    unit_key_var.set(None)
    decision_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
