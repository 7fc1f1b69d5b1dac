"""
Structured logging for the identity core.

Events are rendered as JSON through structlog. Request and caller
correlation is carried in context variables, and credential material is
masked before rendering.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
auth_source_var: ContextVar[Optional[str]] = ContextVar("auth_source", default=None)

SENSITIVE_KEYS = frozenset({
    "token",
    "id_token",
    "access_token",
    "assertion",
    "private_key",
    "authorization",
    "cookie",
})


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured JSON logging for a service."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            redact_sensitive_fields,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Derive ``service`` from dotted logger names such as ``identity.keys``."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict.setdefault("service", logger_name.split(".")[0])
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the request id and the verified caller, when known."""
    for key, var in (("request_id", request_id_var), ("user_id", user_id_var), ("auth_source", auth_source_var)):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask tokens, assertions and keys; only a short prefix survives."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > 8:
            event_dict[key] = f"{value[:6]}...[redacted]"
        elif value:
            event_dict[key] = "[redacted]"
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current context, generating one if absent."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None, auth_source: Optional[str] = None):
    """Bind the verified caller to subsequent log events."""
    if user_id:
        user_id_var.set(user_id)
    if auth_source:
        auth_source_var.set(auth_source)


def clear_context():
    request_id_var.set(None)
    user_id_var.set(None)
    auth_source_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
