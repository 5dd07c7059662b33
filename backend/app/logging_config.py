"""Structured logging configuration using structlog.

JSON lines in production, colorized console output otherwise. Every event
carries the service name, plus ``username`` and ``enrichment_state`` while an
enrichment is running (bound through contextvars by the orchestrator).
GitHub tokens and AI keys are masked before rendering, both as keys and
inside free-text values such as upstream error messages.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

from app.config import Environment, get_settings

SENSITIVE_KEYS = ("api_key", "token", "authorization", "password", "secret")

# GitHub classic/fine-grained tokens, OpenAI-style keys and bearer headers
_CREDENTIAL_PATTERN = re.compile(
    r"(gh[pousr]_[A-Za-z0-9]{8,}|github_pat_[A-Za-z0-9_]{8,}|sk-[A-Za-z0-9-]{8,}|Bearer\s+\S+)"
)


def _redact_credentials(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key, value in list(event_dict.items()):
        if any(s in key.lower() for s in SENSITIVE_KEYS):
            event_dict[key] = "[REDACTED]"
        elif isinstance(value, str):
            event_dict[key] = _CREDENTIAL_PATTERN.sub("[REDACTED]", value)
    return event_dict


def _service_tagger(service: str) -> structlog.types.Processor:
    def add_service(
        _logger: Any, _method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def setup_logging() -> None:
    """Configure structured logging for the API, Celery and the evaluator."""
    settings = get_settings()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _service_tagger(settings.app_name.lower()),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_credentials,
    ]

    if settings.environment == Environment.PRODUCTION:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))

    # httpx logs every GitHub request URL at INFO
    for logger_name in ("uvicorn.access", "httpx", "httpcore", "pymongo", "celery.redirected"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
