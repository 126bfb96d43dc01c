from __future__ import annotations

import logging
from typing import Any, Dict

import structlog

_REDACTED_KEYS = ("password", "secret", "token", "authorization")


def _redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask values of credential-like keys, keeping the first and last two characters."""
    for key in list(event_dict.keys()):
        lower_key = key.lower()
        if any(k in lower_key for k in _REDACTED_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 4:
                event_dict[key] = value[:2] + "***" + value[-2:]
    return event_dict


# PUBLIC_INTERFACE
def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog for the service.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: JSON lines when True, colored console output otherwise.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=False)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# PUBLIC_INTERFACE
def get_logger(name: str) -> Any:
    """Return a structlog logger bound to the given module name."""
    return structlog.get_logger(name)
