"""
Logging for the Color Me Shop MCP server.

Everything goes to stderr as JSON. Server-level events (authorization steps,
security rejections, configuration status) go through ``MCPLogger`` so they
carry a ``context`` field; library modules keep using ``logging.getLogger``.
Never pass tokens, secrets or authorization codes as event fields.
"""

import logging
import sys
from enum import Enum
from typing import Optional

import structlog

from __version__ import __version__

_STDLIB_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "service": "%(service)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)


class LogContext(str, Enum):
    """Kinds of server-level events."""

    AUTHENTICATION = "authentication"
    SECURITY = "security"
    CONFIGURATION = "configuration"


class _ServiceFilter(logging.Filter):
    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


def _configure_stdlib(level: int, service_name: str) -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if getattr(handler, "colorme_service", None) is not None:
            # Already installed by an earlier call
            root.setLevel(level)
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.colorme_service = service_name
    handler.addFilter(_ServiceFilter(service_name))
    handler.setFormatter(logging.Formatter(_STDLIB_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)


def _service_stamp(service_name: str, version: str):
    def stamp(logger, method_name, event_dict):
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("version", version)
        return event_dict

    return stamp


def configure_logging(
    level: str = "INFO",
    service_name: str = "colorme-mcp",
    version: str = __version__,
    structured: bool = True,
):
    """
    Configure stdlib logging and, when ``structured``, structlog.

    Returns the logger server-level events should be written to: a structlog
    bound logger, or a plain ``logging.Logger`` named after the service.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    _configure_stdlib(numeric_level, service_name)
    if not structured:
        return logging.getLogger(service_name)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _service_stamp(service_name, version),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(service_name)


class MCPLogger:
    """Writes server-level events with a ``context`` and an ``event_type``."""

    def __init__(self, logger, context: Optional[LogContext] = None):
        self.logger = logger
        self.context = context

    @property
    def structured(self) -> bool:
        return not isinstance(self.logger, logging.Logger)

    def auth_event(self, event_type: str, **fields) -> None:
        """A step of the authorization flow went through."""
        self._emit("info", "authorization", LogContext.AUTHENTICATION, event_type=event_type, **fields)

    def security_event(self, event_type: str, **fields) -> None:
        """Something was rejected for looking forged or malformed."""
        self._emit("warning", "security", LogContext.SECURITY, event_type=event_type, **fields)

    def configuration_event(self, message: str, level: str = "info", **fields) -> None:
        self._emit(level, message, LogContext.CONFIGURATION, **fields)

    def _emit(self, level: str, message: str, context: LogContext, **fields) -> None:
        fields["context"] = (self.context or context).value
        log = getattr(self.logger, level)
        if self.structured:
            log(message, **fields)
        else:
            log("%s %s", message, " ".join(f"{k}={v}" for k, v in fields.items()))


def setup_mcp_logging(config) -> MCPLogger:
    """Configure logging from a ``ColorMeConfig`` and return the event logger."""
    return MCPLogger(
        configure_logging(
            level=config.log_level,
            service_name=config.server_name,
            version=getattr(config, "version", __version__),
        )
    )
