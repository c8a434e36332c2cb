"""Structured logging configuration using structlog."""

import sys
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger


def add_log_level(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the log level to the event dict."""
    if method_name == "warn":
        # Translate "warn" to "warning"
        event_dict["level"] = "warning"
    else:
        event_dict["level"] = method_name
    return event_dict


def configure_logging(
    level: str = "WARNING",
    json_output: bool = False,
) -> None:
    """Configure structlog for mfabridge.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output JSON format. If False, use console-friendly format.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    import logging as stdlib_logging

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(stdlib_logging, level.upper(), stdlib_logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Optional logger name. If not provided, uses the calling module's name.

    Returns:
        Configured structlog logger.
    """
    return structlog.get_logger(name)


class ServerLogSink:
    """Logging sink handed to the MFA server client.

    The server client reports request/response details and server-side
    errors here. Output is gated by the ``do_log`` configuration flag so
    that server diagnostics only reach the logs when an operator asks for
    them. Both strings and exceptions are accepted.
    """

    def __init__(self, enabled: bool = False, name: str = "mfabridge.server") -> None:
        self.enabled = enabled
        self._log = get_logger(name)

    def log(self, message: str | BaseException) -> None:
        """Forward an informational message."""
        if not self.enabled:
            return
        if isinstance(message, BaseException):
            self._log.info("mfa_server_log", error=str(message), error_type=type(message).__name__)
        else:
            self._log.info("mfa_server_log", message=message)

    def error(self, message: str | BaseException) -> None:
        """Forward an error message."""
        if not self.enabled:
            return
        if isinstance(message, BaseException):
            self._log.error(
                "mfa_server_error", error=str(message), error_type=type(message).__name__
            )
        else:
            self._log.error("mfa_server_error", message=message)
