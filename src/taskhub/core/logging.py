"""structlog configuration and log context helpers.

HTTP requests carry a ``request_id``; websocket connections carry a
``connection_id`` for their whole lifetime. Both are bound through
contextvars so every log line inside the request or frame picks them up.
"""

import logging
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def setup_logging(debug: bool = False, service: str | None = None) -> None:
    """Configure structlog on top of the standard library logger.

    Args:
        debug: Colored console output at DEBUG level. Otherwise JSON at INFO.
        service: Optional service name added to every event.
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if service:
        processors.insert(0, _add_service(service))

    if debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # SQL echo and per-request access lines drown out chat events
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.INFO)


def _add_service(service: str) -> structlog.typing.Processor:
    def processor(
        logger: object, method_name: str, event_dict: structlog.typing.EventDict
    ) -> structlog.typing.EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)


def bind_request_context(request_id: str | None) -> None:
    """Bind the correlation id of the current HTTP request, if any."""
    if request_id:
        bind_contextvars(request_id=request_id)


def bind_user_context(user_id: int, email: str | None = None) -> None:
    """Bind the authenticated user to subsequent log calls.

    Args:
        user_id: The authenticated user's ID.
        email: Logged only if settings.log_user_emails is True (GDPR).
    """
    from src.taskhub.core.config import get_settings

    bind_contextvars(user_id=user_id)
    if email and get_settings().log_user_emails:
        bind_contextvars(user_email=email)


def bind_connection_context(connection_id: str) -> None:
    """Bind the websocket connection id for the lifetime of a chat connection."""
    bind_contextvars(connection_id=connection_id)


def clear_request_context() -> None:
    """Clear all request- or connection-scoped context."""
    clear_contextvars()
