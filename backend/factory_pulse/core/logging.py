"""Structured logging for Factory Pulse.

Every log line is a structlog event carrying:
- service name and ISO timestamp
- correlation_id of the HTTP request (asgi-correlation-id)
- organization_id and user_id of the authenticated actor, once bound

Stdlib loggers (uvicorn, SQLAlchemy, asyncpg) are routed through the same
renderer: JSON in production, console output in debug mode.
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

from factory_pulse.domain.actors import Actor

SERVICE_NAME = "factory-pulse"

# Stdlib loggers that drown out stage transition events at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "asyncpg")


def add_service_name(logger, method, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def add_correlation_id(logger, method, event_dict):
    """Attach the current request's correlation_id, when inside a request."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def bind_actor_context(actor: Actor) -> None:
    """Tag every later log line of this request with the actor's organization and user."""
    structlog.contextvars.bind_contextvars(organization_id=actor.organization_id, user_id=actor.user_id)


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and the stdlib bridge.

    Must run before other factory_pulse modules create loggers, because
    structlog caches the processor chain on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: JSON lines when True, ConsoleRenderer otherwise
    """
    shared = _shared_processors()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": shared,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
    })

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
