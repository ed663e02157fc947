"""structlog setup shared by the API process and the command-line scripts.

structlog events and stdlib records (uvicorn, httpx, stripe, botocore) go
through one ``ProcessorFormatter`` so both come out as the same JSON lines,
or as console output when ``json_logs`` is off. Each line carries the
service name and, inside a request, its ``X-Request-ID``.
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "optimizecode-backend"

# Chatty libraries held at WARNING regardless of the root level
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "stripe", "botocore", "anthropic")


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def add_service_name(logger, method, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog(log_level: str = "INFO", json_logs: bool = True, stream: str = "ext://sys.stdout") -> None:
    """Route structlog and stdlib logging through a single handler.

    Must run before modules that call ``structlog.get_logger`` log anything,
    since loggers are cached on first use.

    Args:
        log_level: Root level name, e.g. "DEBUG" or "WARNING"
        json_logs: JSON lines when True, ``ConsoleRenderer`` when False
        stream: Handler target; scripts pass ``ext://sys.stderr`` so stdout stays machine-readable
    """
    pre_chain = _pre_chain()
    if json_logs:
        final = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        final = [structlog.dev.ConsoleRenderer()]

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    *final,
                ],
                "foreign_pre_chain": pre_chain,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": stream,
            },
        },
        "root": {"handlers": ["default"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    })

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
