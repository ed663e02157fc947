"""Request ids for tracing a call through logs.

Every response carries ``X-Request-ID``. A client-supplied id is kept when it
is short printable text; anything else is replaced with a fresh uuid4. The
active id is attached to every structlog event by
``optimizecode.core.logging.add_correlation_id``.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


def is_acceptable_request_id(value: str) -> bool:
    return 0 < len(value) <= MAX_REQUEST_ID_LENGTH and value.isprintable() and " " not in value


def setup_correlation_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=is_acceptable_request_id,
    )


def get_correlation_id() -> str | None:
    """Current request id, or None outside a request."""
    return correlation_id.get(None)
