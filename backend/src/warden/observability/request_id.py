"""Request ID management for request correlation.

The id is kept in a ContextVar so every log line written while handling a
request carries it, including lines from services that know nothing about
HTTP.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request_id (async-safe)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Client-supplied ids are echoed into logs and headers
_ACCEPTED_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def generate_request_id() -> str:
    return str(uuid.uuid4())


def accept_request_id(candidate: Optional[str]) -> str:
    """Reuse a well-formed incoming X-Request-ID, otherwise generate one.

    Example:
        >>> accept_request_id("abc-123")
        'abc-123'
        >>> len(accept_request_id("bad id\\n"))
        36
    """
    if candidate and _ACCEPTED_REQUEST_ID.match(candidate):
        return candidate
    return generate_request_id()


def get_request_id() -> str:
    """Current request ID, or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)
