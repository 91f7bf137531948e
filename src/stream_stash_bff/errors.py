"""Error taxonomy for the BFF.

Everything that can go wrong while handling a request collapses into one of
two kinds before it reaches the HTTP layer:

- ``Forbidden``: the caller has no usable session, or the identity provider
  rejected the operation. The client should re-authenticate.
- ``InternalFault``: transport, serialization or configuration trouble. The
  client should try again later.

Provider-facing code raises the more specific subclasses below so callers can
tell a rejection from a transport failure without string matching.
"""
from typing import Optional


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response.

    Attributes:
        message: Server-side description, never sent to the client.
        operation: Name of the operation that failed, for log correlation.
        clear_session_cookie: Whether the error response must delete the
            session cookie.
        replacement_cookie: A refreshed session cookie the error response
            must still set. Ignored when clear_session_cookie is true.
    """

    status_code = 500
    public_detail = "Internal Server Error"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        clear_session_cookie: bool = False,
    ) -> None:
        self.message = message
        self.operation = operation
        self.clear_session_cookie = clear_session_cookie
        self.replacement_cookie: Optional[str] = None
        super().__init__(message)


class Forbidden(ApiError):
    status_code = 403
    public_detail = "Forbidden"


class InternalFault(ApiError):
    status_code = 500
    public_detail = "Internal Server Error"


# --- Provider errors ---

class ProviderRejected(Forbidden):
    """The provider answered, and the answer was a refusal."""


class ScopeMismatch(ProviderRejected):
    """Granted scopes differ from the requested ones."""

    def __init__(
        self,
        requested: frozenset,
        received: frozenset,
        operation: Optional[str] = None,
    ) -> None:
        self.requested = requested
        self.received = received
        missing = sorted(requested - received)
        extra = sorted(received - requested)
        super().__init__(
            f"Scope returned by provider differs from requested (missing={missing}, extra={extra})",
            operation,
        )


class ProviderTransportError(InternalFault):
    """Connection failure, timeout, or a body that could not be understood."""


# --- Cookie errors ---

class CookieDecodeError(Forbidden):
    """The session cookie is missing, forged, expired, or does not parse."""


class CookieEncodeError(InternalFault):
    pass
