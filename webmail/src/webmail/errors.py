"""Error taxonomy shared by the webmail services and API surfaces.

What:
  Define the exception hierarchy raised by the auth gate, the mailbox layer,
  and the outbound transport, together with the HTTP status and RPC error code
  each one maps to.

Why:
  Both API surfaces must report the same failure in the same way. Keeping the
  mapping on the exception classes means the REST handlers and the RPC
  dispatcher never duplicate status tables.

How:
  Every error derives from :class:`WebmailError`, which carries a human-readable
  ``message``. Subclasses override ``status_code`` and ``rpc_code`` as class
  attributes.

Interfaces:
  :class:`WebmailError`, :class:`ValidationError`, :class:`InvalidCredentials`,
  :class:`Unauthorized`, :class:`NotFound`, :class:`Conflict`,
  :class:`MailConnectionError`, :class:`FetchError`.

Invariants & Safety:
  - :class:`Unauthorized` always carries the same message regardless of cause
    so callers cannot learn why a token was rejected.
  - Mail transport errors pass the underlying cause's message through.
"""
from __future__ import annotations


class WebmailError(Exception):
    """Base class for failures reported to API clients."""

    status_code: int = 500
    rpc_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WebmailError):
    """Malformed input rejected at the boundary."""

    status_code = 400
    rpc_code = "BAD_REQUEST"


class InvalidCredentials(WebmailError):
    """Unknown email, wrong password, or mail credentials that fail the probe."""

    status_code = 401
    rpc_code = "UNAUTHORIZED"


class Unauthorized(WebmailError):
    """Missing, malformed, revoked, or expired bearer token."""

    status_code = 401
    rpc_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class NotFound(WebmailError):
    """Unknown message, credential record, or account."""

    status_code = 404
    rpc_code = "NOT_FOUND"


class Conflict(WebmailError):
    """Duplicate account registration."""

    status_code = 409
    rpc_code = "CONFLICT"


class MailConnectionError(WebmailError):
    """The IMAP session could not be opened or authenticated."""


class FetchError(WebmailError):
    """A mailbox operation failed after the connection was established."""
