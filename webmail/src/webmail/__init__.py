"""
Module: webmail.__init__

What:
  Aggregate package exports for the multi-tenant webmail service and expose the
  primary namespace segments (configuration, storage, authentication, mailbox
  access, outbound mail, HTTP surface, and utilities).

Why:
  Entry points such as the CLI and the ASGI server import these subpackages by
  name; a stable surface lets the internal layout evolve without touching them.

How:
  Provide an explicit ``__all__`` declaration that enumerates the public
  subpackages and leave imports to the callers so importing ``webmail`` stays
  free of side effects.

Interfaces:
  - config: YAML configuration schema and cached loader.
  - storage: SQLAlchemy models and database session factory.
  - auth: Account registration, login, token verification, credentials.
  - handles: Per-account mail handle cache.
  - imap: Paginated, UID-based mailbox client.
  - smtp: Outbound transport.
  - api: FastAPI application with REST and RPC routes.
  - utils: Logging and MIME helpers.
"""

__all__ = [
    "api",
    "auth",
    "config",
    "handles",
    "imap",
    "smtp",
    "storage",
    "utils",
]
