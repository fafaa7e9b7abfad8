"""Pytest fixtures for unit tests requiring a mailbox client or a database.

What:
  Expose a disconnected :class:`MailboxClient`, an in-memory SQLite database
  and an :class:`AuthService` built on both.

Why:
  Unit tests exercise the mailbox client and the auth service heavily; shared
  fixtures keep every test free of network access and of state left behind by
  its neighbours.

How:
  Build on the ``imap_backend`` fixture from the top-level conftest and create
  a fresh :class:`~webmail.storage.Database` per test.

Interfaces:
  ``mailbox``, ``database``, ``auth_service`` (pytest fixtures).
"""

import pytest

from tests.fakes import FakeImapBackend
from webmail.auth import AuthService
from webmail.config import get_runtime_config
from webmail.imap import ImapConfig, MailboxClient
from webmail.storage import Database


@pytest.fixture
def mailbox(imap_backend: FakeImapBackend) -> MailboxClient:
    """A disconnected client for ``user@example.com`` talking to the fake backend."""

    return MailboxClient(ImapConfig(host="imap.test.local", username="user@example.com", password="secret"))


@pytest.fixture
def database() -> Database:
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def auth_service(database: Database, imap_backend: FakeImapBackend) -> AuthService:
    config = get_runtime_config()
    return AuthService(database, auth=config.auth, mail=config.mail)
