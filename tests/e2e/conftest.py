"""Fixtures running the ASGI application against in-memory backends.

What:
  Build the FastAPI app from the canned configuration (in-memory SQLite) and
  drive it through ``fastapi.testclient.TestClient`` with the fake IMAP and
  SMTP servers patched in.

Why:
  The end-to-end suites check status codes and wire shapes exactly as clients
  see them, including the lifespan maintenance sweep.

How:
  ``client`` enters the TestClient context so startup and shutdown run;
  ``account`` registers a user with mail credentials over REST and returns the
  bearer headers.

Interfaces:
  ``app``, ``client``, ``account`` (pytest fixtures).
"""

from dataclasses import dataclass
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from webmail.api import create_app

EMAIL = "alice@example.com"
PASSWORD = "hunter22"


@dataclass
class Account:
    account_id: str
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture
def app(imap_backend, smtp_server):
    application = create_app()
    yield application
    application.state.services.database.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def account(client) -> Account:
    response = client.post(
        "/api/auth/register",
        json={
            "email": EMAIL,
            "password": PASSWORD,
            "imapPass": "imap-secret",
            "smtpPass": "smtp-secret",
            "fromEmail": EMAIL,
        },
    )
    assert response.status_code == 201, response.text
    body = response.json()
    return Account(account_id=body["user"]["id"], token=body["token"])
