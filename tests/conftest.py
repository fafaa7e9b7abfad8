"""Pytest configuration shared by the unit and end-to-end suites.

What:
  Establish project import paths, apply a canned runtime configuration to
  every test, and expose the fake IMAP and SMTP servers.

Why:
  Tests import the in-repo ``webmail`` package rather than an installed wheel,
  and configuration is cached globally, so each test must start from the same
  known settings. No test may reach a real mail server.

How:
  Prepend ``webmail/src`` to ``sys.path`` when present and point
  ``WEBMAIL_CONFIG_PATH`` at ``tests/data/config.yaml`` while resetting the
  runtime cache before and after each test. The mail fixtures monkeypatch
  ``webmail.imap.client.IMAPClient`` and ``smtplib.SMTP``/``SMTP_SSL`` with the
  factories from :mod:`tests.fakes`.

Interfaces:
  :func:`runtime_config` (autouse), :func:`imap_backend`, :func:`smtp_server`.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "webmail" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from tests.fakes import FakeImapBackend, FakeSmtpServer
from webmail.config.loader import reset_runtime_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file for every test."""

    monkeypatch.setenv("WEBMAIL_CONFIG_PATH", str(CONFIG_PATH))
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()


@pytest.fixture
def imap_backend(monkeypatch: pytest.MonkeyPatch) -> FakeImapBackend:
    backend = FakeImapBackend()
    monkeypatch.setattr("webmail.imap.client.IMAPClient", backend.connect)
    return backend


@pytest.fixture
def smtp_server(monkeypatch: pytest.MonkeyPatch) -> FakeSmtpServer:
    server = FakeSmtpServer()
    monkeypatch.setattr("smtplib.SMTP", server.plain)
    monkeypatch.setattr("smtplib.SMTP_SSL", server.implicit_tls)
    return server
