"""SQLAlchemy models for accounts, mail credentials and sessions.

What:
  Declare the three persistent tables the auth gate and the handle cache rely
  on.

Why:
  Account identity, stored mailbox secrets and bearer sessions have different
  lifecycles; separate tables let sessions be purged and credentials rotated
  without touching the account row.

How:
  SQLAlchemy 2.0 declarative mapping with ``Mapped``/``mapped_column``.
  Timestamps are integer epoch seconds. Child rows reference the account with
  ``ON DELETE CASCADE`` and the ORM relationships cascade deletes as well, so
  removing an account removes everything it owns with either mechanism.

Interfaces:
  :class:`Base`, :class:`Account`, :class:`MailCredential`, :class:`Session`,
  :func:`new_account_id`, :func:`epoch_now`.

Invariants & Safety:
  - ``Account.email`` and ``Session.token`` are unique.
  - At most one :class:`MailCredential` exists per account.
"""
from __future__ import annotations

import time
import uuid
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_account_id() -> str:
    return uuid.uuid4().hex


def epoch_now() -> int:
    return int(time.time())


class Base(DeclarativeBase):
    pass


class Account(Base):
    """Registered webmail user."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_account_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=epoch_now)
    updated_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=epoch_now, onupdate=epoch_now
    )

    credential: Mapped[Optional["MailCredential"]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    sessions: Mapped[List["Session"]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email='{self.email}')>"


class MailCredential(Base):
    """IMAP/SMTP settings and secrets for one account's mailbox."""

    __tablename__ = "mail_credentials"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    imap_host: Mapped[str] = mapped_column(String(255), nullable=False)
    imap_port: Mapped[int] = mapped_column(Integer, nullable=False)
    imap_secure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    imap_user: Mapped[str] = mapped_column(String(320), nullable=False)
    imap_pass: Mapped[str] = mapped_column(Text, nullable=False)
    smtp_host: Mapped[str] = mapped_column(String(255), nullable=False)
    smtp_port: Mapped[int] = mapped_column(Integer, nullable=False)
    smtp_secure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    smtp_user: Mapped[str] = mapped_column(String(320), nullable=False)
    smtp_pass: Mapped[str] = mapped_column(Text, nullable=False)
    from_email: Mapped[str] = mapped_column(String(320), nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=epoch_now)
    updated_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=epoch_now, onupdate=epoch_now
    )

    account: Mapped[Account] = relationship(back_populates="credential")

    def __repr__(self) -> str:
        return f"<MailCredential(account_id={self.account_id}, imap_host='{self.imap_host}')>"


class Session(Base):
    """Bearer token issued at login or registration."""

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    token: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    expires_at: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=epoch_now)

    account: Mapped[Account] = relationship(back_populates="sessions")

    def __repr__(self) -> str:
        return f"<Session(id={self.id}, account_id={self.account_id}, expires_at={self.expires_at})>"
