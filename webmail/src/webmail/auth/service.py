"""Account registration, login and bearer-session verification.

What:
  Implement the auth gate in front of every mailbox operation: create accounts
  (optionally with validated mail credentials), issue and revoke sessions,
  resolve bearer tokens to account ids, and manage the stored credential record.

Why:
  Every mailbox call starts from an account id; centralising the path from a
  token to that id keeps the API routes free of persistence and crypto details.
  Registration spans two writes and a network probe, so its rollback rules are
  easier to audit in one place.

How:
  Passwords are hashed with argon2id (:mod:`webmail.auth.passwords`); tokens
  are signed by :class:`~webmail.auth.tokens.TokenSigner` and mirrored by a
  :class:`~webmail.storage.Session` row so they can be revoked. Registration
  commits the account first, probes IMAP, then stores the credential; any
  failure after the account commit triggers a compensating delete.

Interfaces:
  :class:`CredentialInput`, :class:`AuthResult`, :class:`AuthService`.

Invariants & Safety:
  - Login failures use one message whether the email or the password is wrong.
  - A failed credential probe leaves no account behind unless the compensating
    delete itself fails, which is logged as an orphaned account.
  - Only ``imap_pass``, ``smtp_pass`` and ``from_email`` change after creation.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config.schema import AuthSettings, MailSettings
from ..errors import (
    Conflict,
    InvalidCredentials,
    MailConnectionError,
    NotFound,
    Unauthorized,
    ValidationError,
)
from ..imap.client import ImapConfig, MailboxClient
from ..storage import Account, Database, MailCredential, Session
from ..utils.logging import get_logger
from .passwords import hash_password, verify_password
from .tokens import TokenSigner

if TYPE_CHECKING:  # pragma: no cover
    from ..handles import HandleCache

LOGGER = get_logger("webmail.auth")

USER_EXISTS = "User already exists"
INVALID_LOGIN = "Invalid credentials"
INVALID_MAIL_CREDENTIALS = "Invalid email credentials. Please check your email and password."
STORE_FAILED = "Failed to validate email credentials. Please try again."
CREDENTIALS_NOT_FOUND = "User credentials not found"
NO_UPDATES = "No updates provided"

SECRET_FIELDS = ("imap_pass", "smtp_pass")


@dataclass
class CredentialInput:
    """Mail credentials optionally supplied at registration.

    Host, port, TLS and username fields fall back to the configured provider
    defaults and the account email when left unset.
    """

    imap_pass: Optional[str] = None
    smtp_pass: Optional[str] = None
    from_email: Optional[str] = None
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    imap_secure: Optional[bool] = None
    imap_user: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_secure: Optional[bool] = None
    smtp_user: Optional[str] = None

    @property
    def supplied(self) -> bool:
        return bool(self.imap_pass and self.smtp_pass and self.from_email)

    @property
    def partial(self) -> bool:
        return not self.supplied and bool(self.imap_pass or self.smtp_pass or self.from_email)


@dataclass
class AuthResult:
    token: str
    account_id: str
    email: str

    def as_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "user": {"id": self.account_id, "email": self.email}}


def probe_imap(config: ImapConfig) -> None:
    MailboxClient(config).probe()


def sanitize_credential(record: MailCredential) -> Dict[str, Any]:
    """Return every stored credential field except the two secrets."""

    return {
        column.key: getattr(record, column.key)
        for column in MailCredential.__table__.columns
        if column.key not in SECRET_FIELDS
    }


class AuthService:
    """Auth gate backed by the relational store.

    Args:
      database: Store holding accounts, credentials and sessions.
      auth: Token secret and session lifetime.
      mail: Provider defaults for credentials supplied without server details.
      handles: Optional handle cache invalidated when credentials change.
      probe: Callable validating IMAP credentials; raises
        :class:`MailConnectionError` on failure.
      clock: Source of the current epoch time.
    """

    def __init__(
        self,
        database: Database,
        *,
        auth: AuthSettings,
        mail: MailSettings,
        handles: Optional["HandleCache"] = None,
        probe: Callable[[ImapConfig], None] = probe_imap,
        clock: Callable[[], float] = time.time,
    ):
        self._db = database
        self._auth = auth
        self._mail = mail
        self._signer = TokenSigner(auth.token_secret)
        self._probe = probe
        self._clock = clock
        self.handles = handles

    def _now(self) -> int:
        return int(self._clock())

    def register(self, email: str, password: str, credentials: Optional[CredentialInput] = None) -> AuthResult:
        """Create an account, optionally attach mail credentials, and log in.

        What:
          Persist a new account, validate and store the supplied mail
          credentials, and issue the first session.

        Why:
          Storing credentials that cannot log in would only surface as a
          connection failure on the first mailbox call; probing at registration
          gives the user immediate feedback.

        How:
          Reject duplicates and partial credential sets first. Commit the
          account, then hand off to :meth:`_attach_credentials`, which rolls the
          account back on any failure.

        Raises:
          Conflict: The email is already registered.
          ValidationError: Only some of the three mail credential fields were
            supplied, or the credential could not be stored.
          InvalidCredentials: The IMAP probe failed.
        """

        if credentials is not None and credentials.partial:
            raise ValidationError("imapPass, smtpPass and fromEmail must be supplied together")

        try:
            with self._db.session() as session:
                if session.scalar(select(Account.id).where(Account.email == email)) is not None:
                    raise Conflict(USER_EXISTS)
                account = Account(email=email, password_hash=hash_password(password))
                session.add(account)
                session.flush()
                account_id = account.id
        except IntegrityError as exc:
            raise Conflict(USER_EXISTS) from exc
        LOGGER.info("account_created", account_id=account_id)

        if credentials is not None and credentials.supplied:
            self._attach_credentials(account_id, email, credentials)

        token = self._open_session(account_id)
        return AuthResult(token=token, account_id=account_id, email=email)

    def _build_credential(self, account_id: str, email: str, data: CredentialInput) -> MailCredential:
        imap = self._mail.imap
        smtp = self._mail.smtp
        return MailCredential(
            account_id=account_id,
            imap_host=data.imap_host or imap.host,
            imap_port=data.imap_port or imap.port,
            imap_secure=imap.secure if data.imap_secure is None else data.imap_secure,
            imap_user=data.imap_user or email,
            imap_pass=data.imap_pass,
            smtp_host=data.smtp_host or smtp.host,
            smtp_port=data.smtp_port or smtp.port,
            smtp_secure=smtp.secure if data.smtp_secure is None else data.smtp_secure,
            smtp_user=data.smtp_user or email,
            smtp_pass=data.smtp_pass,
            from_email=data.from_email,
        )

    def _attach_credentials(self, account_id: str, email: str, data: CredentialInput) -> None:
        record = self._build_credential(account_id, email, data)
        try:
            self._probe(
                ImapConfig(
                    host=record.imap_host,
                    username=record.imap_user,
                    password=record.imap_pass,
                    port=record.imap_port,
                    ssl=record.imap_secure,
                )
            )
        except MailConnectionError as exc:
            LOGGER.warning("credential_probe_failed", account_id=account_id, error=exc.message)
            self._rollback_account(account_id)
            raise InvalidCredentials(INVALID_MAIL_CREDENTIALS) from exc

        try:
            with self._db.session() as session:
                session.add(record)
        except SQLAlchemyError as exc:
            LOGGER.error("credential_store_failed", account_id=account_id, error=str(exc))
            self._rollback_account(account_id)
            raise ValidationError(STORE_FAILED) from exc

    def _rollback_account(self, account_id: str) -> None:
        try:
            with self._db.session() as session:
                session.execute(delete(Account).where(Account.id == account_id))
        except SQLAlchemyError as exc:
            LOGGER.error("orphaned_account", account_id=account_id, error=str(exc))
            return
        LOGGER.info("account_rolled_back", account_id=account_id)

    def _open_session(self, account_id: str) -> str:
        now = self._now()
        expires_at = now + self._auth.session_ttl_s
        token = self._signer.sign(account_id, expires_at)
        with self._db.session() as session:
            session.add(Session(account_id=account_id, token=token, expires_at=expires_at, created_at=now))
        return token

    def login(self, email: str, password: str) -> AuthResult:
        """Verify the password and issue a new session; older sessions stay valid."""

        with self._db.session() as session:
            account = session.scalar(select(Account).where(Account.email == email))
            if account is None or not verify_password(password, account.password_hash):
                raise InvalidCredentials(INVALID_LOGIN)
            account_id = account.id
        token = self._open_session(account_id)
        LOGGER.info("login", account_id=account_id)
        return AuthResult(token=token, account_id=account_id, email=email)

    def logout(self, token: str) -> None:
        with self._db.session() as session:
            session.execute(delete(Session).where(Session.token == token))

    def verify_token(self, token: str) -> str:
        """Resolve ``token`` to its account id.

        Raises:
          Unauthorized: For a malformed, forged, expired, or revoked token.
        """

        now = self._now()
        account_id = self._signer.verify(token, now)
        with self._db.session() as session:
            row = session.scalar(select(Session).where(Session.token == token))
            if row is None or row.expires_at <= now or row.account_id != account_id:
                raise Unauthorized()
        return account_id

    def purge_expired_sessions(self, now: Optional[int] = None) -> int:
        """Delete sessions whose expiry has passed and return how many went."""

        cutoff = self._now() if now is None else now
        with self._db.session() as session:
            result = session.execute(delete(Session).where(Session.expires_at <= cutoff))
            removed = result.rowcount or 0
        if removed:
            LOGGER.info("sessions_purged", count=removed)
        return removed

    def get_credentials(self, account_id: str) -> MailCredential:
        with self._db.session() as session:
            record = session.scalar(select(MailCredential).where(MailCredential.account_id == account_id))
            if record is None:
                raise NotFound(CREDENTIALS_NOT_FOUND)
            return record

    def update_credentials(
        self,
        account_id: str,
        *,
        imap_pass: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        from_email: Optional[str] = None,
    ) -> MailCredential:
        """Rotate the mutable credential fields.

        Empty values count as not provided. Server settings are fixed at
        registration and cannot be changed here. The account's cached mail
        handle is dropped so the next mailbox call uses the new secrets.

        Raises:
          ValidationError: None of the three fields carries a value.
          NotFound: The account has no stored credential.
        """

        updates = {
            key: value
            for key, value in (("imap_pass", imap_pass), ("smtp_pass", smtp_pass), ("from_email", from_email))
            if value
        }
        if not updates:
            raise ValidationError(NO_UPDATES)
        with self._db.session() as session:
            record = session.scalar(select(MailCredential).where(MailCredential.account_id == account_id))
            if record is None:
                raise NotFound(CREDENTIALS_NOT_FOUND)
            for key, value in updates.items():
                setattr(record, key, value)
        if self.handles is not None:
            self.handles.invalidate(account_id)
        LOGGER.info("credentials_updated", account_id=account_id, fields=sorted(updates))
        return record
