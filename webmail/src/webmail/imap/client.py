"""Stateful IMAP client for one account's mailbox.

What:
  Wrap the third-party ``imapclient`` library with the connection lifecycle,
  newest-first pagination, and flag operations the webmail API exposes.

Why:
  Direct use of ``imapclient`` exposes sharp edges: sequence numbers that shift
  under concurrent deletes, ``FETCH BODY[]`` silently marking mail as read, and
  ``EXPUNGE`` purging every ``\\Deleted`` message in a folder. Centralising the
  calls keeps those behaviours in one audited place.

How:
  Connects lazily and keeps the session open between calls. Each operation runs
  inside :meth:`MailboxClient._operation`, which opens the connection on demand,
  converts library errors into :class:`~webmail.errors.FetchError`, and drops
  the session after transport failures so the next call reconnects. Page ranges
  come from :func:`~webmail.imap.pagination.page_range`; the sequence range is
  resolved to UIDs with ``SEARCH`` so everything afterwards runs by UID.

Interfaces:
  :class:`ImapConfig` and :class:`MailboxClient` (``connect``, ``disconnect``,
  ``probe``, ``list_folders``, ``list_messages``, ``get_message``,
  ``mark_read``, ``delete_message``).

Invariants & Safety:
  - Message bodies are fetched with ``BODY.PEEK[]`` so listing never changes
    read state.
  - ``delete_message`` purges exactly one UID; other ``\\Deleted`` messages in
    the folder survive even on servers without ``UIDPLUS``.
  - A failed connect leaves the client disconnected; there is no backoff.
"""
from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from imapclient import DELETED, SEEN, IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from ..config.loader import get_runtime_config
from ..errors import FetchError, MailConnectionError
from ..models import MailFolder, MailMessage
from ..utils.logging import get_logger
from ..utils.mime import normalize_message
from .pagination import page_range, sequence_set

LOGGER = get_logger("webmail.imap")

FETCH_ITEMS = [b"FLAGS", b"ENVELOPE", b"BODY.PEEK[]"]
NOSELECT = b"\\Noselect"


@dataclass
class ImapConfig:
    """Connection parameters for one account's IMAP server.

    What:
      Captures the host, credentials and TLS mode stored in the account's
      mail credential record.

    Why:
      A typed configuration object makes it explicit which values come from
      storage and which (the socket timeout) come from the runtime defaults.

    How:
      :meth:`__post_init__` fills ``timeout`` from
      :func:`webmail.config.loader.get_runtime_config` when left unset.

    Attributes:
      host: IMAP hostname.
      username: Login credential.
      password: Password or app-specific token.
      port: IMAP port (defaults to 993).
      ssl: Whether to use implicit TLS.
      timeout: Socket timeout in seconds.
    """

    host: str
    username: str
    password: str
    port: int = 993
    ssl: bool = True
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.timeout is None:
            self.timeout = get_runtime_config().mail.timeout_s


class MailboxClient:
    """Lazily connected IMAP session exposing the webmail mailbox operations.

    What:
      Owns at most one ``imapclient.IMAPClient`` connection and offers the
      folder, message and flag operations used by the API.

    Why:
      Re-authenticating on every request is slow; the client keeps its session
      open until it is explicitly disconnected or the transport fails.

    How:
      :meth:`connect` is idempotent. Operations call it implicitly, then run
      their IMAP commands inside :meth:`_operation` for uniform error handling.
      The class is not thread-safe; callers serialise access (see
      :class:`webmail.handles.MailHandle`).
    """

    def __init__(self, config: ImapConfig):
        self._config = config
        self._client: Optional[IMAPClient] = None

    def __enter__(self) -> "MailboxClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def config(self) -> ImapConfig:
        return self._config

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> IMAPClient:
        """Expose the underlying ``IMAPClient`` connection.

        Raises:
          RuntimeError: If accessed before :meth:`connect`.
        """

        if self._client is None:
            raise RuntimeError("IMAP client not connected")
        return self._client

    def connect(self) -> None:
        """Open and authenticate the IMAP session unless already connected.

        What:
          Establish the TCP/TLS connection and log in with the stored
          credentials.

        Why:
          Every mailbox operation needs an authenticated session; doing the
          work lazily keeps handle construction free of network IO.

        How:
          Instantiate ``IMAPClient`` and call ``login``. Any library or socket
          failure is wrapped in :class:`MailConnectionError` carrying the
          original message, and the half-open socket is shut down so the client
          stays in a clean disconnected state.

        Raises:
          MailConnectionError: When the server is unreachable, TLS fails, or the
            credentials are rejected.
        """

        if self._client is not None:
            return
        client: Optional[IMAPClient] = None
        try:
            client = IMAPClient(
                self._config.host,
                port=self._config.port,
                ssl=self._config.ssl,
                timeout=self._config.timeout,
            )
            client.login(self._config.username, self._config.password)
        except (IMAPClientError, OSError) as exc:
            LOGGER.error("imap_connect_failed", host=self._config.host, error=str(exc))
            if client is not None:
                with contextlib.suppress(IMAPClientError, OSError):
                    client.shutdown()
            raise MailConnectionError(f"Failed to connect to email server: {exc}") from exc
        self._client = client
        LOGGER.info("imap_connected", host=self._config.host, user=self._config.username)

    def disconnect(self) -> None:
        """Log out of the IMAP session and release the socket."""

        if self._client is None:
            return
        try:
            self._client.logout()
        except (IMAPClientError, OSError) as exc:
            LOGGER.warning("imap_logout_failed", host=self._config.host, error=str(exc))
        finally:
            self._client = None
        LOGGER.info("imap_disconnected", host=self._config.host)

    def probe(self) -> None:
        """Connect, authenticate and log out again to validate credentials."""

        with self:
            pass

    def _drop(self) -> None:
        """Forget a session whose transport failed, without a LOGOUT round-trip."""

        if self._client is None:
            return
        with contextlib.suppress(IMAPClientError, OSError):
            self._client.shutdown()
        self._client = None

    @contextlib.contextmanager
    def _operation(self, action: str) -> Iterator[IMAPClient]:
        """Run IMAP commands for ``action`` with uniform error handling.

        What:
          Ensure the session is connected, yield the raw client, and translate
          failures raised inside the block.

        Why:
          All mailbox operations share the same failure contract: transport
          failures are reported as :class:`FetchError` with the cause's message,
          and a broken session must not be reused.

        How:
          Call :meth:`connect` first (its :class:`MailConnectionError`
          propagates untouched). Aborts and socket errors drop the session;
          protocol errors such as a failed ``SELECT`` keep it.

        Args:
          action: Human-readable description used in the error message.

        Yields:
          The connected ``IMAPClient``.
        """

        self.connect()
        try:
            yield self.client
        except (IMAPClientAbortError, OSError) as exc:
            self._drop()
            LOGGER.error("imap_transport_failed", action=action, error=str(exc))
            raise FetchError(f"Failed to {action}: {exc}") from exc
        except IMAPClientError as exc:
            LOGGER.error("imap_command_failed", action=action, error=str(exc))
            raise FetchError(f"Failed to {action}: {exc}") from exc

    def list_folders(self) -> List[MailFolder]:
        """Return every folder with its unseen message count.

        A folder whose ``STATUS`` query fails, or that cannot be selected,
        reports a count of zero instead of failing the whole listing.
        """

        folders: List[MailFolder] = []
        with self._operation("fetch email folders") as client:
            for flags, _delimiter, name in client.list_folders():
                folder_name = name.decode() if isinstance(name, bytes) else str(name)
                if NOSELECT in (flags or ()):
                    folders.append(MailFolder(name=folder_name, count=0))
                    continue
                try:
                    status = client.folder_status(folder_name, [b"UNSEEN"])
                except IMAPClientAbortError:
                    raise
                except IMAPClientError as exc:
                    LOGGER.warning("folder_status_failed", folder=folder_name, error=str(exc))
                    count = 0
                else:
                    count = int(status.get(b"UNSEEN", 0))
                folders.append(MailFolder(name=folder_name, count=count))
        return folders

    def list_messages(self, folder: str = "INBOX", page: int = 1, limit: int = 20) -> List[MailMessage]:
        """Return one newest-first page of ``folder``.

        What:
          Fetch the messages occupying the page's sequence range and normalise
          them into :class:`MailMessage` objects sorted by date, newest first.

        Why:
          Clients page backwards from the newest message; the arithmetic lives
          in :func:`page_range` and this method turns it into IMAP commands.

        How:
          Select the folder read-only, read ``EXISTS``, compute the range, map
          the sequence range to UIDs via ``SEARCH``, and fetch flags, envelope
          and body by UID. Messages that fail to normalise are logged and
          skipped, so a page may hold fewer entries than its range. The final
          sort is by parsed date because fetch order is not chronological.

        Args:
          folder: Folder to read.
          page: 1-based page number.
          limit: Page size.

        Returns:
          Normalised messages, possibly empty.

        Raises:
          MailConnectionError: If the session cannot be opened.
          FetchError: If any IMAP command fails.
        """

        with self._operation("fetch emails") as client:
            info = client.select_folder(folder, readonly=True)
            total = int(info.get(b"EXISTS", 0))
            bounds = page_range(total, page, limit)
            if bounds is None:
                return []
            uids = client.search([sequence_set(bounds)])
            if not uids:
                return []
            response: Dict[int, Dict[bytes, Any]] = client.fetch(uids, FETCH_ITEMS)

        messages: List[MailMessage] = []
        for uid, data in response.items():
            try:
                messages.append(normalize_message(uid, folder, data))
            except Exception as exc:  # undecodable messages are skipped, not fatal
                LOGGER.error("message_parse_failed", folder=folder, uid=uid, error=str(exc))
        messages.sort(key=lambda message: message.date, reverse=True)
        return messages

    def get_message(self, uid: int, folder: str = "INBOX") -> Optional[MailMessage]:
        """Fetch one message by UID; ``None`` when the UID is not in ``folder``."""

        with self._operation("fetch email") as client:
            client.select_folder(folder, readonly=True)
            response = client.fetch([uid], FETCH_ITEMS)
        data = response.get(uid)
        if data is None:
            return None
        try:
            return normalize_message(uid, folder, data)
        except Exception as exc:
            LOGGER.error("message_parse_failed", folder=folder, uid=uid, error=str(exc))
            raise FetchError(f"Failed to fetch email: {exc}") from exc

    def mark_read(self, uid: int, folder: str = "INBOX") -> None:
        """Add ``\\Seen`` to ``uid``; a no-op when the flag is already set."""

        with self._operation("mark email as read") as client:
            client.select_folder(folder, readonly=False)
            client.add_flags([uid], [SEEN])

    def delete_message(self, uid: int, folder: str = "INBOX") -> None:
        """Flag ``uid`` as deleted and purge that message only.

        What:
          Permanently remove one message from ``folder``.

        Why:
          A plain ``EXPUNGE`` removes every message carrying ``\\Deleted``,
          including ones another client flagged but has not purged yet.

        How:
          With ``UIDPLUS`` the purge is ``UID EXPUNGE <uid>``. Without it,
          the other ``\\Deleted`` messages are unflagged for the duration of a
          folder-wide ``EXPUNGE`` and flagged again afterwards.

        Args:
          uid: Message UID.
          folder: Folder holding the message.
        """

        with self._operation("delete email") as client:
            client.select_folder(folder, readonly=False)
            client.add_flags([uid], [DELETED])
            if client.has_capability("UIDPLUS"):
                client.expunge([uid])
                return
            others = [other for other in client.search(["DELETED"]) if other != uid]
            if others:
                client.remove_flags(others, [DELETED])
            try:
                client.expunge()
            finally:
                if others:
                    client.add_flags(others, [DELETED])
