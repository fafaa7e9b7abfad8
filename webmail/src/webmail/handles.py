"""Per-account mail handles and the bounded cache that owns them.

What:
  Keep one :class:`MailHandle` per account, pairing a lazily connected
  :class:`~webmail.imap.MailboxClient` with the account's
  :class:`~webmail.smtp.SmtpTransport`, and hand it out to API requests.

Why:
  Logging into IMAP costs several round-trips, so sessions are reused across
  requests. Reuse brings three hazards: two requests building a handle for the
  same account at once, one IMAP session receiving interleaved commands, and
  the process accumulating idle sockets for every account that ever logged in.

How:
  :meth:`HandleCache.get` performs get-or-create under a single lock, so an
  account never ends up with two handles. Each handle serialises its IMAP
  commands with its own re-entrant lock. The cache is an LRU bounded by
  ``cache.max_handles``; overflow evicts and disconnects the least recently
  used handle. :meth:`HandleCache.reap_idle` disconnects handles idle past
  ``cache.idle_timeout_s`` and skips those serving a request.

Interfaces:
  :func:`build_handle`, :class:`MailHandle`, :class:`HandleCache`.

Invariants & Safety:
  - A cached handle is returned without a liveness probe; a broken session
    surfaces as an error on its next command and reconnects afterwards.
  - Reaped handles stay cached and reconnect on demand.
  - Evicted and invalidated handles are closed: a request still holding one
    finishes its operation and the session is logged out afterwards, so no
    IMAP connection outlives its cache entry.
"""
from __future__ import annotations

import contextlib
import threading
import time
from collections import OrderedDict
from typing import Callable, Iterator, List, Optional

from .imap.client import ImapConfig, MailboxClient
from .models import MailFolder, MailMessage
from .smtp.transport import OutboundMessage, SendResult, SmtpConfig, SmtpTransport
from .storage import MailCredential
from .utils.logging import get_logger

LOGGER = get_logger("webmail.handles")


class MailHandle:
    """IMAP session and SMTP transport for one account."""

    def __init__(
        self,
        account_id: str,
        mailbox: MailboxClient,
        transport: SmtpTransport,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.account_id = account_id
        self.mailbox = mailbox
        self.transport = transport
        self._clock = clock
        self._lock = threading.RLock()
        self._closed = False
        self.last_used = clock()

    @property
    def connected(self) -> bool:
        return self.mailbox.connected

    @property
    def closed(self) -> bool:
        return self._closed

    def touch(self) -> None:
        self.last_used = self._clock()

    def ensure_connected(self) -> None:
        """Open the IMAP session unless it is already open.

        Raises:
          MailConnectionError: The server rejected the connection or login; the
            handle stays disconnected and the next call retries.
        """

        with self._lock:
            self.mailbox.connect()

    @contextlib.contextmanager
    def session(self) -> Iterator[MailboxClient]:
        """Hold the IMAP lock and yield a connected mailbox client."""

        with self._lock:
            self.touch()
            try:
                self.mailbox.connect()
                yield self.mailbox
            finally:
                self.touch()
                if self._closed:
                    self.mailbox.disconnect()

    def list_folders(self) -> List[MailFolder]:
        with self.session() as mailbox:
            return mailbox.list_folders()

    def list_messages(self, folder: str, page: int, limit: int) -> List[MailMessage]:
        with self.session() as mailbox:
            return mailbox.list_messages(folder, page, limit)

    def get_message(self, uid: int, folder: str) -> Optional[MailMessage]:
        with self.session() as mailbox:
            return mailbox.get_message(uid, folder)

    def mark_read(self, uid: int, folder: str) -> None:
        with self.session() as mailbox:
            mailbox.mark_read(uid, folder)

    def delete_message(self, uid: int, folder: str) -> None:
        with self.session() as mailbox:
            mailbox.delete_message(uid, folder)

    def send(self, message: OutboundMessage) -> SendResult:
        self.touch()
        return self.transport.send(message)

    def disconnect(self) -> None:
        with self._lock:
            self.mailbox.disconnect()

    def close(self) -> None:
        """Disconnect for good once the handle has left the cache."""

        with self._lock:
            self._closed = True
            self.mailbox.disconnect()

    def disconnect_if_idle(self, now: float, idle_timeout_s: float) -> bool:
        """Disconnect when idle past ``idle_timeout_s``; never waits for a busy handle."""

        if not self._lock.acquire(blocking=False):
            return False
        try:
            if not self.connected or now - self.last_used <= idle_timeout_s:
                return False
            self.mailbox.disconnect()
            return True
        finally:
            self._lock.release()


def build_handle(record: MailCredential, *, clock: Callable[[], float] = time.monotonic) -> MailHandle:
    """Create a disconnected handle from a stored credential record."""

    mailbox = MailboxClient(
        ImapConfig(
            host=record.imap_host,
            username=record.imap_user,
            password=record.imap_pass,
            port=record.imap_port,
            ssl=record.imap_secure,
        )
    )
    transport = SmtpTransport(
        SmtpConfig(
            host=record.smtp_host,
            username=record.smtp_user,
            password=record.smtp_pass,
            from_email=record.from_email,
            port=record.smtp_port,
            secure=record.smtp_secure,
        )
    )
    return MailHandle(record.account_id, mailbox, transport, clock=clock)


class HandleCache:
    """Bounded LRU of :class:`MailHandle` objects keyed by account id.

    Args:
      credentials: Loads an account's :class:`MailCredential`; raises
        :class:`~webmail.errors.NotFound` when none exists.
      max_handles: Upper bound on cached handles.
      idle_timeout_s: Idle time after which :meth:`reap_idle` disconnects.
      clock: Monotonic time source shared with the handles.
    """

    def __init__(
        self,
        credentials: Callable[[str], MailCredential],
        *,
        max_handles: int = 256,
        idle_timeout_s: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_handles < 1:
            raise ValueError("max_handles must be positive")
        self._credentials = credentials
        self.max_handles = max_handles
        self.idle_timeout_s = idle_timeout_s
        self._clock = clock
        self._entries: "OrderedDict[str, MailHandle]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, account_id: object) -> bool:
        with self._lock:
            return account_id in self._entries

    def get(self, account_id: str) -> MailHandle:
        """Return the account's handle, creating it on first use.

        What:
          Atomic get-or-create keyed by account id.

        Why:
          Two concurrent first requests for one account must share a handle,
          otherwise one IMAP session leaks.

        How:
          Lookup, credential load and insertion all happen under the cache
          lock. Overflow evicts the least recently used handle, which is
          disconnected after the lock is released so a slow ``LOGOUT`` does
          not stall other accounts.

        Raises:
          NotFound: The account has no stored mail credentials.
        """

        evicted: Optional[MailHandle] = None
        with self._lock:
            handle = self._entries.get(account_id)
            if handle is not None:
                self._entries.move_to_end(account_id)
                return handle
            record = self._credentials(account_id)
            handle = build_handle(record, clock=self._clock)
            self._entries[account_id] = handle
            if len(self._entries) > self.max_handles:
                _, evicted = self._entries.popitem(last=False)
        LOGGER.info("handle_created", account_id=account_id)
        if evicted is not None:
            LOGGER.info("handle_evicted", account_id=evicted.account_id)
            evicted.close()
        return handle

    def invalidate(self, account_id: str) -> None:
        """Drop and disconnect one account's handle, if cached."""

        with self._lock:
            handle = self._entries.pop(account_id, None)
        if handle is not None:
            handle.close()
            LOGGER.info("handle_invalidated", account_id=account_id)

    def reap_idle(self, now: Optional[float] = None) -> int:
        """Disconnect handles idle longer than ``idle_timeout_s``; return the count."""

        current = self._clock() if now is None else now
        with self._lock:
            handles = list(self._entries.values())
        reaped = 0
        for handle in handles:
            if handle.disconnect_if_idle(current, self.idle_timeout_s):
                reaped += 1
        if reaped:
            LOGGER.info("handles_reaped", count=reaped)
        return reaped

    def close_all(self) -> None:
        with self._lock:
            handles = list(self._entries.values())
            self._entries.clear()
        for handle in handles:
            handle.close()
