"""In-memory IMAP and SMTP backends used by the test suites.

What:
  Provide drop-in replacements for :class:`imapclient.IMAPClient` and
  :class:`smtplib.SMTP` that keep mailboxes and outgoing mail in Python data
  structures.

Why:
  Mailbox pagination, flag handling and delete scoping must be exercised
  without contacting real servers. The fakes record every command so tests can
  assert on what was sent, not only on the resulting state.

How:
  :class:`FakeImapBackend` stores per-folder dictionaries of
  :class:`_StoredMessage` keyed by UID, numbers them oldest-first for sequence
  searches, and builds ``ENVELOPE`` tuples with ``imapclient``'s own response
  types. :class:`FakeSmtpServer` hands out :class:`FakeSmtpConnection` objects
  that append delivered messages to :attr:`FakeSmtpServer.sent`.

Interfaces:
  :func:`build_message`, :class:`FakeImapBackend`, :class:`FakeSmtpServer`.

Invariants & Safety:
  - UIDs increase monotonically per backend instance.
  - ``BODY[]`` sets ``\\Seen``; ``BODY.PEEK[]`` never does.
  - ``EXPUNGE`` removes exactly the messages flagged ``\\Deleted`` at the time.
"""

from __future__ import annotations

import re
import smtplib
from dataclasses import dataclass, field
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import format_datetime, getaddresses, parsedate_to_datetime
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from imapclient import DELETED, SEEN
from imapclient.exceptions import IMAPClientError, LoginError
from imapclient.response_types import Address, Envelope

_SEQUENCE_RANGE = re.compile(r"^(\d+):(\d+)$")


def build_message(
    subject: Optional[str] = "Hello",
    *,
    sender: str = "Alice <alice@example.com>",
    to: Sequence[str] = ("user@example.com",),
    date: Optional[datetime] = None,
    text: Optional[str] = "Hello there",
    html: Optional[str] = None,
) -> bytes:
    """Return RFC822 bytes for a simple text, HTML or multipart message."""

    message = EmailMessage()
    if subject is not None:
        message["Subject"] = subject
    message["From"] = sender
    message["To"] = ", ".join(to)
    if date is not None:
        message["Date"] = format_datetime(date)
    if text is not None and html is not None:
        message.set_content(text)
        message.add_alternative(html, subtype="html")
    elif html is not None:
        message.set_content(html, subtype="html")
    elif text is not None:
        message.set_content(text)
    return message.as_bytes()


def _addresses(value: Optional[str]) -> Optional[Tuple[Address, ...]]:
    if not value:
        return None
    result = []
    for name, addr in getaddresses([value]):
        mailbox, _, host = addr.partition("@")
        result.append(
            Address(name.encode() if name else None, None, mailbox.encode(), host.encode() if host else None)
        )
    return tuple(result)


def _envelope(raw: bytes) -> Envelope:
    """Build an ``ENVELOPE`` the way ``imapclient`` parses one.

    ``imapclient`` converts envelope dates to naive local time, so the fake
    does the same.
    """

    headers = BytesParser(policy=policy.compat32).parsebytes(raw, headersonly=True)
    date = None
    if headers["Date"]:
        date = parsedate_to_datetime(headers["Date"]).astimezone().replace(tzinfo=None)
    subject = headers["Subject"]
    return Envelope(
        date=date,
        subject=subject.encode() if subject is not None else None,
        from_=_addresses(headers["From"]),
        sender=_addresses(headers["From"]),
        reply_to=None,
        to=_addresses(headers["To"]),
        cc=_addresses(headers["Cc"]),
        bcc=None,
        in_reply_to=None,
        message_id=(headers["Message-ID"] or "").encode() or None,
    )


@dataclass
class _StoredMessage:
    uid: int
    raw: bytes
    flags: Set[bytes] = field(default_factory=set)


class FakeImapBackend:
    """Minimal IMAP server state satisfying the subset webmail relies upon.

    Args:
      uidplus: Whether ``UIDPLUS`` is advertised.
      password: Accepted password; ``None`` accepts any password.
    """

    def __init__(self, *, uidplus: bool = True, password: Optional[str] = None) -> None:
        self.folders: Dict[str, Dict[int, _StoredMessage]] = {"INBOX": {}, "Sent": {}}
        self.noselect: Set[str] = set()
        self.status_failures: Set[str] = set()
        self.uidplus = uidplus
        self.password = password
        self.connect_error: Optional[BaseException] = None
        self.fail_next: Optional[BaseException] = None
        self.selected: Optional[str] = None
        self.readonly = True
        self.logged_in = False
        self.uid_counter = 1
        self.commands: List[Tuple] = []
        self.connections: List[Dict[str, object]] = []

    # Connection factory -------------------------------------------------
    def connect(self, host: str, port: int = 993, ssl: bool = True, timeout: Optional[float] = None, **_kw):
        """Stand-in for the ``IMAPClient`` constructor."""

        self.connections.append({"host": host, "port": port, "ssl": ssl, "timeout": timeout})
        if self.connect_error is not None:
            raise self.connect_error
        return self

    def _command(self, name: str, *args) -> None:
        self.commands.append((name, *args))
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def command_names(self) -> List[str]:
        return [entry[0] for entry in self.commands]

    # Session management -------------------------------------------------
    def login(self, username: str, password: str) -> None:
        self._command("login", username)
        if self.password is not None and password != self.password:
            raise LoginError("[AUTHENTICATIONFAILED] Invalid credentials (Failure)")
        self.logged_in = True

    def logout(self) -> None:
        self._command("logout")
        self.logged_in = False

    def shutdown(self) -> None:
        self.commands.append(("shutdown",))
        self.logged_in = False

    def has_capability(self, capability: str) -> bool:
        return capability.upper() == "UIDPLUS" and self.uidplus

    # Mailbox helpers ----------------------------------------------------
    def append(self, folder: str, raw: bytes, flags: Iterable[bytes] = ()) -> int:
        """Store a message in ``folder`` and return its UID."""

        self.folders.setdefault(folder, {})
        uid = self.uid_counter
        self.uid_counter += 1
        self.folders[folder][uid] = _StoredMessage(uid=uid, raw=raw, flags=set(flags))
        return uid

    def flags(self, uid: int, folder: str = "INBOX") -> Set[bytes]:
        return set(self.folders[folder][uid].flags)

    def list_folders(self):
        self._command("list_folders")
        return [
            ((b"\\Noselect",) if name in self.noselect else (b"\\HasNoChildren",), b"/", name)
            for name in self.folders
        ]

    def folder_status(self, name: str, what: Sequence[bytes]):
        self._command("folder_status", name)
        if name in self.status_failures:
            raise IMAPClientError("STATUS command error: BAD [b'Mailbox unavailable']")
        unseen = sum(1 for message in self.folders[name].values() if SEEN not in message.flags)
        return {b"UNSEEN": unseen}

    def select_folder(self, name: str, readonly: bool = False):
        self._command("select_folder", name, readonly)
        if name not in self.folders:
            raise IMAPClientError("select failed: Mailbox doesn't exist")
        self.selected = name
        self.readonly = readonly
        return {b"EXISTS": len(self.folders[name]), b"UIDNEXT": self.uid_counter}

    def _current(self) -> Dict[int, _StoredMessage]:
        assert self.selected is not None, "no folder selected"
        return self.folders[self.selected]

    def _writable(self) -> None:
        if self.readonly:
            raise IMAPClientError("STORE failed: mailbox is read-only")

    # Message operations -------------------------------------------------
    def search(self, criteria):
        self._command("search", list(criteria))
        messages = self._current()
        if list(criteria) == ["DELETED"]:
            return [uid for uid, message in messages.items() if DELETED in message.flags]
        if len(criteria) == 1:
            match = _SEQUENCE_RANGE.match(str(criteria[0]))
            if match:
                start, end = int(match.group(1)), int(match.group(2))
                ordered = sorted(messages)
                return ordered[start - 1:end]
        raise IMAPClientError(f"unsupported search criteria {criteria!r}")

    def fetch(self, uids: Iterable[int], items: Iterable[bytes]):
        requested = list(items)
        self._command("fetch", list(uids), requested)
        messages = self._current()
        ordered = sorted(messages)
        response = {}
        for uid in uids:
            message = messages.get(uid)
            if message is None:
                continue
            entry = {b"SEQ": ordered.index(uid) + 1}
            for item in requested:
                if item == b"FLAGS":
                    entry[b"FLAGS"] = tuple(sorted(message.flags))
                elif item == b"ENVELOPE":
                    entry[b"ENVELOPE"] = _envelope(message.raw)
                elif item in (b"BODY[]", b"BODY.PEEK[]"):
                    if item == b"BODY[]" and not self.readonly:
                        message.flags.add(SEEN)
                    entry[b"BODY[]"] = message.raw
            response[uid] = entry
        return response

    def add_flags(self, uids: Iterable[int], flags: Iterable[bytes]):
        uids = list(uids)
        self._command("add_flags", uids, list(flags))
        self._writable()
        for uid in uids:
            if uid in self._current():
                self._current()[uid].flags.update(flags)

    def remove_flags(self, uids: Iterable[int], flags: Iterable[bytes]):
        uids = list(uids)
        self._command("remove_flags", uids, list(flags))
        self._writable()
        for uid in uids:
            if uid in self._current():
                self._current()[uid].flags.difference_update(flags)

    def expunge(self, messages: Optional[Iterable[int]] = None):
        targets = None if messages is None else list(messages)
        self._command("expunge", targets)
        self._writable()
        if targets is not None and not self.uidplus:
            raise IMAPClientError("UID EXPUNGE requires UIDPLUS")
        current = self._current()
        for uid in list(current):
            if DELETED not in current[uid].flags:
                continue
            if targets is None or uid in targets:
                del current[uid]


class FakeSmtpConnection:
    """One SMTP session against :class:`FakeSmtpServer`."""

    def __init__(self, server: "FakeSmtpServer", host: str, port: int, ssl: bool, timeout=None, context=None):
        self.server = server
        self.host = host
        self.port = port
        self.ssl = ssl
        self.tls = ssl
        self.closed = False
        server.connections.append(self)

    def __enter__(self) -> "FakeSmtpConnection":
        return self

    def __exit__(self, *exc) -> None:
        self.closed = True

    def ehlo(self, name: str = ""):
        return (250, b"ok")

    def has_extn(self, name: str) -> bool:
        return name.lower() == "starttls" and self.server.starttls_offered

    def starttls(self, context=None):
        self.tls = True
        return (220, b"ready")

    def login(self, user: str, password: str):
        if self.server.password is not None and password != self.server.password:
            raise smtplib.SMTPAuthenticationError(535, b"5.7.8 Authentication failed")
        self.server.logins.append(user)
        return (235, b"ok")

    def send_message(self, msg, from_addr=None, to_addrs=None):
        if self.server.reject is not None:
            raise self.server.reject
        self.server.sent.append({"message": msg, "from": from_addr, "to": list(to_addrs or [])})
        return {}


class FakeSmtpServer:
    """Records SMTP connections, logins and delivered messages."""

    def __init__(self, *, password: Optional[str] = None, starttls_offered: bool = True) -> None:
        self.password = password
        self.starttls_offered = starttls_offered
        self.reject: Optional[BaseException] = None
        self.connections: List[FakeSmtpConnection] = []
        self.logins: List[str] = []
        self.sent: List[Dict[str, object]] = []

    def plain(self, host: str, port: int = 0, timeout=None, **_kw) -> FakeSmtpConnection:
        return FakeSmtpConnection(self, host, port, ssl=False, timeout=timeout)

    def implicit_tls(self, host: str, port: int = 0, timeout=None, context=None, **_kw) -> FakeSmtpConnection:
        return FakeSmtpConnection(self, host, port, ssl=True, timeout=timeout, context=context)
