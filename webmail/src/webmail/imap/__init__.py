"""Facade for the IMAP integration layer.

What:
  Surface the :class:`~webmail.imap.client.ImapConfig` data class, the
  :class:`~webmail.imap.client.MailboxClient` session wrapper, and the pure
  pagination helpers.

Why:
  Keeping the import surface minimal prevents call sites from depending on
  internal helper modules.

Interfaces:
  ``ImapConfig``, ``MailboxClient``, ``page_range``, ``sequence_set``.

Invariants & Safety:
  - All mailbox operations address messages by UID once the page range has
    been resolved.
"""

from .client import ImapConfig, MailboxClient
from .pagination import page_range, sequence_set

__all__ = ["ImapConfig", "MailboxClient", "page_range", "sequence_set"]
