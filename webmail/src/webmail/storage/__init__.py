"""Relational storage for accounts, mail credentials and sessions.

Interfaces:
  ``Database`` plus the ``Account``, ``MailCredential`` and ``Session`` models.
"""

from .db import Database
from .models import Account, Base, MailCredential, Session, epoch_now, new_account_id

__all__ = [
    "Database",
    "Base",
    "Account",
    "MailCredential",
    "Session",
    "epoch_now",
    "new_account_id",
]
