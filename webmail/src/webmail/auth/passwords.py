"""Salted, memory-hard password hashing backed by libsodium's argon2id."""
from __future__ import annotations

from nacl import pwhash
from nacl.exceptions import InvalidkeyError

OPSLIMIT = pwhash.argon2id.OPSLIMIT_INTERACTIVE
MEMLIMIT = pwhash.argon2id.MEMLIMIT_INTERACTIVE


def hash_password(password: str) -> str:
    """Return an encoded argon2id hash carrying its own salt and parameters."""

    return pwhash.argon2id.str(password.encode("utf-8"), opslimit=OPSLIMIT, memlimit=MEMLIMIT).decode("ascii")


def verify_password(password: str, encoded: str) -> bool:
    try:
        return pwhash.verify(encoded.encode("ascii"), password.encode("utf-8"))
    except (InvalidkeyError, ValueError):
        return False
