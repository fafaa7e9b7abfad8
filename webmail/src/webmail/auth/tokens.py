"""Signed bearer tokens.

What:
  Issue and verify compact tokens binding an account id to an expiry.

Why:
  The session table is the source of truth for revocation, but checking a
  signature and the embedded expiry first rejects forged or stale tokens
  without a database round-trip.

How:
  ``base64url(json({"sub", "exp", "nonce"})) + "." + base64url(mac)`` where the
  MAC is keyed BLAKE2b (libsodium ``crypto_generichash``) over the encoded
  payload. The key is derived from the configured secret. A random nonce makes
  every token unique even when two are issued for the same account within one
  second. Signatures are compared in constant time.

Interfaces:
  :class:`TokenSigner`.

Invariants & Safety:
  - Every verification failure raises :class:`~webmail.errors.Unauthorized`
    with the same message.
"""
from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict

from nacl import hash as nacl_hash
from nacl import utils as nacl_utils
from nacl.bindings import sodium_memcmp
from nacl.encoding import RawEncoder

from ..errors import Unauthorized

KEY_PERSON = b"webmail:tokens"
MAC_SIZE = 32
NONCE_SIZE = 12


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class TokenSigner:
    """Sign and verify bearer tokens with a key derived from ``secret``."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._key = nacl_hash.blake2b(
            secret.encode("utf-8"),
            digest_size=32,
            person=KEY_PERSON,
            encoder=RawEncoder,
        )

    def _mac(self, payload: bytes) -> bytes:
        return nacl_hash.blake2b(payload, digest_size=MAC_SIZE, key=self._key, encoder=RawEncoder)

    def sign(self, subject: str, expires_at: int) -> str:
        """Return a token for ``subject`` valid until epoch second ``expires_at``."""

        claims = {
            "sub": subject,
            "exp": int(expires_at),
            "nonce": _b64encode(nacl_utils.random(NONCE_SIZE)),
        }
        payload = _b64encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        signature = _b64encode(self._mac(payload.encode("ascii")))
        return f"{payload}.{signature}"

    def verify(self, token: str, now: int) -> str:
        """Return the token's subject.

        Raises:
          Unauthorized: When the token is malformed, its signature does not
            verify, or its embedded expiry is not after ``now``.
        """

        payload, sep, signature = token.partition(".")
        if not sep or not payload or not signature:
            raise Unauthorized()
        try:
            given = _b64decode(signature)
            expected = self._mac(payload.encode("ascii"))
            if not sodium_memcmp(expected, given):
                raise Unauthorized()
            claims: Dict[str, Any] = json.loads(_b64decode(payload))
            subject = claims["sub"]
            expires_at = int(claims["exp"])
        except (binascii.Error, ValueError, KeyError, TypeError) as exc:
            raise Unauthorized() from exc
        if not isinstance(subject, str) or expires_at <= now:
            raise Unauthorized()
        return subject
