"""Authentication: accounts, passwords, bearer tokens and mail credentials.

Interfaces:
  ``AuthService``, ``AuthResult``, ``CredentialInput``, ``TokenSigner``,
  ``hash_password``, ``verify_password`` and ``sanitize_credential``.
"""

from .passwords import hash_password, verify_password
from .service import AuthResult, AuthService, CredentialInput, sanitize_credential
from .tokens import TokenSigner

__all__ = [
    "AuthResult",
    "AuthService",
    "CredentialInput",
    "TokenSigner",
    "hash_password",
    "verify_password",
    "sanitize_credential",
]
