from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for session-layer exceptions.

    Each exception class carries a stable ``error_code`` the calling HTTP layer
    can map to its own status codes. ``retryable`` separates infrastructure
    failures from the input-driven kinds, which are deterministic for the same
    inputs and clock.
    """

    error_code: str = "auth_error"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationError(ServiceError):
    """Credential or token was rejected."""
    error_code = "unauthorized"


class InvalidCredentialsError(AuthenticationError):
    """Email/password pair did not match; never says which half failed."""
    error_code = "invalid_credentials"


class MissingCredentialError(AuthenticationError):
    """No Authorization header value was supplied."""
    error_code = "missing_credential"


class MalformedHeaderError(AuthenticationError):
    """Authorization header is not ``Bearer <token>``."""
    error_code = "malformed_header"


class TokenError(AuthenticationError):
    """Base for rejected access or refresh tokens."""
    error_code = "invalid_token"


class InvalidSignatureError(TokenError):
    error_code = "invalid_signature"


class TokenExpiredError(TokenError):
    error_code = "token_expired"


class IssuerMismatchError(TokenError):
    error_code = "issuer_mismatch"


class SubjectMalformedError(TokenError):
    error_code = "subject_malformed"


class TokenNotFoundError(TokenError):
    error_code = "token_not_found"


class TokenRevokedError(TokenError):
    error_code = "token_revoked"


class FatalError(ServiceError):
    """Infrastructure failure; the caller decides whether to retry."""
    error_code = "server_error"
    retryable = True


class HashingFailure(FatalError):
    """Entropy source, resource exhaustion or unparsable stored hash."""
    error_code = "hashing_failure"


class PersistenceFailure(FatalError):
    """Refresh token backend unreachable or rejected the write."""
    error_code = "persistence_failure"


__all__ = [
    "ServiceError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "MissingCredentialError",
    "MalformedHeaderError",
    "TokenError",
    "InvalidSignatureError",
    "TokenExpiredError",
    "IssuerMismatchError",
    "SubjectMalformedError",
    "TokenNotFoundError",
    "TokenRevokedError",
    "FatalError",
    "HashingFailure",
    "PersistenceFailure",
]
