from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from sessionkit.logging import get_logger
from sessionkit.service.errors import (
    HashingFailure,
    InvalidSignatureError,
    IssuerMismatchError,
    SubjectMalformedError,
    TokenExpiredError,
)

logger = get_logger(__name__)

ACCESS_TOKEN_TTL = timedelta(hours=1)

_HEADER = {"alg": "HS256", "typ": "JWT"}


class TokenKind(str, Enum):
    """Value of the ``iss`` claim; names both the minting system and the token kind."""

    ACCESS = "sessionkit"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _require_secret(signing_secret: str) -> bytes:
    if not signing_secret:
        raise ValueError("signing secret must be a non-empty string")
    return signing_secret.encode("utf-8")


class AccessTokenCodec:
    """Issue and validate HS256-signed access tokens.

    Holds no secret: the caller passes the signing secret on every call. The
    only state is the clock, injectable so tests can move time forward.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _sign(key: bytes, signing_input: str) -> bytes:
        try:
            return hmac.new(key, signing_input.encode("utf-8"), hashlib.sha256).digest()
        except (TypeError, ValueError) as exc:
            raise HashingFailure("unable to sign access token") from exc

    def issue(
        self,
        principal: uuid.UUID,
        signing_secret: str,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Mint a token for ``principal``; a missing or zero ``ttl`` means one hour."""
        key = _require_secret(signing_secret)
        if not ttl:
            ttl = ACCESS_TOKEN_TTL
        elif ttl < timedelta(0):
            raise ValueError("access token ttl cannot be negative")
        now = self._now()
        payload = {
            "iss": TokenKind.ACCESS.value,
            "sub": str(principal),
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        header_enc = _encode_segment(json.dumps(_HEADER, separators=(",", ":")).encode())
        payload_enc = _encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        signature = self._sign(key, signing_input)
        return f"{signing_input}.{_encode_segment(signature)}"

    def _verified_payload(self, token: str, key: bytes) -> dict[str, Any]:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise InvalidSignatureError("access token is not a three-part token")

        # Reject anything but HS256 to rule out algorithm confusion
        try:
            header = json.loads(_decode_segment(header_b64))
        except (binascii.Error, ValueError, RecursionError) as exc:
            raise InvalidSignatureError("access token header is corrupt") from exc
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("access_token_invalid_algorithm")
            raise InvalidSignatureError("unsupported access token algorithm")

        # Compare canonical encodings so non-canonical base64 variants are rejected
        expected = _encode_segment(self._sign(key, f"{header_b64}.{payload_b64}"))
        if not hmac.compare_digest(expected.encode("ascii"), sig_b64.encode("utf-8")):
            raise InvalidSignatureError("access token signature mismatch")

        try:
            payload = json.loads(_decode_segment(payload_b64))
        except (binascii.Error, ValueError, RecursionError) as exc:
            raise InvalidSignatureError("access token payload is corrupt") from exc
        if not isinstance(payload, dict):
            raise InvalidSignatureError("access token payload is not an object")
        return payload

    def validate(self, token: str, signing_secret: str) -> uuid.UUID:
        """Return the principal bound by ``token``.

        The signature is checked before any claim is read. Afterwards expiry,
        token kind and subject are checked, each with its own error type.
        """
        key = _require_secret(signing_secret)
        payload = self._verified_payload(token, key)

        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise TokenExpiredError("access token has no usable expiry")
        if self._now().timestamp() > exp:
            raise TokenExpiredError("access token expired")

        try:
            kind = TokenKind(payload.get("iss"))
        except ValueError:
            raise IssuerMismatchError("access token issuer not recognised")
        if kind is not TokenKind.ACCESS:
            raise IssuerMismatchError("token is not an access token")

        subject = payload.get("sub")
        if not isinstance(subject, str):
            raise SubjectMalformedError("access token subject missing")
        try:
            return uuid.UUID(subject)
        except ValueError as exc:
            raise SubjectMalformedError("access token subject is not a principal id") from exc
