"""Unit tests for access token issue and validation."""

import base64
import hashlib
import hmac
import json
import uuid
from datetime import timedelta

import pytest

from sessionkit.service.errors import (
    InvalidSignatureError,
    IssuerMismatchError,
    SubjectMalformedError,
    TokenExpiredError,
)
from sessionkit.service.tokens import ACCESS_TOKEN_TTL, TokenKind

SECRET = "Test-Secret-Key_for-Automation-Only-987654321!"


def _segment(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _forge(payload: dict, secret: str = SECRET, header: dict | None = None) -> str:
    """Sign arbitrary claims with the real secret to exercise post-signature checks."""
    signing_input = f"{_segment(header or {'alg': 'HS256', 'typ': 'JWT'})}.{_segment(payload)}"
    sig = hmac.new(secret.encode(), signing_input.encode(), hashlib.sha256).digest()
    return f"{signing_input}.{base64.urlsafe_b64encode(sig).decode().rstrip('=')}"


def _decode_payload(token: str) -> dict:
    segment = token.split(".")[1]
    return json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))


class TestIssue:
    """Tests for token issuance."""

    def test_round_trip_returns_principal(self, codec):
        principal = uuid.uuid4()
        token = codec.issue(principal, SECRET, timedelta(hours=1))

        assert codec.validate(token, SECRET) == principal

    def test_token_is_three_compact_segments(self, codec):
        token = codec.issue(uuid.uuid4(), SECRET)

        assert token.count(".") == 2
        assert "=" not in token

    def test_claims(self, codec, clock):
        principal = uuid.uuid4()
        payload = _decode_payload(codec.issue(principal, SECRET, timedelta(minutes=5)))

        assert payload["iss"] == TokenKind.ACCESS.value
        assert payload["sub"] == str(principal)
        assert payload["iat"] == int(clock().timestamp())
        assert payload["exp"] == int((clock() + timedelta(minutes=5)).timestamp())

    @pytest.mark.parametrize("ttl", [None, timedelta(0)])
    def test_unspecified_or_zero_ttl_uses_one_hour(self, codec, clock, ttl):
        payload = _decode_payload(codec.issue(uuid.uuid4(), SECRET, ttl))

        assert payload["exp"] - payload["iat"] == int(ACCESS_TOKEN_TTL.total_seconds())

    def test_negative_ttl_rejected(self, codec):
        with pytest.raises(ValueError):
            codec.issue(uuid.uuid4(), SECRET, timedelta(seconds=-1))

    def test_empty_secret_rejected(self, codec):
        with pytest.raises(ValueError):
            codec.issue(uuid.uuid4(), "")


class TestValidate:
    """Tests for token validation failures."""

    def test_expired_after_clock_advance(self, codec, clock):
        token = codec.issue(uuid.uuid4(), SECRET, timedelta(hours=1))
        clock.advance(timedelta(hours=1, seconds=1))

        with pytest.raises(TokenExpiredError):
            codec.validate(token, SECRET)

    def test_valid_at_exact_expiry(self, codec, clock):
        principal = uuid.uuid4()
        token = codec.issue(principal, SECRET, timedelta(hours=1))
        clock.advance(timedelta(hours=1))

        assert codec.validate(token, SECRET) == principal

    def test_flipped_signature_byte_rejected(self, codec):
        token = codec.issue(uuid.uuid4(), SECRET)
        head, sig = token.rsplit(".", 1)
        middle = len(sig) // 2
        flipped = "A" if sig[middle] != "A" else "B"
        tampered = f"{head}.{sig[:middle]}{flipped}{sig[middle + 1:]}"

        with pytest.raises(InvalidSignatureError):
            codec.validate(tampered, SECRET)

    def test_wrong_secret_rejected(self, codec):
        token = codec.issue(uuid.uuid4(), "secret-A")

        with pytest.raises(InvalidSignatureError):
            codec.validate(token, "secret-B")

    def test_tampered_payload_rejected(self, codec):
        token = codec.issue(uuid.uuid4(), SECRET)
        header, _, sig = token.split(".")
        forged_payload = _segment({"iss": "sessionkit", "sub": str(uuid.uuid4()), "exp": 2**40})

        with pytest.raises(InvalidSignatureError):
            codec.validate(f"{header}.{forged_payload}.{sig}", SECRET)

    @pytest.mark.parametrize("token", ["", "garbage", "a.b", "a.b.c.d", "!!!.???.***"])
    def test_structurally_corrupt_token_rejected(self, codec, token):
        with pytest.raises(InvalidSignatureError):
            codec.validate(token, SECRET)

    def test_deeply_nested_header_rejected(self, codec):
        header = base64.urlsafe_b64encode(b"[" * 5000).decode().rstrip("=")

        with pytest.raises(InvalidSignatureError):
            codec.validate(f"{header}.e30.sig", SECRET)

    def test_deeply_nested_signed_payload_rejected(self, codec):
        """Even a correctly signed payload must decode without blowing the stack."""
        header = _segment({"alg": "HS256", "typ": "JWT"})
        payload = base64.urlsafe_b64encode(b"[" * 5000).decode().rstrip("=")
        signing_input = f"{header}.{payload}"
        sig = hmac.new(SECRET.encode(), signing_input.encode(), hashlib.sha256).digest()
        token = f"{signing_input}.{base64.urlsafe_b64encode(sig).decode().rstrip('=')}"

        with pytest.raises(InvalidSignatureError):
            codec.validate(token, SECRET)

    def test_non_hs256_header_rejected(self, codec, clock):
        token = _forge(
            {"iss": "sessionkit", "sub": str(uuid.uuid4()), "exp": int(clock().timestamp()) + 60},
            header={"alg": "none", "typ": "JWT"},
        )

        with pytest.raises(InvalidSignatureError):
            codec.validate(token, SECRET)

    def test_signature_checked_before_claims(self, codec, clock):
        """An expired token under the wrong key reports the signature, not expiry."""
        token = _forge({"iss": "sessionkit", "sub": str(uuid.uuid4()), "exp": 0}, secret="other")

        with pytest.raises(InvalidSignatureError):
            codec.validate(token, SECRET)

    def test_foreign_issuer_rejected(self, codec, clock):
        token = _forge({"iss": "someone-else", "sub": str(uuid.uuid4()), "exp": int(clock().timestamp()) + 60})

        with pytest.raises(IssuerMismatchError):
            codec.validate(token, SECRET)

    def test_missing_issuer_rejected(self, codec, clock):
        token = _forge({"sub": str(uuid.uuid4()), "exp": int(clock().timestamp()) + 60})

        with pytest.raises(IssuerMismatchError):
            codec.validate(token, SECRET)

    def test_malformed_subject_rejected(self, codec, clock):
        token = _forge({"iss": "sessionkit", "sub": "user-42", "exp": int(clock().timestamp()) + 60})

        with pytest.raises(SubjectMalformedError):
            codec.validate(token, SECRET)

    def test_missing_expiry_rejected(self, codec):
        token = _forge({"iss": "sessionkit", "sub": str(uuid.uuid4())})

        with pytest.raises(TokenExpiredError):
            codec.validate(token, SECRET)

    def test_empty_secret_rejected(self, codec):
        token = codec.issue(uuid.uuid4(), SECRET)

        with pytest.raises(ValueError):
            codec.validate(token, "")

    def test_errors_share_token_error_base(self):
        from sessionkit.service.errors import AuthenticationError, TokenError

        for exc in (InvalidSignatureError, TokenExpiredError, IssuerMismatchError, SubjectMalformedError):
            assert issubclass(exc, TokenError)
            assert issubclass(exc, AuthenticationError)
            assert exc.retryable is False
