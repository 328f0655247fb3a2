from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from sessionkit.config import Settings
from sessionkit.logging import get_logger
from sessionkit.metrics import InMemoryMetrics, MetricsCollector
from sessionkit.service.bearer import extract_bearer
from sessionkit.service.errors import HashingFailure, InvalidCredentialsError
from sessionkit.service.passwords import CredentialHasher
from sessionkit.service.refresh import RefreshTokenStore
from sessionkit.service.tokens import AccessTokenCodec

logger = get_logger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    """What the user-record collaborator knows about an email address."""

    principal: uuid.UUID
    password_hash: str


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    principal: uuid.UUID


CredentialLookup = Callable[[str], Optional[CredentialRecord]]


class SessionService:
    """Login, refresh and logout on top of the hasher, codec and refresh store.

    The signing secret comes from the injected ``Settings`` and is handed to the
    codec on every call.
    """

    def __init__(
        self,
        settings: Settings,
        refresh_store: RefreshTokenStore,
        *,
        hasher: Optional[CredentialHasher] = None,
        codec: Optional[AccessTokenCodec] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.settings = settings
        self.refresh_store = refresh_store
        self.hasher = hasher or CredentialHasher()
        self.codec = codec or AccessTokenCodec()
        self.metrics: MetricsCollector = metrics or InMemoryMetrics()
        self.logger = logger
        # Verified against on unknown emails so both failure paths cost one argon2 run
        self._dummy_hash = self.hasher.hash(uuid.uuid4().hex)

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_ttl_minutes)

    def _issue_access_token(self, principal: uuid.UUID) -> str:
        return self.codec.issue(principal, self.settings.jwt_secret, self.access_token_ttl)

    def login(
        self, email: str, password: str, lookup_credential: CredentialLookup
    ) -> LoginResult:
        try:
            record = lookup_credential(email)
        except LookupError:
            record = None
        except Exception as exc:
            # Any lookup fault reads as an unknown email to the caller
            self.logger.warning(
                "credential_lookup_failed", error_type=type(exc).__name__, error=str(exc)
            )
            self.hasher.verify(password, self._dummy_hash)
            raise self._login_failure() from exc
        if record is None:
            self.hasher.verify(password, self._dummy_hash)
            raise self._login_failure()
        try:
            matched = self.hasher.verify(password, record.password_hash)
        except HashingFailure as exc:
            self.logger.error(
                "stored_credential_unreadable", principal=str(record.principal)
            )
            raise self._login_failure() from exc
        if not matched:
            raise self._login_failure()

        access_token = self._issue_access_token(record.principal)
        refresh_token = self.refresh_store.issue(record.principal)
        self.metrics.increment("login_succeeded")
        self.logger.info("login_succeeded", principal=str(record.principal))
        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            principal=record.principal,
        )

    def _login_failure(self) -> InvalidCredentialsError:
        self.metrics.increment("login_failed")
        self.logger.info("login_failed")
        return InvalidCredentialsError("incorrect email or password")

    def refresh(self, refresh_token: str) -> str:
        """Exchange a refresh token for a fresh access token; the refresh token is unchanged."""
        owner = self.refresh_store.lookup_owner(refresh_token)
        access_token = self._issue_access_token(owner)
        self.metrics.increment("access_token_refreshed")
        return access_token

    def revoke(self, refresh_token: str) -> None:
        self.refresh_store.revoke(refresh_token)
        self.metrics.increment("refresh_token_revoked")

    def authenticate(self, authorization_header: Optional[str]) -> uuid.UUID:
        """Resolve the principal behind an ``Authorization`` header value."""
        token = extract_bearer(authorization_header)
        return self.codec.validate(token, self.settings.jwt_secret)

    def hash_password(self, password: str) -> str:
        return self.hasher.hash(password)

    def logout_everywhere(self, principal: uuid.UUID) -> int:
        return self.refresh_store.revoke_owner(principal)

    def reset_all(self) -> int:
        """Revoke every refresh token and clear counters, for the admin reset tool."""
        revoked = self.refresh_store.revoke_all()
        self.metrics.reset()
        return revoked
