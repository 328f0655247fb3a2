from __future__ import annotations

import contextlib
import secrets
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, Protocol

from sessionkit.logging import get_logger
from sessionkit.service.errors import (
    PersistenceFailure,
    TokenExpiredError,
    TokenNotFoundError,
    TokenRevokedError,
)
from sessionkit.storage.errors import ConstraintViolation, StorageUnavailable
from sessionkit.storage.models import RefreshTokenRecord

logger = get_logger(__name__)

REFRESH_TOKEN_BYTES = 32


class RefreshTokenBackend(Protocol):
    def insert_refresh_token(self, record: RefreshTokenRecord) -> RefreshTokenRecord: ...

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]: ...

    def revoke_refresh_token(self, token: str, at: datetime) -> bool: ...

    def revoke_owner_refresh_tokens(self, owner: uuid.UUID, at: datetime) -> int: ...

    def revoke_all_refresh_tokens(self, at: datetime) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_refresh_token() -> str:
    """256 bits from the OS CSPRNG as 64 hex characters."""
    return secrets.token_bytes(REFRESH_TOKEN_BYTES).hex()


class RefreshTokenStore:
    """Lifecycle of opaque refresh tokens over a durable backend.

    Every lookup reads the backend and re-checks revocation and expiry, so a
    revoke issued from any thread is visible to the next lookup.
    """

    def __init__(
        self,
        backend: RefreshTokenBackend,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.backend = backend
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    @contextlib.contextmanager
    def _persistence(self, operation: str) -> Iterator[None]:
        try:
            yield
        except ConstraintViolation as exc:
            logger.error("refresh_token_constraint_violation", operation=operation, detail=exc.detail)
            raise PersistenceFailure(
                "refresh token could not be stored", detail=exc.detail
            ) from exc
        except StorageUnavailable as exc:
            logger.error("refresh_token_store_unavailable", operation=operation, error=exc.message)
            raise PersistenceFailure(
                "refresh token store unavailable", detail={"operation": operation}
            ) from exc

    def issue(self, owner: uuid.UUID) -> str:
        record = RefreshTokenRecord.new(generate_refresh_token(), owner, self._now())
        # A duplicate token means the entropy source is broken; surface it, never retry
        with self._persistence("issue"):
            self.backend.insert_refresh_token(record)
        logger.info("refresh_token_issued", owner=str(owner), expires_at=record.expires_at.isoformat())
        return record.token

    def lookup_owner(self, token: str) -> uuid.UUID:
        with self._persistence("lookup"):
            record = self.backend.get_refresh_token(token)
        if record is None:
            raise TokenNotFoundError("refresh token not found")
        if record.is_revoked:
            raise TokenRevokedError("refresh token revoked")
        if record.is_expired(self._now()):
            raise TokenExpiredError("refresh token expired")
        return record.owner

    def revoke(self, token: str) -> None:
        with self._persistence("revoke"):
            changed = self.backend.revoke_refresh_token(token, self._now())
        if changed:
            logger.info("refresh_token_revoked")

    def revoke_owner(self, owner: uuid.UUID) -> int:
        with self._persistence("revoke_owner"):
            count = self.backend.revoke_owner_refresh_tokens(owner, self._now())
        logger.info("refresh_tokens_revoked_for_owner", owner=str(owner), count=count)
        return count

    def revoke_all(self) -> int:
        with self._persistence("revoke_all"):
            count = self.backend.revoke_all_refresh_tokens(self._now())
        logger.warning("refresh_tokens_revoked_for_all", count=count)
        return count
