from __future__ import annotations

import contextlib
import uuid
from datetime import datetime, timedelta
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError

from sessionkit.logging import get_logger
from sessionkit.storage.common import (
    record_from_mapping,
    record_to_mapping,
    serialize_datetime,
)
from sessionkit.storage.errors import ConstraintViolation, StorageUnavailable
from sessionkit.storage.models import RefreshTokenRecord

# Expired records stay readable for a while so lookups report expiry, not absence
EXPIRED_RETENTION = timedelta(days=7)


class RedisStore:
    """Redis-backed refresh token records.

    Each token is a hash at ``auth:refresh:<token>``; ``auth:refresh_owner:<id>``
    indexes the tokens of one principal for per-owner revocation. Insert and
    revoke run as Lua scripts so check-and-set is atomic on the server.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    _INSERT_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return 0
end
redis.call('HSET', KEYS[1], 'token', ARGV[1], 'owner', ARGV[2], 'issued_at', ARGV[3],
           'expires_at', ARGV[4], 'revoked_at', ARGV[5])
local ttl = tonumber(ARGV[6])
redis.call('EXPIRE', KEYS[1], ttl)
redis.call('SADD', KEYS[2], ARGV[1])
if redis.call('TTL', KEYS[2]) < ttl then
  redis.call('EXPIRE', KEYS[2], ttl)
end
return 1
"""

    _REVOKE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
local current = redis.call('HGET', KEYS[1], 'revoked_at')
if current and current ~= '' then
  return 0
end
redis.call('HSET', KEYS[1], 'revoked_at', ARGV[1])
return 1
"""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        client: Optional[Redis] = None,
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("redis_url or client is required")
        self.redis_url = redis_url
        self.logger = get_logger(__name__)
        self.client = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._insert = self.client.register_script(self._INSERT_SCRIPT)
        self._revoke = self.client.register_script(self._REVOKE_SCRIPT)

    @staticmethod
    def _token_key(token: str) -> str:
        return f"auth:refresh:{token}"

    @staticmethod
    def _owner_key(owner: uuid.UUID) -> str:
        return f"auth:refresh_owner:{owner}"

    @contextlib.contextmanager
    def _guard(self, operation: str):
        try:
            yield
        except RedisError as exc:
            self.logger.warning(
                "redis_operation_failed",
                operation=operation,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise StorageUnavailable(
                "refresh token cache unavailable", {"operation": operation}
            ) from exc

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving requests."""
        with self._guard("ping"):
            self.client.ping()

    def insert_refresh_token(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        fields = record_to_mapping(record)
        ttl = max(
            1, int((record.expires_at + EXPIRED_RETENTION - record.issued_at).total_seconds())
        )
        with self._guard("insert"):
            created = self._insert(
                keys=[self._token_key(record.token), self._owner_key(record.owner)],
                args=[
                    fields["token"],
                    fields["owner"],
                    fields["issued_at"],
                    fields["expires_at"],
                    fields["revoked_at"],
                    ttl,
                ],
            )
        if not int(created):
            raise ConstraintViolation("refresh token already exists", {"field": "token"})
        return record

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._guard("get"):
            data = self.client.hgetall(self._token_key(token))
        if not data:
            return None
        return record_from_mapping(data)

    def _revoke_key(self, key: str, at: datetime) -> bool:
        return bool(int(self._revoke(keys=[key], args=[serialize_datetime(at)])))

    def revoke_refresh_token(self, token: str, at: datetime) -> bool:
        with self._guard("revoke"):
            return self._revoke_key(self._token_key(token), at)

    def revoke_owner_refresh_tokens(self, owner: uuid.UUID, at: datetime) -> int:
        with self._guard("revoke_owner"):
            tokens = self.client.smembers(self._owner_key(owner))
            return sum(
                1 for token in tokens if self._revoke_key(self._token_key(token), at)
            )

    def revoke_all_refresh_tokens(self, at: datetime) -> int:
        revoked = 0
        with self._guard("revoke_all"):
            for key in self.client.scan_iter(match="auth:refresh:*", count=500):
                if self._revoke_key(key, at):
                    revoked += 1
        self.logger.info("refresh_tokens_bulk_revoked", count=revoked)
        return revoked

    def close(self) -> None:
        self.client.close()
