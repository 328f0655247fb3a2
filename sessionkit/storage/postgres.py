from __future__ import annotations

import contextlib
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from sessionkit.logging import get_logger
from sessionkit.storage.common import ensure_utc
from sessionkit.storage.errors import ConstraintViolation, StorageUnavailable
from sessionkit.storage.models import Active, RefreshTokenRecord, Revoked

_SCHEMA = """
CREATE TABLE IF NOT EXISTS refresh_token (
    token TEXT PRIMARY KEY,
    owner UUID NOT NULL,
    issued_at TIMESTAMPTZ NOT NULL,
    expires_at TIMESTAMPTZ NOT NULL,
    revoked_at TIMESTAMPTZ NULL
)
"""

_OWNER_INDEX = (
    "CREATE INDEX IF NOT EXISTS refresh_token_owner_idx ON refresh_token (owner)"
)


class PostgresStore:
    """Postgres-backed refresh token records.

    Revocation is a single ``UPDATE ... WHERE revoked_at IS NULL`` so concurrent
    revokes never overwrite the first revocation time.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    @contextlib.contextmanager
    def _connect(self):
        """Yield a pooled connection, translating driver errors to storage errors."""
        try:
            with self.pool.connection() as conn:
                yield conn
        except errors.UniqueViolation as exc:
            raise ConstraintViolation(
                "refresh token already exists", {"field": "token"}
            ) from exc
        except psycopg.Error as exc:
            self.logger.warning(
                "postgres_operation_failed", error_type=type(exc).__name__, error=str(exc)
            )
            raise StorageUnavailable("refresh token database unavailable") from exc

    def _ensure_schema(self) -> None:
        """Create the ``refresh_token`` table if it is missing."""

        with self._connect() as conn:
            conn.execute(_SCHEMA)
            conn.execute(_OWNER_INDEX)

    @staticmethod
    def _row_to_record(row: Dict[str, Any]) -> RefreshTokenRecord:
        revoked_at = row.get("revoked_at")
        owner = row["owner"]
        return RefreshTokenRecord(
            token=row["token"],
            owner=owner if isinstance(owner, uuid.UUID) else uuid.UUID(str(owner)),
            issued_at=ensure_utc(row["issued_at"]),
            expires_at=ensure_utc(row["expires_at"]),
            state=Revoked(at=ensure_utc(revoked_at)) if revoked_at else Active(),
        )

    def insert_refresh_token(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO refresh_token (token, owner, issued_at, expires_at, revoked_at)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (
                    record.token,
                    record.owner,
                    record.issued_at,
                    record.expires_at,
                    record.revoked_at,
                ),
            )
        return record

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM refresh_token WHERE token = %s", (token,)
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def revoke_refresh_token(self, token: str, at: datetime) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                "UPDATE refresh_token SET revoked_at = %s WHERE token = %s AND revoked_at IS NULL",
                (at, token),
            )
            return result.rowcount > 0

    def revoke_owner_refresh_tokens(self, owner: uuid.UUID, at: datetime) -> int:
        with self._connect() as conn:
            result = conn.execute(
                "UPDATE refresh_token SET revoked_at = %s WHERE owner = %s AND revoked_at IS NULL",
                (at, owner),
            )
            return int(result.rowcount or 0)

    def revoke_all_refresh_tokens(self, at: datetime) -> int:
        with self._connect() as conn:
            result = conn.execute(
                "UPDATE refresh_token SET revoked_at = %s WHERE revoked_at IS NULL",
                (at,),
            )
            revoked = int(result.rowcount or 0)
        self.logger.info("refresh_tokens_bulk_revoked", count=revoked)
        return revoked

    def close(self) -> None:
        self.pool.close()
