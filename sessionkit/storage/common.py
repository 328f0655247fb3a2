"""Serialization helpers shared by the memory and redis backends.

Both backends keep refresh token records as flat string maps (a JSON snapshot
for the memory store, a hash per token for redis); this module owns that
shape so the two stay interchangeable.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, Mapping

from sessionkit.storage.models import Active, RefreshTokenRecord, Revoked


def ensure_utc(dt: datetime) -> datetime:
    """Normalize naive timestamps (legacy rows) to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def serialize_datetime(dt: datetime) -> str:
    return ensure_utc(dt).isoformat()


def deserialize_datetime(raw: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(raw))


def record_to_mapping(record: RefreshTokenRecord) -> Dict[str, str]:
    revoked_at = record.revoked_at
    return {
        "token": record.token,
        "owner": str(record.owner),
        "issued_at": serialize_datetime(record.issued_at),
        "expires_at": serialize_datetime(record.expires_at),
        "revoked_at": serialize_datetime(revoked_at) if revoked_at else "",
    }


def record_from_mapping(data: Mapping[str, str]) -> RefreshTokenRecord:
    revoked_raw = data.get("revoked_at") or ""
    state = Revoked(at=deserialize_datetime(revoked_raw)) if revoked_raw else Active()
    return RefreshTokenRecord(
        token=data["token"],
        owner=uuid.UUID(data["owner"]),
        issued_at=deserialize_datetime(data["issued_at"]),
        expires_at=deserialize_datetime(data["expires_at"]),
        state=state,
    )
