from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Union

REFRESH_TOKEN_TTL = timedelta(days=60)


@dataclass(frozen=True)
class Active:
    """Refresh token that has not been revoked."""


@dataclass(frozen=True)
class Revoked:
    """Terminal state; there is no transition back to ``Active``."""

    at: datetime


RefreshTokenState = Union[Active, Revoked]


@dataclass(frozen=True)
class RefreshTokenRecord:
    token: str
    owner: uuid.UUID
    issued_at: datetime
    expires_at: datetime
    state: RefreshTokenState = Active()

    @classmethod
    def new(cls, token: str, owner: uuid.UUID, now: datetime) -> "RefreshTokenRecord":
        return cls(
            token=token,
            owner=owner,
            issued_at=now,
            expires_at=now + REFRESH_TOKEN_TTL,
        )

    @property
    def revoked_at(self) -> Optional[datetime]:
        if isinstance(self.state, Revoked):
            return self.state.at
        return None

    @property
    def is_revoked(self) -> bool:
        return isinstance(self.state, Revoked)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def revoke(self, at: datetime) -> "RefreshTokenRecord":
        """Return a revoked copy; an already revoked record keeps its original time."""
        if self.is_revoked:
            return self
        return replace(self, state=Revoked(at=at))
