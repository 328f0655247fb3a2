import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Test environment before any sessionkit import reads it
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from argon2 import PasswordHasher, Type  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from sessionkit.config import Settings  # noqa: E402
from sessionkit.service.auth import SessionService  # noqa: E402
from sessionkit.service.passwords import CredentialHasher  # noqa: E402
from sessionkit.service.refresh import RefreshTokenStore  # noqa: E402
from sessionkit.service.tokens import AccessTokenCodec  # noqa: E402
from sessionkit.storage.memory import MemoryStore  # noqa: E402


class FakeClock:
    """Wall clock the tests can move forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(jwt_secret="Test-Secret-Key_for-Automation-Only-987654321!")


@pytest.fixture
def hasher():
    # Cheap argon2id parameters keep the suite fast; the format is unchanged
    return CredentialHasher(
        PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1, type=Type.ID)
    )


@pytest.fixture
def codec(clock):
    return AccessTokenCodec(clock=clock)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def refresh_store(memory_store, clock):
    return RefreshTokenStore(memory_store, clock=clock)


@pytest.fixture
def session_service(settings, refresh_store, hasher, codec):
    return SessionService(settings, refresh_store, hasher=hasher, codec=codec)
