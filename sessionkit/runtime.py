from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse, urlunparse

from sessionkit.config import Settings, StoreBackend
from sessionkit.logging import get_logger
from sessionkit.service.auth import SessionService
from sessionkit.service.refresh import RefreshTokenBackend, RefreshTokenStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a connection URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


def build_backend(settings: Settings) -> RefreshTokenBackend:
    """Construct the refresh token backend selected by ``settings.store_backend``."""
    backend = settings.store_backend
    try:
        if backend is StoreBackend.POSTGRES:
            from sessionkit.storage.postgres import PostgresStore

            store: RefreshTokenBackend = PostgresStore(settings.database_url)
            target = _mask_url_password(settings.database_url)
        elif backend is StoreBackend.REDIS:
            from sessionkit.storage.redis_store import RedisStore

            redis_store = RedisStore(settings.redis_url)
            redis_store.verify_connection()
            store = redis_store
            target = _mask_url_password(settings.redis_url)
        else:
            from sessionkit.storage.memory import MemoryStore

            store = MemoryStore(fs_root=settings.shared_fs_root)
            target = settings.shared_fs_root
    except Exception as exc:
        logger.error(
            "refresh_store_init_failed",
            store_type=backend.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise
    logger.info("refresh_store_initialized", store_type=backend.value, target=target)
    return store


def build_session_service(
    settings: Settings, *, backend: Optional[RefreshTokenBackend] = None
) -> SessionService:
    """Wire a ``SessionService`` from settings; pass ``backend`` to reuse an existing store."""
    store = RefreshTokenStore(backend or build_backend(settings))
    return SessionService(settings, store)
