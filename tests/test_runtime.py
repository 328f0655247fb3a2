import uuid

from sessionkit.config import Settings
from sessionkit.runtime import _mask_url_password, build_backend, build_session_service
from sessionkit.storage.memory import MemoryStore


def test_mask_url_password():
    assert _mask_url_password("redis://:hunter2@localhost:6379/0") == "redis://:***@localhost:6379/0"
    assert (
        _mask_url_password("postgresql://app:hunter2@db:5432/sessions")
        == "postgresql://app:***@db:5432/sessions"
    )
    assert _mask_url_password("redis://localhost:6379") == "redis://localhost:6379"
    assert _mask_url_password(None) is None


def test_memory_backend_from_settings(settings, tmp_path):
    settings = settings.model_copy(update={"shared_fs_root": str(tmp_path)})

    backend = build_backend(settings)

    assert isinstance(backend, MemoryStore)
    assert backend.fs_root == tmp_path


def test_service_reuses_explicit_backend(settings):
    backend = MemoryStore()
    service = build_session_service(settings, backend=backend)
    owner = uuid.uuid4()

    token = service.refresh_store.issue(owner)

    assert service.refresh_store.backend is backend
    assert backend.get_refresh_token(token).owner == owner


def test_revoke_sessions_script(monkeypatch, tmp_path):
    from scripts.revoke_sessions import revoke_sessions

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("SHARED_FS_ROOT", str(tmp_path))
    owner = uuid.uuid4()
    store = MemoryStore(fs_root=str(tmp_path))
    service = build_session_service(Settings.from_env(), backend=store)
    service.refresh_store.issue(owner)
    service.refresh_store.issue(uuid.uuid4())

    assert revoke_sessions(owner, False) == {"scope": str(owner), "revoked": 1}
    assert revoke_sessions(None, True) == {"scope": "all", "revoked": 1}
