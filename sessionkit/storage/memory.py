from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from sessionkit.logging import get_logger
from sessionkit.storage.common import record_from_mapping, record_to_mapping
from sessionkit.storage.errors import ConstraintViolation, StorageUnavailable
from sessionkit.storage.models import RefreshTokenRecord


class MemoryStore:
    """In-process refresh token backend for tests and single-node deployments.

    When ``fs_root`` is given every write is snapshotted to
    ``<fs_root>/state/refresh_tokens.json`` and reloaded on construction.
    """

    def __init__(self, fs_root: str | None = None) -> None:
        self.logger = get_logger(__name__)
        self.refresh_tokens: Dict[str, RefreshTokenRecord] = {}
        # RLock so snapshotting can run while a write holds the lock
        self._data_lock = threading.RLock()
        self.fs_root = Path(fs_root) if fs_root else None
        if self.fs_root is not None:
            self.fs_root.mkdir(parents=True, exist_ok=True)
            self._load_state()

    def _state_path(self) -> Path:
        state_dir = self.fs_root / "state"
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / "refresh_tokens.json"

    def insert_refresh_token(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        with self._data_lock:
            if record.token in self.refresh_tokens:
                raise ConstraintViolation(
                    "refresh token already exists", {"field": "token"}
                )
            self.refresh_tokens[record.token] = record
            self._commit({record.token: None})
            return record

    def get_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._data_lock:
            return self.refresh_tokens.get(token)

    def revoke_refresh_token(self, token: str, at: datetime) -> bool:
        with self._data_lock:
            record = self.refresh_tokens.get(token)
            if record is None or record.is_revoked:
                return False
            self.refresh_tokens[token] = record.revoke(at)
            self._commit({token: record})
            return True

    def revoke_owner_refresh_tokens(self, owner: uuid.UUID, at: datetime) -> int:
        with self._data_lock:
            active = [
                rec
                for rec in self.refresh_tokens.values()
                if rec.owner == owner and not rec.is_revoked
            ]
            for rec in active:
                self.refresh_tokens[rec.token] = rec.revoke(at)
            if active:
                self._commit({rec.token: rec for rec in active})
            return len(active)

    def revoke_all_refresh_tokens(self, at: datetime) -> int:
        with self._data_lock:
            active = [rec for rec in self.refresh_tokens.values() if not rec.is_revoked]
            for rec in active:
                self.refresh_tokens[rec.token] = rec.revoke(at)
            if active:
                self._commit({rec.token: rec for rec in active})
            return len(active)

    def _persist_state(self) -> None:
        if self.fs_root is None:
            return
        state = {
            "refresh_tokens": [
                record_to_mapping(rec) for rec in self.refresh_tokens.values()
            ]
        }
        path = self._state_path()
        try:
            path.write_text(json.dumps(state, indent=2))
        except OSError as exc:
            raise StorageUnavailable(
                f"failed to persist in-memory state: {exc}", {"path": str(path)}
            ) from exc

    def _commit(self, previous: Dict[str, Optional[RefreshTokenRecord]]) -> None:
        """Snapshot the change, or put back ``previous`` entries if the write fails.

        ``None`` in ``previous`` marks a token that did not exist before.
        """
        try:
            self._persist_state()
        except StorageUnavailable:
            for token, record in previous.items():
                if record is None:
                    self.refresh_tokens.pop(token, None)
                else:
                    self.refresh_tokens[token] = record
            raise

    def _load_state(self) -> bool:
        path = self._state_path()
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(
                f"failed to read in-memory state: {exc}", {"path": str(path)}
            ) from exc
        try:
            self.refresh_tokens = {
                entry["token"]: record_from_mapping(entry)
                for entry in data.get("refresh_tokens", [])
            }
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            self.logger.error("memory_store_snapshot_corrupt", path=str(path), error=str(exc))
            raise StorageUnavailable(
                "in-memory state snapshot is corrupt", {"path": str(path)}
            ) from exc
        self.logger.info("memory_store_loaded", refresh_tokens=len(self.refresh_tokens))
        return True
