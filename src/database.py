"""
Storage collaborators for TCF Prep.
Every backend offers the same narrow document contract:
    get_state(key) -> dict     (empty dict when the document does not exist)
    set_state(key, dict)       (top-level merge: fields missing from the write are kept)
"""
import copy
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from supabase import Client

from src.errors import PersistenceError

logger = logging.getLogger(__name__)

DOCUMENTS_TABLE = "user_documents"


def with_defaults(doc: Optional[Dict], defaults: Dict) -> Dict:
    """Backfill a partial document with structural defaults (recursively for nested dicts)."""
    out = copy.deepcopy(doc) if isinstance(doc, dict) else {}
    for key, default in defaults.items():
        if key not in out or out[key] is None:
            out[key] = copy.deepcopy(default)
        elif isinstance(default, dict):
            out[key] = with_defaults(out[key], default)
        elif isinstance(default, list) and not isinstance(out[key], list):
            out[key] = copy.deepcopy(default)
        elif isinstance(default, (int, float)) and not isinstance(default, bool) and not isinstance(out[key], (int, float)):
            try:
                out[key] = type(default)(out[key] or 0)
            except (TypeError, ValueError):
                out[key] = default
    return out


class StorageClient:
    """Document store contract used by the tracking store and history ledger."""

    def get_state(self, key: str) -> Dict:
        raise NotImplementedError

    def set_state(self, key: str, data: Dict) -> None:
        raise NotImplementedError


class MemoryStorage(StorageClient):
    """In-process store (tests, demos)."""

    def __init__(self, documents: Optional[Dict[str, Dict]] = None):
        self._docs: Dict[str, Dict] = copy.deepcopy(documents or {})
        self._lock = threading.Lock()

    def get_state(self, key: str) -> Dict:
        with self._lock:
            return copy.deepcopy(self._docs.get(key, {}))

    def set_state(self, key: str, data: Dict) -> None:
        with self._lock:
            merged = self._docs.get(key, {})
            merged.update(copy.deepcopy(data or {}))
            self._docs[key] = merged


_PATH_LOCKS: Dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    """One lock per store file, shared by every LocalJSONStorage pointing at it."""
    key = str(path.resolve())
    with _PATH_LOCKS_GUARD:
        return _PATH_LOCKS.setdefault(key, threading.Lock())


class LocalJSONStorage(StorageClient):
    """One JSON file per user: {doc_key: document}. Writes go through a unique temp file + replace."""

    def __init__(self, data_dir: Path, user_id: str = "local"):
        self.path = Path(data_dir) / f"{user_id}.json"
        self._lock = _lock_for(self.path)

    def _read_all(self) -> Dict:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as e:
            self._quarantine(e)
            return {}
        except OSError as e:
            logger.error(f"Error reading local store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            self._quarantine(ValueError("top level is not an object"))
            return {}
        return data

    def _quarantine(self, error: Exception) -> None:
        # Keep the unreadable file so the next write does not destroy it.
        bad = self.path.with_suffix(".json.bad")
        try:
            os.replace(self.path, bad)
            logger.error(f"Local store {self.path} is unreadable ({error}); moved to {bad}")
        except OSError as e:
            logger.error(f"Local store {self.path} is unreadable ({error}) and could not be moved aside: {e}")

    def get_state(self, key: str) -> Dict:
        with self._lock:
            doc = self._read_all().get(key)
        return doc if isinstance(doc, dict) else {}

    def set_state(self, key: str, data: Dict) -> None:
        with self._lock:
            all_docs = self._read_all()
            merged = all_docs.get(key) if isinstance(all_docs.get(key), dict) else {}
            merged.update(data or {})
            all_docs[key] = merged
            tmp = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w", encoding="utf-8", dir=self.path.parent, prefix=f"{self.path.name}.", suffix=".tmp", delete=False
                ) as f:
                    tmp = f.name
                    json.dump(all_docs, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except OSError as e:
                if tmp and os.path.exists(tmp):
                    os.remove(tmp)
                raise PersistenceError(f"Error writing local store {self.path}: {e}") from e


class SupabaseStorage(StorageClient):
    """
    Documents in the `user_documents` table, one row per (user_id, doc_key).
    Writes are mirrored to a local backup first; reads fall back to it when Supabase is unreachable.
    """

    def __init__(self, client: Client, user_id: str, backup: Optional[StorageClient] = None):
        self.client = client
        self.user_id = str(user_id)
        self.backup = backup

    def _fetch(self, key: str) -> Optional[Dict]:
        response = (
            self.client.table(DOCUMENTS_TABLE)
            .select("data")
            .eq("user_id", self.user_id)
            .eq("doc_key", key)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows:
            return None
        data = rows[0].get("data")
        return data if isinstance(data, dict) else {}

    def get_state(self, key: str) -> Dict:
        try:
            doc = self._fetch(key)
        except Exception as e:
            logger.error(f"Error fetching document {key} from Supabase: {e}")
            return self.backup.get_state(key) if self.backup else {}
        if doc is None:
            # Nothing remote yet: whatever was saved locally is the best we have.
            return self.backup.get_state(key) if self.backup else {}
        return doc

    def set_state(self, key: str, data: Dict) -> None:
        if self.backup is not None:
            try:
                self.backup.set_state(key, data)
            except PersistenceError as e:
                logger.error(f"Local backup write failed for {key}: {e}")
        try:
            merged = self._fetch(key) or {}
            merged.update(data or {})
            row = {
                "user_id": self.user_id,
                "doc_key": key,
                "data": merged,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
            self.client.table(DOCUMENTS_TABLE).upsert(row, on_conflict="user_id,doc_key").execute()
        except Exception as e:
            raise PersistenceError(f"Error saving document {key} to Supabase: {e}") from e
