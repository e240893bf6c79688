"""Storage factory: picks the local JSON store or Supabase from the environment (.env)."""
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv

from src.database import LocalJSONStorage, StorageClient, SupabaseStorage

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("data")
DEFAULT_CATALOGS = {
    "listening": ["data/listening_quiz_data.json", "data/all_quiz_data.json"],
    "reading": ["data/reading_quiz_data.json"],
}


def get_user_id() -> str:
    return os.getenv("TCF_USER_ID", "local")


def get_data_dir() -> Path:
    return Path(os.getenv("TCF_DATA_DIR", str(DEFAULT_DATA_DIR)))


def get_prepare_seconds(default: float) -> float:
    raw = os.getenv("TCF_PREPARE_SECONDS")
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        logger.warning(f"Ignoring invalid TCF_PREPARE_SECONDS={raw!r}")
        return default


def get_catalog_candidates(subject: str) -> List[str]:
    """Comma-separated paths/URLs from TCF_<SUBJECT>_CATALOG, else the bundled defaults."""
    raw = os.getenv(f"TCF_{subject.upper()}_CATALOG", "")
    candidates = [c.strip() for c in raw.split(",") if c.strip()]
    return candidates or list(DEFAULT_CATALOGS.get(subject, []))


def get_catalog_source(subject: str):
    """Catalog candidates for QuestionRepository, or a Supabase loader when TCF_CATALOG_SOURCE=supabase."""
    if os.getenv("TCF_CATALOG_SOURCE", "files").strip().lower() == "supabase":
        from db import fetch_catalog_records, get_supabase_uncached

        return lambda: fetch_catalog_records(get_supabase_uncached(), subject)
    return get_catalog_candidates(subject)


def get_storage(user_id: Optional[str] = None, backend: Optional[str] = None, client_factory: Optional[Callable] = None) -> StorageClient:
    """Build the storage collaborator named by TCF_STORAGE (local | supabase)."""
    user_id = user_id or get_user_id()
    backend = (backend or os.getenv("TCF_STORAGE", "local")).strip().lower()
    local = LocalJSONStorage(get_data_dir(), user_id)
    if backend == "supabase":
        if client_factory is None:
            # Imported lazily so the local backend never needs Supabase credentials.
            from db import get_supabase_uncached as client_factory
        return SupabaseStorage(client_factory(), user_id, backup=local)
    if backend != "local":
        logger.warning(f"Unknown TCF_STORAGE={backend!r}, using local storage")
    return local
