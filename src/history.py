"""Test History Ledger: append-only record of finished real tests with a running count."""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from src.database import StorageClient, with_defaults
from src.models import HistoryEntry, ScoreReport, _as_int
from src.persistence import PersistenceQueue

logger = logging.getLogger(__name__)

LEDGER_DEFAULT = {"count": 0, "items": []}


class TestHistoryLedger:
    # Not a pytest test class despite the name.
    __test__ = False

    def __init__(self, storage: StorageClient, namespace: str, queue: Optional[PersistenceQueue] = None):
        self.storage = storage
        self.key = f"{namespace}/history"
        self.queue = queue or PersistenceQueue(f"{namespace}-history")
        self._entries: List[HistoryEntry] = []
        self._count = 0

    def load(self) -> int:
        doc = with_defaults(self.storage.get_state(self.key), LEDGER_DEFAULT)
        items = doc["items"] if isinstance(doc["items"], list) else []
        self._entries = []
        for item in items:
            if not isinstance(item, dict):
                logger.warning(f"Skipping non-object history entry in {self.key}: {item!r}")
                continue
            try:
                self._entries.append(HistoryEntry.from_dict(item))
            except ValueError as e:
                logger.warning(f"Skipping history entry in {self.key}: {e}")
        self._count = max(_as_int(doc["count"]), max((e.number for e in self._entries), default=0))
        logger.info(f"Loaded {len(self._entries)} history entries from {self.key}")
        return self._count

    @property
    def count(self) -> int:
        return self._count

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def append(self, report: ScoreReport, details: Sequence[Dict] = ()):
        """Number the entry (count + 1), keep it in memory, and persist entry + count in one write."""
        number = self._count + 1
        entry = HistoryEntry(
            number=number,
            date=datetime.now(timezone.utc).isoformat(),
            report=report,
            details=tuple(details),
        )
        self._count = number
        self._entries.append(entry)
        self.queue.submit(self._persist, entry, description=f"append test #{number}")
        logger.info(f"Recorded test #{number}: weighted {report.weighted_score}, CLB {report.clb_level}")
        return entry

    def _persist(self, entry: HistoryEntry) -> None:
        doc = with_defaults(self.storage.get_state(self.key), LEDGER_DEFAULT)
        items = doc["items"] if isinstance(doc["items"], list) else []
        items.append(entry.to_dict())
        count = max(_as_int(doc["count"]), entry.number)
        self.storage.set_state(self.key, {"count": count, "items": items})
