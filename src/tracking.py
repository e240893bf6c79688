"""
Answer Tracking Store: lifetime correct/wrong counters per question, plus the answer event log.

Reads come from an in-memory mirror loaded once; record() updates the mirror synchronously
and persists in the background. The background write re-reads the stored document and
applies an increment, so writes that complete out of order still add up.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from engine import EVENT_LOG_LIMIT
from src.database import StorageClient, with_defaults
from src.errors import PersistenceError
from src.models import AnswerRecord, Question
from src.persistence import PersistenceQueue

logger = logging.getLogger(__name__)

ANSWERS_DEFAULT = {"answers": {}}
EVENTS_DEFAULT = {"items": []}


def deserves_attention(record: AnswerRecord) -> bool:
    """
    True when the question's history is close to a coin flip (|correct - wrong| < 2).
    Never-attempted questions are not "struggling" and return False.
    """
    if record.correct + record.wrong == 0:
        return False
    return abs(record.correct - record.wrong) < 2


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AnswerTrackingStore:
    def __init__(self, storage: StorageClient, namespace: str, queue: Optional[PersistenceQueue] = None):
        self.storage = storage
        self.answers_key = f"{namespace}/answers"
        self.queue = queue or PersistenceQueue(f"{namespace}-answers")
        self._records: Dict[str, AnswerRecord] = {}

    def load(self) -> int:
        """Fill the in-memory mirror from storage. Returns the number of records loaded."""
        doc = with_defaults(self.storage.get_state(self.answers_key), ANSWERS_DEFAULT)
        answers = doc["answers"] if isinstance(doc["answers"], dict) else {}
        self._records = {}
        for key, rec in answers.items():
            if not isinstance(rec, dict):
                logger.warning(f"Skipping answer record {key} in {self.answers_key}: {rec!r}")
                continue
            record = AnswerRecord.from_dict(rec)
            if (record.correct, record.wrong) != (rec.get("correct", 0), rec.get("wrong", 0)):
                logger.warning(f"Repaired answer record {key} in {self.answers_key}: {rec!r}")
            self._records[key] = record
        logger.info(f"Loaded {len(self._records)} answer records from {self.answers_key}")
        return len(self._records)

    def read(self, question_id: str) -> AnswerRecord:
        """Current counters; a zeroed record when the question was never answered."""
        rec = self._records.get(question_id)
        if rec is None:
            return AnswerRecord()
        return AnswerRecord(rec.correct, rec.wrong, rec.last_answered_at)

    def record(self, question_id: str, is_correct: bool):
        """Increment the matching counter now; persist in the background. Returns the write's future."""
        stamp = _now_iso()
        rec = self._records.setdefault(question_id, AnswerRecord())
        if is_correct:
            rec.correct += 1
        else:
            rec.wrong += 1
        rec.last_answered_at = stamp
        delta = (1, 0) if is_correct else (0, 1)
        return self.queue.submit(self._persist_increment, question_id, delta, stamp, description=f"record {question_id}")

    def _persist_increment(self, question_id: str, delta, stamp: str) -> None:
        try:
            doc = with_defaults(self.storage.get_state(self.answers_key), ANSWERS_DEFAULT)
        except Exception as e:
            raise PersistenceError(f"Could not read {self.answers_key}: {e}") from e
        answers = doc["answers"] if isinstance(doc["answers"], dict) else {}
        stored = AnswerRecord.from_dict(answers.get(question_id))
        stored.correct += delta[0]
        stored.wrong += delta[1]
        if not stored.last_answered_at or stored.last_answered_at < stamp:
            stored.last_answered_at = stamp
        answers[question_id] = stored.to_dict()
        self.storage.set_state(self.answers_key, {"answers": answers})

    def deserves_attention(self, question_id: str) -> bool:
        return deserves_attention(self.read(question_id))

    def never_answered(self, question_id: str) -> bool:
        return self.read(question_id).total == 0


class EventLog:
    """Append-style answer log, capped to the most recent `limit` events."""

    def __init__(self, storage: StorageClient, namespace: str, queue: Optional[PersistenceQueue] = None, limit: int = EVENT_LOG_LIMIT):
        self.storage = storage
        self.key = f"{namespace}/events"
        self.limit = limit
        self.queue = queue or PersistenceQueue(f"{namespace}-events")

    def append(self, question: Question, is_correct: bool):
        event = {
            "ts": _now_iso(),
            "test_id": question.test_id or "unknownTest",
            "question_number": question.number,
            "question_id": question.id,
            "weight": question.weight,
            "correct": bool(is_correct),
        }
        return self.queue.submit(self._persist, event, description="append event")

    def _persist(self, event: Dict) -> None:
        doc = with_defaults(self.storage.get_state(self.key), EVENTS_DEFAULT)
        items: List[Dict] = doc["items"]
        items.append(event)
        if len(items) > self.limit:
            del items[: len(items) - self.limit]
        self.storage.set_state(self.key, {"items": items})

    def read(self) -> List[Dict]:
        return with_defaults(self.storage.get_state(self.key), EVENTS_DEFAULT)["items"]
