"""Answer tracking: attention heuristic, increment-safe persistence, event log cap."""
import gc
import time

import pytest

from conftest import make_record
from src.database import MemoryStorage, StorageClient
from src.errors import PersistenceError
from src.models import AnswerRecord
from src.persistence import PersistenceQueue
from src.repository import parse_record
from src.tracking import AnswerTrackingStore, EventLog, deserves_attention


@pytest.mark.parametrize(
    "correct,wrong,expected",
    [
        (0, 0, False),
        (3, 2, True),
        (5, 0, False),
        (1, 0, True),
        (0, 1, True),
        (2, 4, False),
        (4, 4, True),
    ],
)
def test_deserves_attention(correct, wrong, expected):
    assert deserves_attention(AnswerRecord(correct=correct, wrong=wrong)) is expected


class FailingStorage(StorageClient):
    def get_state(self, key):
        return {}

    def set_state(self, key, data):
        raise PersistenceError("disk full")


@pytest.fixture
def queue():
    q = PersistenceQueue("test")
    yield q
    q.close()


def test_read_unknown_question_is_zeroed(queue):
    store = AnswerTrackingStore(MemoryStorage(), "listening", queue)
    rec = store.read("nope")
    assert (rec.correct, rec.wrong, rec.last_answered_at) == (0, 0, None)
    assert store.never_answered("nope")
    assert not store.deserves_attention("nope")


def test_record_updates_mirror_and_storage(queue):
    storage = MemoryStorage()
    store = AnswerTrackingStore(storage, "listening", queue)
    store.record("q1", True)
    store.record("q1", False)
    store.record("q1", True)
    assert store.read("q1").correct == 2
    assert store.read("q1").wrong == 1
    assert store.deserves_attention("q1")

    assert queue.flush(timeout=5)
    saved = storage.get_state("listening/answers")["answers"]["q1"]
    assert saved["correct"] == 2
    assert saved["wrong"] == 1
    assert saved["lastAnswered"]


def test_record_increments_on_top_of_stored_counts(queue):
    storage = MemoryStorage({"listening/answers": {"answers": {"q1": {"correct": 4, "wrong": 1}}}})
    store = AnswerTrackingStore(storage, "listening", queue)
    # Another surface wrote after this store loaded; increments must add, not overwrite.
    store.record("q1", False)
    queue.flush(timeout=5)
    saved = storage.get_state("listening/answers")["answers"]["q1"]
    assert (saved["correct"], saved["wrong"]) == (4, 2)


def test_load_backfills_partial_documents(queue):
    storage = MemoryStorage({"listening/answers": {"answers": {"q1": {"correct": 2}, "bad": "x"}}})
    store = AnswerTrackingStore(storage, "listening", queue)
    assert store.load() == 1
    assert store.read("q1").wrong == 0


def test_load_repairs_non_numeric_and_negative_counters(queue):
    storage = MemoryStorage({
        "listening/answers": {"answers": {
            "q1": {"correct": "abc", "wrong": 2},
            "q2": {"correct": -3, "wrong": "4", "lastAnswered": 17},
        }}
    })
    store = AnswerTrackingStore(storage, "listening", queue)
    assert store.load() == 2
    assert (store.read("q1").correct, store.read("q1").wrong) == (0, 2)
    assert (store.read("q2").correct, store.read("q2").wrong) == (0, 4)
    assert store.read("q2").last_answered_at is None

    store.record("q1", True)
    assert queue.flush(timeout=5)
    saved = storage.get_state("listening/answers")["answers"]["q1"]
    assert (saved["correct"], saved["wrong"]) == (1, 2)


def test_dropped_queue_releases_its_worker():
    queue = PersistenceQueue("dropped")
    queue.submit(lambda: None)
    assert queue.flush(timeout=5)
    finalizer = queue._finalizer
    del queue
    for _ in range(100):
        gc.collect()
        if not finalizer.alive:
            break
        time.sleep(0.01)
    assert not finalizer.alive


def test_close_shuts_down_worker():
    queue = PersistenceQueue("closed")
    queue.close()
    assert not queue._finalizer.alive
    with pytest.raises(RuntimeError):
        queue.submit(lambda: None)


def test_persistence_failure_is_reported_not_raised():
    errors = []
    queue = PersistenceQueue("failing", on_error=errors.append)
    store = AnswerTrackingStore(FailingStorage(), "listening", queue)
    store.record("q1", True)
    assert queue.flush(timeout=5)
    queue.close()
    assert store.read("q1").correct == 1
    assert len(errors) == 1
    assert isinstance(errors[0], PersistenceError)


def test_namespaces_do_not_collide(queue):
    storage = MemoryStorage()
    listening = AnswerTrackingStore(storage, "listening", queue)
    reading = AnswerTrackingStore(storage, "reading", queue)
    listening.record("q1", True)
    queue.flush(timeout=5)
    reading.load()
    assert reading.never_answered("q1")


def test_event_log_is_capped(queue):
    storage = MemoryStorage()
    log = EventLog(storage, "listening", queue, limit=3)
    question = parse_record(make_record("t2", 5, 15))
    for i in range(5):
        log.append(question, i % 2 == 0)
    queue.flush(timeout=5)
    items = log.read()
    assert len(items) == 3
    assert items[-1]["question_id"] == "t2-q0005"
    assert items[-1]["weight"] == 15
    assert items[-1]["test_id"] == "t2"
    assert items[-1]["question_number"] == 5
    assert [e["correct"] for e in items] == [True, False, True]
