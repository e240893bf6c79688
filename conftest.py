"""Shared fixtures: small in-memory catalogs, storage and a controllable clock."""
import random

import pytest

from src.database import MemoryStorage
from src.engine import ExamEngine
from src.repository import QuestionRepository


def make_record(test_id, number, weight, correct=0, n_alts=4, **extra):
    """Catalog record in the source shape (weight_points + alternatives with is_correct flags)."""
    record = {
        "test_id": test_id,
        "question_number": number,
        "weight_points": weight,
        "alternatives": [
            {"letter": "ABCD"[i], "text": f"Option {i}", "is_correct": i == correct}
            for i in range(n_alts)
        ],
    }
    record.update(extra)
    return record


def make_catalog(weight_counts, test_id="t1"):
    records = []
    number = 1
    for weight, count in sorted(weight_counts.items()):
        for _ in range(count):
            records.append(make_record(test_id, number, weight, correct=number % 4))
            number += 1
    return records


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


SMALL_FORMAT = {3: 4, 9: 6}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def repository():
    return QuestionRepository.from_records(make_catalog({3: 6, 9: 8}))


@pytest.fixture
def engine(repository, storage, clock):
    eng = ExamEngine(
        "listening",
        repository,
        storage,
        weight_counts=SMALL_FORMAT,
        exam_length=10,
        prepare_seconds=3,
        rng=random.Random(7),
        clock=clock,
    )
    eng.startup()
    yield eng
    eng.close()
