"""Catalog importer and Supabase catalog helpers (fake client, no network)."""
import json

import pytest

import db
from conftest import make_record
from importer import load_and_transform, run_import, summarize
from src.repository import QuestionRepository


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, client):
        self.client = client
        self.op = None
        self.filters = {}
        self.bounds = None
        self.payload = None

    def select(self, *_):
        self.op = "select"
        return self

    def upsert(self, rows, on_conflict=None):
        self.op = "upsert"
        self.payload = rows
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def range(self, start, end):
        self.bounds = (start, end)
        return self

    def execute(self):
        if self.op == "upsert":
            self.client.upserts.append(list(self.payload))
            for row in self.payload:
                self.client.rows[row["id"]] = row
            return FakeResult(self.payload)
        matching = [r for r in self.client.rows.values() if r["subject"] == self.filters.get("subject")]
        if self.op == "delete":
            for r in matching:
                del self.client.rows[r["id"]]
            return FakeResult(matching)
        start, end = self.bounds
        return FakeResult([{"record": r["record"]} for r in matching[start : end + 1]])


class FakeClient:
    def __init__(self):
        self.rows = {}
        self.upserts = []

    def table(self, name):
        assert name == "questions"
        return FakeQuery(self)


@pytest.fixture
def catalog_file(tmp_path):
    records = [make_record("t1", i, 3 if i <= 3 else 9) for i in range(1, 6)]
    records.append({"question_number": 99, "weight_points": 3, "alternatives": []})
    path = tmp_path / "listening.json"
    path.write_text(json.dumps({"questions": records}), encoding="utf-8")
    return path


def test_load_and_transform_skips_malformed(catalog_file):
    rows = load_and_transform(catalog_file, "listening")
    assert len(rows) == 5
    assert rows[0]["id"] == "listening:t1-q0001"
    assert rows[0]["record"]["question_ID"] == "t1-q0001"
    assert summarize(rows) == {3: 3, 9: 2}


def test_jsonl_input(tmp_path):
    path = tmp_path / "reading.jsonl"
    lines = [json.dumps(make_record("r1", 1, 15)), "", "{broken", json.dumps(make_record("r1", 2, 21))]
    path.write_text("\n".join(lines), encoding="utf-8")
    rows = load_and_transform(path, "reading")
    assert [r["weight_points"] for r in rows] == [15, 21]


def test_dry_run_writes_nothing(catalog_file, monkeypatch):
    monkeypatch.setattr(db, "get_supabase_uncached", lambda: pytest.fail("dry run must not connect"))
    rows = run_import(catalog_file, "listening", dry_run=True)
    assert len(rows) == 5


def test_normalized_output_loads_back(catalog_file, tmp_path):
    out = tmp_path / "out" / "listening_quiz_data.json"
    run_import(catalog_file, "listening", output=out)
    repo = QuestionRepository([out])
    repo.load()
    assert len(repo) == 5
    assert repo.weight_counts() == {3: 3, 9: 2}


def test_upsert_chunks_and_fetch_back(catalog_file, monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(db, "get_supabase_uncached", lambda: client)
    run_import(catalog_file, "listening", chunk_size=2)
    assert [len(chunk) for chunk in client.upserts] == [2, 2, 1]

    records = db.fetch_catalog_records(client, "listening", page_size=2)
    repo = QuestionRepository.from_records(records)
    assert len(repo) == 5

    run_import(catalog_file, "listening", replace=True)
    assert len(client.rows) == 5


def test_upsert_dedupes_by_id():
    client = FakeClient()
    rows = [{"id": "a", "subject": "listening", "record": {}}, {"id": "a", "subject": "listening", "record": {"x": 1}}]
    db.upsert_questions_bulk(client, rows)
    assert client.upserts == [[{"id": "a", "subject": "listening", "record": {"x": 1}}]]


def test_missing_catalog(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_import(tmp_path / "nope.json", "listening", dry_run=True)
