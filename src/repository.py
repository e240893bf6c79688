"""
Question Repository: loads the catalog once and answers weight queries.
Catalog sources are tried in order; http(s) candidates are fetched, anything else is read from disk.
"""
import json
import logging
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import requests

from src.errors import DataUnavailable
from src.models import Alternative, Question

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15

CatalogSource = Union[str, Path]


def question_key(raw: Dict) -> str:
    """Stable identity: explicit id, else test id + zero-padded question number."""
    explicit = raw.get("question_ID") or raw.get("number_ID") or raw.get("id")
    if explicit:
        return str(explicit)
    test_id = raw.get("test_id") or "unknownTest"
    number = raw.get("question_number")
    return f"{test_id}-q{str(number if number is not None else '').zfill(4)}"


def _as_number(value) -> Optional[int]:
    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit())
        return int(digits) if digits else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_record(raw: Dict) -> Optional[Question]:
    """Turn one catalog record into a Question. Returns None if the record is unusable."""
    if not isinstance(raw, dict):
        return None
    try:
        weight = int(float(raw.get("weight_points", raw.get("weight"))))
    except (TypeError, ValueError):
        return None
    alternatives = raw.get("alternatives")
    if not isinstance(alternatives, list) or len(alternatives) < 2:
        return None
    alts = []
    for i, alt in enumerate(alternatives):
        if not isinstance(alt, dict):
            return None
        alts.append(
            Alternative(
                letter=str(alt.get("letter") or chr(65 + i)),
                text=str(alt.get("text") or alt.get("label") or ""),
                is_correct=alt.get("is_correct") in (True, "true", 1, "1"),
            )
        )
    if sum(1 for a in alts if a.is_correct) != 1:
        return None
    return Question(
        id=question_key(raw),
        weight=weight,
        alternatives=tuple(alts),
        test_id=raw.get("test_id"),
        number=_as_number(raw.get("question_number")),
        raw=dict(raw),
    )


def _read_candidate(candidate: CatalogSource):
    text = str(candidate)
    if text.startswith(("http://", "https://")):
        response = requests.get(text, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    with Path(candidate).open("r", encoding="utf-8") as f:
        return json.load(f)


def fetch_catalog(candidates: Sequence[CatalogSource]) -> List[Dict]:
    """Return the records of the first candidate that loads and parses as a JSON array."""
    for candidate in candidates:
        try:
            data = _read_candidate(candidate)
        except (OSError, ValueError, requests.RequestException) as e:
            logger.warning(f"Catalog candidate failed: {candidate} ({e})")
            continue
        if isinstance(data, dict) and isinstance(data.get("questions"), list):
            data = data["questions"]
        if not isinstance(data, list):
            logger.warning(f"Catalog candidate is not a list of questions: {candidate}")
            continue
        logger.info(f"Loaded catalog from {candidate} ({len(data)} records)")
        return data
    raise DataUnavailable("All catalog candidates failed")


class QuestionRepository:
    """Read-only catalog for one subject. Empty until load() succeeds."""

    def __init__(self, source: Union[Sequence[CatalogSource], Callable[[], Iterable[Dict]], None] = None):
        self._source = source
        self._questions: List[Question] = []
        self._by_weight: Dict[int, List[Question]] = {}

    @classmethod
    def from_records(cls, records: Iterable[Dict]) -> "QuestionRepository":
        records = list(records)
        repo = cls(lambda: records)
        repo.load()
        return repo

    def load(self) -> List[Question]:
        """Fetch and parse the catalog. On failure the catalog is left empty and DataUnavailable is raised."""
        self._set([])
        if self._source is None:
            raise DataUnavailable("No catalog source configured")
        try:
            if callable(self._source):
                records = list(self._source())
            else:
                records = fetch_catalog(self._source)
        except DataUnavailable:
            raise
        except Exception as e:
            raise DataUnavailable(f"Catalog source failed: {e}") from e

        questions = []
        seen = set()
        skipped = 0
        for raw in records:
            q = parse_record(raw)
            if q is None or q.id in seen:
                skipped += 1
                continue
            seen.add(q.id)
            questions.append(q)
        if skipped:
            logger.warning(f"Skipped {skipped} malformed or duplicate catalog records")
        self._set(questions)
        return list(self._questions)

    def _set(self, questions: List[Question]) -> None:
        self._questions = questions
        by_weight: Dict[int, List[Question]] = {}
        for q in questions:
            by_weight.setdefault(q.weight, []).append(q)
        self._by_weight = by_weight

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def is_empty(self) -> bool:
        return not self._questions

    def by_weight(self, weight: int) -> List[Question]:
        return list(self._by_weight.get(weight, []))

    def weights(self) -> List[int]:
        return sorted(self._by_weight)

    def weight_counts(self) -> Dict[int, int]:
        counts = Counter(q.weight for q in self._questions)
        return {w: counts[w] for w in sorted(counts)}

    def get(self, question_id: str) -> Optional[Question]:
        return next((q for q in self._questions if q.id == question_id), None)

    def __len__(self) -> int:
        return len(self._questions)
