"""
Data model for the practice and real-test engine.
Questions are immutable catalog entries; everything else is per-user or per-session state.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


def _as_int(value, default: int = 0) -> int:
    """Stored documents may be hand-edited or written by older clients."""
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Alternative:
    letter: str
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    """Catalog entry. `raw` keeps the source record for subject adapters (media, transcript)."""
    id: str
    weight: int
    alternatives: Tuple[Alternative, ...]
    test_id: Optional[str] = None
    number: Optional[int] = None
    raw: Dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def correct_index(self) -> int:
        for i, alt in enumerate(self.alternatives):
            if alt.is_correct:
                return i
        return -1


@dataclass
class AnswerRecord:
    """Lifetime counters for one question. Counters only ever go up."""
    correct: int = 0
    wrong: int = 0
    last_answered_at: Optional[str] = None

    @property
    def total(self) -> int:
        return self.correct + self.wrong

    def to_dict(self) -> Dict:
        return {"correct": self.correct, "wrong": self.wrong, "lastAnswered": self.last_answered_at}

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "AnswerRecord":
        data = data if isinstance(data, dict) else {}
        stamp = data.get("lastAnswered")
        return cls(
            correct=max(0, _as_int(data.get("correct"))),
            wrong=max(0, _as_int(data.get("wrong"))),
            last_answered_at=stamp if isinstance(stamp, str) and stamp else None,
        )


@dataclass
class SessionQuestion:
    question: Question
    position: int  # 1-based
    selected_index: Optional[int] = None

    @property
    def answered(self) -> bool:
        return self.selected_index is not None

    @property
    def is_correct(self) -> bool:
        return self.answered and self.selected_index == self.question.correct_index


@dataclass(frozen=True)
class ScoreReport:
    total_correct: int
    weighted_score: int
    percentage: float
    clb_level: int
    cefr_band: str
    not_reached: bool = False
    exam_length: int = 0

    def to_dict(self) -> Dict:
        return {
            "totalCorrect": self.total_correct,
            "weightedScore": self.weighted_score,
            "pct": self.percentage,
            "clb": self.clb_level,
            "band": self.cefr_band,
            "notReached": self.not_reached,
            "totalQuestions": self.exam_length,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only ledger row: sequence number, date, and a copy of the score report."""
    number: int
    date: str
    report: ScoreReport
    details: Tuple[Dict, ...] = ()

    def to_dict(self) -> Dict:
        row = {"number": self.number, "date": self.date}
        row.update(self.report.to_dict())
        if self.details:
            row["detailedResults"] = list(self.details)
        return row

    @classmethod
    def from_dict(cls, data: Dict) -> "HistoryEntry":
        """Raises ValueError when the entry has no usable sequence number."""
        number = _as_int(data.get("number"), default=-1)
        if number < 1:
            raise ValueError(f"invalid history number: {data.get('number')!r}")
        report = ScoreReport(
            total_correct=max(0, _as_int(data.get("totalCorrect"))),
            weighted_score=max(0, _as_int(data.get("weightedScore"))),
            percentage=_as_float(data.get("pct")),
            clb_level=_as_int(data.get("clb")),
            cefr_band=str(data.get("band") or ""),
            not_reached=bool(data.get("notReached", False)),
            exam_length=max(0, _as_int(data.get("totalQuestions"))),
        )
        raw_details = data.get("detailedResults")
        details: List[Dict] = [d for d in raw_details if isinstance(d, dict)] if isinstance(raw_details, list) else []
        return cls(number=number, date=str(data.get("date") or ""), report=report, details=tuple(details))
