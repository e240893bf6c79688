"""
Scoring & Banding: weighted score, percentage and CLB level for a finished real test.
Scoring: each correct answer adds its question's weight; unanswered questions score as incorrect.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from engine import EXAM_TOTAL, LISTENING_CLB_RANGES
from src.errors import BandingTableInvalid, SessionStateError
from src.models import ScoreReport, SessionQuestion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClbRange:
    level: int
    min_score: int
    max_score: int
    band: str

    def contains(self, score: int) -> bool:
        return self.min_score <= score <= self.max_score


@dataclass(frozen=True)
class ClbResult:
    level: int
    band: str
    not_reached: bool = False


class BandingTable:
    """Ascending, contiguous, non-overlapping CLB ranges. Validated on construction."""

    def __init__(self, ranges: Iterable[ClbRange]):
        self.ranges: List[ClbRange] = list(ranges)
        self._validate()

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping]) -> "BandingTable":
        try:
            ranges = [ClbRange(int(r["clb"]), int(r["min"]), int(r["max"]), str(r["band"])) for r in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise BandingTableInvalid(f"Malformed banding row: {e}") from e
        return cls(ranges)

    def _validate(self) -> None:
        if not self.ranges:
            raise BandingTableInvalid("Banding table is empty")
        prev: Optional[ClbRange] = None
        for r in self.ranges:
            if r.min_score > r.max_score:
                raise BandingTableInvalid(f"CLB {r.level}: min {r.min_score} > max {r.max_score}")
            if prev is not None:
                if r.min_score <= prev.max_score:
                    raise BandingTableInvalid(f"CLB {r.level} overlaps CLB {prev.level}")
                if r.min_score != prev.max_score + 1:
                    raise BandingTableInvalid(f"Gap between CLB {prev.level} and CLB {r.level}")
                if r.level <= prev.level:
                    raise BandingTableInvalid(f"CLB levels not ascending at CLB {r.level}")
            prev = r

    @property
    def lowest(self) -> ClbRange:
        return self.ranges[0]

    @property
    def highest(self) -> ClbRange:
        return self.ranges[-1]

    def lookup(self, score: int) -> ClbResult:
        """Below the table: lowest level, not reached. Above: clamp to the top level."""
        if score < self.lowest.min_score:
            return ClbResult(self.lowest.level, self.lowest.band, not_reached=True)
        for r in self.ranges:
            if r.contains(score):
                return ClbResult(r.level, r.band)
        return ClbResult(self.highest.level, self.highest.band)

    def rows(self, active_level: Optional[int] = None) -> List[Dict]:
        """Table rows for results rendering, with the achieved level flagged."""
        return [
            {"clb": r.level, "min": r.min_score, "max": r.max_score, "band": r.band, "active": r.level == active_level}
            for r in self.ranges
        ]


class Scorer:
    def __init__(self, table: Optional[BandingTable] = None, exam_length: int = EXAM_TOTAL):
        if exam_length <= 0:
            raise ValueError(f"exam_length must be positive, got {exam_length}")
        self.table = table or BandingTable.from_rows(LISTENING_CLB_RANGES)
        self.exam_length = exam_length

    def score(self, session) -> ScoreReport:
        """Score a finished TestSession."""
        if not session.finished:
            raise SessionStateError("Only a finished test can be scored")
        return self.score_questions(session.questions)

    def score_questions(self, questions: Sequence[SessionQuestion]) -> ScoreReport:
        correct = [sq for sq in questions if sq.is_correct]
        total_correct = len(correct)
        weighted_score = sum(sq.question.weight for sq in correct)
        percentage = total_correct / self.exam_length * 100
        clb = self.table.lookup(weighted_score)
        report = ScoreReport(
            total_correct=total_correct,
            weighted_score=weighted_score,
            percentage=percentage,
            clb_level=clb.level,
            cefr_band=clb.band,
            not_reached=clb.not_reached,
            exam_length=self.exam_length,
        )
        logger.info(f"Scored test: {total_correct}/{self.exam_length} correct, weighted {weighted_score}, CLB {clb.level}")
        return report


def review_rows(questions: Sequence[SessionQuestion]) -> List[Dict]:
    """Per-question results for review and for the history entry."""
    return [
        {
            "questionNumber": sq.position,
            "questionId": sq.question.id,
            "weight": sq.question.weight,
            "userAnswer": sq.selected_index,
            "correctAnswer": sq.question.correct_index,
            "isCorrect": sq.is_correct,
        }
        for sq in questions
    ]
