"""
Practice Filter: the active question list for free (untimed) practice.
Weight selection narrows the catalog first, then the mode narrows further; the result is
shuffled once per filter change so prev/next stays stable while browsing.
"""
import logging
import random
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from src.errors import SessionStateError
from src.models import Question
from src.tracking import AnswerTrackingStore

logger = logging.getLogger(__name__)

ALL_WEIGHTS = "all"
WeightSelector = Union[str, int, None]


class PracticeMode(str, Enum):
    NORMAL = "normal"
    DESERVES_ATTENTION = "deservesAttention"
    NEVER_ANSWERED = "neverAnswered"


def _weight_of(selector: WeightSelector) -> Optional[int]:
    if selector is None or selector == ALL_WEIGHTS:
        return None
    return int(selector)


def in_weight_scope(questions: Sequence[Question], weight_selector: WeightSelector) -> List[Question]:
    weight = _weight_of(weight_selector)
    if weight is None:
        return list(questions)
    return [q for q in questions if q.weight == weight]


def active_set(
    questions: Sequence[Question],
    weight_selector: WeightSelector,
    mode: PracticeMode,
    store: AnswerTrackingStore,
) -> List[Question]:
    """Filter in catalog order (no shuffle)."""
    items = in_weight_scope(questions, weight_selector)
    mode = PracticeMode(mode)
    if mode is PracticeMode.DESERVES_ATTENTION:
        items = [q for q in items if store.deserves_attention(q.id)]
    elif mode is PracticeMode.NEVER_ANSWERED:
        items = [q for q in items if store.never_answered(q.id)]
    return items


class PracticeFilter:
    def __init__(self, store: AnswerTrackingStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()
        self.weight_selector: WeightSelector = ALL_WEIGHTS
        self.mode = PracticeMode.NORMAL
        self.items: List[Question] = []
        self.index = 0
        self.selected_index: Optional[int] = None
        self.answers: Dict[str, int] = {}
        self.score = 0

    def apply(self, questions: Sequence[Question], weight_selector: WeightSelector = None, mode: Optional[PracticeMode] = None) -> List[Question]:
        """Recompute the active set for a new weight and/or mode, shuffle once, restart at the top."""
        if weight_selector is not None:
            self.weight_selector = ALL_WEIGHTS if weight_selector == ALL_WEIGHTS else int(weight_selector)
        if mode is not None:
            self.mode = PracticeMode(mode)
        items = active_set(questions, self.weight_selector, self.mode, self.store)
        self.rng.shuffle(items)
        self.items = items
        self.index = 0
        self.selected_index = None
        self.answers = {}
        self.score = 0
        logger.debug(f"Practice filter weight={self.weight_selector} mode={self.mode.value}: {len(items)} questions")
        return list(items)

    def toggle_mode(self, questions: Sequence[Question], mode: PracticeMode) -> List[Question]:
        """Turn a mode on (clearing the other one) or back off to normal."""
        mode = PracticeMode(mode)
        new_mode = PracticeMode.NORMAL if self.mode is mode else mode
        return self.apply(questions, mode=new_mode)

    def count_deserving(self, questions: Sequence[Question]) -> int:
        scope = in_weight_scope(questions, self.weight_selector)
        return sum(1 for q in scope if self.store.deserves_attention(q.id))

    def current(self) -> Optional[Question]:
        if not self.items:
            return None
        return self.items[self.index]

    def next(self) -> Optional[Question]:
        if self.index < len(self.items) - 1:
            self.index += 1
            self.selected_index = None
        return self.current()

    def previous(self) -> Optional[Question]:
        if self.index > 0:
            self.index -= 1
            self.selected_index = None
        return self.current()

    def answer_for(self, question: Question) -> Optional[int]:
        return self.answers.get(question.id)

    def select(self, alternative_index: int) -> None:
        q = self.current()
        if q is None:
            raise SessionStateError("No question to answer")
        if q.id in self.answers:
            raise SessionStateError("Question already answered")
        if not 0 <= alternative_index < len(q.alternatives):
            raise ValueError(f"Alternative {alternative_index} out of range")
        self.selected_index = alternative_index

    def submit(self):
        """Lock in the selection for the current question. Returns (question, is_correct)."""
        q = self.current()
        if q is None or self.selected_index is None:
            raise SessionStateError("Select an alternative before submitting")
        if q.id in self.answers:
            raise SessionStateError("Question already answered")
        self.answers[q.id] = self.selected_index
        is_correct = self.selected_index == q.correct_index
        if is_correct:
            self.score += 1
        self.selected_index = None
        return q, is_correct
