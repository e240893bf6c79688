"""
Exam Engine: real-test session state machine and the per-subject engine instance.

Session lifecycle: Idle (no session) -> Preparing -> InProgress -> Finished.
Submitting an answer locks it and moves the cursor to the next unanswered question,
scanning circularly from just after the current position.
"""
import logging
import random
import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from engine import EXAM_TOTAL, LISTENING_CLB_RANGES, PREPARE_SECONDS, READING_CLB_RANGES, REAL_TEST_COUNTS
from src.database import StorageClient
from src.errors import (
    ConfirmationRequired,
    DataUnavailable,
    EmptyBucket,
    PersistenceError,
    SessionStateError,
    UnansweredQuestionsRemain,
)
from src.history import TestHistoryLedger
from src.models import AnswerRecord, HistoryEntry, Question, ScoreReport, SessionQuestion
from src.persistence import PersistenceQueue
from src.practice import PracticeFilter, PracticeMode, WeightSelector
from src.repository import QuestionRepository
from src.sampler import WeightedSampler, check_format
from src.scoring import BandingTable, Scorer, review_rows
from src.subjects import SubjectAdapter, get_adapter
from src.tracking import AnswerTrackingStore, EventLog

logger = logging.getLogger(__name__)

CLB_TABLES = {
    "listening": LISTENING_CLB_RANGES,
    "reading": READING_CLB_RANGES,
}


class SessionState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class TestSession:
    """One real test. Preparation pacing is a deadline on `clock`, so abandoning needs no timer cleanup."""

    __test__ = False

    def __init__(self, pool: Sequence[SessionQuestion], prepare_seconds: float = PREPARE_SECONDS, clock: Callable[[], float] = time.monotonic):
        if not pool:
            raise SessionStateError("Cannot start a test with an empty question pool")
        self.questions: List[SessionQuestion] = list(pool)
        self.clock = clock
        self.ready_at = clock() + max(0.0, prepare_seconds)
        self.state = SessionState.PREPARING
        self.cursor = 0
        self.pending_index: Optional[int] = None

    # Preparing

    @property
    def is_ready(self) -> bool:
        return self.clock() >= self.ready_at

    def seconds_until_ready(self) -> float:
        return max(0.0, self.ready_at - self.clock())

    def begin(self) -> None:
        """User confirmed start. Only allowed once the preparation delay has elapsed."""
        if self.state is not SessionState.PREPARING:
            raise SessionStateError(f"Cannot begin a test that is {self.state.value}")
        if not self.is_ready:
            raise SessionStateError(f"Test is still preparing ({self.seconds_until_ready():.1f}s left)")
        self.state = SessionState.IN_PROGRESS
        self.cursor = 0
        self.pending_index = None

    # In progress

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise SessionStateError(f"Not allowed while the test is {self.state.value}")

    @property
    def finished(self) -> bool:
        return self.state is SessionState.FINISHED

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def position(self) -> int:
        return self.cursor + 1

    def current(self) -> Optional[SessionQuestion]:
        if self.state is SessionState.PREPARING:
            return None
        return self.questions[self.cursor]

    def select(self, alternative_index: int) -> None:
        self._require(SessionState.IN_PROGRESS)
        sq = self.questions[self.cursor]
        if sq.answered:
            raise SessionStateError(f"Question {sq.position} is already answered")
        if not 0 <= alternative_index < len(sq.question.alternatives):
            raise ValueError(f"Alternative {alternative_index} out of range")
        self.pending_index = alternative_index

    def submit(self) -> SessionQuestion:
        """Lock in the pending selection and advance to the next unanswered question."""
        self._require(SessionState.IN_PROGRESS)
        if self.pending_index is None:
            raise SessionStateError("Select an alternative before submitting")
        sq = self.questions[self.cursor]
        if sq.answered:
            raise SessionStateError(f"Question {sq.position} is already answered")
        sq.selected_index = self.pending_index
        self.pending_index = None
        nxt = self.next_unanswered()
        if nxt is not None:
            self.cursor = nxt
        return sq

    def next_unanswered(self) -> Optional[int]:
        """Index of the next unanswered question after the cursor, wrapping around. None if all answered."""
        n = len(self.questions)
        for step in range(1, n + 1):
            i = (self.cursor + step) % n
            if not self.questions[i].answered:
                return i
        return None

    def jump_to(self, position: int) -> SessionQuestion:
        """Free navigation by 1-based position (in progress, or reviewing a finished test)."""
        self._require(SessionState.IN_PROGRESS, SessionState.FINISHED)
        if not 1 <= position <= len(self.questions):
            raise ValueError(f"Position {position} out of range 1..{len(self.questions)}")
        self.cursor = position - 1
        self.pending_index = None
        return self.questions[self.cursor]

    def answered_positions(self) -> List[int]:
        return [sq.position for sq in self.questions if sq.answered]

    def unanswered_count(self) -> int:
        return sum(1 for sq in self.questions if not sq.answered)

    def finish(self, confirm_unanswered: bool = False) -> None:
        self._require(SessionState.IN_PROGRESS)
        remaining = self.unanswered_count()
        if remaining and not confirm_unanswered:
            raise UnansweredQuestionsRemain(remaining)
        self.state = SessionState.FINISHED
        self.pending_index = None


class ExamEngine:
    """
    Everything one subject needs: catalog, practice filter, real test, tracking and history.
    Construct one per subject; instances share nothing but the storage collaborator.
    """

    def __init__(
        self,
        subject: str,
        repository: QuestionRepository,
        storage: StorageClient,
        adapter: Optional[SubjectAdapter] = None,
        weight_counts: Optional[Mapping[int, int]] = None,
        banding_rows: Optional[Sequence[Mapping]] = None,
        exam_length: int = EXAM_TOTAL,
        prepare_seconds: float = PREPARE_SECONDS,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.subject = subject
        self.repository = repository
        self.adapter = adapter or get_adapter(subject)
        self.weight_counts = dict(weight_counts or REAL_TEST_COUNTS)
        # Invalid banding fails here, before any session exists.
        rows = banding_rows if banding_rows is not None else CLB_TABLES.get(subject, LISTENING_CLB_RANGES)
        self.scorer = Scorer(BandingTable.from_rows(rows), exam_length=exam_length)
        self.prepare_seconds = prepare_seconds
        self.clock = clock
        self.rng = rng or random.Random()

        self._warnings: List[str] = []
        self._warnings_lock = threading.Lock()
        self.queue = PersistenceQueue(subject, on_error=self._on_persistence_error)
        self.tracking = AnswerTrackingStore(storage, subject, self.queue)
        self.events = EventLog(storage, subject, self.queue)
        self.ledger = TestHistoryLedger(storage, subject, self.queue)
        self.sampler = WeightedSampler(repository, self.rng)
        self.practice = PracticeFilter(self.tracking, self.rng)

        self.session: Optional[TestSession] = None
        self.report: Optional[ScoreReport] = None
        self.format_error: Optional[str] = None

    # Startup and warnings

    def startup(self) -> "ExamEngine":
        """Load catalog, answer records and history. Data failures degrade to an empty state."""
        try:
            self.repository.load()
        except DataUnavailable as e:
            logger.error(f"[{self.subject}] Catalog unavailable: {e}")
            self._warn(f"Questions could not be loaded: {e}")
        for label, part in (("answer records", self.tracking), ("test history", self.ledger)):
            try:
                part.load()
            except (PersistenceError, ValueError, TypeError) as e:
                logger.warning(f"[{self.subject}] Could not read stored {label}: {e}")
                self._warn(f"Stored {label} could not be read: {e}")

        self.format_error = None
        if not self.repository.is_empty:
            try:
                check_format(self.repository, self.weight_counts)
            except EmptyBucket as e:
                self.format_error = str(e)
                logger.error(f"[{self.subject}] Real test unavailable: {e}")
        self.practice.apply(self.repository.questions)
        logger.info(f"[{self.subject}] Engine ready: {len(self.repository)} questions, {self.ledger.count} past tests")
        return self

    def _warn(self, message: str) -> None:
        with self._warnings_lock:
            self._warnings.append(message)

    def _on_persistence_error(self, error: PersistenceError) -> None:
        self._warn(f"Progress not saved: {error}")

    def drain_warnings(self) -> List[str]:
        with self._warnings_lock:
            out, self._warnings = self._warnings, []
        return out

    def flush(self, timeout: Optional[float] = None) -> bool:
        return self.queue.flush(timeout)

    def close(self) -> None:
        self.queue.close()

    # Practice

    @property
    def viewing_results(self) -> bool:
        return self.session is not None and self.session.finished

    def _leave_results(self, confirm: bool) -> None:
        if self.viewing_results:
            if not confirm:
                raise ConfirmationRequired("Leave the test results?")
            self.session = None
            self.report = None

    def change_filter(self, weight_selector: WeightSelector = None, mode: Optional[PracticeMode] = None, confirm_leave_results: bool = False) -> List[Question]:
        self._leave_results(confirm_leave_results)
        return self.practice.apply(self.repository.questions, weight_selector=weight_selector, mode=mode)

    def toggle_mode(self, mode: PracticeMode, confirm_leave_results: bool = False) -> List[Question]:
        self._leave_results(confirm_leave_results)
        return self.practice.toggle_mode(self.repository.questions, mode)

    def count_deserving(self) -> int:
        return self.practice.count_deserving(self.repository.questions)

    def practice_current(self) -> Optional[Question]:
        return self.practice.current()

    def practice_next(self) -> Optional[Question]:
        return self.practice.next()

    def practice_previous(self) -> Optional[Question]:
        return self.practice.previous()

    def practice_select(self, alternative_index: int) -> None:
        self.practice.select(alternative_index)

    def practice_submit(self) -> bool:
        question, is_correct = self.practice.submit()
        self._record(question, is_correct)
        return is_correct

    def question_stats(self, question_id: str) -> AnswerRecord:
        return self.tracking.read(question_id)

    def _record(self, question: Question, is_correct: bool) -> None:
        self.tracking.record(question.id, is_correct)
        self.events.append(question, is_correct)
        logger.debug(f"[{self.subject}] {question.id} answered {'correctly' if is_correct else 'wrong'}")

    # Real test

    @property
    def state(self) -> SessionState:
        if self.session is None:
            return SessionState.IDLE
        return self.session.state

    def _require_session(self) -> TestSession:
        if self.session is None:
            raise SessionStateError("No test in progress")
        return self.session

    def start_test(self, confirm_discard: bool = False) -> TestSession:
        """Idle -> Preparing. Discarding displayed results needs confirm_discard=True."""
        if self.session is not None:
            if not self.session.finished:
                raise SessionStateError("A test is already running")
            if not confirm_discard:
                raise ConfirmationRequired("Start a new test and discard the current results?")
        if self.repository.is_empty:
            raise DataUnavailable("No questions loaded")
        pool = self.sampler.build_session_pool(self.weight_counts)
        self.session = TestSession(pool, self.prepare_seconds, self.clock)
        self.report = None
        logger.info(f"[{self.subject}] Preparing real test ({len(pool)} questions)")
        return self.session

    def confirm_start(self) -> SessionQuestion:
        session = self._require_session()
        session.begin()
        logger.info(f"[{self.subject}] Real test started")
        return session.current()

    def select(self, alternative_index: int) -> None:
        self._require_session().select(alternative_index)

    def submit(self) -> SessionQuestion:
        sq = self._require_session().submit()
        self._record(sq.question, sq.is_correct)
        return sq

    def jump_to(self, position: int) -> SessionQuestion:
        return self._require_session().jump_to(position)

    def finish_test(self, confirm_unanswered: bool = False) -> ScoreReport:
        """InProgress -> Finished. Scores once and appends one history entry; later calls return the same report."""
        session = self._require_session()
        if session.finished:
            return self.report
        session.finish(confirm_unanswered=confirm_unanswered)
        self.report = self.scorer.score(session)
        self.ledger.append(self.report, review_rows(session.questions))
        logger.info(f"[{self.subject}] Real test finished: {self.report.weighted_score} points, CLB {self.report.clb_level}")
        return self.report

    def abandon_test(self) -> None:
        """Back to Idle without scoring. Also closes a finished test's results."""
        if self.session is None:
            return
        if not self.session.finished:
            logger.info(f"[{self.subject}] Real test abandoned ({len(self.session.answered_positions())} answered)")
        self.session = None
        self.report = None

    # Views

    def current_question(self) -> Optional[SessionQuestion]:
        return self.session.current() if self.session else None

    def answered_positions(self) -> List[int]:
        return self.session.answered_positions() if self.session else []

    @property
    def latest_report(self) -> Optional[ScoreReport]:
        return self.report

    def clb_rows(self) -> List[Dict]:
        return self.scorer.table.rows(self.report.clb_level if self.report else None)

    def review(self) -> List[Dict]:
        if not self.viewing_results:
            return []
        return review_rows(self.session.questions)

    def history(self) -> List[HistoryEntry]:
        return self.ledger.entries

    def media_for(self, question: Question) -> Optional[str]:
        return self.adapter.resolve_media(question)

    def picture_for(self, question: Question) -> Optional[str]:
        return self.adapter.picture(question)

    def text_for(self, question: Question, in_test: bool = False) -> str:
        """Transcript or passage; hidden while a real test is in progress."""
        if in_test and self.state is SessionState.IN_PROGRESS:
            return ""
        return self.adapter.supplementary_text(question)


def build_engine(subject: str, storage: Optional[StorageClient] = None, rng: Optional[random.Random] = None) -> ExamEngine:
    """Engine wired from the environment (.env): catalog source, storage backend, pacing."""
    from src.db_manager import get_catalog_source, get_prepare_seconds, get_storage

    repository = QuestionRepository(get_catalog_source(subject))
    engine = ExamEngine(
        subject,
        repository,
        storage or get_storage(),
        prepare_seconds=get_prepare_seconds(PREPARE_SECONDS),
        rng=rng,
    )
    return engine.startup()
