"""Real-test session: preparation pacing, forced advance, finish confirmation, abandonment."""
import pytest

from conftest import FakeClock, make_catalog
from src.engine import SessionState, TestSession
from src.errors import ConfirmationRequired, SessionStateError, UnansweredQuestionsRemain
from src.models import SessionQuestion
from src.repository import QuestionRepository


def make_pool(n=10):
    questions = QuestionRepository.from_records(make_catalog({3: n})).questions
    return [SessionQuestion(question=q, position=i + 1) for i, q in enumerate(questions)]


def started_session(n=10):
    clock = FakeClock()
    session = TestSession(make_pool(n), prepare_seconds=3, clock=clock)
    clock.advance(3)
    session.begin()
    return session


def answer(session, position, correct=True):
    session.jump_to(position)
    q = session.current().question
    session.select(q.correct_index if correct else (q.correct_index + 1) % len(q.alternatives))
    return session.submit()


def test_preparing_requires_delay_then_confirmation():
    clock = FakeClock()
    session = TestSession(make_pool(), prepare_seconds=3, clock=clock)
    assert session.state is SessionState.PREPARING
    assert session.current() is None
    assert not session.is_ready
    with pytest.raises(SessionStateError):
        session.begin()
    clock.advance(2.5)
    assert session.seconds_until_ready() == pytest.approx(0.5)
    clock.advance(0.5)
    assert session.is_ready
    assert session.state is SessionState.PREPARING
    session.begin()
    assert session.state is SessionState.IN_PROGRESS
    assert session.position == 1


def test_cannot_answer_while_preparing():
    session = TestSession(make_pool(), prepare_seconds=3, clock=FakeClock())
    with pytest.raises(SessionStateError):
        session.select(0)


def test_empty_pool_rejected():
    with pytest.raises(SessionStateError):
        TestSession([], prepare_seconds=0, clock=FakeClock())


def test_submit_advances_to_next_unanswered():
    session = started_session()
    answer(session, 6)
    answer(session, 5)
    assert session.position == 7


def test_submit_wraps_to_first_unanswered():
    session = started_session()
    for pos in (6, 7, 8, 9, 10):
        answer(session, pos)
    answer(session, 5)
    assert session.position == 1


def test_submit_wrap_skips_answered_prefix():
    session = started_session()
    for pos in (1, 2, 6, 7, 8, 9, 10):
        answer(session, pos)
    answer(session, 5)
    assert session.position == 3


def test_last_answer_leaves_cursor_in_place():
    session = started_session(3)
    answer(session, 1)
    answer(session, 3)
    answer(session, 2)
    assert session.position == 2
    assert session.next_unanswered() is None
    assert session.unanswered_count() == 0


def test_answers_are_locked():
    session = started_session()
    sq = answer(session, 4)
    assert sq.answered
    session.jump_to(4)
    with pytest.raises(SessionStateError):
        session.select(0)
    with pytest.raises(SessionStateError):
        session.submit()


def test_submit_needs_a_selection():
    session = started_session()
    with pytest.raises(SessionStateError):
        session.submit()


def test_jump_to_validates_position():
    session = started_session()
    with pytest.raises(ValueError):
        session.jump_to(0)
    with pytest.raises(ValueError):
        session.jump_to(11)
    assert session.jump_to(10).position == 10


def test_finish_with_gaps_needs_confirmation():
    session = started_session()
    for pos in (1, 2, 3):
        answer(session, pos)
    with pytest.raises(UnansweredQuestionsRemain) as exc:
        session.finish()
    assert exc.value.count == 7
    assert isinstance(exc.value, ConfirmationRequired)
    assert session.state is SessionState.IN_PROGRESS

    session.finish(confirm_unanswered=True)
    assert session.finished
    with pytest.raises(SessionStateError):
        session.select(0)
    assert session.answered_positions() == [1, 2, 3]


def test_finish_complete_test_needs_no_confirmation():
    session = started_session(2)
    answer(session, 1)
    answer(session, 2)
    session.finish()
    assert session.finished
    # review navigation stays available
    assert session.jump_to(1).answered
