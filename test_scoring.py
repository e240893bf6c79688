"""Scoring & banding: weighted score, fixed-denominator percentage, CLB boundaries."""
import pytest

from conftest import FakeClock, make_catalog
from engine import LISTENING_CLB_RANGES, READING_CLB_RANGES
from src.engine import TestSession
from src.errors import BandingTableInvalid, SessionStateError
from src.models import SessionQuestion
from src.repository import QuestionRepository
from src.scoring import BandingTable, Scorer, review_rows


@pytest.fixture
def listening_table():
    return BandingTable.from_rows(LISTENING_CLB_RANGES)


@pytest.mark.parametrize(
    "score,level,band,not_reached",
    [
        (0, 4, "A1", True),
        (330, 4, "A1", True),
        (331, 4, "A1", False),
        (368, 4, "A1", False),
        (369, 5, "A2", False),
        (457, 6, "B1", False),
        (548, 9, "C1", False),
        (549, 10, "C2", False),
        (699, 10, "C2", False),
        (750, 10, "C2", False),
    ],
)
def test_listening_banding_boundaries(listening_table, score, level, band, not_reached):
    result = listening_table.lookup(score)
    assert (result.level, result.band, result.not_reached) == (level, band, not_reached)


def test_reading_table_is_valid():
    table = BandingTable.from_rows(READING_CLB_RANGES)
    assert table.lookup(341).not_reached
    assert table.lookup(342).level == 4
    assert table.lookup(699).level == 10


@pytest.mark.parametrize(
    "rows",
    [
        [],
        [{"clb": 4, "min": 10, "max": 5, "band": "A1"}],
        [{"clb": 4, "min": 0, "max": 10, "band": "A1"}, {"clb": 5, "min": 10, "max": 20, "band": "A2"}],
        [{"clb": 4, "min": 0, "max": 10, "band": "A1"}, {"clb": 5, "min": 12, "max": 20, "band": "A2"}],
        [{"clb": 5, "min": 0, "max": 10, "band": "A1"}, {"clb": 4, "min": 11, "max": 20, "band": "A2"}],
        [{"clb": 4, "min": "low", "max": 10, "band": "A1"}],
        [{"clb": 4, "max": 10, "band": "A1"}],
    ],
)
def test_invalid_tables_fail_at_construction(rows):
    with pytest.raises(BandingTableInvalid):
        BandingTable.from_rows(rows)


def test_rows_flag_active_level(listening_table):
    rows = listening_table.rows(active_level=7)
    assert [r["clb"] for r in rows if r["active"]] == [7]
    assert rows[0] == {"clb": 4, "min": 331, "max": 368, "band": "A1", "active": False}


def make_session_questions(weights):
    records = make_catalog({w: weights.count(w) for w in set(weights)})
    questions = QuestionRepository.from_records(records).questions
    return [SessionQuestion(question=q, position=i + 1) for i, q in enumerate(questions)]


def test_weighted_score_ignores_unanswered():
    pool = make_session_questions([3, 3, 9, 9, 15, 21])
    pool[0].selected_index = pool[0].question.correct_index
    pool[2].selected_index = (pool[2].question.correct_index + 1) % 4
    pool[4].selected_index = pool[4].question.correct_index
    pool[5].selected_index = pool[5].question.correct_index
    report = Scorer(exam_length=39).score_questions(pool)
    assert report.total_correct == 3
    assert report.weighted_score == 3 + 15 + 21
    assert report.percentage == pytest.approx(3 / 39 * 100)
    assert report.exam_length == 39
    assert report.not_reached
    assert report.clb_level == 4


def test_percentage_uses_configured_exam_length():
    pool = make_session_questions([3, 9])
    for sq in pool:
        sq.selected_index = sq.question.correct_index
    assert Scorer(exam_length=10).score_questions(pool).percentage == pytest.approx(20.0)
    with pytest.raises(ValueError):
        Scorer(exam_length=0)


def test_score_requires_finished_session():
    clock = FakeClock()
    session = TestSession(make_session_questions([3, 9]), prepare_seconds=0, clock=clock)
    session.begin()
    scorer = Scorer()
    with pytest.raises(SessionStateError):
        scorer.score(session)
    session.finish(confirm_unanswered=True)
    report = scorer.score(session)
    assert report.total_correct == 0
    assert report.weighted_score == 0


def test_review_rows():
    pool = make_session_questions([3, 9])
    pool[1].selected_index = pool[1].question.correct_index
    rows = review_rows(pool)
    assert rows[0]["userAnswer"] is None
    assert rows[0]["isCorrect"] is False
    assert rows[1]["isCorrect"] is True
    assert rows[1]["weight"] == 9
    assert rows[1]["questionNumber"] == 2
