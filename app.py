"""TCF Prep: listening/reading practice and real-test simulator."""
import sys
import time
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_supabase
from engine import SCORING_SECONDS
from src.db_manager import get_storage
from src.engine import ExamEngine, SessionState, build_engine
from src.errors import ConfirmationRequired, DataUnavailable, EmptyBucket, SessionStateError, UnansweredQuestionsRemain
from src.practice import ALL_WEIGHTS, PracticeMode

st.set_page_config(page_title="TCF Prep", layout="wide")
st.sidebar.title("TCF Prep")

subject = st.sidebar.radio("Subject", ["listening", "reading"], format_func=str.capitalize)
pages = ["Practice", "Real Test", "History"]
default_page = st.query_params.get("page", "Practice")
if default_page not in pages:
    default_page = "Practice"
page = st.sidebar.radio("Navigate", pages, index=pages.index(default_page), label_visibility="collapsed")


def get_user_storage():
    """One storage per browser session, shared by both subjects."""
    if "storage" not in st.session_state:
        st.session_state["storage"] = get_storage(client_factory=get_supabase)
    return st.session_state["storage"]


def get_engine(name: str) -> ExamEngine:
    """One engine per subject, kept for the browser session."""
    key = f"engine_{name}"
    if key not in st.session_state:
        st.session_state[key] = build_engine(name, storage=get_user_storage())
    return st.session_state[key]


engine = get_engine(subject)
for message in engine.drain_warnings():
    st.sidebar.warning(message)

MODE_LABELS = {
    PracticeMode.NORMAL: "All",
    PracticeMode.DESERVES_ATTENTION: "Deserves attention",
    PracticeMode.NEVER_ANSWERED: "Never answered",
}


def render_media(question, in_test: bool = False):
    media = engine.media_for(question)
    if media:
        if subject == "listening":
            st.audio(media)
        elif media.lower().endswith((".png", ".jpg", ".jpeg", ".gif", ".webp")):
            st.image(media)
        else:
            st.markdown(f"[Open document]({media})")
    picture = engine.picture_for(question)
    if picture:
        st.image(picture)
    text = engine.text_for(question, in_test=in_test)
    if text:
        with st.expander("Transcript" if subject == "listening" else "Text", expanded=subject == "reading"):
            st.write(text)


def render_answered(question, selected):
    correct_idx = question.correct_index
    for i, alt in enumerate(question.alternatives):
        label = f"{alt.letter}. {alt.text}"
        if i == correct_idx:
            st.success(f"✓ {label} (Correct Answer)")
        elif i == selected:
            st.error(f"✗ {label} (Your Answer - Incorrect)")
        else:
            st.write(f"○ {label}")


# ----- Practice -----
if page == "Practice":
    st.header(f"Practice · {subject.capitalize()}")
    if engine.repository.is_empty:
        st.error("No questions loaded. Check the catalog path (TCF_*_CATALOG) or the Supabase source.")
        st.stop()

    if st.session_state.get("confirm_leave") is not None:
        st.warning("Leave the test results?")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Leave results", type="primary"):
                weight, mode = st.session_state.pop("confirm_leave")
                engine.change_filter(weight, mode, confirm_leave_results=True)
                st.rerun()
        with col2:
            if st.button("Stay"):
                st.session_state.pop("confirm_leave")
                st.rerun()
        st.stop()

    counts = engine.repository.weight_counts()
    weight_options = [ALL_WEIGHTS] + list(counts)
    current_weight = engine.practice.weight_selector
    weight = st.radio(
        "Weight",
        weight_options,
        index=weight_options.index(current_weight) if current_weight in weight_options else 0,
        format_func=lambda w: f"All ({len(engine.repository)})" if w == ALL_WEIGHTS else f"{w} pts ({counts[w]})",
        horizontal=True,
    )
    modes = list(MODE_LABELS)
    mode = st.radio(
        "Mode",
        modes,
        index=modes.index(engine.practice.mode),
        format_func=lambda m: f"{MODE_LABELS[m]} ({engine.count_deserving()})" if m is PracticeMode.DESERVES_ATTENTION else MODE_LABELS[m],
        horizontal=True,
    )
    if weight != current_weight or mode is not engine.practice.mode:
        try:
            engine.change_filter(weight, mode)
        except ConfirmationRequired:
            st.session_state["confirm_leave"] = (weight, mode)
        st.rerun()

    q = engine.practice_current()
    if q is None:
        st.info("No questions match this filter.")
        st.stop()

    items = engine.practice.items
    idx = engine.practice.index
    st.progress((idx + 1) / len(items))
    st.caption(f"Question {idx + 1} of {len(items)} | Score {engine.practice.score}/{len(engine.practice.answers)}")
    st.subheader(f"Question {q.number or idx + 1} · {q.weight} pts")
    render_media(q)

    selected = engine.practice.answer_for(q)
    if selected is None:
        choice = st.radio(
            "Choose your answer:",
            range(len(q.alternatives)),
            format_func=lambda i: f"{q.alternatives[i].letter}. {q.alternatives[i].text}",
            key=f"practice_{q.id}",
        )
        if st.button("Submit Answer", type="primary"):
            engine.practice_select(choice)
            engine.practice_submit()
            st.rerun()
    else:
        render_answered(q, selected)
        stats = engine.question_stats(q.id)
        st.caption(f"Lifetime: {stats.correct} correct · {stats.wrong} wrong · {stats.total} total")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("← Previous", disabled=idx == 0):
            engine.practice_previous()
            st.rerun()
    with col2:
        if st.button("Next →", disabled=idx >= len(items) - 1):
            engine.practice_next()
            st.rerun()

# ----- Real Test -----
elif page == "Real Test":
    st.header(f"Real Test · {subject.capitalize()}")
    st.caption(f"{sum(engine.weight_counts.values())} questions, weighted by difficulty · CLB scored")
    state = engine.state

    if state is SessionState.IDLE:
        if engine.format_error:
            st.error(f"Real test unavailable: {engine.format_error}")
            st.stop()
        if st.button("Start real test", type="primary"):
            try:
                engine.start_test()
            except (DataUnavailable, EmptyBucket) as e:
                st.error(f"Could not prepare the test: {e}")
                st.stop()
            st.rerun()
        st.stop()

    if state is SessionState.PREPARING:
        session = engine.session
        with st.spinner("Preparing your test..."):
            time.sleep(session.seconds_until_ready())
        st.success("Your test is ready.")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Begin", type="primary"):
                engine.confirm_start()
                st.rerun()
        with col2:
            if st.button("Cancel"):
                engine.abandon_test()
                st.rerun()
        st.stop()

    if state is SessionState.FINISHED:
        report = engine.latest_report
        st.success("Test finished.")
        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Correct", f"{report.total_correct} / {report.exam_length}")
        with col2:
            st.metric("Weighted score", report.weighted_score)
        with col3:
            level = f"CLB {report.clb_level} ({report.cefr_band})"
            st.metric("Level", f"Below {level}" if report.not_reached else level)
        st.subheader("CLB table")
        st.dataframe(engine.clb_rows(), use_container_width=True)
        st.subheader("Review")
        st.dataframe(engine.review(), use_container_width=True)
        if st.session_state.get("confirm_discard"):
            st.warning("Start a new test and discard these results?")
            if st.button("Yes, start a new test", type="primary"):
                st.session_state.pop("confirm_discard")
                engine.start_test(confirm_discard=True)
                st.rerun()
        elif st.button("Start a new test"):
            try:
                engine.start_test()
            except ConfirmationRequired:
                st.session_state["confirm_discard"] = True
            st.rerun()
        st.stop()

    # In progress
    session = engine.session
    answered = set(engine.answered_positions())
    st.sidebar.progress(len(answered) / session.total)
    st.sidebar.caption(f"{len(answered)}/{session.total} answered")
    dots = st.columns(min(session.total, 13))
    for sq in session.questions:
        with dots[(sq.position - 1) % len(dots)]:
            label = f"{'●' if sq.position in answered else '○'} {sq.position}"
            if st.button(label, key=f"dot_{sq.position}", disabled=sq.position == session.position):
                engine.jump_to(sq.position)
                st.rerun()

    sq = engine.current_question()
    q = sq.question
    st.subheader(f"Question {sq.position} of {session.total} · {q.weight} pts")
    render_media(q, in_test=True)
    if sq.answered:
        st.info(f"Answered: {q.alternatives[sq.selected_index].letter}")
    else:
        choice = st.radio(
            "Choose your answer:",
            range(len(q.alternatives)),
            format_func=lambda i: f"{q.alternatives[i].letter}. {q.alternatives[i].text}",
            key=f"test_{sq.position}",
        )
        if st.button("Submit Answer", type="primary"):
            try:
                engine.select(choice)
                engine.submit()
            except SessionStateError as e:
                st.warning(str(e))
            st.rerun()

    st.divider()
    col1, col2 = st.columns(2)
    with col1:
        pending = st.session_state.get("confirm_finish")
        if pending:
            st.warning(f"You still have {pending} unanswered question(s). Finish anyway?")
            if st.button("Finish anyway", type="primary"):
                st.session_state.pop("confirm_finish")
                with st.spinner("Scoring..."):
                    time.sleep(SCORING_SECONDS)
                    engine.finish_test(confirm_unanswered=True)
                st.rerun()
        elif st.button("Finish test"):
            try:
                with st.spinner("Scoring..."):
                    time.sleep(SCORING_SECONDS)
                    engine.finish_test()
            except UnansweredQuestionsRemain as e:
                st.session_state["confirm_finish"] = e.count
            st.rerun()
    with col2:
        if st.button("Abandon test"):
            st.session_state.pop("confirm_finish", None)
            engine.abandon_test()
            st.rerun()

# ----- History -----
elif page == "History":
    st.header(f"History · {subject.capitalize()}")
    entries = engine.history()
    if not entries:
        st.info("No finished real tests yet.")
        st.stop()
    rows = []
    for entry in reversed(entries):
        r = entry.report
        rows.append({
            "#": entry.number,
            "Date": entry.date[:16].replace("T", " "),
            "Correct": f"{r.total_correct}/{r.exam_length}",
            "%": round(r.percentage, 1),
            "Weighted": r.weighted_score,
            "CLB": f"{'<' if r.not_reached else ''}{r.clb_level} ({r.cefr_band})",
        })
    st.dataframe(rows, use_container_width=True)
    st.metric("Tests taken", engine.ledger.count)
