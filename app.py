"""StudyQuest — timed test runner, attempt review and teacher report."""
import logging
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_exercise_titles, get_session_exercises, get_test_session, get_test_sessions
from engine import LOW_TIME_SECONDS
from src.countdown import format_clock
from src.database import get_attempt_gateway
from src.exercise_widgets import render_exercise
from src.reports import attempt_breakdown, limit_reached_summary, session_report
from src.runner import ACTIVE, LIMIT_REACHED, NOT_FOUND, RESULTS, SUBMIT_FAILED, SUBMITTING, TestRunner

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

PAGES = ["Tests", "Take Test", "Results", "Teacher Report"]

st.set_page_config(page_title="StudyQuest Tests", layout="wide")
st.sidebar.title("StudyQuest")
# Host page opens a specific page via query params (page, sessionId, userId, attemptId)
default_page = st.query_params.get("page", "Tests")
if default_page not in PAGES:
    default_page = "Tests"
page = st.sidebar.radio("Navigate", PAGES, index=PAGES.index(default_page), label_visibility="collapsed")

session_id = st.query_params.get("sessionId")
user_id = st.query_params.get("userId")


def go_back():
    for key in [k for k in st.session_state if str(k).startswith("runner-")]:
        runner = st.session_state.pop(key)
        runner.unload()
    course_id = st.query_params.get("courseId")
    st.query_params.clear()
    st.query_params["page"] = "Tests"
    if course_id:
        st.query_params["courseId"] = course_id
    if user_id:
        st.query_params["userId"] = user_id
    st.rerun()


def get_runner() -> TestRunner:
    key = f"runner-{session_id}-{user_id}"
    if key not in st.session_state:
        runner = TestRunner(
            session_id,
            user_id,
            gateway=get_attempt_gateway(),
            fetch_session=get_test_session,
            fetch_exercises=get_session_exercises,
        )
        with st.spinner("Loading test..."):
            runner.load()
        runner.start_timers()
        st.session_state[key] = runner
    return st.session_state[key]


@st.fragment(run_every=1)
def countdown_badge(runner: TestRunner):
    if runner.state in (RESULTS, SUBMIT_FAILED):
        st.rerun()
    if runner.state != ACTIVE:
        st.caption("Submitting...")
        return
    remaining = runner.tick()
    label = f"⏱ {format_clock(remaining)}"
    if remaining is not None and remaining <= LOW_TIME_SECONDS:
        st.error(label)
    else:
        st.info(label)


# ----- Tests -----
if page == "Tests":
    st.header("Tests")
    try:
        sessions = get_test_sessions()
        if not sessions:
            st.info("No tests available yet.")
        for test in sessions:
            col1, col2 = st.columns([3, 1])
            with col1:
                limit = f"{test.max_attempts} attempt(s)" if test.max_attempts else "unlimited attempts"
                st.write(f"**{test.title}** · {test.time_limit_minutes} min · pass {test.passing_score}% · {limit}")
            with col2:
                if st.button("Start", key=f"start-{test.id}", disabled=not user_id):
                    st.query_params["page"] = "Take Test"
                    st.query_params["sessionId"] = test.id
                    st.rerun()
        if not user_id:
            st.caption("Open this page with a userId query parameter to take a test.")
    except Exception as e:
        st.error(f"Could not load tests. Check DB and .env (SUPABASE_URL, SUPABASE_KEY). {e}")

# ----- Take Test -----
elif page == "Take Test":
    if not session_id or not user_id:
        st.error("Test not found")
        if st.button("Go back"):
            go_back()
        st.stop()

    runner = get_runner()

    if runner.state == NOT_FOUND:
        st.error("Test not found")
        if st.button("Go back"):
            go_back()
        st.stop()

    if runner.state == LIMIT_REACHED:
        summary = limit_reached_summary(runner.previous_attempts)
        st.header("No Attempts Remaining")
        if summary["best_score"] is not None:
            st.metric("Best score", f"{summary['best_score']}%")
        if summary["passed"]:
            st.success("Passed")
        else:
            st.warning("Not Passed")
        st.caption("You have completed this test. Results are available from your teacher.")
        if st.button("Go Back", type="primary"):
            go_back()
        st.stop()

    if runner.state == RESULTS:
        results = runner.results
        st.metric("Score", f"{results.score}%", help=f"{results.total_correct}/{results.total_questions} correct")
        if results.passed:
            st.success("Passed!")
        else:
            st.error("Not Passed")
        if results.timed_out:
            st.warning("Time expired — auto-submitted")
        st.caption("Your test has been submitted. Results are available from your teacher.")
        if st.button("Go Back", type="primary"):
            go_back()
        st.stop()

    if runner.state == SUBMIT_FAILED:
        st.error(runner.error)
        if st.button("Retry", type="primary"):
            runner.retry_submit()
            st.rerun()
        st.stop()

    # Active test
    col1, col2 = st.columns([3, 1])
    with col1:
        st.header(runner.session.title)
        n = len(runner.exercises)
        st.caption(f"{n} exercise{'s' if n != 1 else ''}")
    with col2:
        countdown_badge(runner)

    tabs = st.tabs([f"{i + 1}. {ex.label}" for i, ex in enumerate(runner.exercises)] or ["Test"])
    for tab, exercise in zip(tabs, runner.exercises):
        with tab:
            render_exercise(
                exercise,
                runner.initial_answers(exercise.id),
                runner.on_answers_collected(exercise.id),
                scope=runner.attempt.id,
            )

    st.divider()
    if "confirm_submit" not in st.session_state:
        st.session_state["confirm_submit"] = False
    col1, col2 = st.columns([1, 3])
    with col1:
        if st.button("Submit Test", type="primary", disabled=runner.state == SUBMITTING):
            st.session_state["confirm_submit"] = True
    with col2:
        if st.button("Leave test"):
            go_back()
    if st.session_state["confirm_submit"]:
        st.warning("Are you sure you want to submit? Make sure you've answered all questions.")
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Cancel"):
                st.session_state["confirm_submit"] = False
                st.rerun()
        with c2:
            if st.button("Submit", type="primary"):
                st.session_state["confirm_submit"] = False
                with st.spinner("Submitting..."):
                    runner.submit(timed_out=False)
                st.rerun()

# ----- Results -----
elif page == "Results":
    st.header("Test Results")
    attempt_id = st.query_params.get("attemptId")
    if not attempt_id and session_id and user_id:
        try:
            mine = get_attempt_gateway().fetch_my_attempts(session_id, user_id)
        except Exception as e:
            st.error(f"Could not load your attempts: {e}")
            st.stop()
        finished = [a for a in mine if a.is_terminal and a.score is not None]
        if not finished:
            st.info("No finished attempts yet.")
        for a in finished:
            started = a.started_at.strftime("%Y-%m-%d %H:%M") if a.started_at else ""
            if st.button(f"{started} · {a.score}% · {'Passed' if a.passed else 'Not Passed'}", key=f"open-{a.id}"):
                st.query_params["attemptId"] = a.id
                st.rerun()
        st.stop()
    if not attempt_id:
        st.info("Open this page with an attemptId query parameter.")
        st.stop()
    try:
        gateway = get_attempt_gateway()
        attempt = gateway.get_attempt(attempt_id)
        if attempt is None:
            st.error("Results not found")
            st.stop()
        test = get_test_session(attempt.session_id)
        rows = gateway.get_question_attempts(attempt_id)
        titles = get_exercise_titles(sorted({str(r["exercise_id"]) for r in rows}))
    except Exception as e:
        st.error(f"Could not load results: {e}")
        st.stop()

    review = attempt_breakdown(attempt, rows, titles)
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Score", f"{review['score']}%")
    with col2:
        st.metric("Correct", f"{review['total_correct']}/{review['total_questions']}")
    with col3:
        st.metric("Time", review["time_used"])
    st.write(f"{'Passed' if review['passed'] else 'Not Passed'} · Pass: {test.passing_score}% · {review['status']}")

    for item in review["exercises"]:
        with st.expander(f"{item['title']} — {item['correct']}/{item['total']}"):
            for i, qa in enumerate(item["rows"]):
                mark = "✓" if qa.get("is_correct") else "✗"
                line = f"{mark} Question {i + 1}: {qa.get('selected_answer')}"
                if not qa.get("is_correct") and qa.get("correct_answer") not in (None, ""):
                    line += f" · Correct: {qa.get('correct_answer')}"
                st.write(line)

# ----- Teacher Report -----
elif page == "Teacher Report":
    st.header("Test Report")
    if not session_id:
        st.info("Open this page with a sessionId query parameter.")
        st.stop()
    try:
        test = get_test_session(session_id)
        report = session_report(get_attempt_gateway().fetch_session_attempts(session_id))
    except Exception as e:
        st.error(f"Could not load test report: {e}")
        st.stop()

    st.subheader(test.title)
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Passed", f"{report['passed_count']}/{report['total_students']}")
    with col2:
        st.metric("Average best score", f"{report['average_score']}%")
    with col3:
        st.metric("Passing score", f"{test.passing_score}%")

    for entry in report["students"]:
        student = entry["student"]
        best = entry["best"]
        name = student.get("full_name") or student.get("email") or entry["student_id"]
        n_attempts = len(entry["attempts"])
        best_label = f"{best.score or 0}%" if best else "—"
        with st.expander(f"{name} · best {best_label} · {n_attempts} attempt{'s' if n_attempts != 1 else ''}"):
            for item in entry["attempts"]:
                attempt = item["attempt"]
                st.write(
                    f"{attempt.score or 0}% · {item['status']} · {item['time_used']} · "
                    f"{item['correct']}/{item['total']} correct"
                )
