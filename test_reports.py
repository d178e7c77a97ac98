"""Result breakdowns: attempt review, limit summary and the teacher report."""
from conftest import T0, fill_blank, multiple_choice
from engine import ABANDONED, COMPLETED, IN_PROGRESS, TIMED_OUT
from src.models import TestAttempt
from src.reports import (
    attempt_breakdown,
    best_attempt,
    format_duration,
    limit_reached_summary,
    session_report,
    status_label,
)


def attempt(score, passed=False, status=COMPLETED, attempt_id="a1", time_used=None):
    return TestAttempt(
        id=attempt_id,
        session_id="s1",
        user_id="u1",
        status=status,
        started_at=T0,
        score=score,
        passed=passed,
        time_used_seconds=time_used,
    )


def attempt_row(attempt_id, user_id, score, passed, question_rows=(), status=COMPLETED, name=None):
    return {
        "id": attempt_id,
        "session_id": "s1",
        "user_id": user_id,
        "status": status,
        "started_at": "2026-03-02T09:00:00Z",
        "score": score,
        "passed": passed,
        "time_used_seconds": 300,
        "user": {"id": user_id, "full_name": name or user_id, "email": f"{user_id}@school.test"},
        "test_question_attempts": list(question_rows),
    }


def test_format_duration():
    assert format_duration(None) == "--:--"
    assert format_duration(0) == "--:--"
    assert format_duration(125) == "2m 5s"
    assert format_duration(3600) == "60m 0s"


def test_best_attempt_keeps_first_on_tie():
    first = attempt(80, attempt_id="a1")
    second = attempt(80, attempt_id="a2")
    assert best_attempt([attempt(40, attempt_id="a0"), first, second]) is first
    assert best_attempt([]) is None


def test_limit_reached_summary():
    summary = limit_reached_summary([attempt(55), attempt(72, passed=True, attempt_id="a2")])
    assert summary == {"attempts_used": 2, "best_score": 72, "passed": True}
    assert limit_reached_summary([])["passed"] is False


def test_attempt_breakdown_groups_rows_by_exercise():
    rows = [
        {"exercise_id": "fb1", "question_index": 0, "exercise_type": "fill_blank", "is_correct": True},
        {"exercise_id": "fb1", "question_index": 1, "exercise_type": "fill_blank", "is_correct": False},
        {"exercise_id": "mc1", "question_index": 0, "exercise_type": "multiple_choice", "is_correct": True},
    ]
    fb = fill_blank()
    fb.title = "Capitals"
    review = attempt_breakdown(
        attempt(67, passed=False, status=TIMED_OUT, time_used=1800),
        rows,
        {"fb1": fb},
    )

    assert review["status"] == "Timed out"
    assert review["time_used"] == "30m 0s"
    assert (review["total_correct"], review["total_questions"]) == (2, 3)
    assert [(e["title"], e["correct"], e["total"]) for e in review["exercises"]] == [
        ("Capitals", 1, 2),
        ("Multiple Choice", 1, 1),
    ]


def test_exercise_label_falls_back_to_type():
    assert multiple_choice().label == "Multiple Choice"
    assert fill_blank().label == "Fill Blank"


def test_session_report_best_per_student():
    rows = [
        attempt_row("a1", "u1", 60, False, [{"is_correct": True}, {"is_correct": False}], name="Ana"),
        attempt_row("a2", "u1", 90, True, [{"is_correct": True}, {"is_correct": True}], name="Ana"),
        attempt_row("a3", "u2", 75, True, status=TIMED_OUT, name="Ben"),
        attempt_row("a4", "u3", 20, False, name="Cy"),
    ]
    report = session_report(rows)

    assert [s["student"]["full_name"] for s in report["students"]] == ["Ana", "Ben", "Cy"]
    ana = report["students"][0]
    assert ana["best"].id == "a2"
    assert len(ana["attempts"]) == 2
    assert ana["attempts"][0]["correct"] == 1
    assert report["students"][1]["attempts"][0]["status"] == "Timed out"
    assert report["total_students"] == 3
    assert report["passed_count"] == 2
    # (90 + 75 + 20) / 3 = 61.67
    assert report["average_score"] == 62


def test_session_report_empty():
    assert session_report([]) == {"students": [], "total_students": 0, "passed_count": 0, "average_score": 0}


def test_session_report_ignores_unfinished_attempts():
    rows = [
        attempt_row("a1", "u1", 80, True, name="Ana"),
        attempt_row("a2", "u2", None, None, status=IN_PROGRESS, name="Ben"),
        attempt_row("a3", "u1", None, None, status=ABANDONED, name="Ana"),
    ]
    report = session_report(rows)

    assert report["total_students"] == 1
    assert report["average_score"] == 80
    assert [a["status"] for a in report["students"][0]["attempts"]] == ["Completed"]


def test_status_label_names_every_status():
    labels = [status_label(attempt(None, status=s)) for s in (IN_PROGRESS, COMPLETED, TIMED_OUT, ABANDONED)]
    assert labels == ["In progress", "Completed", "Timed out", "Abandoned"]
