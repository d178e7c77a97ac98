"""
Result breakdowns for finished attempts: one student's review, the limit-reached
summary and the teacher's per-session report.
"""
from typing import Dict, Iterable, List, Optional

from engine import ABANDONED, COMPLETED, EXERCISE_TYPE_LABELS, GRADED_STATUSES, IN_PROGRESS, TIMED_OUT
from src.models import Exercise, TestAttempt

STATUS_LABELS = {
    IN_PROGRESS: "In progress",
    COMPLETED: "Completed",
    TIMED_OUT: "Timed out",
    ABANDONED: "Abandoned",
}


def format_duration(seconds: Optional[int]) -> str:
    if not seconds:
        return "--:--"
    m, s = divmod(int(seconds), 60)
    return f"{m}m {s}s"


def status_label(attempt: TestAttempt) -> str:
    return STATUS_LABELS.get(attempt.status, attempt.status)


def best_attempt(attempts: Iterable[TestAttempt]) -> Optional[TestAttempt]:
    """Highest score wins; the earlier attempt in the list keeps a tie."""
    best = None
    for attempt in attempts:
        if best is None or (attempt.score or 0) > (best.score or 0):
            best = attempt
    return best


def limit_reached_summary(previous: List[TestAttempt]) -> Dict:
    best = best_attempt(previous)
    return {
        "attempts_used": len(previous),
        "best_score": best.score if best else None,
        "passed": bool(best and best.passed),
    }


def attempt_breakdown(
    attempt: TestAttempt,
    question_rows: List[Dict],
    exercises: Dict[str, Exercise],
) -> Dict:
    """
    Group an attempt's audit rows by exercise.

    Args:
        attempt: The finished attempt
        question_rows: test_question_attempts rows for it
        exercises: {exercise_id: Exercise} for titles

    Returns:
        Summary with per-exercise correct/total, in the order exercises appear in the rows
    """
    grouped: Dict[str, List[Dict]] = {}
    for row in question_rows:
        grouped.setdefault(str(row.get("exercise_id")), []).append(row)

    breakdown = []
    for exercise_id, rows in grouped.items():
        exercise = exercises.get(exercise_id)
        if exercise is not None:
            title = exercise.label
        else:
            title = EXERCISE_TYPE_LABELS.get(rows[0].get("exercise_type"), "Exercise")
        breakdown.append({
            "exercise_id": exercise_id,
            "title": title,
            "correct": sum(1 for r in rows if r.get("is_correct")),
            "total": len(rows),
            "rows": rows,
        })

    return {
        "score": attempt.score or 0,
        "passed": bool(attempt.passed),
        "status": status_label(attempt),
        "time_used": format_duration(attempt.time_used_seconds),
        "total_correct": sum(1 for r in question_rows if r.get("is_correct")),
        "total_questions": len(question_rows),
        "exercises": breakdown,
    }


def session_report(attempt_rows: List[Dict]) -> Dict:
    """
    Teacher view of one test: best attempt per student, strongest first.
    Only completed and timed_out attempts are counted; other rows are ignored.

    Args:
        attempt_rows: rows from fetch_session_attempts (user and question attempts embedded)
    """
    by_student: Dict[str, Dict] = {}
    for row in attempt_rows:
        if row.get("status") not in GRADED_STATUSES:
            continue
        student_id = str(row.get("user_id"))
        entry = by_student.setdefault(student_id, {"student": row.get("user") or {}, "attempts": []})
        attempt = TestAttempt.from_row(row)
        entry["attempts"].append({
            "attempt": attempt,
            "status": status_label(attempt),
            "time_used": format_duration(attempt.time_used_seconds),
            "correct": sum(1 for qa in row.get("test_question_attempts") or [] if qa.get("is_correct")),
            "total": len(row.get("test_question_attempts") or []),
        })

    students = []
    for student_id, entry in by_student.items():
        best = best_attempt(a["attempt"] for a in entry["attempts"])
        students.append({
            "student_id": student_id,
            "student": entry["student"],
            "attempts": entry["attempts"],
            "best": best,
        })
    students.sort(key=lambda s: (s["best"].score or 0) if s["best"] else 0, reverse=True)

    total = len(students)
    passed = sum(1 for s in students if s["best"] and s["best"].passed)
    average = int(sum((s["best"].score or 0) for s in students) / total + 0.5) if total else 0
    return {
        "students": students,
        "total_students": total,
        "passed_count": passed,
        "average_score": average,
    }
