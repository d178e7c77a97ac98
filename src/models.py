"""
Data model for timed tests: sessions, exercises, attempts and their audit rows.
Rows coming from Supabase are plain dicts; the from_row helpers normalise them.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from engine import (
    COMPLETED,
    DEFAULT_PASSING_SCORE,
    DEFAULT_TIME_LIMIT_MINUTES,
    EXERCISE_TYPE_LABELS,
    IN_PROGRESS,
    TERMINAL_STATUSES,
    TIMED_OUT,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp from Supabase (or pass a datetime through). Naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    """Whole seconds between started_at and now (floor), never negative."""
    return max(0, math.floor((now - started_at).total_seconds()))


@dataclass
class TestSession:
    """A timed test as configured by the teacher. Read-only for the engine."""

    __test__ = False

    id: str
    title: str = ""
    time_limit_minutes: int = DEFAULT_TIME_LIMIT_MINUTES
    passing_score: int = DEFAULT_PASSING_SCORE
    max_attempts: Optional[int] = None  # None = unlimited

    @property
    def time_limit_seconds(self) -> int:
        return self.time_limit_minutes * 60

    @classmethod
    def from_row(cls, row: Dict) -> "TestSession":
        passing_score = row.get("passing_score")
        max_attempts = row.get("max_attempts")
        if not max_attempts or max_attempts <= 0:
            max_attempts = None
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            time_limit_minutes=row.get("time_limit_minutes") or DEFAULT_TIME_LIMIT_MINUTES,
            passing_score=DEFAULT_PASSING_SCORE if passing_score is None else int(passing_score),
            max_attempts=max_attempts,
        )


@dataclass
class Exercise:
    """One exercise of a test. exercise_type is one of the closed set in engine.py."""

    id: str
    exercise_type: str
    content: Dict[str, Any] = field(default_factory=dict)
    title: str = ""

    @property
    def label(self) -> str:
        return self.title or EXERCISE_TYPE_LABELS.get(self.exercise_type, self.exercise_type)

    @classmethod
    def from_row(cls, row: Dict) -> "Exercise":
        exercise_type = row.get("exercise_type")
        if exercise_type not in EXERCISE_TYPE_LABELS:
            raise ValueError(f"Unsupported exercise type: {exercise_type}")
        return cls(
            id=str(row["id"]),
            exercise_type=exercise_type,
            content=row.get("content") or {},
            title=row.get("title") or "",
        )


@dataclass
class TestAttempt:
    """One student's run through a test session."""

    __test__ = False

    id: str
    session_id: str
    user_id: str
    status: str = IN_PROGRESS
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    passed: Optional[bool] = None
    time_used_seconds: Optional[int] = None
    draft_answers: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_row(cls, row: Dict) -> "TestAttempt":
        return cls(
            id=str(row["id"]),
            session_id=str(row["session_id"]),
            user_id=str(row["user_id"]),
            status=row.get("status") or IN_PROGRESS,
            started_at=parse_timestamp(row.get("started_at")),
            completed_at=parse_timestamp(row.get("completed_at")),
            score=row.get("score"),
            passed=row.get("passed"),
            time_used_seconds=row.get("time_used_seconds"),
            draft_answers=row.get("draft_answers") or {},
        )


@dataclass
class QuestionAttempt:
    """Audit row for one gradable sub-item, written once at submit time."""

    exercise_id: str
    question_index: int
    exercise_type: str
    selected_answer: Any
    correct_answer: Any
    is_correct: bool

    def to_row(self, attempt_id: str) -> Dict:
        return {
            "test_attempt_id": attempt_id,
            "exercise_id": self.exercise_id,
            "question_index": self.question_index,
            "exercise_type": self.exercise_type,
            "selected_answer": self.selected_answer,
            "correct_answer": self.correct_answer,
            "is_correct": self.is_correct,
        }


@dataclass
class GradeResult:
    score: int
    passed: bool
    total_correct: int
    total_questions: int
    question_attempts: List[QuestionAttempt] = field(default_factory=list)


@dataclass
class AttemptOutcome:
    """Everything submit writes: the final attempt columns plus the audit trail."""

    score: int
    passed: bool
    time_used_seconds: int
    status: str
    completed_at: datetime
    question_attempts: List[QuestionAttempt] = field(default_factory=list)

    @classmethod
    def from_grade(cls, grade: GradeResult, attempt: TestAttempt, timed_out: bool, now: datetime) -> "AttemptOutcome":
        time_used = elapsed_seconds(attempt.started_at, now) if attempt.started_at else 0
        return cls(
            score=grade.score,
            passed=grade.passed,
            time_used_seconds=time_used,
            status=TIMED_OUT if timed_out else COMPLETED,
            completed_at=now,
            question_attempts=list(grade.question_attempts),
        )


@dataclass
class AttemptStart:
    """Result of AttemptManager.start: an attempt to run, or the limit-reached report."""

    attempt: Optional[TestAttempt] = None
    limit_reached: bool = False
    resumed: bool = False
    previous_attempts: List[TestAttempt] = field(default_factory=list)
