"""Shared pytest fixtures: an in-memory attempt store, exercise builders and a fake clock."""
from __future__ import annotations

import copy
import itertools
from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from engine import (
    ABANDONED,
    DRAG_DROP,
    DROPDOWN,
    FILL_BLANK,
    GRADED_STATUSES,
    IMAGE_HOTSPOT,
    IN_PROGRESS,
    MULTIPLE_CHOICE,
)
from src.errors import DuplicateAttemptError, GatewayError
from src.models import Exercise, TestAttempt, TestSession

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class InMemoryGateway:
    """
    PersistenceGateway kept in dicts.

    fail[method] = n makes the next n calls of that method raise GatewayError
    (update_draft_answers reports False instead, as the real gateway does).
    """

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock or FakeClock()
        self.attempts: dict[str, TestAttempt] = {}
        self.question_rows: dict[tuple, dict] = {}
        self.calls: Counter = Counter()
        self.fail: dict[str, int] = {}
        self._ids = itertools.count(1)

    def _enter(self, name: str) -> None:
        self.calls[name] += 1
        if self.fail.get(name):
            self.fail[name] -= 1
            raise GatewayError(f"{name} failed")

    def _for(self, session_id, user_id):
        return [a for a in self.attempts.values() if a.session_id == session_id and a.user_id == user_id]

    # helpers for arranging state in tests
    def add_attempt(self, session_id="s1", user_id="u1", status=IN_PROGRESS, started_at=None, **fields) -> TestAttempt:
        attempt = TestAttempt(
            id=f"a{next(self._ids)}",
            session_id=session_id,
            user_id=user_id,
            status=status,
            started_at=started_at or self.clock(),
            **fields,
        )
        self.attempts[attempt.id] = attempt
        return copy.deepcopy(attempt)

    def rows_for(self, attempt_id: str) -> list[dict]:
        return [r for key, r in self.question_rows.items() if key[0] == attempt_id]

    # PersistenceGateway
    def find_in_progress_attempt(self, session_id, user_id):
        self._enter("find_in_progress_attempt")
        rows = [a for a in self._for(session_id, user_id) if a.status == IN_PROGRESS]
        rows.sort(key=lambda a: a.started_at, reverse=True)
        return copy.deepcopy(rows[0]) if rows else None

    def count_terminal_attempts(self, session_id, user_id):
        self._enter("count_terminal_attempts")
        return sum(1 for a in self._for(session_id, user_id) if a.status in GRADED_STATUSES)

    def list_terminal_attempts(self, session_id, user_id):
        self._enter("list_terminal_attempts")
        rows = [a for a in self._for(session_id, user_id) if a.status in GRADED_STATUSES]
        return [copy.deepcopy(a) for a in sorted(rows, key=lambda a: a.started_at, reverse=True)]

    def create_attempt(self, session_id, user_id):
        self._enter("create_attempt")
        if any(a.status == IN_PROGRESS for a in self._for(session_id, user_id)):
            raise DuplicateAttemptError(f"in_progress attempt exists for {session_id}/{user_id}")
        return self.add_attempt(session_id, user_id)

    def get_attempt(self, attempt_id):
        self._enter("get_attempt")
        attempt = self.attempts.get(attempt_id)
        return copy.deepcopy(attempt) if attempt else None

    def update_draft_answers(self, attempt_id, answers):
        try:
            self._enter("update_draft_answers")
        except GatewayError:
            return False
        attempt = self.attempts.get(attempt_id)
        if attempt is None or attempt.status != IN_PROGRESS:
            return False
        attempt.draft_answers = copy.deepcopy(answers)
        return True

    def finalize_attempt(self, attempt_id, score, passed, time_used_seconds, status, completed_at):
        self._enter("finalize_attempt")
        attempt = self.attempts.get(attempt_id)
        if attempt is None or attempt.status != IN_PROGRESS:
            return False
        attempt.score = score
        attempt.passed = passed
        attempt.time_used_seconds = time_used_seconds
        attempt.status = status
        attempt.completed_at = datetime.fromisoformat(completed_at)
        return True

    def insert_question_attempts(self, attempt_id, rows):
        self._enter("insert_question_attempts")
        for qa in rows:
            row = qa.to_row(attempt_id)
            self.question_rows[(attempt_id, row["exercise_id"], row["question_index"])] = row

    def mark_abandoned(self, attempt_id):
        self._enter("mark_abandoned")
        attempt = self.attempts.get(attempt_id)
        if attempt is not None and attempt.status == IN_PROGRESS:
            attempt.status = ABANDONED


# ---- exercise builders --------------------------------------------------------

def multiple_choice(exercise_id="mc1", correct=(1,)):
    questions = [
        {"question": f"Q{i}", "options": ["a", "b", "c", "d"], "correct_answer": c}
        for i, c in enumerate(correct)
    ]
    return Exercise(id=exercise_id, exercise_type=MULTIPLE_CHOICE, content={"questions": questions})


def fill_blank(exercise_id="fb1", blanks=(("Paris", False), ("river", False))):
    content = {"questions": [{
        "question": "___ is on the ___",
        "blanks": [{"answer": answer, "case_sensitive": cs} for answer, cs in blanks],
    }]}
    return Exercise(id=exercise_id, exercise_type=FILL_BLANK, content=content)


def drag_drop(exercise_id="dd1"):
    content = {"questions": [{
        "question": "Put in order",
        "items": [{"id": "a", "text": "first"}, {"id": "b", "text": "second"}],
        "drop_zones": [{"id": "z1"}, {"id": "z2"}],
        "correct_order": ["a", "b"],
    }]}
    return Exercise(id=exercise_id, exercise_type=DRAG_DROP, content=content)


def dropdown(exercise_id="dr1", correct=("is", "are")):
    content = {"questions": [{
        "question": "He ___ here; they ___ there",
        "dropdowns": [{"options": ["is", "are"], "correct_answer": c} for c in correct],
    }]}
    return Exercise(id=exercise_id, exercise_type=DROPDOWN, content=content)


def image_hotspot(exercise_id="hs1"):
    content = {
        "image_url": "https://example.com/map.png",
        "hotspots": [{"id": "h1", "label": "North"}, {"id": "h2", "label": "South"}],
        "labels": [
            {"id": "L1", "text": "Alps", "hotspot_id": "h1", "type": "normal"},
            {"id": "L2", "text": "Sahara", "hotspot_id": "h1", "type": "distractor"},
            {"id": "L3", "text": "Congo", "hotspot_id": "h2", "type": "normal"},
        ],
    }
    return Exercise(id=exercise_id, exercise_type=IMAGE_HOTSPOT, content=content)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway(clock):
    return InMemoryGateway(clock)


@pytest.fixture
def timed_session():
    return TestSession(id="s1", title="Unit 3 test", time_limit_minutes=30, passing_score=70, max_attempts=2)


@pytest.fixture
def exercises():
    return [multiple_choice(), fill_blank(), drag_drop(), dropdown(), image_hotspot()]
