"""
Page controller for taking one timed test.

Observable states: loading -> not_found | limit_reached | active -> submitting -> results.
A failed submission moves to submit_failed, from which the student can retry.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from engine import AUTOSAVE_INTERVAL_SECONDS, TICK_SECONDS, TIMED_OUT
from src.answers import AnswerCollector
from src.attempts import AttemptManager
from src.countdown import CountdownController, RepeatingTimer
from src.errors import GatewayError, SubmissionError
from src.gateway import PersistenceGateway
from src.grading import count_gradable_items, grade_test
from src.models import AttemptOutcome, Exercise, TestAttempt, TestSession, utcnow

logger = logging.getLogger(__name__)

LOADING = "loading"
NOT_FOUND = "not_found"
LIMIT_REACHED = "limit_reached"
ACTIVE = "active"
SUBMITTING = "submitting"
SUBMIT_FAILED = "submit_failed"
RESULTS = "results"


@dataclass
class RunResult:
    score: int
    passed: bool
    total_correct: int
    total_questions: int
    time_used_seconds: int
    timed_out: bool


class TestRunner:
    """Wires loading, the attempt lifecycle, answer collection, timers and grading for one page."""

    __test__ = False

    def __init__(
        self,
        session_id: str,
        user_id: str,
        gateway: PersistenceGateway,
        fetch_session: Callable[[str], TestSession],
        fetch_exercises: Callable[[str], List[Exercise]],
        clock: Callable[[], datetime] = utcnow,
        manager: Optional[AttemptManager] = None,
    ):
        self.session_id = session_id
        self.user_id = user_id
        self.gateway = gateway
        self.fetch_session = fetch_session
        self.fetch_exercises = fetch_exercises
        self.clock = clock
        self.manager = manager or AttemptManager(gateway)

        self.state = LOADING
        self.error: Optional[str] = None
        self.session: Optional[TestSession] = None
        self.exercises: List[Exercise] = []
        self.attempt: Optional[TestAttempt] = None
        self.previous_attempts: List[TestAttempt] = []
        self.answers = AnswerCollector()
        self.countdown: Optional[CountdownController] = None
        self.results: Optional[RunResult] = None

        self._autosave_timer: Optional[RepeatingTimer] = None
        self._callbacks: Dict[str, Callable[[Any], None]] = {}
        self._lock = threading.Lock()
        self._timed_out = False

    # ---- loading ---------------------------------------------------------------

    def load(self) -> str:
        """Fetch the test, start or resume the attempt and check for an already elapsed limit."""
        try:
            self.session = self.fetch_session(self.session_id)
            self.exercises = self.fetch_exercises(self.session_id)
            count_gradable_items(self.exercises)
            started = self.manager.start(self.session_id, self.user_id, self.session.max_attempts)
        except Exception as e:
            logger.error(f"Error loading test {self.session_id}: {e}")
            self.error = str(e)
            self.state = NOT_FOUND
            return self.state

        if started.limit_reached:
            self.previous_attempts = started.previous_attempts
            self.state = LIMIT_REACHED
            return self.state

        self.attempt = started.attempt
        if self.attempt.draft_answers:
            self.answers = AnswerCollector(self.attempt.draft_answers)

        self.countdown = CountdownController(
            started_at=self.attempt.started_at or self.clock(),
            limit_seconds=self.session.time_limit_seconds,
            on_timeout=self._on_timeout,
            clock=self.clock,
        )
        self.state = ACTIVE
        self.countdown.check_on_load()
        return self.state

    # ---- exercise collaborator contract ------------------------------------------

    def initial_answers(self, exercise_id: str) -> Any:
        return self.answers.initial_answers(exercise_id)

    def on_answers_collected(self, exercise_id: str) -> Callable[[Any], None]:
        """Stable per-exercise callback; edits are ignored once the attempt left the active state."""
        key = str(exercise_id)
        if key not in self._callbacks:
            record = self.answers.callback_for(key)

            def collect(payload: Any) -> None:
                if self.state == ACTIVE:
                    record(payload)

            self._callbacks[key] = collect
        return self._callbacks[key]

    # ---- timers ----------------------------------------------------------------

    @property
    def remaining_seconds(self) -> Optional[int]:
        return self.countdown.remaining if self.countdown else None

    def start_timers(self, tick_seconds: float = TICK_SECONDS, autosave_seconds: float = AUTOSAVE_INTERVAL_SECONDS) -> None:
        """Start the 1 s countdown and the periodic autosave (only while active)."""
        if self.state != ACTIVE:
            return
        self.countdown.start(tick_seconds)
        if self._autosave_timer is None:
            self._autosave_timer = RepeatingTimer(autosave_seconds, self.autosave, name="autosave").start()

    def tick(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.state != ACTIVE:
            return self.remaining_seconds
        return self.countdown.tick(now)

    def stop_timers(self) -> None:
        if self.countdown is not None:
            self.countdown.cancel()
        if self._autosave_timer is not None:
            self._autosave_timer.cancel()
            self._autosave_timer = None

    def autosave(self) -> bool:
        """Push the current snapshot as draft_answers. Empty snapshots are not written."""
        if self.state != ACTIVE or self.answers.is_empty():
            return False
        return self.manager.save_draft(self.attempt.id, self.answers.snapshot())

    def unload(self) -> None:
        """Page is going away: best-effort final draft save, then stop the timers."""
        self.autosave()
        self.stop_timers()

    # ---- submission ------------------------------------------------------------

    def _on_timeout(self) -> None:
        logger.info(f"Time is up for attempt {self.attempt.id}; auto-submitting")
        self.submit(timed_out=True)

    def submit(self, timed_out: bool = False, now: Optional[datetime] = None) -> Optional[RunResult]:
        """Grade the final snapshot and submit it. Repeat calls return the first result."""
        with self._lock:
            if self.state not in (ACTIVE, SUBMIT_FAILED):
                return self.results
            if self.state == ACTIVE:
                self._timed_out = timed_out
            self.state = SUBMITTING
        self.stop_timers()

        now = now or self.clock()
        snapshot = self.answers.snapshot()
        grade = grade_test(self.exercises, snapshot, self.session.passing_score)
        outcome = AttemptOutcome.from_grade(grade, self.attempt, self._timed_out, now)

        try:
            finalized = self.manager.submit(self.attempt.id, outcome)
        except SubmissionError as e:
            self.error = e.USER_MESSAGE
            self.state = SUBMIT_FAILED
            if snapshot:
                self.manager.save_draft(self.attempt.id, snapshot)
            return None

        result = RunResult(
            score=grade.score,
            passed=grade.passed,
            total_correct=grade.total_correct,
            total_questions=grade.total_questions,
            time_used_seconds=outcome.time_used_seconds,
            timed_out=self._timed_out,
        )
        if not finalized:
            try:
                stored = self.gateway.get_attempt(self.attempt.id)
            except GatewayError as e:
                logger.warning(f"Could not reload stored result for {self.attempt.id}: {e}")
                stored = None
            if stored is not None and stored.score is not None:
                result.score = stored.score
                result.passed = bool(stored.passed)
                result.timed_out = stored.status == TIMED_OUT
                result.time_used_seconds = stored.time_used_seconds or result.time_used_seconds
        self.results = result
        self.error = None
        self.state = RESULTS
        return result

    def retry_submit(self) -> Optional[RunResult]:
        if self.state != SUBMIT_FAILED:
            return self.results
        return self.submit(timed_out=self._timed_out)
