"""
Attempt lifecycle: resume-or-create with attempt limits, draft autosave, final submission.

States: in_progress -> completed | timed_out | abandoned. All three are terminal.
Identifiers are always passed in explicitly; nothing is read from an ambient login.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set

from engine import SUBMIT_RETRIES
from src.errors import DuplicateAttemptError, GatewayError, SubmissionError
from src.gateway import PersistenceGateway
from src.models import AttemptOutcome, AttemptStart

logger = logging.getLogger(__name__)


class AttemptManager:
    """Owns TestAttempt rows through a PersistenceGateway."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        retries: int = SUBMIT_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.retries = max(1, retries)
        self.sleep = sleep
        self._submit_lock = threading.Lock()
        self._closed: Set[str] = set()

    def start(self, session_id: str, user_id: str, max_attempts: Optional[int] = None) -> AttemptStart:
        """
        Resume the student's in_progress attempt or create a new one.

        An in_progress row that coexists with a completed/timed_out attempt is stale
        (e.g. a crashed second tab): it is abandoned and a fresh start is evaluated.

        Returns:
            AttemptStart with the attempt, or limit_reached=True plus the graded attempts
        """
        existing = self.gateway.find_in_progress_attempt(session_id, user_id)
        if existing:
            if self.gateway.count_terminal_attempts(session_id, user_id) > 0:
                logger.warning(f"Abandoning stale in-progress attempt {existing.id} for session {session_id}")
                self.gateway.mark_abandoned(existing.id)
            else:
                logger.info(f"Resuming attempt {existing.id} for session {session_id}")
                return AttemptStart(attempt=existing, resumed=True)

        if max_attempts and max_attempts > 0:
            used = self.gateway.count_terminal_attempts(session_id, user_id)
            if used >= max_attempts:
                logger.info(f"Attempt limit reached for session {session_id}: {used}/{max_attempts}")
                previous = self.gateway.list_terminal_attempts(session_id, user_id)
                return AttemptStart(limit_reached=True, previous_attempts=previous)

        try:
            attempt = self.gateway.create_attempt(session_id, user_id)
        except DuplicateAttemptError:
            # another tab won the insert; run that attempt instead of a second one
            attempt = self.gateway.find_in_progress_attempt(session_id, user_id)
            if attempt is None:
                raise
            logger.info(f"Joined concurrently created attempt {attempt.id} for session {session_id}")
            return AttemptStart(attempt=attempt, resumed=True)

        logger.info(f"Created attempt {attempt.id} for session {session_id}")
        return AttemptStart(attempt=attempt)

    def save_draft(self, attempt_id: str, answers: Dict[str, Any]) -> bool:
        """Best-effort overwrite of draft_answers. Never raises, never retries."""
        if attempt_id in self._closed:
            logger.warning(f"Draft save skipped: attempt {attempt_id} is already submitted")
            return False
        try:
            return self.gateway.update_draft_answers(attempt_id, answers)
        except Exception as e:
            logger.error(f"Error saving draft answers for {attempt_id}: {e}")
            return False

    def is_closed(self, attempt_id: str) -> bool:
        return attempt_id in self._closed

    def submit(self, attempt_id: str, outcome: AttemptOutcome) -> bool:
        """
        Persist the graded outcome: audit rows first, then the attempt row.

        Finalizing is conditional on the row still being in_progress, and audit rows
        are upserted on their natural key, so a repeated or retried submit never
        double-inserts or re-finalizes.

        Returns:
            True if this call finalized the attempt, False if it was already terminal

        Raises:
            SubmissionError: every retry failed
        """
        with self._submit_lock:
            if attempt_id in self._closed:
                logger.info(f"Attempt {attempt_id} already submitted; ignoring repeat submit")
                return False

            last_error: Optional[Exception] = None
            for attempt in range(self.retries):
                try:
                    stored = self.gateway.get_attempt(attempt_id)
                    if stored is None:
                        raise SubmissionError(attempt_id, GatewayError(f"Attempt {attempt_id} not found"))
                    if stored.is_terminal:
                        logger.warning(f"Attempt {attempt_id} is already {stored.status}; not re-finalizing")
                        self._closed.add(attempt_id)
                        return False

                    self.gateway.insert_question_attempts(attempt_id, outcome.question_attempts)
                    finalized = self.gateway.finalize_attempt(
                        attempt_id,
                        score=outcome.score,
                        passed=outcome.passed,
                        time_used_seconds=outcome.time_used_seconds,
                        status=outcome.status,
                        completed_at=outcome.completed_at.isoformat(),
                    )
                    self._closed.add(attempt_id)
                    logger.info(
                        f"Attempt {attempt_id} {outcome.status}: score={outcome.score}, "
                        f"passed={outcome.passed}, rows={len(outcome.question_attempts)}"
                    )
                    return finalized
                except GatewayError as e:
                    last_error = e
                    if attempt < self.retries - 1:
                        logger.warning(f"Submit failed (attempt {attempt + 1}/{self.retries}): {e}")
                        self.sleep(1 + attempt)

            logger.error(f"Giving up on submitting attempt {attempt_id}: {last_error}")
            raise SubmissionError(attempt_id, last_error)
