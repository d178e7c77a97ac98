"""Persistence interface the test engine consumes. See src/database.py for the Supabase implementation."""
from typing import Any, Dict, List, Optional, Protocol, Sequence

from src.models import QuestionAttempt, TestAttempt


class PersistenceGateway(Protocol):
    """
    Attempt store. Every method raises GatewayError on failure except
    update_draft_answers, which is best-effort and reports success as a bool.
    """

    def find_in_progress_attempt(self, session_id: str, user_id: str) -> Optional[TestAttempt]: ...

    def count_terminal_attempts(self, session_id: str, user_id: str) -> int:
        """Count completed + timed_out attempts (abandoned rows do not use up the limit)."""
        ...

    def list_terminal_attempts(self, session_id: str, user_id: str) -> List[TestAttempt]: ...

    def create_attempt(self, session_id: str, user_id: str) -> TestAttempt:
        """Insert an in_progress attempt; started_at is the store's clock. Raises DuplicateAttemptError."""
        ...

    def get_attempt(self, attempt_id: str) -> Optional[TestAttempt]: ...

    def update_draft_answers(self, attempt_id: str, answers: Dict[str, Any]) -> bool:
        """Overwrite draft_answers of an in_progress attempt (last write wins)."""
        ...

    def finalize_attempt(
        self,
        attempt_id: str,
        score: int,
        passed: bool,
        time_used_seconds: int,
        status: str,
        completed_at: str,
    ) -> bool:
        """Move an in_progress attempt to a terminal status. False if it was already terminal."""
        ...

    def insert_question_attempts(self, attempt_id: str, rows: Sequence[QuestionAttempt]) -> None:
        """Write audit rows, idempotent on (attempt, exercise, question_index)."""
        ...

    def mark_abandoned(self, attempt_id: str) -> None: ...
