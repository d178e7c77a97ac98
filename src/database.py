"""
Attempt persistence for the timed test engine.
Handles Supabase reads/writes on test_attempts and test_question_attempts.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client

from db import get_supabase
from engine import ABANDONED, GRADED_STATUSES, IN_PROGRESS
from src.errors import DuplicateAttemptError, GatewayError
from src.models import QuestionAttempt, TestAttempt

logger = logging.getLogger(__name__)

ATTEMPTS_TABLE = "test_attempts"
QUESTION_ATTEMPTS_TABLE = "test_question_attempts"
AUDIT_CONFLICT_KEY = "test_attempt_id,exercise_id,question_index"
UNIQUE_VIOLATION = "23505"


class SupabaseAttemptGateway:
    """PersistenceGateway over supabase-py, plus the history reads used by reports."""

    def __init__(self, client: Client):
        self.client = client

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except Exception as e:
            logger.error(f"Error {action}: {e}")
            raise GatewayError(f"Error {action}: {e}") from e

    def _attempts(self):
        return self.client.table(ATTEMPTS_TABLE)

    # ============= Attempt lifecycle =============

    def find_in_progress_attempt(self, session_id: str, user_id: str) -> Optional[TestAttempt]:
        response = self._execute(
            self._attempts()
            .select("*")
            .eq("session_id", str(session_id))
            .eq("user_id", str(user_id))
            .eq("status", IN_PROGRESS)
            .order("started_at", desc=True)
            .limit(1),
            "finding in-progress attempt",
        )
        rows = response.data or []
        return TestAttempt.from_row(rows[0]) if rows else None

    def count_terminal_attempts(self, session_id: str, user_id: str) -> int:
        response = self._execute(
            self._attempts()
            .select("id", count="exact")
            .eq("session_id", str(session_id))
            .eq("user_id", str(user_id))
            .in_("status", list(GRADED_STATUSES)),
            "counting terminal attempts",
        )
        count = getattr(response, "count", None)
        return count if count is not None else len(response.data or [])

    def list_terminal_attempts(self, session_id: str, user_id: str) -> List[TestAttempt]:
        response = self._execute(
            self._attempts()
            .select("*")
            .eq("session_id", str(session_id))
            .eq("user_id", str(user_id))
            .in_("status", list(GRADED_STATUSES))
            .order("started_at", desc=True),
            "listing terminal attempts",
        )
        return [TestAttempt.from_row(r) for r in response.data or []]

    def create_attempt(self, session_id: str, user_id: str) -> TestAttempt:
        row = {
            "session_id": str(session_id),
            "user_id": str(user_id),
            "status": IN_PROGRESS,
            "draft_answers": {},
        }
        try:
            response = self._attempts().insert(row).execute()
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise DuplicateAttemptError(f"In-progress attempt already exists for {session_id}/{user_id}") from e
            logger.error(f"Error creating attempt: {e}")
            raise GatewayError(f"Error creating attempt: {e}") from e
        if not response.data:
            raise GatewayError("Error creating attempt: insert returned no row")
        return TestAttempt.from_row(response.data[0])

    def get_attempt(self, attempt_id: str) -> Optional[TestAttempt]:
        response = self._execute(
            self._attempts().select("*").eq("id", str(attempt_id)).limit(1),
            f"fetching attempt {attempt_id}",
        )
        rows = response.data or []
        return TestAttempt.from_row(rows[0]) if rows else None

    def update_draft_answers(self, attempt_id: str, answers: Dict[str, Any]) -> bool:
        """Best-effort: failures are logged and reported as False, never raised."""
        try:
            (
                self._attempts()
                .update({"draft_answers": answers})
                .eq("id", str(attempt_id))
                .eq("status", IN_PROGRESS)
                .execute()
            )
            return True
        except Exception as e:
            logger.error(f"Error saving draft answers for {attempt_id}: {e}")
            return False

    def finalize_attempt(
        self,
        attempt_id: str,
        score: int,
        passed: bool,
        time_used_seconds: int,
        status: str,
        completed_at: str,
    ) -> bool:
        update_data = {
            "score": score,
            "passed": passed,
            "time_used_seconds": time_used_seconds,
            "status": status,
            "completed_at": completed_at,
        }
        response = self._execute(
            self._attempts().update(update_data).eq("id", str(attempt_id)).eq("status", IN_PROGRESS),
            f"finalizing attempt {attempt_id}",
        )
        return bool(response.data)

    def insert_question_attempts(self, attempt_id: str, rows: Sequence[QuestionAttempt]) -> None:
        if not rows:
            return
        payload = [qa.to_row(str(attempt_id)) for qa in rows]
        self._execute(
            self.client.table(QUESTION_ATTEMPTS_TABLE).upsert(payload, on_conflict=AUDIT_CONFLICT_KEY),
            f"inserting {len(payload)} question attempts for {attempt_id}",
        )

    def mark_abandoned(self, attempt_id: str) -> None:
        self._execute(
            self._attempts().update({"status": ABANDONED}).eq("id", str(attempt_id)).eq("status", IN_PROGRESS),
            f"abandoning attempt {attempt_id}",
        )

    # ============= History =============

    def fetch_my_attempts(self, session_id: str, user_id: str) -> List[TestAttempt]:
        """All of one student's attempts for a test, newest first."""
        response = self._execute(
            self._attempts()
            .select("*")
            .eq("session_id", str(session_id))
            .eq("user_id", str(user_id))
            .order("created_at", desc=True),
            "fetching my attempts",
        )
        return [TestAttempt.from_row(r) for r in response.data or []]

    def fetch_session_attempts(self, session_id: str) -> List[Dict]:
        """Graded attempt rows of every student, with user and question attempts embedded."""
        response = self._execute(
            self._attempts()
            .select("*, user:users!user_id (id, full_name, email), test_question_attempts (*)")
            .eq("session_id", str(session_id))
            .in_("status", list(GRADED_STATUSES))
            .order("created_at", desc=True),
            "fetching session attempts",
        )
        return response.data or []

    def get_question_attempts(self, attempt_id: str) -> List[Dict]:
        response = self._execute(
            self.client.table(QUESTION_ATTEMPTS_TABLE)
            .select("*")
            .eq("test_attempt_id", str(attempt_id))
            .order("question_index"),
            f"fetching question attempts for {attempt_id}",
        )
        return response.data or []


# Singleton instance
_gateway: Optional[SupabaseAttemptGateway] = None


def get_attempt_gateway() -> SupabaseAttemptGateway:
    """Get or create the gateway bound to the shared Supabase client."""
    global _gateway
    if _gateway is None:
        _gateway = SupabaseAttemptGateway(get_supabase())
    return _gateway
