"""Supabase client and test content reads. Client is cached via Streamlit."""
import logging
import os
from uuid import UUID

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

from src.errors import TestNotFoundError
from src.models import Exercise, TestSession

load_dotenv()

logger = logging.getLogger(__name__)


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


# --- Test sessions ---

def get_test_sessions(limit: int = 100, client: Client | None = None) -> list[TestSession]:
    """Sessions flagged as tests, newest first (for the test list)."""
    client = client or get_supabase()
    r = (
        client.table("sessions")
        .select("id, title, time_limit_minutes, passing_score, max_attempts, is_test")
        .eq("is_test", True)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return [TestSession.from_row(row) for row in r.data or []]


def get_test_session(session_id: UUID | str, client: Client | None = None) -> TestSession:
    client = client or get_supabase()
    r = client.table("sessions").select("*").eq("id", str(session_id)).limit(1).execute()
    if not r.data:
        raise TestNotFoundError(f"Test session {session_id} not found")
    return TestSession.from_row(r.data[0])


# --- Exercises ---

def get_session_exercises(session_id: UUID | str, client: Client | None = None) -> list[Exercise]:
    """Exercises assigned to a session, in assignment order. Unsupported types are skipped."""
    client = client or get_supabase()
    r = (
        client.table("exercise_assignments")
        .select("id, exercise_id, order_index, exercise:exercises (id, title, exercise_type, content)")
        .eq("session_id", str(session_id))
        .order("order_index")
        .execute()
    )
    exercises = []
    for assignment in r.data or []:
        row = assignment.get("exercise")
        if not row:
            continue
        try:
            exercises.append(Exercise.from_row(row))
        except ValueError as e:
            logger.warning(f"Skipping exercise {row.get('id')} in session {session_id}: {e}")
    return exercises


def get_exercise_titles(exercise_ids: list[str], client: Client | None = None) -> dict[str, Exercise]:
    """{exercise_id: Exercise} for the review page; content is not needed there."""
    if not exercise_ids:
        return {}
    client = client or get_supabase()
    r = client.table("exercises").select("id, title, exercise_type").in_("id", list(exercise_ids)).execute()
    out = {}
    for row in r.data or []:
        out[str(row["id"])] = Exercise(
            id=str(row["id"]),
            exercise_type=row.get("exercise_type") or "",
            title=row.get("title") or "",
        )
    return out
