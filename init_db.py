"""Print (and sanity-check) the Supabase schema for the StudyQuest test engine."""
import os

from dotenv import load_dotenv

load_dotenv()

# sessions, exercises, exercise_assignments and users are owned by the course app;
# only the columns the test engine reads are listed for them.
SCHEMA_SQL = """
-- Test configuration lives on sessions
ALTER TABLE sessions ADD COLUMN IF NOT EXISTS is_test BOOLEAN DEFAULT FALSE;
ALTER TABLE sessions ADD COLUMN IF NOT EXISTS time_limit_minutes INT DEFAULT 30;
ALTER TABLE sessions ADD COLUMN IF NOT EXISTS passing_score INT DEFAULT 70;
ALTER TABLE sessions ADD COLUMN IF NOT EXISTS max_attempts INT;

-- One row per student run through a test
CREATE TABLE IF NOT EXISTS test_attempts (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id UUID NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status VARCHAR(20) NOT NULL DEFAULT 'in_progress'
        CHECK (status IN ('in_progress', 'completed', 'timed_out', 'abandoned')),
    started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    completed_at TIMESTAMPTZ,
    score INT CHECK (score IS NULL OR score BETWEEN 0 AND 100),
    passed BOOLEAN,
    time_used_seconds INT,
    draft_answers JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Audit trail, written once per gradable sub-item at submit time
CREATE TABLE IF NOT EXISTS test_question_attempts (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    test_attempt_id UUID NOT NULL REFERENCES test_attempts(id) ON DELETE CASCADE,
    exercise_id UUID NOT NULL REFERENCES exercises(id),
    question_index INT NOT NULL,
    exercise_type VARCHAR(30) NOT NULL,
    selected_answer JSONB,
    correct_answer JSONB,
    is_correct BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(test_attempt_id, exercise_id, question_index)
);

-- At most one in_progress attempt per student and test
CREATE UNIQUE INDEX IF NOT EXISTS uq_test_attempts_in_progress
    ON test_attempts(session_id, user_id) WHERE status = 'in_progress';
CREATE INDEX IF NOT EXISTS idx_test_attempts_session_user ON test_attempts(session_id, user_id);
CREATE INDEX IF NOT EXISTS idx_test_question_attempts_attempt ON test_question_attempts(test_attempt_id);
"""


def schema_statements() -> list[str]:
    """SCHEMA_SQL split into executable statements (comments dropped)."""
    statements = []
    for chunk in SCHEMA_SQL.split(";"):
        lines = [ln for ln in chunk.strip().splitlines() if not ln.strip().startswith("--")]
        stmt = "\n".join(lines).strip()
        if stmt:
            statements.append(stmt)
    return statements


def main():
    print("Initializing Supabase schema for the test engine...")
    print(f"URL: {os.getenv('SUPABASE_URL') or '(SUPABASE_URL not set)'}")

    statements = schema_statements()
    for i, stmt in enumerate(statements, 1):
        print(f"Statement {i}/{len(statements)}: {stmt.splitlines()[0][:70]}...")

    print("\nNote: supabase-py cannot run DDL. Run this SQL in the Supabase SQL Editor:")
    print("Go to: https://app.supabase.com > SQL Editor > New Query")
    print(SCHEMA_SQL)


if __name__ == "__main__":
    main()
