"""Timed test engine constants: exercise types, attempt statuses, timing. No UI."""
# Score = round(100 * correct / gradable sub-items); unanswered sub-items count as wrong.
# Remaining time = limit - floor(now - started_at), never stored.
import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


# Exercise types (closed set)
MULTIPLE_CHOICE = "multiple_choice"
FILL_BLANK = "fill_blank"
DRAG_DROP = "drag_drop"
DROPDOWN = "dropdown"
IMAGE_HOTSPOT = "image_hotspot"

EXERCISE_TYPE_LABELS = {
    MULTIPLE_CHOICE: "Multiple Choice",
    FILL_BLANK: "Fill Blank",
    DRAG_DROP: "Drag & Drop",
    DROPDOWN: "Dropdown",
    IMAGE_HOTSPOT: "Image Hotspot",
}

# Attempt statuses
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
TIMED_OUT = "timed_out"
ABANDONED = "abandoned"
GRADED_STATUSES = (COMPLETED, TIMED_OUT)  # counted against max_attempts
TERMINAL_STATUSES = (COMPLETED, TIMED_OUT, ABANDONED)

DEFAULT_TIME_LIMIT_MINUTES = _env_int("TEST_TIME_LIMIT_MINUTES", 30)
DEFAULT_PASSING_SCORE = _env_int("TEST_PASSING_SCORE", 70)

TICK_SECONDS = _env_int("TEST_TICK_SECONDS", 1)
AUTOSAVE_INTERVAL_SECONDS = _env_int("TEST_AUTOSAVE_SECONDS", 10)
LOW_TIME_SECONDS = 60

SUBMIT_RETRIES = _env_int("TEST_SUBMIT_RETRIES", 3)

# question_index = question * SUB_INDEX_STRIDE + sub_item for multi-part questions
SUB_INDEX_STRIDE = 100
