"""In-memory answer store for one attempt: {exercise_id: answer payload}."""
import copy
import threading
from typing import Any, Callable, Dict, Optional


class AnswerCollector:
    """
    Holds the latest payload emitted by each exercise widget.

    Widgets are the only writers (through callback_for); autosave and grading
    read deep-copied snapshots so a concurrent edit never leaks into them.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._answers: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._callbacks: Dict[str, Callable[[Any], None]] = {}

    def record(self, exercise_id: str, payload: Any) -> None:
        with self._lock:
            self._answers[str(exercise_id)] = copy.deepcopy(payload)

    def callback_for(self, exercise_id: str) -> Callable[[Any], None]:
        """Stable on_answers_collected callback for one exercise (same object on every call)."""
        key = str(exercise_id)
        if key not in self._callbacks:
            self._callbacks[key] = lambda payload: self.record(key, payload)
        return self._callbacks[key]

    def initial_answers(self, exercise_id: str) -> Any:
        """Slice of the restored draft for one exercise, or None."""
        with self._lock:
            return copy.deepcopy(self._answers.get(str(exercise_id)))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._answers)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._answers

    def __len__(self) -> int:
        with self._lock:
            return len(self._answers)
