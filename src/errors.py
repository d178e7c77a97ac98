"""Exceptions raised by the test engine."""


class TestEngineError(Exception):
    """Base class for test engine failures."""

    __test__ = False


class GatewayError(TestEngineError):
    """A read or write against the attempt store failed."""


class DuplicateAttemptError(GatewayError):
    """Another in_progress attempt already exists for the same session and user."""


class TestNotFoundError(TestEngineError):
    """The test session (or its exercises) could not be loaded."""


class SubmissionError(TestEngineError):
    """Submitting an attempt failed after all retries."""

    USER_MESSAGE = (
        "We could not submit your test. Your answers are saved on this page: "
        "do not close or leave it, check your connection and press Retry."
    )

    def __init__(self, attempt_id: str, cause: Exception | None = None):
        self.attempt_id = attempt_id
        self.cause = cause
        super().__init__(f"Submission failed for attempt {attempt_id}: {cause}")
