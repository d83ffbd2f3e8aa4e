"""Errors raised while scanning a sheet.

Every ``ScanError`` aborts the current capture only. The session stays armed
and the caller may retry with a new capture.
"""

from typing import Optional


class ScanError(Exception):
    """Base class for retryable capture failures."""
    pass


class PayloadNotFound(ScanError):
    """No identity marker could be decoded after every enhancement attempt."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"No identity marker found after {attempts} attempts")


class IdentityNotFound(ScanError):
    """A payload was decoded but its identifier matches no known student."""

    def __init__(self, external_id: str, payload: Optional[str] = None):
        self.external_id = external_id
        self.payload = payload
        super().__init__(f"Student not found: '{external_id}'")


class MissingAnswerKey(ScanError):
    """The quiz has no correct-answer array."""

    def __init__(self, quiz_id: Optional[str] = None):
        self.quiz_id = quiz_id
        target = f" for quiz '{quiz_id}'" if quiz_id else ""
        super().__init__(f"Answer key missing{target}")


class MalformedExtraction(ScanError):
    """The extracted answers do not line up with the quiz's question count."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} answers, got {actual}")


class CaptureFailed(ScanError):
    """An unexpected error interrupted one capture, e.g. a decoder crash or a locked database."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Capture failed: {type(cause).__name__}: {cause}")
