"""Question Flow custom exceptions for structured error handling."""
from __future__ import annotations


class FlowError(Exception):
    """Base class for all engine errors returned to clients."""


class DefinitionLoadError(FlowError):
    """Raised when the questionnaire definition cannot be loaded."""


class InvalidAnswerError(FlowError, ValueError):
    """Raised when an answer value does not fit its question's data type."""


class SessionStoreError(FlowError):
    """Raised when the session store cannot read or write progress."""


class SessionConflictError(SessionStoreError):
    """Raised when a session was rewritten since it was read (version mismatch)."""
