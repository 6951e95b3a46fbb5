"""
Error taxonomy of the analysis pipeline.

Stage-level failures (``CallFailure``, ``SchemaValidationFailure`` and
``AggregateFailure``) never reach the caller directly; the orchestrator
collapses them into a single ``AnalysisError``.
"""

from typing import Optional


class InferenceError(Exception):
    """Base class for failures of a single inference call."""

    def __init__(self, call: str, message: str):
        super().__init__(f"{call}: {message}")
        self.call = call
        self.message = message


class CallFailure(InferenceError):
    """Network or remote-side error while performing a call."""


class SchemaValidationFailure(InferenceError):
    """The call's response did not match its declared shape."""


class AggregateFailure(InferenceError):
    """A call failed inside a join barrier."""

    def __init__(self, barrier: str, cause: InferenceError):
        super().__init__(cause.call, f"failed in {barrier} barrier: {cause.message}")
        self.barrier = barrier
        self.cause = cause


class AnalysisError(Exception):
    """The single user-facing failure of an analysis run."""

    USER_MESSAGE = "Analysis failed. Please try again."

    def __init__(self, stage: str, call: Optional[str] = None, detail: str = ""):
        super().__init__(self.USER_MESSAGE)
        self.stage = stage
        self.call = call
        self.detail = detail


class AnalysisInProgressError(RuntimeError):
    """A run was started while another run is still in progress."""


class InvalidTransitionError(ValueError):
    """An inspection session was asked for a transition its step does not allow."""
