"""Errors surfaced by the recognition pipeline to its callers."""

from enum import StrEnum

from src.recognition.errors import EngineError


class ErrorClassification(StrEnum):
    """Why a pipeline run failed."""

    TIMEOUT = "timeout"
    REMOTE_REJECTED = "remote_rejected"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"
    UNSUPPORTED_KIND = "unsupported_kind"


class PipelineError(Exception):
    """A pipeline run ended in the failed state.

    Args:
        classification: Failure classification for the caller to map.
        message: Human-readable description.
        stage: Pipeline stage that was active when the run failed.
    """

    def __init__(
        self,
        classification: ErrorClassification,
        message: str,
        stage: str | None = None,
    ) -> None:
        super().__init__(message)
        self.classification = classification
        self.message = message
        self.stage = stage

    @classmethod
    def from_engine_error(
        cls, exc: EngineError, stage: str | None = None
    ) -> "PipelineError":
        """Build a pipeline error carrying an engine error's classification."""
        return cls(ErrorClassification(exc.code.value), exc.message, stage)


class UnsupportedKindError(PipelineError):
    """Raised when a request names a recognition kind that cannot be routed."""

    def __init__(self, kind: object) -> None:
        super().__init__(
            ErrorClassification.UNSUPPORTED_KIND,
            f"Unsupported recognition kind: {kind!r}",
            stage="received",
        )
        self.kind = kind
