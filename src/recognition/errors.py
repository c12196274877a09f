"""Errors raised by the recognition engine layer."""

from enum import StrEnum


class EngineErrorCode(StrEnum):
    """Classification of a failed recognition engine call."""

    TIMEOUT = "timeout"
    REMOTE_REJECTED = "remote_rejected"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"


class EngineError(Exception):
    """A recognition engine call failed or the provider reported an error.

    Args:
        code: Failure classification.
        message: Human-readable description, usually the provider's message.
        provider_code: Numeric error code reported by the provider, if any.
    """

    def __init__(
        self,
        code: EngineErrorCode,
        message: str,
        provider_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_code = provider_code

    def __repr__(self) -> str:
        return (
            f"EngineError(code={self.code.value!r}, message={self.message!r}, "
            f"provider_code={self.provider_code!r})"
        )
