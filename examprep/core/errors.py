"""Failure taxonomy shared by the generation client and its callers."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Why a generation attempt did not produce a usable value."""

    SERVICE_UNAVAILABLE = "service_unavailable"  # no credential, network or HTTP error
    TIMEOUT = "timeout"
    SCHEMA_VIOLATION = "schema_violation"  # parsed but did not match the contract
    VALIDATION_FAILED = "validation_failed"  # post-parse business rule rejected the value
    UNKNOWN = "unknown"


class GenerationFailure(RuntimeError):
    """A classified failure from one logical generation attempt."""

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, message: str, *, kind: FailureKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in {
            FailureKind.SERVICE_UNAVAILABLE,
            FailureKind.TIMEOUT,
            FailureKind.SCHEMA_VIOLATION,
            FailureKind.VALIDATION_FAILED,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={str(self)!r})"


class ServiceUnavailableError(GenerationFailure):
    kind = FailureKind.SERVICE_UNAVAILABLE


class GenerationTimeoutError(GenerationFailure):
    kind = FailureKind.TIMEOUT


class SchemaViolationError(GenerationFailure):
    kind = FailureKind.SCHEMA_VIOLATION


class QuestionValidationError(GenerationFailure):
    kind = FailureKind.VALIDATION_FAILED


__all__ = [
    "FailureKind",
    "GenerationFailure",
    "GenerationTimeoutError",
    "QuestionValidationError",
    "SchemaViolationError",
    "ServiceUnavailableError",
]
