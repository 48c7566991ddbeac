"""Error taxonomy shared by all pipeline stages.

InvalidInput:             caller data violates a stage precondition (not retryable).
UpstreamUnavailable:      network failure, non-2xx, timeout or missing credential
                          (retryable by the caller).
MalformedUpstreamOutput:  the model response could not be parsed into the
                          expected shape (not retryable without a new prompt).
"""

from __future__ import annotations


class DiagnosisError(Exception):
    """Base class for every failure surfaced by a pipeline stage."""

    retryable: bool = False

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        return self.message


class InvalidInput(DiagnosisError):
    retryable = False


class UpstreamUnavailable(DiagnosisError):
    retryable = True


class MalformedUpstreamOutput(DiagnosisError):
    retryable = False


class ShortResponseError(MalformedUpstreamOutput):
    """Raised by the response-length validator so fallbacks can take over."""
