"""Shared error codes, user-facing messages and collaborator exceptions."""

from __future__ import annotations

NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
REWRITE_FAILED = "REWRITE_FAILED"
INJECTION_FAILED = "INJECTION_FAILED"

ERROR_MESSAGES = {
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    NO_ACTIVE_TARGET: "No active input target, text was not inserted.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    TRANSCRIPTION_FAILED: "Transcription failed, the recording was discarded.",
    REWRITE_FAILED: "Post-processing failed, the raw transcript was kept.",
    INJECTION_FAILED: "Text could not be inserted.",
}


class CodedError(Exception):
    """An exception that carries one of the error codes above."""

    default_code = ASR_PROTOCOL_ERROR

    def __init__(self, message: str, code: str | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.retryable = retryable

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES.get(self.code, self.message)


class TranscriptionError(CodedError):
    default_code = TRANSCRIPTION_FAILED


class RewriteError(CodedError):
    default_code = REWRITE_FAILED


def classify_sdk_error(exc: Exception, fallback: str) -> tuple[str, bool]:
    """Map an SDK/network exception message to ``(code, retryable)``."""
    low = str(exc).lower()
    if "401" in low or "auth" in low or "api key" in low:
        return AUTH_FAILED, False
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR, True
    return fallback, True
