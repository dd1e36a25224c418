"""
Error taxonomy for aigit.

Every failure that crosses a component boundary is one of these classes.
Each carries a deterministic error code so the command layer (and tests)
can tell failures apart without parsing messages.

A failed exam is NOT an error: Decision.FAIL is an ordinary value and is
reported through the exit code contract.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

E_CONFIG_INVALID = "E_CONFIG_INVALID"
E_REDACTION_PATTERN = "E_REDACTION_PATTERN"
E_CONFIG_KEY = "E_CONFIG_KEY"

E_BACKEND_SPAWN = "E_BACKEND_SPAWN"
E_BACKEND_TIMEOUT = "E_BACKEND_TIMEOUT"
E_BACKEND_EXIT = "E_BACKEND_EXIT"
E_BACKEND_OUTPUT = "E_BACKEND_OUTPUT"
E_BACKEND_SCHEMA = "E_BACKEND_SCHEMA"
E_QUESTION_ID_EMPTY = "E_QUESTION_ID_EMPTY"
E_QUESTION_ID_DUPLICATE = "E_QUESTION_ID_DUPLICATE"
E_QUESTION_ID_MISMATCH = "E_QUESTION_ID_MISMATCH"

E_SCHEMA_UNKNOWN = "E_SCHEMA_UNKNOWN"
E_TRANSCRIPT_MALFORMED = "E_TRANSCRIPT_MALFORMED"
E_TRANSCRIPT_MISSING = "E_TRANSCRIPT_MISSING"
E_COMMIT_MISMATCH = "E_COMMIT_MISMATCH"
E_FINGERPRINT_MISMATCH = "E_FINGERPRINT_MISMATCH"

E_NOT_A_REPO = "E_NOT_A_REPO"
E_GIT_FAILED = "E_GIT_FAILED"


class AigitError(Exception):
    """Base class for all aigit failures."""

    default_code = "E_AIGIT"

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ConfigurationError(AigitError):
    """Bad policy file or invalid redaction pattern. Raised before any exam work."""

    default_code = E_CONFIG_INVALID


class ExternalBackendError(AigitError):
    """The grading/generation backend failed or returned an unusable payload."""

    default_code = E_BACKEND_OUTPUT


class BackendTimeoutError(ExternalBackendError):
    """The backend process exceeded its deadline and was killed."""

    default_code = E_BACKEND_TIMEOUT


class IntegrityError(AigitError):
    """A transcript no longer describes the commit or code it was issued for."""

    default_code = E_TRANSCRIPT_MALFORMED


class TranscriptNotFoundError(IntegrityError):
    default_code = E_TRANSCRIPT_MISSING


class GitError(AigitError):
    default_code = E_GIT_FAILED


class NotARepositoryError(GitError):
    default_code = E_NOT_A_REPO


__all__ = [
    "AigitError",
    "BackendTimeoutError",
    "ConfigurationError",
    "ExternalBackendError",
    "GitError",
    "IntegrityError",
    "NotARepositoryError",
    "TranscriptNotFoundError",
    "E_BACKEND_EXIT",
    "E_BACKEND_OUTPUT",
    "E_BACKEND_SCHEMA",
    "E_BACKEND_SPAWN",
    "E_BACKEND_TIMEOUT",
    "E_COMMIT_MISMATCH",
    "E_CONFIG_INVALID",
    "E_CONFIG_KEY",
    "E_FINGERPRINT_MISMATCH",
    "E_GIT_FAILED",
    "E_NOT_A_REPO",
    "E_QUESTION_ID_DUPLICATE",
    "E_QUESTION_ID_EMPTY",
    "E_QUESTION_ID_MISMATCH",
    "E_REDACTION_PATTERN",
    "E_SCHEMA_UNKNOWN",
    "E_TRANSCRIPT_MALFORMED",
    "E_TRANSCRIPT_MISSING",
]
