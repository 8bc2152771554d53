"""
ELM CDR Core Enumerations

Vocabulary shared by the retrieval endpoint, its logs and its metrics.
"""

from enum import Enum


class RetrievalOutcome(str, Enum):
    """Terminal branch taken by a retrieval request.

    Exactly one outcome is recorded per request:
    - NOT_FOUND: library (or version) absent from the store -> 404
    - SKIPPED_NOT_CONFIGURED: no validation endpoint configured -> 200
    - VALID: validator accepted the document -> 200
    - INVALID: validator rejected the document -> 400
    - SKIPPED_UNAVAILABLE: validator refused the connection or timed out -> 200
    - ERROR: any other validation failure -> 500
    """

    NOT_FOUND = "not_found"
    SKIPPED_NOT_CONFIGURED = "skipped_not_configured"
    VALID = "valid"
    INVALID = "invalid"
    SKIPPED_UNAVAILABLE = "skipped_unavailable"
    ERROR = "error"


class SkipReason(str, Enum):
    """Why a document was returned without validation."""

    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"

    @property
    def warning(self) -> str:
        """Human-readable warning text returned to the caller."""
        return _SKIP_WARNINGS[self]


_SKIP_WARNINGS = {
    SkipReason.NOT_CONFIGURED: "Validation skipped (Modal URL not configured)",
    SkipReason.UNAVAILABLE: "Validation skipped (Modal API unavailable)",
}
