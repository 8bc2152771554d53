"""
ELM CDR Core Schemas

Pydantic models for the library records held by the store, the validation
service contract, and the response envelopes returned by the endpoint.

Key Design Principles:
1. ELM documents are opaque: they travel as plain dicts and are never mutated
2. Validation verdicts keep every key the validator sent
3. Response envelopes omit fields that are None
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from elm_cdr.core.enums import SkipReason


# =============================================================================
# LIBRARY RECORDS
# =============================================================================


class LibraryRecord(BaseModel):
    """
    A loaded ELM library as held by the library store.

    The store key (`library_id`, `version`) may differ from the identifier
    inside the document: routes address libraries by store key, while
    `library_name` and `library_version` come from `source.library.identifier`.
    """

    model_config = ConfigDict(frozen=True)

    library_id: str = Field(..., min_length=1)
    version: str | None = None
    source: dict[str, Any] = Field(..., description="ELM JSON document")

    @property
    def identifier(self) -> dict[str, Any]:
        """The `library.identifier` block of the ELM document."""
        library = self.source.get("library") or {}
        return library.get("identifier") or {}

    @property
    def library_name(self) -> str | None:
        """Library name declared by the document."""
        return self.identifier.get("id")

    @property
    def library_version(self) -> str | None:
        """Library version declared by the document."""
        return self.identifier.get("version")


# =============================================================================
# VALIDATION SERVICE CONTRACT
# =============================================================================


class ValidationRequest(BaseModel):
    """Body POSTed to the validation service."""

    elm_json: dict[str, Any]
    library_name: str | None


class ValidationResult(BaseModel):
    """
    Verdict returned by the validation service.

    Built with `from_payload()`, the decoded body is kept as received and
    `to_payload()` returns it untouched (no coercion of `valid`, no
    re-serialization of unknown keys).
    """

    model_config = ConfigDict(extra="allow")

    valid: bool
    errors: list[Any] | None = None
    warnings: list[Any] | None = None

    _raw: dict[str, Any] | None = PrivateAttr(default=None)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ValidationResult:
        """Validate a decoded response body and remember it verbatim."""
        result = cls.model_validate(payload)
        result._raw = payload
        return result

    def to_payload(self) -> dict[str, Any]:
        """Verdict body as the validator sent it."""
        if self._raw is not None:
            return self._raw
        return self.model_dump(exclude_unset=True)


# =============================================================================
# RESPONSE ENVELOPES
# =============================================================================


class EnvelopeModel(BaseModel):
    """Base for response envelopes."""

    def to_body(self) -> dict[str, Any]:
        """JSON body with top-level None fields dropped."""
        return {k: v for k, v in self.model_dump(mode="json").items() if v is not None}


class ErrorResponse(EnvelopeModel):
    """Not-found and unexpected-failure responses (404 / 500)."""

    success: Literal[False] = False
    error: str


class SkippedValidationResponse(EnvelopeModel):
    """Document returned without validation (200)."""

    success: Literal[True] = True
    validated: Literal[False] = False
    elm_json: dict[str, Any]
    library_id: str
    library_version: str | None = None
    library_name: str | None = None
    warning: str
    skip_reason: SkipReason

    @classmethod
    def for_record(
        cls, record: LibraryRecord, library_id: str, reason: SkipReason
    ) -> SkippedValidationResponse:
        """Build the skip envelope for a resolved record."""
        return cls(
            elm_json=record.source,
            library_id=library_id,
            library_version=record.library_version,
            library_name=record.library_name,
            warning=reason.warning,
            skip_reason=reason,
        )


class ValidLibraryResponse(EnvelopeModel):
    """Validator accepted the document (200)."""

    success: Literal[True] = True
    validated: Literal[True] = True
    valid: Literal[True] = True
    elm_json: dict[str, Any]
    library_id: str
    library_version: str | None = None
    library_name: str | None = None
    validation_result: dict[str, Any]


class InvalidLibraryResponse(EnvelopeModel):
    """Validator rejected the document (400). Never carries `elm_json`."""

    success: Literal[False] = False
    validated: Literal[True] = True
    valid: Literal[False] = False
    errors: list[Any] | None = None
    warnings: list[Any] | None = None
    library_id: str
    library_name: str | None = None
