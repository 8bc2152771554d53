"""
ELM CDR Validation Layer

Client for the remote ELM validation service.
"""

from elm_cdr.validation.client import VALIDATION_TIMEOUT_SECONDS, ValidatorClient

__all__ = ["VALIDATION_TIMEOUT_SECONDS", "ValidatorClient"]
