"""
ELM CDR Test Configuration

Shared fixtures and test utilities.
"""

import copy
import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest


# Set test environment before any imports
os.environ.setdefault("CDR_DEBUG", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_FORMAT", "text")
# Module-level app must not point at the hosted validator during tests
os.environ.setdefault("MODAL_VALIDATION_URL", "")

_test_temp_dir = Path(tempfile.gettempdir()) / "elm_cdr_test"
_test_temp_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("CDR_TRACE_DIR", str(_test_temp_dir / "traces"))


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Reset settings before each test."""
    from elm_cdr.config import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def reset_observability() -> Generator[None, None, None]:
    """Fresh metrics registry and tracers for each test."""
    from elm_cdr.observability import reset_metrics, reset_tracers

    reset_metrics()
    reset_tracers()
    yield
    reset_metrics()
    reset_tracers()


@pytest.fixture
def diabetes_elm_v1() -> dict:
    """ELM document for DiabetesScreening 1.0.0."""
    return {
        "library": {
            "identifier": {"id": "DiabetesScreening", "version": "1.0.0"},
            "schemaIdentifier": {"id": "urn:hl7-org:elm", "version": "r1"},
            "usings": {
                "def": [
                    {"localIdentifier": "System", "uri": "urn:hl7-org:elm-types:r1"},
                    {"localIdentifier": "FHIR", "uri": "http://hl7.org/fhir", "version": "4.0.1"},
                ]
            },
            "statements": {
                "def": [
                    {
                        "name": "Patient",
                        "context": "Patient",
                        "expression": {
                            "type": "SingletonFrom",
                            "operand": {"dataType": "{http://hl7.org/fhir}Patient", "type": "Retrieve"},
                        },
                    },
                    {
                        "name": "Has HbA1c Above 6.5",
                        "context": "Patient",
                        "accessLevel": "Public",
                        "expression": {"type": "Exists", "operand": None},
                    },
                ]
            },
        }
    }


@pytest.fixture
def diabetes_elm_v2(diabetes_elm_v1) -> dict:
    """Same library, version 2.0.0."""
    doc = copy.deepcopy(diabetes_elm_v1)
    doc["library"]["identifier"]["version"] = "2.0.0"
    return doc


@pytest.fixture
def store(diabetes_elm_v1):
    """Store holding DiabetesScreening 1.0.0 under 'diabetes-screening'."""
    from elm_cdr.storage import InMemoryLibraryStore

    s = InMemoryLibraryStore()
    s.add(diabetes_elm_v1, library_id="diabetes-screening")
    return s


@pytest.fixture
def unvalidated_settings():
    """Settings with validation disabled."""
    from elm_cdr.config import Settings, ValidationSettings

    return Settings(validation=ValidationSettings(MODAL_VALIDATION_URL=""))
