#!/usr/bin/env python3
"""
Example: Retrieve an ELM library from Python

Registers an ELM document in an in-memory store, builds the app around it
and calls the retrieval endpoint in-process.

Requirements:
    pip install -e ".[test]"

Usage:
    python examples/retrieve_library.py                   # validation off
    MODAL_VALIDATION_URL=https://... python examples/retrieve_library.py
"""

import json
import os

from fastapi.testclient import TestClient

from elm_cdr.api import create_app
from elm_cdr.config import Settings, ValidationSettings
from elm_cdr.storage import InMemoryLibraryStore


SAMPLE_ELM = {
    "library": {
        "identifier": {"id": "DiabetesScreening", "version": "1.0.0"},
        "schemaIdentifier": {"id": "urn:hl7-org:elm", "version": "r1"},
        "statements": {
            "def": [
                {
                    "name": "Patient",
                    "context": "Patient",
                    "expression": {"type": "SingletonFrom"},
                }
            ]
        },
    }
}


def main():
    """Retrieve the sample library and print the response."""
    store = InMemoryLibraryStore()
    store.add(SAMPLE_ELM, library_id="diabetes-screening")

    settings = Settings(
        validation=ValidationSettings(
            MODAL_VALIDATION_URL=os.environ.get("MODAL_VALIDATION_URL", "")
        )
    )
    app = create_app(store=store, settings=settings)

    with TestClient(app) as client:
        response = client.post("/diabetes-screening")

    print(f"Status: {response.status_code}")
    print(json.dumps(response.json(), indent=2))


if __name__ == "__main__":
    main()
