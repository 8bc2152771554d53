"""
ELM CDR API Layer

FastAPI interface.
"""

from elm_cdr.api.routes import create_app, retrieve_library, router

__all__ = ["create_app", "retrieve_library", "router"]
