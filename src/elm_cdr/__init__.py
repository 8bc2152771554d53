"""
ELM CDR

Retrieval endpoint for loaded ELM clinical-logic libraries, with remote
validation before they are handed to the caller.
"""

__version__ = "0.1.0"

from elm_cdr.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
