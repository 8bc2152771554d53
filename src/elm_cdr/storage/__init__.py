"""
ELM CDR Storage Layer

In-memory library index.
"""

from elm_cdr.storage.library_store import (
    InMemoryLibraryStore,
    LibraryStore,
    version_sort_key,
)

__all__ = [
    "InMemoryLibraryStore",
    "LibraryStore",
    "version_sort_key",
]
