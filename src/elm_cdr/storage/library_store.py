"""
Library Store

In-memory index of loaded ELM libraries, addressed by library id and version.

The endpoint depends only on the `LibraryStore` protocol; whoever owns the
process registers documents into an `InMemoryLibraryStore` and hands it to
`create_app`. Reading and parsing ELM files is not done here.
"""

import logging
import re
from threading import Lock
from typing import Any, Protocol, runtime_checkable

from elm_cdr.core.exceptions import LibraryNotFoundError, LibraryRegistrationError
from elm_cdr.core.schemas import LibraryRecord


logger = logging.getLogger(__name__)

_VERSION_SPLIT = re.compile(r"[.\-+_]")


@runtime_checkable
class LibraryStore(Protocol):
    """Read-only lookup contract used by the retrieval endpoint."""

    def resolve(self, library_id: str, version: str) -> LibraryRecord | None: ...

    def resolve_latest(self, library_id: str) -> LibraryRecord | None: ...


def version_sort_key(version: str | None) -> tuple:
    """
    Ordering key for library versions.

    Segments are compared numerically when both are digits, so "10.0.0"
    sorts after "9.1.0". Text segments sort before numeric ones; an
    unversioned library sorts first.
    """
    if not version:
        return ()
    key = []
    for part in _VERSION_SPLIT.split(version):
        if part.isdigit():
            key.append((1, int(part), ""))
        else:
            key.append((0, 0, part))
    return tuple(key)


class InMemoryLibraryStore:
    """
    Thread-safe in-memory library index.

    Usage:
        store = InMemoryLibraryStore()
        store.add(elm_json, library_id="diabetes-screening")
        record = store.resolve_latest("diabetes-screening")
    """

    def __init__(self, libraries: list[dict[str, Any]] | None = None) -> None:
        """
        Initialize store.

        Args:
            libraries: ELM documents to register up front, keyed by their
                own identifier.
        """
        self._records: dict[str, dict[str | None, LibraryRecord]] = {}
        self._lock = Lock()
        for source in libraries or []:
            self.add(source)

    def add(
        self,
        source: dict[str, Any],
        library_id: str | None = None,
        version: str | None = None,
    ) -> LibraryRecord:
        """
        Register an ELM document.

        Args:
            source: ELM JSON document.
            library_id: Store key (defaults to `library.identifier.id`).
            version: Version key (defaults to `library.identifier.version`).

        Returns:
            The stored record. Re-adding the same id/version replaces it.

        Raises:
            LibraryRegistrationError: The document declares no identifier id.
        """
        identifier = (source.get("library") or {}).get("identifier") or {}
        name = identifier.get("id")
        if not name:
            raise LibraryRegistrationError(
                "ELM document has no library.identifier.id", library_id=library_id
            )

        record = LibraryRecord(
            library_id=library_id or name,
            version=version or identifier.get("version"),
            source=source,
        )
        with self._lock:
            self._records.setdefault(record.library_id, {})[record.version] = record

        logger.debug("Registered library %s %s", record.library_id, record.version)
        return record

    def resolve(self, library_id: str, version: str) -> LibraryRecord | None:
        """Get a specific version, or None."""
        with self._lock:
            return self._records.get(library_id, {}).get(version)

    def resolve_latest(self, library_id: str) -> LibraryRecord | None:
        """Get the highest registered version, or None."""
        with self._lock:
            versions = self._records.get(library_id)
            if not versions:
                return None
            latest = max(versions, key=version_sort_key)
            return versions[latest]

    def get(self, library_id: str, version: str | None = None) -> LibraryRecord:
        """
        Resolve or raise.

        Raises:
            LibraryNotFoundError: No matching record.
        """
        record = (
            self.resolve(library_id, version) if version else self.resolve_latest(library_id)
        )
        if record is None:
            raise LibraryNotFoundError(library_id, version)
        return record

    def remove(self, library_id: str, version: str | None = None) -> bool:
        """Remove one version, or every version when `version` is None."""
        with self._lock:
            versions = self._records.get(library_id)
            if versions is None:
                return False
            if version is None:
                del self._records[library_id]
                return True
            if version not in versions:
                return False
            del versions[version]
            if not versions:
                del self._records[library_id]
            return True

    def list_libraries(self) -> list[tuple[str, str | None]]:
        """All (library_id, version) keys, sorted."""
        with self._lock:
            return sorted(
                (
                    (library_id, version)
                    for library_id, versions in self._records.items()
                    for version in versions
                ),
                key=lambda k: (k[0], version_sort_key(k[1])),
            )

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._records.values())

    def __contains__(self, library_id: object) -> bool:
        with self._lock:
            return library_id in self._records
