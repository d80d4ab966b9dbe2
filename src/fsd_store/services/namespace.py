"""Namespace resolution: logical folder names to physical folder ids.

Folders are created on first use and never deleted here. Two concurrent
first resolutions of the same name may both create a folder; later lookups
then see duplicates and fall under the adapter's duplicate-name policy.
"""

from __future__ import annotations

import logging
from typing import Optional

from fsd_store.persistence.protocols import IDocumentAdapter

log = logging.getLogger(__name__)

# Sub-folders of the application root folder
SCHEDULES_FOLDER = "SCHEDULES"
MANUALS_FOLDER = "MANUALS"
PART_LISTS_FOLDER = "PART_LISTS"
INPUT_SCREENSHOTS_FOLDER = "INPUT_SCREENSHOTS"
ERROR_CODE_PDFS_FOLDER = "Error Code PDFs"
FAULT_CODES_FOLDER = "Fault codes"

ROOT_SUBFOLDERS = (
    SCHEDULES_FOLDER,
    MANUALS_FOLDER,
    PART_LISTS_FOLDER,
    INPUT_SCREENSHOTS_FOLDER,
    ERROR_CODE_PDFS_FOLDER,
    FAULT_CODES_FOLDER,
)


class NamespaceResolver:
    """Find-or-create folders by name, memoizing resolved ids in-process."""

    def __init__(self, adapter: IDocumentAdapter) -> None:
        self._adapter = adapter
        self._resolved: dict[tuple[Optional[str], str], str] = {}

    async def resolve(self, name: str, parent: Optional[str] = None) -> str:
        """Return the id of folder *name* under *parent*, creating it if missing.

        Transport and permission errors propagate unchanged.
        """
        if not name or not name.strip():
            raise ValueError("Folder name must be non-empty")

        key = (parent, name)
        if key in self._resolved:
            return self._resolved[key]

        ref = await self._adapter.find_folder(name, parent)
        if ref is None:
            ref = await self._adapter.create_folder(name, parent)
            log.info("Created folder %r under %s -> %s", name, parent or "root", ref.id)
        else:
            log.debug("Resolved folder %r under %s -> %s", name, parent or "root", ref.id)

        self._resolved[key] = ref.id
        return ref.id

    async def lookup(self, name: str, parent: Optional[str] = None) -> str | None:
        """Like ``resolve`` but never creates: None if the folder does not exist."""
        key = (parent, name)
        if key in self._resolved:
            return self._resolved[key]
        ref = await self._adapter.find_folder(name, parent)
        if ref is None:
            return None
        self._resolved[key] = ref.id
        return ref.id

    async def resolve_path(self, *names: str) -> str:
        """Resolve a chain of nested folder names starting at the account root."""
        if not names:
            raise ValueError("resolve_path needs at least one folder name")
        parent: Optional[str] = None
        for name in names:
            parent = await self.resolve(name, parent)
        assert parent is not None
        return parent

    def forget(self) -> None:
        """Drop memoized ids, e.g. after folders were reorganized externally."""
        self._resolved.clear()
