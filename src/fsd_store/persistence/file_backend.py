"""File-based document adapter: folders and JSON files on the local filesystem."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fsd_store.exceptions import DocumentNotFound, StoreUnavailable
from fsd_store.models import FOLDER_MIME_TYPE, JSON_MIME_TYPE, FileRef

log = logging.getLogger(__name__)

ROOT = "root"


class FileDocumentAdapter:
    """Mirrors the backend layout under a local directory.

    Reference ids are POSIX paths relative to the base directory; the
    account root is the base directory itself. A directory cannot hold two
    entries with one name, so lookups are never ambiguous here.
    """

    def __init__(self, base_path: Path) -> None:
        base_path.mkdir(parents=True, exist_ok=True)
        self._base = base_path.resolve()

    @staticmethod
    def _safe_name(name: str) -> str:
        return name.replace("/", "_").replace("\\", "_")

    def _dir(self, folder: Optional[str]) -> Path:
        if not folder or folder == ROOT:
            return self._base
        return self._base / folder

    def _ref(self, path: Path, *, mime_type: str = JSON_MIME_TYPE) -> FileRef:
        rel = path.relative_to(self._base)
        parent = rel.parent.as_posix()
        return FileRef(
            id=rel.as_posix(),
            name=path.name,
            mime_type=mime_type,
            parents=[ROOT if parent == "." else parent],
        )

    def _path(self, ref_id: str) -> Path:
        path = (self._base / ref_id).resolve()
        if self._base not in path.parents:
            raise DocumentNotFound(ref_id)
        return path

    # ── Folders ──────────────────────────────────────────────────────

    async def find_folder(self, name: str, parent: Optional[str] = None) -> FileRef | None:
        path = self._dir(parent) / self._safe_name(name)
        if not path.is_dir():
            return None
        return self._ref(path, mime_type=FOLDER_MIME_TYPE)

    async def create_folder(self, name: str, parent: Optional[str] = None) -> FileRef:
        path = self._dir(parent) / self._safe_name(name)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"Cannot create folder {path}: {e}") from e
        return self._ref(path, mime_type=FOLDER_MIME_TYPE)

    # ── Files ────────────────────────────────────────────────────────

    async def find_by_name(self, folder: str, name: str) -> FileRef | None:
        path = self._dir(folder) / self._safe_name(name)
        if not path.is_file():
            return None
        return self._ref(path)

    async def list_by_prefix(self, folder: str, prefix: str) -> list[FileRef]:
        directory = self._dir(folder)
        if not directory.is_dir():
            return []
        return [self._ref(p) for p in sorted(directory.iterdir()) if p.is_file() and p.name.startswith(prefix)]

    async def read_content(self, ref_id: str) -> bytes:
        path = self._path(ref_id)
        if not path.is_file():
            raise DocumentNotFound(ref_id)
        return path.read_bytes()

    async def create(self, folder: str, name: str, content: bytes) -> FileRef:
        path = self._dir(folder) / self._safe_name(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {path}: {e}") from e
        log.debug("Created %s", path)
        return self._ref(path)

    async def update(self, ref_id: str, content: bytes) -> FileRef:
        path = self._path(ref_id)
        if not path.is_file():
            raise DocumentNotFound(ref_id)
        try:
            path.write_bytes(content)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {path}: {e}") from e
        return self._ref(path)

    async def aclose(self) -> None:
        return None
