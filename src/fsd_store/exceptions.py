"""Exception hierarchy for fsd-store."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for all fsd-store errors."""


class StoreUnavailable(StoreError):
    """Transport, auth or permission failure talking to the file backend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimited(StoreError):
    """The backend throttled the request (HTTP 429 or a rate-limit 403)."""

    def __init__(
        self,
        message: str,
        status_code: int = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class DocumentNotFound(StoreError):
    """A file reference no longer resolves on the backend."""

    def __init__(self, ref_id: str) -> None:
        super().__init__(f"Document not found: {ref_id}")
        self.ref_id = ref_id


class MalformedDocument(StoreError):
    """A stored document could not be decoded as JSON."""

    def __init__(self, message: str, raw: bytes = b"") -> None:
        super().__init__(message)
        self.raw = raw


class MalformedManifest(MalformedDocument):
    """The persisted manifest is not a well-formed entry list."""


class AmbiguousNameError(StoreError):
    """More than one file or folder matched a name that should be unique."""

    def __init__(self, name: str, candidates: list[str]) -> None:
        super().__init__(f"{len(candidates)} candidates named {name!r}: {', '.join(candidates)}")
        self.name = name
        self.candidates = candidates


__all__ = [
    "StoreError",
    "StoreUnavailable",
    "RateLimited",
    "DocumentNotFound",
    "MalformedDocument",
    "MalformedManifest",
    "AmbiguousNameError",
]
