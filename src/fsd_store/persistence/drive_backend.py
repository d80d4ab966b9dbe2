"""Google Drive document adapter: Drive v3 REST over ``httpx``.

Search goes through Drive's ``q`` query language, content reads use
``alt=media`` and create/update are single ``multipart/related`` uploads
(JSON metadata part followed by the content part).
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Optional

import httpx

from fsd_store.core.types import TokenProvider
from fsd_store.exceptions import DocumentNotFound, RateLimited, StoreUnavailable
from fsd_store.models import FOLDER_MIME_TYPE, JSON_MIME_TYPE, FileRef
from fsd_store.persistence.matching import DuplicatePolicy, select_match

log = logging.getLogger(__name__)

ROOT = "root"
FILE_FIELDS = "id,name,mimeType,parents"
_RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside single quotes in a Drive query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _error_reasons(response: httpx.Response) -> set[str]:
    try:
        body = response.json()
    except ValueError:
        return set()
    errors = body.get("error", {}).get("errors", []) if isinstance(body, dict) else []
    return {e.get("reason", "") for e in errors if isinstance(e, dict)}


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def raise_for_drive_status(response: httpx.Response) -> None:
    """Map a non-2xx Drive response onto the store's error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimited(
            f"Drive rate limit: {response.request.method} {response.request.url.path}",
            status_code=429,
            retry_after=_retry_after(response),
        )
    if status == 403 and _error_reasons(response) & _RATE_LIMIT_REASONS:
        raise RateLimited(
            f"Drive quota exceeded: {response.request.method} {response.request.url.path}",
            status_code=403,
            retry_after=_retry_after(response),
        )
    raise StoreUnavailable(
        f"Drive returned {status} for {response.request.method} {response.request.url.path}",
        status_code=status,
    )


def build_multipart_body(metadata: dict[str, Any], content: bytes) -> tuple[bytes, str]:
    """Encode a ``multipart/related`` upload body, returning ``(body, content_type)``."""
    boundary = f"fsd-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {metadata.get('mimeType', JSON_MIME_TYPE)}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + content + tail, f"multipart/related; boundary={boundary}"


class DriveDocumentAdapter:
    """Async Drive v3 client implementing ``IDocumentAdapter``.

    Either a static ``access_token`` or an async ``token_provider`` must be
    given; token acquisition and refresh belong to the caller.
    """

    def __init__(
        self,
        *,
        access_token: str = "",
        token_provider: TokenProvider | None = None,
        api_base_url: str = "https://www.googleapis.com/drive/v3",
        upload_base_url: str = "https://www.googleapis.com/upload/drive/v3",
        timeout: float = 30.0,
        duplicate_policy: DuplicatePolicy = "first",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not access_token and token_provider is None:
            raise ValueError("DriveDocumentAdapter needs an access_token or a token_provider")
        self._access_token = access_token
        self._token_provider = token_provider
        self._api = api_base_url.rstrip("/")
        self._upload = upload_base_url.rstrip("/")
        self._policy = duplicate_policy
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._token_provider() if self._token_provider else self._access_token
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        ref_id: str | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request. A 404 becomes ``DocumentNotFound`` when *ref_id* is given."""
        all_headers = await self._auth_headers()
        if headers:
            all_headers.update(headers)
        try:
            response = await self._client.request(method, url, headers=all_headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"Drive request failed: {method} {url}: {e}") from e

        if response.status_code == 404 and ref_id is not None:
            raise DocumentNotFound(ref_id)
        raise_for_drive_status(response)
        return response

    async def _search(self, query: str) -> list[FileRef]:
        refs: list[FileRef] = []
        params: dict[str, Any] = {
            "q": query,
            "fields": f"nextPageToken,files({FILE_FIELDS})",
            "spaces": "drive",
            "pageSize": 1000,
        }
        while True:
            response = await self._request("GET", f"{self._api}/files", params=params)
            body = response.json()
            refs.extend(FileRef.model_validate(f) for f in body.get("files", []))
            token = body.get("nextPageToken")
            if not token:
                return refs
            params["pageToken"] = token

    # ── Folders ──────────────────────────────────────────────────────

    async def find_folder(self, name: str, parent: Optional[str] = None) -> FileRef | None:
        query = (
            f"mimeType='{FOLDER_MIME_TYPE}' and name='{escape_query_value(name)}' "
            f"and '{escape_query_value(parent or ROOT)}' in parents and trashed=false"
        )
        return select_match(await self._search(query), name, self._policy)

    async def create_folder(self, name: str, parent: Optional[str] = None) -> FileRef:
        metadata = {"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent or ROOT]}
        response = await self._request(
            "POST",
            f"{self._api}/files",
            params={"fields": FILE_FIELDS},
            json=metadata,
        )
        ref = FileRef.model_validate(response.json())
        log.info("Created Drive folder %r (%s)", name, ref.id)
        return ref

    # ── Files ────────────────────────────────────────────────────────

    async def find_by_name(self, folder: str, name: str) -> FileRef | None:
        query = (
            f"name='{escape_query_value(name)}' and '{escape_query_value(folder)}' in parents "
            "and trashed=false"
        )
        return select_match(await self._search(query), name, self._policy)

    async def list_by_prefix(self, folder: str, prefix: str) -> list[FileRef]:
        query = (
            f"'{escape_query_value(folder)}' in parents and trashed=false "
            f"and name contains '{escape_query_value(prefix)}' and mimeType!='{FOLDER_MIME_TYPE}'"
        )
        # ``contains`` also matches mid-name words; keep true prefixes only
        return [ref for ref in await self._search(query) if ref.name.startswith(prefix)]

    async def read_content(self, ref_id: str) -> bytes:
        response = await self._request(
            "GET",
            f"{self._api}/files/{ref_id}",
            params={"alt": "media"},
            ref_id=ref_id,
        )
        return response.content

    async def create(self, folder: str, name: str, content: bytes) -> FileRef:
        metadata = {"name": name, "parents": [folder], "mimeType": JSON_MIME_TYPE}
        body, content_type = build_multipart_body(metadata, content)
        response = await self._request(
            "POST",
            f"{self._upload}/files",
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            headers={"Content-Type": content_type},
            content=body,
        )
        return FileRef.model_validate(response.json())

    async def update(self, ref_id: str, content: bytes) -> FileRef:
        # Drive rejects ``parents`` on update; the file stays where it is
        body, content_type = build_multipart_body({"mimeType": JSON_MIME_TYPE}, content)
        response = await self._request(
            "PATCH",
            f"{self._upload}/files/{ref_id}",
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            headers={"Content-Type": content_type},
            content=body,
            ref_id=ref_id,
        )
        return FileRef.model_validate(response.json())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
