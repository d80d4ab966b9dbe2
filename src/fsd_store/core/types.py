"""Shared type aliases for the store layer."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

# JSON object as stored in one remote file
JsonDict = dict[str, Any]

# Physical folder / file identifiers on the backend
FolderId = str
RefId = str

# Async bearer-token source for the Drive adapter
TokenProvider = Callable[[], Awaitable[str]]
