"""Duplicate-name policy for backends that allow several files with one name."""

from __future__ import annotations

import logging
from typing import Literal

from fsd_store.exceptions import AmbiguousNameError
from fsd_store.models import FileRef

log = logging.getLogger(__name__)

DuplicatePolicy = Literal["first", "error"]


def select_match(
    matches: list[FileRef],
    name: str,
    policy: DuplicatePolicy = "first",
) -> FileRef | None:
    """Pick the single reference for *name* out of a search result.

    Search results are unordered, so ``first`` is a convention and not a
    guarantee: it is logged every time it has to choose.
    """
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]

    candidates = [m.id for m in matches]
    if policy == "error":
        raise AmbiguousNameError(name, candidates)

    log.warning("Found %d files named %r, using %s (candidates: %s)", len(matches), name, matches[0].id, candidates)
    return matches[0]
