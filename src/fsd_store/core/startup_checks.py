"""Startup validation: fail-fast on critical misconfigurations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fsd_store.core.config import AppSettings

log = logging.getLogger(__name__)


def validate_settings(settings: AppSettings, *, has_token_provider: bool = False) -> None:
    """Validate settings before building a store. Raises ValueError on fatal misconfig."""
    _check_drive_token(settings, has_token_provider)
    _check_backend(settings)
    _check_layout(settings)


def _check_drive_token(settings: AppSettings, has_token_provider: bool) -> None:
    """The Drive backend cannot make a single call without a bearer token."""
    if settings.backend.kind == "drive" and not settings.drive.access_token and not has_token_provider:
        raise ValueError(
            "FSD_DRIVE_ACCESS_TOKEN is required for the drive backend. "
            "Set it via environment variable or pass a token provider."
        )


def _check_backend(settings: AppSettings) -> None:
    """Warn about the memory backend, which forgets everything on exit."""
    if settings.backend.kind == "memory":
        log.warning(
            "FSD_BACKEND_KIND=memory keeps documents in process memory only. "
            "Nothing is persisted once the process exits."
        )


def _check_layout(settings: AppSettings) -> None:
    """No non-entity file may be mistaken for an entity during rebuild."""
    layout = settings.layout
    if not layout.entity_prefix:
        raise ValueError("FSD_LAYOUT_ENTITY_PREFIX must not be empty")
    for name in (layout.manifest_file, layout.calendar_file, layout.schedule_file, layout.day_details_file):
        if name.startswith(layout.entity_prefix):
            raise ValueError(
                f"{name!r} starts with the entity prefix {layout.entity_prefix!r} "
                "and would be read back as an entity during rebuild."
            )
