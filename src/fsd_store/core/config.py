"""Nested pydantic-settings configuration for the store.

Each group reads its own ``FSD_<GROUP>_*`` env vars, e.g.::

    export FSD_BACKEND_KIND=drive
    export FSD_DRIVE_ACCESS_TOKEN=ya29....
    export FSD_MANIFEST_TTL_SECONDS=120
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_SUMMARY_FIELDS = [
    "customerName",
    "address",
    "timeSlot",
    "status",
    "priority",
    "modelNumber",
]


class BackendConfig(BaseSettings):
    """Which document adapter to use.

    Env vars use ``FSD_BACKEND_`` prefix.
    """

    model_config = {"env_prefix": "FSD_BACKEND_"}

    kind: Literal["drive", "file", "memory"] = "drive"
    store_path: Path = Path("./fsd-data")


class DriveConfig(BaseSettings):
    """Google Drive REST configuration.

    Env vars use ``FSD_DRIVE_`` prefix::

        export FSD_DRIVE_ACCESS_TOKEN=ya29....
        export FSD_DRIVE_TIMEOUT_SECONDS=30
    """

    model_config = {"env_prefix": "FSD_DRIVE_"}

    access_token: str = ""
    api_base_url: str = "https://www.googleapis.com/drive/v3"
    upload_base_url: str = "https://www.googleapis.com/upload/drive/v3"
    timeout_seconds: float = 30.0


class LayoutConfig(BaseSettings):
    """Folder and file naming on the backend.

    Env vars use ``FSD_LAYOUT_`` prefix.
    """

    model_config = {"env_prefix": "FSD_LAYOUT_"}

    root_folder: str = "FSD_PRO_DATA"
    knowledge_folder: str = "FSD_PRO_KNOWLEDGE"
    manifest_file: str = "manifest.json"
    calendar_file: str = "calendar.json"
    schedule_file: str = "schedule.json"
    day_details_file: str = "day_details.json"
    entity_prefix: str = "job_"
    duplicate_policy: Literal["first", "error"] = "first"


class ManifestConfig(BaseSettings):
    """Manifest index caching.

    Env vars use ``FSD_MANIFEST_`` prefix.
    """

    model_config = {"env_prefix": "FSD_MANIFEST_"}

    ttl_seconds: float = Field(default=300.0, ge=0.0)
    summary_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_SUMMARY_FIELDS))


class RebuildConfig(BaseSettings):
    """Rebuild engine fan-out.

    Env vars use ``FSD_REBUILD_`` prefix.
    """

    model_config = {"env_prefix": "FSD_REBUILD_"}

    max_concurrent: int = Field(default=8, ge=1)


class SyncConfig(BaseSettings):
    """Background sync queue retry policy.

    Env vars use ``FSD_SYNC_`` prefix.
    """

    model_config = {"env_prefix": "FSD_SYNC_"}

    max_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=1.0, ge=0.0)


class ObservabilityConfig(BaseSettings):
    """Logging configuration.

    Env vars use ``FSD_OBSERVABILITY_`` prefix.
    """

    model_config = {"env_prefix": "FSD_OBSERVABILITY_"}

    log_level: str = "INFO"
    # auto: console renderer on a TTY, JSON lines otherwise
    log_format: Literal["auto", "console", "json"] = "auto"


class AppSettings(BaseSettings):
    """Top-level settings aggregating all sub-configs.

    Each sub-config reads its own ``FSD_<GROUP>_*`` env vars.
    """

    backend: BackendConfig = Field(default_factory=BackendConfig)
    drive: DriveConfig = Field(default_factory=DriveConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    manifest: ManifestConfig = Field(default_factory=ManifestConfig)
    rebuild: RebuildConfig = Field(default_factory=RebuildConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
