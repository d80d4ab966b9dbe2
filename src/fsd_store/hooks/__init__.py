"""Process-wide hooks: logging setup."""

from __future__ import annotations

from fsd_store.hooks.logging_config import setup_logging

__all__ = ["setup_logging"]
