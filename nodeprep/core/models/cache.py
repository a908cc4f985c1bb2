"""
Cache partition models — install mode, cache key, run outcome.

A partition is scoped by platform, install mode and lockfile digest.
The mode sits in the key on its own so a dev run can never be served
a production-only node_modules tree, or the other way around.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator


class InstallMode(StrEnum):
    """Which dependency set gets installed."""

    DEV = "dev"
    PROD = "prod"

    @classmethod
    def from_production(cls, production: bool) -> InstallMode:
        return cls.PROD if production else cls.DEV


class InstallOutcome(StrEnum):
    """How the dependency tree ended up in place."""

    CACHE_HIT = "cache-hit"
    CACHE_MISS_INSTALLED = "cache-miss-installed"
    CACHE_MISS_INSTALL_FAILED = "cache-miss-install-failed"


class CacheKey(BaseModel):
    """Composite key of a cache partition: ``(os, mode, digest)``."""

    model_config = ConfigDict(frozen=True)

    os: str
    mode: InstallMode
    digest: str

    @field_validator("os")
    @classmethod
    def _no_separator_spaces(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("platform id must not be empty")
        return value.replace(" ", "_")

    def render(self) -> str:
        """String form used to name the stored partition."""
        return f"{self.os}-node-modules-{self.mode.value}-{self.digest}"

    def __str__(self) -> str:
        return self.render()
