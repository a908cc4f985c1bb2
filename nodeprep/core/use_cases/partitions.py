"""
Partition queries — key preview and cache listing.

Read-only counterparts of the prepare run: nothing is restored,
installed or saved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nodeprep.adapters.cache.store import LocalCacheAdapter
from nodeprep.adapters.registry import AdapterRegistry
from nodeprep.core.engine.lockfiles import find_lockfiles
from nodeprep.core.engine.planner import InstallPlanner
from nodeprep.core.errors import PrepareError
from nodeprep.core.models.action import Action
from nodeprep.core.models.inputs import ActionInputs

logger = logging.getLogger(__name__)


@dataclass
class KeyResult:
    """Cache key a run would use for a working tree."""

    key: str | None = None
    mode: str = ""
    digest: str = ""
    platform_id: str = ""
    lockfiles: list[str] = field(default_factory=list)
    cached: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error}
        return {
            "key": self.key,
            "platform": self.platform_id,
            "mode": self.mode,
            "digest": self.digest,
            "lockfiles": self.lockfiles,
            "cached": self.cached,
        }


def compute_key(
    project_root: Path,
    inputs: ActionInputs,
    cache_dir: Path | None = None,
    platform_id: str | None = None,
) -> KeyResult:
    store = LocalCacheAdapter(cache_dir)
    planner = InstallPlanner(AdapterRegistry(), platform_id=platform_id)
    result = KeyResult(platform_id=planner.platform_id)
    try:
        key = planner.cache_key(inputs, project_root)
    except PrepareError as e:
        result.error = str(e)
        return result

    result.key = key.render()
    result.mode = key.mode.value
    result.digest = key.digest
    result.lockfiles = [p.relative_to(project_root).as_posix() for p in find_lockfiles(project_root)]
    result.cached = store.archive_path(result.key).is_file()
    return result


def list_partitions(cache_dir: Path | None = None) -> dict[str, Any]:
    """Stored partitions as ``{"cache_dir", "count", "entries"}``."""
    registry = AdapterRegistry()
    registry.register(LocalCacheAdapter(cache_dir))
    receipt = registry.execute_action(
        Action(id="cache:list", adapter="cache", params={"operation": "list"}),
    )
    if receipt.failed:
        return {"error": receipt.error}
    return {
        "cache_dir": receipt.metadata["cache_dir"],
        "count": receipt.metadata["count"],
        "entries": receipt.metadata["entries"],
    }
