"""
Install planner — the cache-aware install decision.

Flow:
    inputs → lockfile digest → cache key → restore → (hit | install → save)

The planner owns the decision only. Every side effect (restoring and
saving partitions, running npm) goes through the adapter registry as
an Action, and every failed Receipt is translated into the matching
error from ``nodeprep.core.errors``.
"""

from __future__ import annotations

import logging
import os
import platform
import threading
from pathlib import Path

from nodeprep.adapters.registry import AdapterRegistry
from nodeprep.core.engine.lockfiles import compute_digest
from nodeprep.core.errors import (
    STEP_CACHE_RESTORE,
    STEP_CACHE_SAVE,
    STEP_INSTALL,
    CacheRestoreError,
    CacheSaveError,
    InstallFailed,
    TimeoutExceeded,
)
from nodeprep.core.models.action import Action
from nodeprep.core.models.cache import CacheKey, InstallMode, InstallOutcome
from nodeprep.core.models.inputs import ActionInputs

logger = logging.getLogger(__name__)

DEPENDENCY_DIR = "node_modules"


def detect_platform_id() -> str:
    """CI runner OS name (``$RUNNER_OS``), else the local system name."""
    return os.environ.get("RUNNER_OS") or platform.system() or "unknown"


def build_cache_key(platform_id: str, production: bool, digest: str) -> CacheKey:
    """Key of the partition for this platform, mode and lockfile state."""
    return CacheKey(
        os=platform_id,
        mode=InstallMode.from_production(production),
        digest=digest,
    )


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise TimeoutExceeded("Cancelled before install")


class InstallPlanner:
    """Decides whether to install and from which partition.

    Args:
        registry: Dispatcher holding the cache and node adapters.
        platform_id: Platform component of the key (default: detected).
        operation_id: Prefix for the IDs of dispatched actions.
        cache_adapter: Registry name of the partition store.
        node_adapter: Registry name of the package manager adapter.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        platform_id: str | None = None,
        operation_id: str = "plan",
        cache_adapter: str = "cache",
        node_adapter: str = "node",
    ):
        self._registry = registry
        self._platform_id = platform_id or detect_platform_id()
        self._operation_id = operation_id
        self._cache_adapter = cache_adapter
        self._node_adapter = node_adapter
        self.last_key: CacheKey | None = None

    @property
    def platform_id(self) -> str:
        return self._platform_id

    def cache_key(self, inputs: ActionInputs, root: Path) -> CacheKey:
        """Compute the partition key without touching the cache.

        Raises:
            LockfileMissing: If the tree holds no lockfile.
        """
        digest = compute_digest(root)
        return build_cache_key(self._platform_id, inputs.production, digest)

    def plan(
        self,
        inputs: ActionInputs,
        root: Path,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> InstallOutcome:
        """Restore or install the dependency tree for ``root``.

        Returns:
            CACHE_HIT or CACHE_MISS_INSTALLED.

        Raises:
            LockfileMissing: No lockfile; nothing is restored or installed.
            InstallFailed: npm exited nonzero. Nothing is saved.
            TimeoutExceeded: npm was aborted by the deadline or cancel signal,
                or the run was cancelled before restoring or installing.
        """
        key = self.cache_key(inputs, root)
        self.last_key = key
        logger.info("Cache key: %s", key)
        _check_cancelled(cancel_event)

        try:
            if self._restore(key, root):
                return InstallOutcome.CACHE_HIT
        except CacheRestoreError as e:
            logger.warning("%s, falling back to install", e)

        _check_cancelled(cancel_event)
        self._install(key.mode, root, timeout=timeout, cancel_event=cancel_event)

        try:
            self._save(key, root)
        except CacheSaveError as e:
            logger.warning("%s, continuing without caching", e)

        return InstallOutcome.CACHE_MISS_INSTALLED

    # ── Steps ───────────────────────────────────────────────────

    def _action(self, step: str, adapter: str, **params) -> Action:
        return Action(
            id=f"{self._operation_id}:{step}",
            adapter=adapter,
            step=step,
            params=params,
        )

    def _restore(self, key: CacheKey, root: Path) -> bool:
        action = self._action(
            STEP_CACHE_RESTORE,
            self._cache_adapter,
            operation="restore",
            key=key.render(),
            path=DEPENDENCY_DIR,
        )
        receipt = self._registry.execute_action(action, project_root=str(root))
        if receipt.failed:
            raise CacheRestoreError(receipt.error or "restore failed")
        return bool(receipt.metadata.get("hit", False))

    def _install(
        self,
        mode: InstallMode,
        root: Path,
        *,
        timeout: float | None,
        cancel_event: threading.Event | None,
    ) -> None:
        action = self._action(
            STEP_INSTALL,
            self._node_adapter,
            operation="install",
            mode=mode.value,
            scripts_enabled=False,
        )
        receipt = self._registry.execute_action(
            action,
            project_root=str(root),
            timeout=timeout,
            cancel_event=cancel_event,
        )
        if receipt.ok:
            logger.info("Installed %s dependencies in %dms", mode.value, receipt.duration_ms)
            return

        if receipt.timed_out:
            raise TimeoutExceeded(receipt.error or "install timed out")
        raise InstallFailed(
            receipt.error or "install failed",
            exit_code=receipt.return_code,
        )

    def _save(self, key: CacheKey, root: Path) -> None:
        action = self._action(
            STEP_CACHE_SAVE,
            self._cache_adapter,
            operation="save",
            key=key.render(),
            path=DEPENDENCY_DIR,
        )
        receipt = self._registry.execute_action(action, project_root=str(root))
        if receipt.failed:
            raise CacheSaveError(receipt.error or "save failed")
