"""
Prepare use case — get a Node project ready to build in CI.

This is the top-level orchestrator: checkout, runtime verification,
then the install planner. Steps run strictly in order and the first
fatal error ends the run; the result names the step that failed.
Every run is recorded in the audit ledger.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from nodeprep.adapters.cache.store import LocalCacheAdapter, default_cache_dir
from nodeprep.adapters.registry import AdapterRegistry
from nodeprep.core.engine.planner import InstallPlanner
from nodeprep.core.errors import (
    STEP_CHECKOUT,
    STEP_RUNTIME,
    CheckoutFailed,
    InstallFailed,
    PrepareError,
    RuntimeProvisionError,
    RuntimeVersionFileMalformed,
    RuntimeVersionFileMissing,
)
from nodeprep.core.models.action import Action
from nodeprep.core.models.cache import InstallOutcome
from nodeprep.core.models.inputs import ActionInputs
from nodeprep.core.persistence.audit import AuditEntry, AuditLedger

logger = logging.getLogger(__name__)

_RUNTIME_ERRORS: dict[str, type[PrepareError]] = {
    "version-file-missing": RuntimeVersionFileMissing,
    "version-file-malformed": RuntimeVersionFileMalformed,
}


@dataclass
class PrepareResult:
    """Result of a prepare run."""

    operation_id: str = ""
    project_root: Path | None = None
    inputs: ActionInputs | None = None
    cache_key: str | None = None
    outcome: InstallOutcome | None = None
    head: str | None = None
    node_version: str | None = None
    failed_step: str | None = None
    error: str | None = None
    exit_code: int | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "operation_id": self.operation_id,
            "status": "ok" if self.ok else "failed",
            "project_root": str(self.project_root) if self.project_root else None,
            "inputs": self.inputs.model_dump() if self.inputs else None,
            "cache_key": self.cache_key,
            "outcome": self.outcome.value if self.outcome else None,
            "head": self.head,
            "node_version": self.node_version,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            result["failed_step"] = self.failed_step
            result["error"] = self.error
            if self.exit_code is not None:
                result["exit_code"] = self.exit_code
        return result


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"prep-{now}-{short}"


def default_repository(environ: dict[str, str] | None = None) -> str:
    """Clone URL of the repository a GitHub job runs for, if any."""
    env = os.environ if environ is None else environ
    repo = env.get("GITHUB_REPOSITORY", "")
    if not repo:
        return ""
    server = env.get("GITHUB_SERVER_URL", "https://github.com").rstrip("/")
    return f"{server}/{repo}.git"


def build_registry(cache_dir: Path | None = None, mock_mode: bool = False) -> AdapterRegistry:
    """Registry with the git, node and local cache adapters."""
    from nodeprep.adapters.languages.node import NodeAdapter
    from nodeprep.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(GitAdapter())
    registry.register(NodeAdapter())
    registry.register(LocalCacheAdapter(cache_dir))
    return registry


def prepare(
    project_root: Path,
    inputs: ActionInputs,
    *,
    registry: AdapterRegistry | None = None,
    cache_dir: Path | None = None,
    version_file: str | None = None,
    repository: str | None = None,
    ref: str | None = None,
    platform_id: str | None = None,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
    mock_mode: bool = False,
    audit: bool = True,
) -> PrepareResult:
    """Run checkout, runtime provisioning and the install planner.

    Args:
        project_root: Working tree to prepare.
        inputs: Resolved action inputs.
        registry: Optional pre-configured adapter registry.
        cache_dir: Partition store directory (default: $NODEPREP_CACHE_DIR).
        version_file: Node version specifier file (default: .nvmrc).
        repository: Clone URL when the tree is not checked out yet.
        ref: Commit or branch to check out.
        platform_id: Platform component of the cache key.
        timeout: Install deadline in seconds.
        cancel_event: Set it to abort a running install.
        mock_mode: Use mock adapter responses.
        audit: Append the run to the audit ledger.

    Returns:
        PrepareResult; ``error`` and ``failed_step`` are set on failure.
    """
    cache_dir = cache_dir or default_cache_dir()
    if registry is None:
        registry = build_registry(cache_dir, mock_mode=mock_mode)

    result = PrepareResult(
        operation_id=generate_operation_id(),
        project_root=project_root,
        inputs=inputs,
    )
    start = time.monotonic()
    planner = InstallPlanner(
        registry,
        platform_id=platform_id,
        operation_id=result.operation_id,
    )

    try:
        result.head = _checkout(
            registry,
            result.operation_id,
            project_root,
            inputs,
            repository if repository is not None else default_repository(),
            ref if ref is not None else os.environ.get("GITHUB_SHA", ""),
        )
        result.node_version = _provision_runtime(
            registry, result.operation_id, project_root, version_file,
        )
        result.outcome = planner.plan(
            inputs,
            project_root,
            timeout=timeout,
            cancel_event=cancel_event,
        )
    except PrepareError as e:
        result.failed_step = e.step
        result.error = str(e)
        if isinstance(e, InstallFailed):
            result.outcome = e.outcome
            result.exit_code = e.exit_code
        logger.error("%s", e)

    if planner.last_key is not None:
        result.cache_key = planner.last_key.render()
    result.duration_ms = int((time.monotonic() - start) * 1000)

    if result.ok:
        logger.info(
            "Prepared %s: %s (%s)", project_root, result.outcome, result.cache_key,
        )

    if audit:
        _write_audit(result, AuditLedger.in_cache_dir(cache_dir))

    return result


# ── Steps ───────────────────────────────────────────────────────


def _checkout(
    registry: AdapterRegistry,
    operation_id: str,
    root: Path,
    inputs: ActionInputs,
    repository: str,
    ref: str,
) -> str | None:
    action = Action(
        id=f"{operation_id}:{STEP_CHECKOUT}",
        adapter="git",
        step=STEP_CHECKOUT,
        params={
            "operation": "checkout",
            "enabled": inputs.checkout,
            "repository": repository,
            "ref": ref,
        },
    )
    receipt = registry.execute_action(action, project_root=str(root))
    if receipt.failed:
        raise CheckoutFailed(receipt.error or "checkout failed")
    if receipt.skipped:
        logger.info("Checkout skipped")
        return None
    return receipt.metadata.get("head")


def _provision_runtime(
    registry: AdapterRegistry,
    operation_id: str,
    root: Path,
    version_file: str | None,
) -> str | None:
    action = Action(
        id=f"{operation_id}:{STEP_RUNTIME}",
        adapter="node",
        step=STEP_RUNTIME,
        params={"operation": "setup", "version_file": version_file or ""},
    )
    receipt = registry.execute_action(action, project_root=str(root))
    if receipt.failed:
        error_cls = _RUNTIME_ERRORS.get(
            receipt.metadata.get("error_kind", ""), RuntimeProvisionError,
        )
        raise error_cls(receipt.error or "runtime provisioning failed")
    return receipt.metadata.get("node_version")


def _write_audit(result: PrepareResult, ledger: AuditLedger) -> None:
    inputs = result.inputs or ActionInputs()
    ledger.append(AuditEntry(
        operation_id=result.operation_id,
        project_root=str(result.project_root or ""),
        checkout=inputs.checkout,
        production=inputs.production,
        cache_key=result.cache_key or "",
        status="ok" if result.ok else "failed",
        outcome=result.outcome.value if result.outcome else None,
        failed_step=result.failed_step,
        error=result.error,
        duration_ms=result.duration_ms,
        context={"head": result.head, "node_version": result.node_version},
    ))
