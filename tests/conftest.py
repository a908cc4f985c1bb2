"""
Shared test fixtures and configuration.
"""

import json
import logging
import os
from pathlib import Path

import pytest

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.adapters.cache.store import LocalCacheAdapter
from nodeprep.adapters.mock import MockAdapter
from nodeprep.adapters.registry import AdapterRegistry
from nodeprep.core.models.action import Receipt

LOCKFILE = {
    "name": "demo",
    "lockfileVersion": 3,
    "packages": {"node_modules/left-pad": {"version": "1.3.0"}},
}


class FakeNodeAdapter(Adapter):
    """Stands in for node/npm: records installs and writes a node_modules tree."""

    def __init__(self, exit_code: int = 0, timed_out: bool = False, workspaces: tuple[str, ...] = ()):
        self.exit_code = exit_code
        self.timed_out = timed_out
        self.workspaces = workspaces
        self.installs: list[str] = []

    @property
    def name(self) -> str:
        return "node"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        if operation == "setup":
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                metadata={"node_version": "20.11.0", "spec": "20"},
            )

        mode = context.params["mode"]
        self.installs.append(mode)
        if self.timed_out:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error="Command timed out after 1s",
                metadata={"timed_out": True},
            )
        if self.exit_code != 0:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error="npm ERR! code E404",
                metadata={"return_code": self.exit_code},
            )

        root = Path(context.working_dir)
        pkg = root / "node_modules" / "left-pad"
        pkg.mkdir(parents=True, exist_ok=True)
        (pkg / "index.js").write_text(f"module.exports = '{mode}';\n")
        # npm links each workspace package into node_modules
        for ws in self.workspaces:
            (root / "packages" / ws).mkdir(parents=True, exist_ok=True)
            (root / "packages" / ws / "package.json").write_text(f'{{"name": "{ws}"}}\n')
            os.symlink(f"../packages/{ws}", root / "node_modules" / ws)
        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            metadata={"return_code": 0},
        )


def write_lockfile(directory: Path, content: dict | None = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package-lock.json"
    path.write_text(json.dumps(content or LOCKFILE, indent=2))
    return path


@pytest.fixture
def node_project(tmp_path: Path) -> Path:
    """A working tree with package.json and package-lock.json."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text('{"name": "demo", "version": "1.0.0"}\n')
    write_lockfile(root)
    return root


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def fake_node() -> FakeNodeAdapter:
    return FakeNodeAdapter()


@pytest.fixture
def registry(cache_dir: Path, fake_node: FakeNodeAdapter) -> AdapterRegistry:
    """Real partition store, fake npm, mocked git."""
    reg = AdapterRegistry()
    reg.register(LocalCacheAdapter(cache_dir))
    reg.register(fake_node)
    reg.register(MockAdapter(adapter_name="git"))
    return reg


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging() reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
