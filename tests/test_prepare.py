"""
Tests for the prepare use case — step ordering, failures, audit ledger.
"""

from pathlib import Path

from conftest import FakeNodeAdapter
from nodeprep.adapters.cache.store import LocalCacheAdapter
from nodeprep.adapters.mock import MockAdapter
from nodeprep.adapters.registry import AdapterRegistry
from nodeprep.core.models import ActionInputs, InstallOutcome
from nodeprep.core.persistence.audit import AuditLedger
from nodeprep.core.use_cases.prepare import (
    default_repository,
    generate_operation_id,
    prepare,
)


def _run(root: Path, registry, cache_dir: Path, **kwargs):
    kwargs.setdefault("platform_id", "Linux")
    return prepare(
        root,
        kwargs.pop("inputs", ActionInputs()),
        registry=registry,
        cache_dir=cache_dir,
        repository="",
        ref="",
        **kwargs,
    )


class TestPrepareSuccess:
    def test_miss_then_hit(self, node_project: Path, registry, cache_dir: Path, fake_node):
        first = _run(node_project, registry, cache_dir)
        assert first.ok
        assert first.outcome is InstallOutcome.CACHE_MISS_INSTALLED
        assert first.cache_key.startswith("Linux-node-modules-dev-")
        assert first.node_version == "20.11.0"

        second = _run(node_project, registry, cache_dir)
        assert second.outcome is InstallOutcome.CACHE_HIT
        assert second.cache_key == first.cache_key
        assert fake_node.installs == ["dev"]

    def test_production(self, node_project: Path, registry, cache_dir: Path, fake_node):
        result = _run(node_project, registry, cache_dir, inputs=ActionInputs(production=True))
        assert result.ok
        assert "-prod-" in result.cache_key
        assert fake_node.installs == ["prod"]

    def test_step_order(self, node_project: Path, cache_dir: Path):
        order = []

        class Recording(MockAdapter):
            def execute(self, context):
                order.append(context.action.step)
                return super().execute(context)

        registry = AdapterRegistry()
        registry.register(Recording(adapter_name="git"))
        registry.register(Recording(adapter_name="node"))
        registry.register(Recording(adapter_name="cache"))
        _run(node_project, registry, cache_dir, audit=False)

        assert order == [
            "checkout", "runtime-provision", "cache-restore", "install", "cache-save",
        ]

    def test_checkout_disabled_passed_through(self, node_project: Path, cache_dir: Path, fake_node):
        git = MockAdapter(adapter_name="git")
        registry = AdapterRegistry()
        registry.register(git)
        registry.register(fake_node)
        registry.register(LocalCacheAdapter(cache_dir))
        _run(node_project, registry, cache_dir, inputs=ActionInputs(checkout=False))
        assert git.call_log[0].params["enabled"] is False

    def test_to_dict(self, node_project: Path, registry, cache_dir: Path):
        data = _run(node_project, registry, cache_dir).to_dict()
        assert data["status"] == "ok"
        assert data["outcome"] == "cache-miss-installed"
        assert data["inputs"] == {"checkout": True, "production": False}
        assert "failed_step" not in data


class TestPrepareFailures:
    def test_checkout_failure_stops_run(self, node_project: Path, cache_dir: Path, fake_node):
        registry = AdapterRegistry()
        git = MockAdapter(adapter_name="git")
        git.set_failure("checkout", error="fatal: repository not found")
        registry.register(git)
        registry.register(fake_node)
        registry.register(LocalCacheAdapter(cache_dir))

        result = _run(node_project, registry, cache_dir)

        assert not result.ok
        assert result.failed_step == "checkout"
        assert "repository not found" in result.error
        assert result.cache_key is None
        assert fake_node.installs == []

    def test_version_file_missing(self, node_project: Path, cache_dir: Path):
        node = MockAdapter(adapter_name="node")
        node.set_failure("setup", error=".nvmrc not found", error_kind="version-file-missing")
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="git"))
        registry.register(node)
        registry.register(LocalCacheAdapter(cache_dir))

        result = _run(node_project, registry, cache_dir)

        assert result.failed_step == "runtime-provision"
        assert ".nvmrc not found" in result.error
        assert node.calls_for("install") == []

    def test_lockfile_missing(self, tmp_path: Path, registry, cache_dir: Path, fake_node):
        root = tmp_path / "bare"
        root.mkdir()
        result = _run(root, registry, cache_dir)
        assert result.failed_step == "lockfile-digest"
        assert result.outcome is None
        assert fake_node.installs == []

    def test_install_failure(self, node_project: Path, cache_dir: Path):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="git"))
        registry.register(FakeNodeAdapter(exit_code=1))
        registry.register(LocalCacheAdapter(cache_dir))

        result = _run(node_project, registry, cache_dir)

        assert result.failed_step == "install"
        assert result.outcome is InstallOutcome.CACHE_MISS_INSTALL_FAILED
        assert result.exit_code == 1
        assert result.cache_key is not None
        assert result.to_dict()["exit_code"] == 1
        assert not any(cache_dir.glob("*.tar.gz"))

    def test_timeout(self, node_project: Path, cache_dir: Path):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="git"))
        registry.register(FakeNodeAdapter(timed_out=True))
        registry.register(LocalCacheAdapter(cache_dir))

        result = _run(node_project, registry, cache_dir, timeout=1)

        assert result.failed_step == "install"
        assert result.outcome is InstallOutcome.CACHE_MISS_INSTALL_FAILED


class TestAudit:
    def test_run_is_recorded(self, node_project: Path, registry, cache_dir: Path):
        result = _run(node_project, registry, cache_dir)
        entries = AuditLedger.in_cache_dir(cache_dir).entries()
        assert len(entries) == 1
        assert entries[0].operation_id == result.operation_id
        assert entries[0].status == "ok"
        assert entries[0].outcome == "cache-miss-installed"
        assert entries[0].context["node_version"] == "20.11.0"

    def test_failure_is_recorded(self, tmp_path: Path, registry, cache_dir: Path):
        root = tmp_path / "bare"
        root.mkdir()
        _run(root, registry, cache_dir)
        entry = AuditLedger.in_cache_dir(cache_dir).entries()[-1]
        assert entry.status == "failed"
        assert entry.failed_step == "lockfile-digest"

    def test_audit_disabled(self, node_project: Path, registry, cache_dir: Path):
        _run(node_project, registry, cache_dir, audit=False)
        assert AuditLedger.in_cache_dir(cache_dir).entries() == []


class TestHelpers:
    def test_operation_id_format(self):
        op_id = generate_operation_id()
        assert op_id.startswith("prep-")
        assert op_id != generate_operation_id()

    def test_default_repository(self):
        env = {"GITHUB_REPOSITORY": "acme/web", "GITHUB_SERVER_URL": "https://git.example.com/"}
        assert default_repository(env) == "https://git.example.com/acme/web.git"

    def test_default_repository_outside_ci(self):
        assert default_repository({}) == ""

    def test_mock_mode(self, node_project: Path, cache_dir: Path):
        result = prepare(
            node_project, ActionInputs(), cache_dir=cache_dir,
            mock_mode=True, platform_id="Linux", repository="", ref="",
        )
        assert result.ok
        assert result.outcome is InstallOutcome.CACHE_MISS_INSTALLED
        assert not (node_project / "node_modules").exists()
