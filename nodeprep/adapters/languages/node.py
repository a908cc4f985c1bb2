"""
Node.js adapter — runtime verification and npm installs.

Checks that the node on PATH matches the project's version-specifier
file, and runs ``npm ci`` in dev or production mode with lifecycle
scripts disabled.
"""

from __future__ import annotations

import logging
import os
import re
import signal
import subprocess
import time
from pathlib import Path

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_VERSION_FILE = ".nvmrc"
DEFAULT_INSTALL_TIMEOUT = 900

# Seconds between cancellation checks while npm runs
_POLL_INTERVAL = 0.2

_NUMERIC_SPEC = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?$")
_LTS_SPEC = re.compile(r"^lts/(\*|[a-z]+)$")
_ANY_SPECS = frozenset({"node", "latest", "current", "stable"})

# LTS codename → major line
LTS_CODENAMES: dict[str, int] = {
    "argon": 4,
    "boron": 6,
    "carbon": 8,
    "dubnium": 10,
    "erbium": 12,
    "fermium": 14,
    "gallium": 16,
    "hydrogen": 18,
    "iron": 20,
    "jod": 22,
}


def read_version_spec(text: str) -> str:
    """Extract and normalize the version spec from a version file.

    The first non-blank line that is not a ``#`` comment wins.

    Raises:
        ValueError: If the file holds no recognizable spec.
    """
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        spec = line.lower()
        if spec in _ANY_SPECS or _LTS_SPEC.match(spec):
            return spec
        m = _NUMERIC_SPEC.match(spec)
        if m:
            return ".".join(part for part in m.groups() if part is not None)
        raise ValueError(f"unrecognized node version spec {line!r}")
    raise ValueError("version file is empty")


def version_satisfies(actual: str, spec: str) -> bool:
    """Whether an installed version (``20.11.0``) matches a normalized spec."""
    actual_parts = actual.strip().lstrip("v").split(".")
    if spec in _ANY_SPECS:
        return True

    lts = _LTS_SPEC.match(spec)
    if lts:
        try:
            major = int(actual_parts[0])
        except ValueError:
            return False
        codename = lts.group(1)
        if codename == "*":
            return major >= 4 and major % 2 == 0
        if codename in LTS_CODENAMES:
            return major == LTS_CODENAMES[codename]
        logger.warning("Unknown LTS codename %r, accepting any LTS line", codename)
        return major % 2 == 0

    wanted = spec.split(".")
    return actual_parts[: len(wanted)] == wanted


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill npm and everything it spawned."""
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except OSError:
            pass
    proc.kill()


def install_command(mode: str, scripts_enabled: bool = False) -> list[str]:
    """npm invocation for a dev or production install."""
    cmd = ["npm", "ci"]
    if mode == "prod":
        cmd.append("--omit=dev")
    if not scripts_enabled:
        cmd.append("--ignore-scripts")
    return cmd


class NodeAdapter(Adapter):
    """Node.js runtime and npm adapter.

    Action params:
        operation (str): 'setup' or 'install'.
        version_file (str): Version specifier file (for 'setup',
            default: .nvmrc relative to the working directory).
        mode (str): 'dev' or 'prod' (for 'install').
        scripts_enabled (bool): Allow lifecycle scripts (default: False).

    Failure receipts carry ``metadata["error_kind"]`` so callers can
    tell a missing version file from a malformed one or a mismatch.
    """

    operations = frozenset({"setup", "install"})

    @property
    def name(self) -> str:
        return "node"

    def version(self) -> str | None:
        """Detect the Node.js version string."""
        try:
            result = subprocess.run(
                ["node", "--version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            if result.returncode == 0:
                # "v20.11.0" → "20.11.0"
                return result.stdout.strip().lstrip("v")
        except (subprocess.TimeoutExpired, FileNotFoundError):
            pass
        return None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        valid, msg = self.check_operation(context)
        if not valid:
            return valid, msg
        operation = context.operation

        if operation == "install":
            mode = context.params.get("mode", "")
            if mode not in ("dev", "prod"):
                return False, f"Invalid install mode {mode!r}, expected 'dev' or 'prod'"

        if not Path(context.working_dir).is_dir():
            return False, f"Working directory does not exist: {context.working_dir}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        try:
            if operation == "setup":
                return self._setup(context)
            elif operation == "install":
                return self._install(context)
            else:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Unknown operation: {operation}",
                )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Node error: {e}",
            )

    # ── Operations ──────────────────────────────────────────────

    def _setup(self, ctx: ExecutionContext) -> Receipt:
        version_file = ctx.resolve(ctx.params.get("version_file") or DEFAULT_VERSION_FILE)

        if not version_file.is_file():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Node version file not found: {version_file}",
                metadata={"error_kind": "version-file-missing", "version_file": str(version_file)},
            )

        try:
            spec = read_version_spec(version_file.read_text(encoding="utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Malformed node version file {version_file}: {e}",
                metadata={"error_kind": "version-file-malformed", "version_file": str(version_file)},
            )

        actual = self.version()
        if actual is None:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error="node is not on PATH",
                metadata={"error_kind": "runtime-missing", "spec": spec},
            )

        if not version_satisfies(actual, spec):
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"node {actual} does not satisfy '{spec}' from {version_file.name}",
                metadata={"error_kind": "version-mismatch", "spec": spec, "node_version": actual},
            )

        logger.info("node %s satisfies '%s'", actual, spec)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"node={actual}",
            metadata={"spec": spec, "node_version": actual},
        )

    def _install(self, ctx: ExecutionContext) -> Receipt:
        cmd = install_command(
            ctx.params["mode"],
            scripts_enabled=bool(ctx.params.get("scripts_enabled", False)),
        )
        timeout = ctx.timeout if ctx.timeout is not None else DEFAULT_INSTALL_TIMEOUT
        return self._exec(ctx, cmd, timeout=timeout)

    # ── Helpers ─────────────────────────────────────────────────

    def _exec(self, ctx: ExecutionContext, cmd: list[str], timeout: float) -> Receipt:
        """Run ``cmd``, aborting on the deadline or the cancel signal."""
        command = " ".join(cmd)
        logger.debug("Executing: %s (cwd=%s, timeout=%ss)", command, ctx.working_dir, timeout)
        start = time.monotonic()
        deadline = start + timeout

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=ctx.working_dir,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=os.name == "posix",
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"{cmd[0]} is not on PATH",
                metadata={"command": command, "return_code": 127},
            )

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if ctx.cancelled or time.monotonic() >= deadline:
                    _kill_tree(proc)
                    proc.communicate()
                    reason = "cancelled" if ctx.cancelled else f"timed out after {timeout}s"
                    logger.warning("%s %s", command, reason)
                    return Receipt.failure(
                        adapter=self.name,
                        action_id=ctx.action.id,
                        error=f"Command {reason}",
                        duration_ms=int((time.monotonic() - start) * 1000),
                        metadata={
                            "command": command,
                            "timed_out": True,
                            "cancelled": ctx.cancelled,
                        },
                    )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if proc.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=stdout.strip(),
                duration_ms=elapsed_ms,
                metadata={"command": command, "return_code": 0},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=stderr.strip() or f"Exit code {proc.returncode}",
            duration_ms=elapsed_ms,
            metadata={"command": command, "return_code": proc.returncode},
        )
