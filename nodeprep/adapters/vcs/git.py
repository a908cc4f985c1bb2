"""
Git adapter — source checkout.

Materializes the repository into the working tree, or confirms that a
previous step already did. Uses the git CLI — never raw API calls.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.core.models.action import Receipt

logger = logging.getLogger(__name__)


class GitAdapter(Adapter):
    """Git checkout operations.

    Action params:
        operation (str): 'checkout'.
        enabled (bool): When False the checkout is skipped (default: True).
        repository (str): Clone URL, used when the tree is not a work tree yet.
        ref (str): Commit, tag or branch to check out (optional).
        timeout (int): Timeout in seconds per git call (default: 300).
    """

    operations = frozenset({"checkout"})

    @property
    def name(self) -> str:
        return "git"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return self.check_operation(context)

    def execute(self, context: ExecutionContext) -> Receipt:
        if not context.params.get("enabled", True):
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason="checkout disabled",
            )
        try:
            return self._checkout(context)
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Git error: {e}",
            )

    # ── Operations ──────────────────────────────────────────────

    def _checkout(self, ctx: ExecutionContext) -> Receipt:
        root = Path(ctx.working_dir)
        repository = ctx.params.get("repository", "")
        ref = ctx.params.get("ref", "")
        timeout = ctx.params.get("timeout", 300)

        if self._is_work_tree(root):
            cloned = False
        else:
            if not repository:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"{root} is not a git work tree and no repository was given",
                )
            if root.exists() and any(root.iterdir()):
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Cannot clone into non-empty directory {root}",
                )
            root.mkdir(parents=True, exist_ok=True)
            logger.info("Cloning %s into %s", repository, root)
            self._git(["clone", "--no-tags", repository, str(root)], root.parent, timeout)
            cloned = True

        if ref:
            self._git(["checkout", "--force", "--detach", ref], root, timeout)

        head = self._git(["rev-parse", "HEAD"], root, timeout).strip()
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=head,
            metadata={"head": head, "cloned": cloned, "ref": ref},
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _is_work_tree(self, root: Path) -> bool:
        if not root.is_dir():
            return False
        try:
            out = self._git(["rev-parse", "--is-inside-work-tree"], root, 30)
        except RuntimeError:
            return False
        return out.strip() == "true"

    def _git(self, args: list[str], cwd: Path, timeout: int = 300) -> str:
        """Run a git command and return stdout. Raises on failure."""
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.returncode != 0:
            raise RuntimeError(result.stderr.strip() or f"git {args[0]} failed")
        return result.stdout
