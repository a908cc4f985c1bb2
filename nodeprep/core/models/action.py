"""
Action and Receipt — what the planner asks for and what it gets back.

The planner and the use cases describe every side effect (clone, node
check, npm install, partition restore/save) as an ``Action`` and hand it
to the registry. Adapters answer with a ``Receipt``; a failing tool is
reported in the receipt, never raised.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ReceiptStatus(StrEnum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


class Action(BaseModel):
    """One side effect of a run.

    ``step`` is the run step the action belongs to (checkout,
    runtime-provision, cache-restore, install, cache-save) and is what
    a failure gets attributed to.
    """

    id: str
    adapter: str
    step: str = ""
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def operation(self) -> str:
        return self.params.get("operation", "")


class Receipt(BaseModel):
    """Outcome of one action.

    Tool-specific details travel in ``metadata``: ``return_code`` for
    subprocesses, ``hit`` for restores, ``error_kind`` for runtime
    checks, ``timed_out`` for aborted installs.
    """

    adapter: str
    action_id: str
    status: ReceiptStatus = ReceiptStatus.OK
    duration_ms: int = 0
    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is ReceiptStatus.OK

    @property
    def failed(self) -> bool:
        return self.status is ReceiptStatus.FAILED

    @property
    def skipped(self) -> bool:
        return self.status is ReceiptStatus.SKIPPED

    @property
    def return_code(self) -> int | None:
        """Exit code of the subprocess the adapter ran, if any."""
        return self.metadata.get("return_code")

    @property
    def timed_out(self) -> bool:
        return bool(self.metadata.get("timed_out", False))

    # ── Constructors ────────────────────────────────────────────

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(
            adapter=adapter,
            action_id=action_id,
            status=ReceiptStatus.FAILED,
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Receipt for an action that was deliberately not performed."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status=ReceiptStatus.SKIPPED,
            output=reason,
            **kwargs,
        )
