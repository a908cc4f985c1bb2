"""
Mock adapter — scripted stand-in for git, node or the cache store.

Answers every action with success unless told otherwise. Scripted
responses are keyed by action ID or by operation name ('restore',
'install', ...), so a test can fail "the install" without knowing the
generated operation ID.
"""

from __future__ import annotations

from typing import Any

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.core.models.action import Receipt


class MockAdapter(Adapter):
    """Records every context it is given and replays scripted receipts."""

    def __init__(
        self,
        adapter_name: str = "mock",
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._default_output = default_output
        self._scripted: dict[str, Receipt] = {}
        self.call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    def calls_for(self, operation: str) -> list[ExecutionContext]:
        return [ctx for ctx in self.call_log if ctx.operation == operation]

    # ── Scripting ───────────────────────────────────────────────

    def set_failure(self, key: str, error: str = "Mock failure", **metadata: Any) -> None:
        """Fail actions matching ``key``; ``metadata`` lands on the receipt."""
        self._scripted[key] = Receipt.failure(
            adapter=self._name,
            action_id=key,
            error=error,
            metadata=metadata,
        )

    # ── Adapter protocol ────────────────────────────────────────

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self.call_log.append(context)
        scripted = self._scripted.get(context.action.id) or self._scripted.get(context.operation)
        if scripted is not None:
            return scripted.model_copy(deep=True)
        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            metadata={"mock": True},
        )
