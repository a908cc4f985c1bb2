"""
Adapter registry — routes each Action to the adapter that owns it.

The planner and the use cases never call an adapter directly. They
build an Action naming the adapter ('git', 'node', 'cache') and hand
it to ``AdapterRegistry.execute_action``, which always returns a
Receipt. In mock mode nothing external is touched.
"""

from __future__ import annotations

import logging
import threading
import time

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Name → adapter table plus the dispatch entry point.

    Args:
        mock_mode: Answer every action with a canned success receipt.
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    # ── Table ───────────────────────────────────────────────────

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %r", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered %r", adapter)

    # ── Dispatch ────────────────────────────────────────────────

    def execute_action(
        self,
        action: Action,
        project_root: str = ".",
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Receipt:
        """Validate and run ``action``; the receipt's duration covers both."""
        started = time.monotonic()
        context = ExecutionContext(
            action=action,
            project_root=project_root,
            params=action.params,
            timeout=timeout,
            cancel_event=cancel_event,
        )
        receipt = self._dispatch(action, context)
        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "%s %s/%s → %s (%dms)",
            action.step or action.id,
            action.adapter,
            action.operation or "-",
            receipt.status,
            receipt.duration_ms,
        )
        return receipt

    def _dispatch(self, action: Action, context: ExecutionContext) -> Receipt:
        if self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.adapter}:{action.operation or action.id}",
                metadata={"mock": True},
            )

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        try:
            valid, reason = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {reason}",
            )

        try:
            return adapter.execute(context)
        except Exception as e:
            # Adapters report failures in receipts; this is a bug in one
            logger.error("Adapter %s raised: %s", action.adapter, e)
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )
