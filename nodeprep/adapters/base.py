"""
Adapter base — how the planner reaches git, node/npm and the cache store.

Each adapter owns one external tool and a fixed set of operations,
named by the ``operation`` action param. Adapters report failure in the
returned Receipt; ``AdapterRegistry`` is the only caller.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from nodeprep.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Action plus the run-wide state an adapter may need.

    ``timeout`` and ``cancel_event`` only matter to long-running
    operations (npm install); other adapters ignore them.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    action: Action
    project_root: str = "."
    params: dict[str, Any] = Field(default_factory=dict)
    timeout: float | None = None
    cancel_event: threading.Event | None = None

    @property
    def operation(self) -> str:
        return self.params.get("operation", "")

    @property
    def working_dir(self) -> str:
        return self.params.get("cwd") or self.project_root

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def resolve(self, path: str | Path) -> Path:
        """``path`` relative to the working directory, unless absolute."""
        path = Path(path)
        return path if path.is_absolute() else Path(self.working_dir) / path


class Adapter(ABC):
    """Base class for the git, node and cache adapters.

    Subclasses list their operations in ``operations`` and start their
    ``validate`` with ``check_operation``.
    """

    operations: ClassVar[frozenset[str]] = frozenset()

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name ('git', 'node', 'cache')."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Return ``(True, "")`` or ``(False, reason)``."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Perform the operation. Failures go in the receipt."""

    def check_operation(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.operation
        if not operation:
            return False, "Missing required param: 'operation'"
        if operation not in self.operations:
            valid = ", ".join(sorted(self.operations))
            return False, f"Unknown operation '{operation}'. Valid: {valid}"
        return True, ""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
