"""
Run ledger — one NDJSON line per prepare run.

The ledger lives next to the partitions (``<cache_dir>/audit.ndjson``)
so a runner's cache directory also tells which runs hit, which
installed, and which step broke. Lines are only ever appended.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

LEDGER_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """What one run did."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    project_root: str = ""

    # Inputs as resolved for the run
    checkout: bool = True
    production: bool = False

    cache_key: str = ""
    status: str = ""                # ok | failed
    outcome: str | None = None      # InstallOutcome value
    failed_step: str | None = None
    error: str | None = None
    duration_ms: int = 0

    context: dict[str, Any] = Field(default_factory=dict)


class AuditLedger:
    """Append-only NDJSON file of ``AuditEntry`` records.

    Appending never raises: an unwritable ledger costs a log line, not
    the CI job. Unparseable lines are skipped when reading.
    """

    def __init__(self, path: Path):
        self._path = path

    @classmethod
    def in_cache_dir(cls, cache_dir: Path) -> AuditLedger:
        return cls(cache_dir / LEDGER_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: AuditEntry) -> bool:
        """Write ``entry`` as one line. Returns False if the write failed."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error("Failed to write audit entry to %s: %s", self._path, e)
            return False
        logger.debug("Recorded %s in %s", entry.operation_id, self._path)
        return True

    def entries(self) -> list[AuditEntry]:
        """All readable entries, oldest first."""
        if not self._path.is_file():
            return []

        found = []
        with self._path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    found.append(AuditEntry.model_validate_json(line))
                except ValidationError as e:
                    logger.warning("%s:%d: skipping unreadable entry (%s)", self._path, lineno, e)
        return found
