"""
Local cache adapter — a directory of partition archives.

Each partition is one ``<key>.tar.gz`` file under the cache directory.
Partitions are write-once: saving a key that already exists is a no-op.
Archives are written to a temp file and published with ``os.replace``,
so concurrent writers for the same key end with one complete archive.
"""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.core.models.action import Receipt

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


def default_cache_dir() -> Path:
    """``$NODEPREP_CACHE_DIR``, else ``~/.cache/nodeprep``."""
    env = os.environ.get("NODEPREP_CACHE_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".cache" / "nodeprep"


# Archive defects that make a partition permanently unusable
_UNREADABLE_ARCHIVE = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile)


def _leaves_dir(name: str) -> bool:
    return name.startswith(("/", os.sep)) or ".." in PurePosixPath(name).parts


def _partition_filter(target: Path):
    """Extraction filter that judges each member from its final location.

    Archives hold the children of the dependency directory, so a member
    ends up at ``target/<name>`` once staging is renamed into place.
    Member paths stay inside ``target``. Links may point anywhere under
    ``target``'s parent, which covers npm workspace links
    (``node_modules/app -> ../packages/app``), and nowhere outside it.
    """
    root = str(target.parent)
    prefix = target.name

    def _filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo | None:
        if _leaves_dir(member.name) or (member.islnk() and _leaves_dir(member.linkname)):
            raise tarfile.OutsideDestinationError(member, os.path.join(dest_path, member.name))
        placed = member.replace(
            name=f"{prefix}/{member.name}",
            linkname=f"{prefix}/{member.linkname}" if member.islnk() else member.linkname,
            deep=False,
        )
        checked = tarfile.data_filter(placed, root)
        if checked is None:
            return None
        return checked.replace(name=member.name, linkname=member.linkname, deep=False)

    return _filter


class LocalCacheAdapter(Adapter):
    """Partition store backed by a local directory.

    Action params:
        operation (str): One of 'restore', 'save', 'list'.
        key (str): Rendered cache key (for 'restore' and 'save').
        path (str): Directory to materialize or archive, relative to the
            working directory or absolute (for 'restore' and 'save').

    Restore receipts report ``metadata["hit"]``. Save receipts report
    ``metadata["saved"]``, which is False when the key already existed.
    """

    operations = frozenset({"restore", "save", "list"})

    def __init__(self, cache_dir: Path | None = None):
        self._cache_dir = cache_dir or default_cache_dir()

    @property
    def name(self) -> str:
        return "cache"

    def archive_path(self, key: str) -> Path:
        return self._cache_dir / f"{key}{ARCHIVE_SUFFIX}"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        valid, msg = self.check_operation(context)
        if not valid:
            return valid, msg
        operation = context.operation

        if operation in ("restore", "save"):
            key = context.params.get("key", "")
            if not key:
                return False, "Missing required param: 'key'"
            if "/" in key or "\\" in key or key.startswith("."):
                return False, f"Invalid cache key {key!r}"
            if not context.params.get("path"):
                return False, "Missing required param: 'path'"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        try:
            if operation == "restore":
                return self._restore(context)
            elif operation == "save":
                return self._save(context)
            elif operation == "list":
                return self._list(context)
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
                error=f"Cache error: {e}",
                metadata={"operation": operation},
            )

    # ── Operations ──────────────────────────────────────────────

    def _restore(self, ctx: ExecutionContext) -> Receipt:
        key = ctx.params["key"]
        archive = self.archive_path(key)
        if not archive.is_file():
            logger.info("Cache miss: %s", key)
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output="miss",
                metadata={"hit": False, "key": key},
            )

        target = ctx.resolve(ctx.params["path"])
        target.parent.mkdir(parents=True, exist_ok=True)

        # Extract next to the target, then swap it into place
        staging = Path(tempfile.mkdtemp(dir=target.parent, prefix=".nodeprep_restore_"))
        try:
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(staging, filter=_partition_filter(target))
        except _UNREADABLE_ARCHIVE as e:
            shutil.rmtree(staging, ignore_errors=True)
            archive.unlink(missing_ok=True)
            logger.warning("Evicted unusable partition %s: %s", key, e)
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Cache error: {e}",
                metadata={"hit": False, "key": key, "evicted": True},
            )
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        try:
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info("Cache hit: %s → %s", key, target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output="hit",
            metadata={"hit": True, "key": key, "path": str(target)},
        )

    def _save(self, ctx: ExecutionContext) -> Receipt:
        key = ctx.params["key"]
        archive = self.archive_path(key)
        if archive.is_file():
            logger.info("Partition %s already stored, not overwriting", key)
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"{key} already cached",
                metadata={"saved": False, "key": key},
            )

        target = ctx.resolve(ctx.params["path"])
        if not target.is_dir():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Nothing to cache: {target} is not a directory",
                metadata={"saved": False, "key": key},
            )

        self._cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._cache_dir,
            prefix=".partition_",
            suffix=".tmp",
        )
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            with tarfile.open(tmp, "w:gz") as tar:
                for child in sorted(target.iterdir()):
                    tar.add(str(child), arcname=child.name)
            os.replace(tmp, archive)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

        size = archive.stat().st_size
        logger.info("Saved partition %s (%d bytes)", key, size)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=str(archive),
            metadata={"saved": True, "key": key, "size_bytes": size},
        )

    def _list(self, ctx: ExecutionContext) -> Receipt:
        entries = []
        if self._cache_dir.is_dir():
            for archive in sorted(self._cache_dir.glob(f"*{ARCHIVE_SUFFIX}")):
                stat = archive.stat()
                entries.append({
                    "key": archive.name[: -len(ARCHIVE_SUFFIX)],
                    "size_bytes": stat.st_size,
                    "modified_at": datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
                })
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output="\n".join(e["key"] for e in entries),
            metadata={"entries": entries, "cache_dir": str(self._cache_dir), "count": len(entries)},
        )
