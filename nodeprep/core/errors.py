"""
Error taxonomy for a prepare run.

Every error names the step it came from so the caller can report the
failure distinctly. Fatal errors abort the run. Non-fatal ones are
raised only inside the planner, where they degrade to the slow path.
"""

from __future__ import annotations

from nodeprep.core.models.cache import InstallOutcome

STEP_CHECKOUT = "checkout"
STEP_RUNTIME = "runtime-provision"
STEP_CACHE_RESTORE = "cache-restore"
STEP_LOCKFILE = "lockfile-digest"
STEP_INSTALL = "install"
STEP_CACHE_SAVE = "cache-save"


class PrepareError(Exception):
    """Base class for all step failures."""

    step: str = ""
    fatal: bool = True

    def __init__(self, message: str, *, step: str | None = None):
        super().__init__(message)
        if step is not None:
            self.step = step

    def __str__(self) -> str:
        return f"[{self.step}] {super().__str__()}"


class CheckoutFailed(PrepareError):
    step = STEP_CHECKOUT


class RuntimeVersionFileMissing(PrepareError):
    step = STEP_RUNTIME


class RuntimeVersionFileMalformed(PrepareError):
    step = STEP_RUNTIME


class RuntimeProvisionError(PrepareError):
    step = STEP_RUNTIME


class LockfileMissing(PrepareError):
    step = STEP_LOCKFILE


class CacheRestoreError(PrepareError):
    step = STEP_CACHE_RESTORE
    fatal = False


class CacheSaveError(PrepareError):
    step = STEP_CACHE_SAVE
    fatal = False


class InstallFailed(PrepareError):
    """The package manager exited nonzero. Never retried."""

    step = STEP_INSTALL
    outcome = InstallOutcome.CACHE_MISS_INSTALL_FAILED

    def __init__(self, message: str, *, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class TimeoutExceeded(InstallFailed):
    """Install aborted by the deadline or the cancellation signal."""
