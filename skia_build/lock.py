"""Exclusive ownership of a build output directory."""
from __future__ import annotations

from pathlib import Path
from types import TracebackType
from typing import Optional, Type
import os

from .console import Console
from .errors import BuildLockError


def lock_path_for(output_dir: Path) -> Path:
    # next to the directory, so a reconfigure that removes it keeps the lock
    return output_dir.parent / f".{output_dir.name}.lock"


def _process_alive(pid: int) -> bool:
    if os.name != "posix":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class OutputDirectoryLock:
    """
    Pid file lock preventing two invocations from building into the same
    output directory at once.

    Acquisition never waits: a held lock raises :class:`BuildLockError`
    immediately. A lock left behind by a process that no longer exists is
    taken over on POSIX hosts.
    """

    def __init__(self, output_dir: Path, *, console: Console | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.lock_path = lock_path_for(self.output_dir)
        self._console = console or Console("none")
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def _read_owner(self) -> Optional[str]:
        try:
            return self.lock_path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{os.getpid()}\n")
        return True

    def acquire(self) -> None:
        if self._held:
            return
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        if self._try_create():
            self._held = True
            self._console.debug(f"Acquired build lock {self.lock_path}")
            return

        owner = self._read_owner()
        if owner is not None and owner.isdigit() and not _process_alive(int(owner)):
            self._console.warning(f"Removing stale build lock {self.lock_path} left by pid {owner}")
            self.lock_path.unlink(missing_ok=True)
            if self._try_create():
                self._held = True
                return
            owner = self._read_owner()
        raise BuildLockError(self.lock_path, owner)

    def release(self) -> None:
        if not self._held:
            return
        self.lock_path.unlink(missing_ok=True)
        self._held = False
        self._console.debug(f"Released build lock {self.lock_path}")

    def __enter__(self) -> "OutputDirectoryLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()


__all__ = ["OutputDirectoryLock", "lock_path_for"]
