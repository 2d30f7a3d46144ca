from __future__ import annotations

import errno
import fcntl
import os
from pathlib import Path
from typing import IO, Optional

from ..errors import LockFileError


def _flock(fd: int, flags: int, *, blocking: bool) -> bool:
    if not blocking:
        flags |= fcntl.LOCK_NB
    try:
        fcntl.flock(fd, flags)
    except BlockingIOError:
        return False
    except OSError as e:
        # EWOULDBLOCK/EAGAIN surface as plain OSError on some platforms.
        if not blocking and e.errno in (errno.EWOULDBLOCK, errno.EAGAIN):
            return False
        raise
    return True


class LockFile:
    """An open lockfile. Keep the handle open to hold whatever lock it carries.

    flock() locks belong to the open file description, so two LockFile
    instances for the same path contend with each other even inside one
    process. Closing the handle (or process exit) drops the lock.
    """

    def __init__(self, path: Path, f: IO[bytes]):
        self.path = path
        self._f: Optional[IO[bytes]] = f

    def __enter__(self) -> "LockFile":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"LockFile({str(self.path)!r}, closed={self.closed})"

    @property
    def closed(self) -> bool:
        return self._f is None

    def _fileno(self) -> int:
        if self._f is None:
            raise LockFileError(f"Lockfile {self.path} is already closed", path=self.path)
        return self._f.fileno()

    def _lock(self, flags: int, *, blocking: bool) -> bool:
        try:
            return _flock(self._fileno(), flags, blocking=blocking)
        except OSError as e:
            raise LockFileError(f"Couldn't lock {self.path}: {e}", path=self.path) from e

    def try_lock_shared(self) -> bool:
        return self._lock(fcntl.LOCK_SH, blocking=False)

    def try_lock_exclusive(self) -> bool:
        return self._lock(fcntl.LOCK_EX, blocking=False)

    def lock_exclusive(self) -> None:
        """Block until the exclusive lock is held."""
        self._lock(fcntl.LOCK_EX, blocking=True)

    def unlock(self) -> None:
        try:
            fcntl.flock(self._fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise LockFileError(f"Couldn't unlock {self.path}: {e}", path=self.path) from e

    def close(self) -> None:
        if self._f is None:
            return
        f, self._f = self._f, None
        f.close()


def open_lock(path: Path) -> LockFile:
    """Open (creating if needed, never truncating) a lockfile without locking it."""
    try:
        fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o666)
    except OSError as e:
        raise LockFileError(f"Couldn't open lockfile {path}: {e}", path=path) from e
    return LockFile(path, os.fdopen(fd, "r+b"))
