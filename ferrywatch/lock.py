from __future__ import annotations

import os
from contextlib import contextmanager
from typing import IO, Iterator

from ferrywatch.domain import FerryWatchError, PersistenceError

if os.name == "nt":
    import msvcrt

    def _try_lock(fh: IO[str]) -> bool:
        try:
            msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def _unlock(fh: IO[str]) -> None:
        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _try_lock(fh: IO[str]) -> bool:
        try:
            fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def _unlock(fh: IO[str]) -> None:
        fcntl.flock(fh, fcntl.LOCK_UN)


class TickInProgressError(FerryWatchError):
    """Another tick holds the lock file."""


@contextmanager
def single_flight(path: str) -> Iterator[None]:
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        fh = open(path, "w")
    except OSError as e:
        raise PersistenceError(f"Cannot open lock file {path} ({type(e).__name__}: {e})") from e

    with fh:
        if not _try_lock(fh):
            raise TickInProgressError(f"Lock {path} is held by another tick")
        try:
            yield
        finally:
            _unlock(fh)
