"""Exclusive locks for read-modify-write on JSON records."""

import fcntl
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

_locks: dict[Path, threading.Lock] = {}
_locks_guard = threading.Lock()


def _thread_lock(path: Path) -> threading.Lock:
    """Process-wide lock for one lock file."""
    with _locks_guard:
        return _locks.setdefault(path.resolve(), threading.Lock())


@contextmanager
def exclusive_lock(lock_path: Path) -> Iterator[None]:
    """Serialize a critical section across threads and processes.

    Threads of this process queue on an in-process lock; other processes
    queue on ``flock`` of ``lock_path``.
    """
    with _thread_lock(lock_path), open(lock_path, "w") as lock_file:
        fcntl.flock(lock_file, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
