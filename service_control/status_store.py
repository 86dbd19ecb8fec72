"""Status store: a per-service lock file carrying the holder's identity.

A running service instance holds an OS advisory lock on the file and writes
its pid, application name and host into it. Controllers probe the lock without
blocking: acquiring it means no instance is running. The kernel drops the lock
when the holder exits, crashed or not, so no age-based reclamation exists.
"""

import errno
import logging
import os
import socket
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, Iterator, Optional

from service_control._paths import ensure_runtime_dir
from service_control.exceptions import StatusLockError

if sys.platform == 'win32':
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = 'standard.lock'

# Windows byte-range locks block reads of the locked range; lock a byte far
# past the metadata instead of the file head.
_WINDOWS_LOCK_OFFSET = 0x7FFFFFF0

_LOCK_HELD_ERRNOS = {errno.EAGAIN, errno.EWOULDBLOCK, errno.EACCES, errno.EDEADLK}


class LockError(Enum):
    """Outcome of the last lock attempt."""
    NO_ERROR = 'NO_ERROR'
    LOCK_FAILED = 'LOCK_FAILED'
    PERMISSION_ERROR = 'PERMISSION_ERROR'
    UNKNOWN_ERROR = 'UNKNOWN_ERROR'


@dataclass(frozen=True)
class LockInfo:
    """Identity of the process holding the status lock."""

    pid: int
    app_name: str
    host: str


def _try_lock_file(file: IO[str]) -> None:
    if sys.platform == 'win32':
        file.seek(_WINDOWS_LOCK_OFFSET)
        msvcrt.locking(file.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        fcntl.flock(file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock_file(file: IO[str]) -> None:
    if sys.platform == 'win32':
        file.seek(_WINDOWS_LOCK_OFFSET)
        msvcrt.locking(file.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(file.fileno(), fcntl.LOCK_UN)


class StatusLock:
    """Advisory lock file used to detect and identify a running service instance."""

    def __init__(self, path: Path):
        self.path = path
        self.error = LockError.NO_ERROR
        self.error_string = ''
        self._file: Optional[IO[str]] = None

    @classmethod
    def for_runtime_dir(cls, runtime_dir: Path) -> 'StatusLock':
        """Create the status lock of the service owning runtime_dir."""
        return cls(runtime_dir / LOCK_FILE_NAME)

    @property
    def is_locked(self) -> bool:
        return self._file is not None

    def try_lock(self) -> bool:
        """
        Try to acquire the lock without blocking.

        Returns:
            True if the lock is now held by this object. On False, `error`
            tells a live foreign holder (LOCK_FAILED) apart from I/O problems.
        """
        if self._file is not None:
            return True

        try:
            ensure_runtime_dir(self.path.parent)
            # a+ creates the file without truncating a holder's metadata
            file = open(self.path, 'a+', encoding='utf-8')
        except PermissionError as e:
            return self._fail(LockError.PERMISSION_ERROR, e)
        except OSError as e:
            return self._fail(LockError.UNKNOWN_ERROR, e)

        try:
            _try_lock_file(file)
        except OSError as e:
            file.close()
            if e.errno in _LOCK_HELD_ERRNOS:
                return self._fail(LockError.LOCK_FAILED, e)
            if isinstance(e, PermissionError):
                return self._fail(LockError.PERMISSION_ERROR, e)
            return self._fail(LockError.UNKNOWN_ERROR, e)

        self._file = file
        self.error = LockError.NO_ERROR
        self.error_string = ''
        return True

    def lock(self, timeout: float = 5.0, poll_interval: float = 0.1) -> None:
        """
        Acquire the lock, retrying until timeout.

        Raises:
            StatusLockError: If the lock is still unavailable after timeout seconds.
        """
        deadline = time.monotonic() + timeout
        while not self.try_lock():
            if self.error != LockError.LOCK_FAILED:
                raise StatusLockError(f'Failed to access lockfile {self.path}: {self.error_string}')
            if time.monotonic() >= deadline:
                raise StatusLockError(f'Lockfile {self.path} is held by another instance')
            time.sleep(poll_interval)

    def unlock(self) -> None:
        """Release the lock if held."""
        if self._file is None:
            return
        file, self._file = self._file, None
        try:
            _unlock_file(file)
        finally:
            file.close()

    def write_info(self, app_name: Optional[str] = None) -> LockInfo:
        """Publish the identity of the current process into the held lock file."""
        if self._file is None:
            raise StatusLockError('Cannot write lock info without holding the lock')
        info = LockInfo(
            pid=os.getpid(),
            app_name=app_name or Path(sys.argv[0]).name,
            host=socket.gethostname(),
        )
        self._file.seek(0)
        self._file.truncate()
        self._file.write(f'{info.pid}\n{info.app_name}\n{info.host}\n')
        self._file.flush()
        return info

    def clear_info(self) -> None:
        """Erase the published identity while the lock is still held."""
        if self._file is None:
            return
        self._file.seek(0)
        self._file.truncate()
        self._file.flush()

    def lock_info(self) -> Optional[LockInfo]:
        """
        Read the identity of the current foreign holder.

        Returns:
            The holder's record, or None if nobody else holds the lock or the
            record cannot be read.
        """
        if self.is_locked:
            return None
        probe = StatusLock(self.path)
        if probe.try_lock():
            probe.unlock()
            return None
        if probe.error != LockError.LOCK_FAILED:
            logger.debug('Cannot probe lockfile %s: %s', self.path, probe.error_string)
            return None
        return self._read_info()

    @contextmanager
    def hold(self, app_name: Optional[str] = None, timeout: float = 5.0) -> Iterator[LockInfo]:
        """
        Hold the lock for the lifetime of a service instance.

        Raises:
            StatusLockError: If another instance holds the lock.
        """
        self.lock(timeout=timeout)
        try:
            info = self.write_info(app_name)
            logger.info('Acquired status lock %s as PID %d', self.path, info.pid)
            yield info
        finally:
            self.clear_info()
            self.unlock()

    def _read_info(self) -> Optional[LockInfo]:
        try:
            lines = self.path.read_text(encoding='utf-8').splitlines()
            return LockInfo(pid=int(lines[0]), app_name=lines[1], host=lines[2])
        except (OSError, ValueError, IndexError) as e:
            logger.debug('Failed to read lock info from %s: %s', self.path, e)
            return None

    def _fail(self, error: LockError, exc: OSError) -> bool:
        self.error = error
        self.error_string = exc.strerror or str(exc)
        return False

    def __enter__(self) -> 'StatusLock':
        self.lock()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.unlock()

    def __repr__(self) -> str:
        return f'StatusLock(path={str(self.path)!r}, locked={self.is_locked})'
