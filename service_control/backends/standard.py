"""Standard process backend: lock file status, subprocess launch, signal stop."""

import contextlib
import errno
import os
import shutil
import signal
import subprocess
import sys
import threading
import time
from typing import Any, Optional, Set

import psutil

from service_control.backends.base import (
    ServiceControl,
    STOP_RETRY_COUNT,
    STOP_RETRY_INTERVAL_MS,
)
from service_control.config import ServiceConfig
from service_control.status import BlockMode, Status, SupportFlag
from service_control.status_store import LockError, StatusLock

# OS failures this backend cannot recover from; these propagate to the caller.
_RESOURCE_EXHAUSTION_ERRNOS = {errno.ENOMEM, errno.EAGAIN, errno.EMFILE, errno.ENFILE}

# Launched children live here until they exit and have been reaped.
_spawned_processes: Set[subprocess.Popen] = set()
_spawned_processes_lock = threading.Lock()


def _reap_process(proc: subprocess.Popen) -> None:
    proc.wait()
    with _spawned_processes_lock:
        _spawned_processes.discard(proc)


def _track_process(proc: subprocess.Popen) -> None:
    """Collect the exit status of proc on a daemon thread once it ends."""
    with _spawned_processes_lock:
        _spawned_processes.add(proc)
    threading.Thread(
        target=_reap_process,
        args=(proc,),
        name=f'service-reaper-{proc.pid}',
        daemon=True,
    ).start()


class StandardServiceControl(ServiceControl):
    """Controls a service executable that holds its status lock while running."""

    def __init__(self, config: ServiceConfig, debug_mode: bool = False, console: Any = None):
        """
        Initialize the standard backend.

        Args:
            config: Configuration of the controlled service.
            debug_mode: Launch with the parent's console streams instead of detached.
            console: Console API used to stop services on console platforms.
                Defaults to the Windows console of this process.
        """
        super().__init__(config)
        self._debug_mode = debug_mode
        self._console = console
        if self._console is None and config.features.console_control:
            from service_control.backends.console import WindowsConsole
            self._console = WindowsConsole()

        self.logger.debug('Using lock file path: %s', self._status_lock().path)

    @property
    def backend(self) -> str:
        return 'debug' if self._debug_mode else 'standard'

    @property
    def support_flags(self) -> SupportFlag:
        flags = SupportFlag.STATUS | SupportFlag.STOP
        if self.config.features.process_spawning:
            flags |= SupportFlag.START
        return flags

    @property
    def blocking(self) -> BlockMode:
        if self.config.features.console_control:
            return BlockMode.UNDETERMINED
        return BlockMode.NON_BLOCKING

    def service_exists(self) -> bool:
        return self._find_executable() is not None

    @property
    def status(self) -> Status:
        lock = self._status_lock()
        if lock.try_lock():
            lock.unlock()
            return Status.STOPPED
        if lock.error == LockError.LOCK_FAILED:
            return Status.RUNNING
        self._set_error(f'Failed to access lockfile with error: {lock.error.name} ({lock.error_string})')
        return Status.UNKNOWN

    def call_generic_command(self, kind: str, *args: Any) -> Any:
        if kind == 'getPid':
            return self.get_pid()
        return None

    def start(self) -> bool:
        if not self.config.features.process_spawning:
            return super().start()
        self.clear_error()

        if self.status == Status.RUNNING:
            self.logger.debug('Service already running with PID %s', self.get_pid())
            return True

        executable = self._find_executable()
        if executable is None:
            self._set_error(f'Unable to find executable for service with id "{self.service_id}"')
            return False

        args = [executable, '--backend', self.backend]
        cwd = os.path.abspath(os.sep)
        try:
            if self._debug_mode:
                pid = self._launch_debug(args, cwd)
            else:
                pid = self._launch_detached(args, cwd)
        except OSError as e:
            if e.errno in _RESOURCE_EXHAUSTION_ERRNOS:
                raise
            self._set_error(f'Failed to start service process with error: {e.strerror or e}')
            return False

        self.logger.info('Started service process with PID %d%s', pid, ' in debug mode' if self._debug_mode else '')
        return True

    def stop(self) -> bool:
        self.clear_error()
        if self.status == Status.STOPPED:
            self.logger.debug('Service already stopped')
            return True

        pid = self.get_pid()
        if pid is None:
            self._set_error('Failed to get pid of running service')
            return False

        if self.config.features.console_control:
            return self._stop_with_console(pid)

        self.logger.info('Sending SIGTERM to service process %d', pid)
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as e:
            self._set_error(f'Failed to send stop signal with error: {e.strerror or e}')
            return False
        return True

    def get_pid(self) -> Optional[int]:
        """PID of the running service instance, or None if not running."""
        lock = self._status_lock()
        info = lock.lock_info()
        if info is None:
            return None
        if not self._holds_lock_file(info.pid, lock):
            return None
        return info.pid

    def _holds_lock_file(self, pid: int, lock: StatusLock) -> bool:
        # A leftover record may name a pid that was since reused by another process.
        try:
            open_paths = {os.path.realpath(f.path) for f in psutil.Process(pid).open_files()}
        except psutil.NoSuchProcess:
            self.logger.warning('Lock holder PID %d does not exist on this host', pid)
            return False
        except psutil.AccessDenied:
            self.logger.warning('Cannot inspect open files of lock holder PID %d', pid)
            return False
        if os.path.realpath(lock.path) not in open_paths:
            self.logger.warning('PID %d from the lock record does not hold %s', pid, lock.path)
            return False
        return True

    def _status_lock(self) -> StatusLock:
        return StatusLock.for_runtime_dir(self.config.runtime_dir)

    def _find_executable(self) -> Optional[str]:
        return shutil.which(self.service_id)

    def _launch_debug(self, args, cwd: str) -> int:
        self.logger.debug('Launching service subprocess as %s', args)
        proc = subprocess.Popen(args, cwd=cwd)
        _track_process(proc)
        return proc.pid

    def _launch_detached(self, args, cwd: str) -> int:
        self.logger.debug('Launching service detached as %s', args)
        kwargs = {}
        if sys.platform == 'win32':
            # Own hidden console, so the console stop path can attach to it.
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
            startupinfo.wShowWindow = subprocess.SW_HIDE
            kwargs['creationflags'] = subprocess.CREATE_NEW_CONSOLE
            kwargs['startupinfo'] = startupinfo
        else:
            kwargs['start_new_session'] = True

        proc = subprocess.Popen(
            args,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            **kwargs
        )
        # The child runs in its own session; only its exit status is collected here.
        _track_process(proc)
        return proc.pid

    def _stop_with_console(self, pid: int) -> bool:
        console = self._console
        with contextlib.ExitStack() as restore:
            if console.free():
                restore.callback(console.alloc)

            if not console.attach(pid):
                self._set_error(f'Failed to attach to service console with error: {console.last_error()}')
                return False
            restore.callback(console.free)

            if not console.ignore_ctrl_events(True):
                self._set_error(f'Failed to disable local console handler with error: {console.last_error()}')
                return False
            restore.callback(console.ignore_ctrl_events, False)

            for attempt in range(STOP_RETRY_COUNT):
                if not console.send_ctrl_c():
                    self._set_error(f'Failed to send stop signal with error: {console.last_error()}')
                    continue
                if self.status != Status.RUNNING:
                    self.logger.info('Service stopped after %d stop signal(s)', attempt + 1)
                    return True
                time.sleep(STOP_RETRY_INTERVAL_MS / 1000.0)

            self._set_error('Service did not stop yet')
            return False
