"""Windows console primitives used to ask a console service to exit."""

import ctypes
import sys

CTRL_C_EVENT = 0


class WindowsConsole:
    """Thin wrapper over the kernel32 console API of the current process."""

    def __init__(self):
        if sys.platform != 'win32':
            raise OSError('Console control is only available on Windows')
        self._kernel32 = ctypes.WinDLL('kernel32', use_last_error=True)

    def free(self) -> bool:
        """Detach from the current console. False if there was none."""
        return bool(self._kernel32.FreeConsole())

    def alloc(self) -> bool:
        return bool(self._kernel32.AllocConsole())

    def attach(self, pid: int) -> bool:
        """Attach to the console of process pid."""
        return bool(self._kernel32.AttachConsole(ctypes.c_uint32(pid)))

    def ignore_ctrl_events(self, ignore: bool) -> bool:
        """Make the current process ignore (or stop ignoring) CTRL+C."""
        return bool(self._kernel32.SetConsoleCtrlHandler(None, ignore))

    def send_ctrl_c(self) -> bool:
        """Broadcast CTRL+C to every process sharing the attached console."""
        return bool(self._kernel32.GenerateConsoleCtrlEvent(CTRL_C_EVENT, 0))

    def last_error(self) -> str:
        return ctypes.FormatError(ctypes.get_last_error()).strip()
