"""Abstract base class for service control backends."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
import logging

from service_control._paths import ensure_runtime_dir
from service_control.config import ServiceConfig
from service_control.exceptions import ServiceOperation
from service_control.status import BlockMode, Status, SupportFlag

DEFAULT_SUBPROCESS_TIMEOUT_SECONDS = 30
STOP_RETRY_COUNT = 10
STOP_RETRY_INTERVAL_MS = 500


class ServiceControl(ABC):
    """
    Uniform control interface for a single background service.

    Operations never raise for expected failures (service missing, already in
    the requested state, permission denied). They return False or
    Status.UNKNOWN and attach a message readable through `error`.
    """

    def __init__(self, config: ServiceConfig):
        """
        Initialize the service control backend.

        Args:
            config: Configuration of the controlled service.
        """
        self.config = config
        self._error: Optional[str] = None
        self.logger = logging.getLogger(f'{self.__class__.__name__}.{self.service_name}')

    @property
    def service_id(self) -> str:
        """Identity of the controlled service."""
        return self.config.service_id

    @property
    def service_name(self) -> str:
        """Display name of the controlled service."""
        return self.config.service_name

    @property
    def runtime_dir(self) -> Path:
        """Per-service runtime directory, created on demand."""
        return ensure_runtime_dir(self.config.runtime_dir)

    @property
    @abstractmethod
    def backend(self) -> str:
        """Stable identifier of this backend."""
        pass

    @property
    @abstractmethod
    def support_flags(self) -> SupportFlag:
        """Operations this backend can perform. Consult before start/stop/set_enabled."""
        pass

    @property
    @abstractmethod
    def blocking(self) -> BlockMode:
        """Whether start/stop return only once their effect is observable."""
        pass

    @abstractmethod
    def service_exists(self) -> bool:
        """Check whether the service is installed, without side effects."""
        pass

    def supports(self, flag: SupportFlag) -> bool:
        """Check whether all operations in flag are supported."""
        return (self.support_flags & flag) == flag

    def is_enabled(self) -> bool:
        """Check whether the service is permitted to run."""
        return True

    @property
    def status(self) -> Status:
        """Current run state of the service."""
        self._set_unsupported(ServiceOperation.GET_STATUS)
        return Status.UNKNOWN

    def start(self) -> bool:
        """
        Start the service.

        Returns:
            True if the service was started or already running.
        """
        self.clear_error()
        self._set_unsupported(ServiceOperation.START)
        return False

    def stop(self) -> bool:
        """
        Stop the service.

        Returns:
            True if the service was stopped or already stopped.
        """
        self.clear_error()
        self._set_unsupported(ServiceOperation.STOP)
        return False

    def set_enabled(self, enabled: bool) -> bool:
        """
        Allow or forbid the service to run.

        Args:
            enabled: New enablement state.

        Returns:
            True if the state was applied.
        """
        self.clear_error()
        self._set_unsupported(ServiceOperation.SET_ENABLED)
        return False

    def call_generic_command(self, kind: str, *args: Any) -> Any:
        """
        Run a backend specific command.

        Args:
            kind: Command name.
            args: Command arguments.

        Returns:
            The command result, or None for commands the backend does not know.
        """
        return None

    @property
    def error(self) -> Optional[str]:
        """Message attached by the last failing operation, if any."""
        return self._error

    def clear_error(self) -> None:
        self._error = None

    def _set_error(self, message: str) -> None:
        self.logger.warning(message)
        self._error = message

    def _set_unsupported(self, operation: ServiceOperation) -> None:
        self._set_error(f'Operation {operation.value} is not supported by backend {self.backend}')

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(backend={self.backend!r}, service_id={self.service_id!r})'
