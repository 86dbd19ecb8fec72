"""Service binder boundary for bound-service backends, plus a systemd binder."""

import re
import shutil
import subprocess
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Flag
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from packaging.version import InvalidVersion, Version

from service_control.backends.base import DEFAULT_SUBPROCESS_TIMEOUT_SECONDS
from service_control.exceptions import ServiceOperation, ServiceOperationError
from service_control.status import BlockMode

logger = logging.getLogger(__name__)


class BindFlag(Flag):
    """Flags passed along with a bind request."""
    NONE = 0
    AUTO_CREATE = 1
    DEBUG_UNBIND = 2
    NOT_FOREGROUND = 4
    IMPORTANT = 8


@dataclass(frozen=True)
class ComponentDescriptor:
    """OS-level component backing a service id."""

    package: str
    name: str
    enabled: bool = True
    version: Optional[Version] = None

    def flatten(self) -> str:
        return f'{self.package}/{self.name}'


@dataclass
class ServiceIntent:
    """Explicit request addressed to a single component."""

    component: ComponentDescriptor
    action: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)


class ServiceConnection:
    """Client side of a service binding. Subclass to react to connection changes."""

    def __init__(self):
        self.component: Optional[ComponentDescriptor] = None

    @property
    def is_connected(self) -> bool:
        return self.component is not None

    def on_service_connected(self, component: ComponentDescriptor) -> None:
        self.component = component

    def on_service_disconnected(self, component: ComponentDescriptor) -> None:
        self.component = None


class ServiceBinder(ABC):
    """
    Platform mechanism that looks up, starts and binds service components.

    Implementations raise PermissionError when the platform denies an
    operation and ServiceOperationError for any other platform failure.
    """

    blocking = BlockMode.NON_BLOCKING

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    @property
    def supports_start(self) -> bool:
        return True

    @property
    def supports_status(self) -> bool:
        return False

    def display_name(self, service_name: str) -> str:
        """Display name for a service id segment, e.g. a class name without its package."""
        return service_name.rsplit('.', 1)[-1] or service_name

    @abstractmethod
    def resolve(self, service_id: str) -> Optional[ComponentDescriptor]:
        """Look up the component of service_id. None if it does not exist."""
        pass

    @abstractmethod
    def set_component_enabled(self, component: ComponentDescriptor, enabled: bool) -> None:
        pass

    @abstractmethod
    def start_service(self, intent: ServiceIntent) -> bool:
        pass

    @abstractmethod
    def stop_service(self, intent: ServiceIntent) -> bool:
        pass

    @abstractmethod
    def bind_service(self, intent: ServiceIntent, connection: ServiceConnection, flags: BindFlag) -> bool:
        """
        Register connection with the component of intent.

        A False return may still leave the connection registered; callers
        must unbind it.
        """
        pass

    @abstractmethod
    def unbind_service(self, connection: ServiceConnection) -> None:
        """Drop a registration. Unknown connections are ignored."""
        pass

    def is_running(self, component: ComponentDescriptor) -> bool:
        raise ServiceOperationError(ServiceOperation.GET_STATUS, f'{self.backend_name} cannot report run state')


_PERMISSION_MARKERS = ('Access denied', 'Permission denied', 'Interactive authentication required')
_ENABLED_UNIT_FILE_STATES = {'enabled', 'enabled-runtime', 'static', 'linked', 'linked-runtime', 'alias', 'indirect'}


class SystemdServiceBinder(ServiceBinder):
    """Binds systemd units through systemctl. A binding keeps the unit running."""

    blocking = BlockMode.BLOCKING

    def __init__(self, scope: str = 'user', systemctl: str = 'systemctl'):
        if scope not in ('user', 'system'):
            raise ValueError(f'Unknown systemd scope: {scope}')
        self.scope = scope
        self.systemctl = systemctl
        self._bindings: Dict[ServiceConnection, ComponentDescriptor] = {}
        self._bindings_lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return 'systemd'

    @property
    def supports_start(self) -> bool:
        return shutil.which(self.systemctl) is not None

    @property
    def supports_status(self) -> bool:
        return True

    def display_name(self, service_name: str) -> str:
        return service_name[:-len('.service')] if service_name.endswith('.service') else service_name

    @staticmethod
    def unit_name(service_id: str) -> str:
        if '.' in service_id.rsplit('/', 1)[-1]:
            return service_id
        return f'{service_id}.service'

    def resolve(self, service_id: str) -> Optional[ComponentDescriptor]:
        unit = self.unit_name(service_id)
        result = self._run(
            ServiceOperation.GET_STATUS,
            'show', unit, '--property=LoadState,UnitFileState,FragmentPath'
        )
        properties = dict(
            line.split('=', 1) for line in result.stdout.splitlines() if '=' in line
        )
        if properties.get('LoadState', 'not-found') == 'not-found':
            logger.debug('Unit %s not found', unit)
            return None

        return ComponentDescriptor(
            package=self.scope,
            name=unit,
            enabled=properties.get('UnitFileState') in _ENABLED_UNIT_FILE_STATES,
            version=self._read_version(properties.get('FragmentPath')),
        )

    def set_component_enabled(self, component: ComponentDescriptor, enabled: bool) -> None:
        self._run(
            ServiceOperation.SET_ENABLED,
            'enable' if enabled else 'disable', component.name
        )

    def start_service(self, intent: ServiceIntent) -> bool:
        self._run(ServiceOperation.START, 'start', intent.component.name)
        return True

    def stop_service(self, intent: ServiceIntent) -> bool:
        self._run(ServiceOperation.STOP, 'stop', intent.component.name)
        return True

    def is_running(self, component: ComponentDescriptor) -> bool:
        result = self._run(ServiceOperation.GET_STATUS, 'is-active', component.name, check=False)
        return result.returncode == 0

    def bind_service(self, intent: ServiceIntent, connection: ServiceConnection, flags: BindFlag) -> bool:
        component = intent.component
        with self._bindings_lock:
            self._bindings[connection] = component

        if not self.is_running(component):
            if not flags & BindFlag.AUTO_CREATE:
                logger.debug('Unit %s is not running and auto-create was not requested', component.name)
                return False
            self.start_service(intent)

        connection.on_service_connected(component)
        return True

    def unbind_service(self, connection: ServiceConnection) -> None:
        with self._bindings_lock:
            component = self._bindings.pop(connection, None)
        if component is not None and connection.is_connected:
            connection.on_service_disconnected(component)

    def bound_connections(self) -> List[ServiceConnection]:
        with self._bindings_lock:
            return list(self._bindings)

    def _read_version(self, fragment_path: Optional[str]) -> Optional[Version]:
        if not fragment_path:
            return None
        try:
            content = Path(fragment_path).read_text()
        except OSError as e:
            logger.debug('Cannot read unit file %s: %s', fragment_path, e)
            return None

        match = re.search(r'Environment="?VERSION=([^"\s]+)"?', content)
        if not match:
            return None
        try:
            return Version(match.group(1))
        except InvalidVersion:
            logger.warning('Invalid version in unit file %s: %s', fragment_path, match.group(1))
            return None

    def _run(self, operation: ServiceOperation, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        command = [self.systemctl, f'--{self.scope}', *args]
        logger.debug('Running %s', command)
        try:
            result = subprocess.run(
                command,
                capture_output=True, text=True, check=False, timeout=DEFAULT_SUBPROCESS_TIMEOUT_SECONDS
            )
        except FileNotFoundError as e:
            raise ServiceOperationError(operation, f'{self.systemctl} is not available') from e
        except subprocess.TimeoutExpired as e:
            raise ServiceOperationError(operation, f'{" ".join(command)} timed out') from e

        if check and result.returncode != 0:
            stderr = result.stderr.strip()
            if any(marker in stderr for marker in _PERMISSION_MARKERS):
                raise PermissionError(stderr)
            raise ServiceOperationError(operation, stderr or f'exit code {result.returncode}')
        return result
