"""Bound-service backend: components started and bound through a service binder."""

from typing import Any, List, Optional

from service_control.backends.base import ServiceControl
from service_control.backends.binder import (
    BindFlag,
    ComponentDescriptor,
    ServiceBinder,
    ServiceConnection,
    ServiceIntent,
)
from service_control.config import ServiceConfig
from service_control.exceptions import ServiceControlError
from service_control.status import BlockMode, Status, SupportFlag

# Positional argument count range of each generic command taking arguments.
_COMMAND_ARGUMENTS = {
    'bind': (1, 2),
    'unbind': (1, 1),
    'startWithIntent': (1, 1),
}


class BoundServiceControl(ServiceControl):
    """Controls an OS service component via binder-style connections."""

    def __init__(self, config: ServiceConfig, binder: ServiceBinder):
        self.binder = binder
        super().__init__(config)
        self._connections: List[ServiceConnection] = []

    @property
    def backend(self) -> str:
        return self.binder.backend_name

    @property
    def service_name(self) -> str:
        return self.binder.display_name(self.config.service_name)

    @property
    def support_flags(self) -> SupportFlag:
        flags = SupportFlag.STOP | SupportFlag.SET_ENABLED
        if self.binder.supports_start:
            flags |= SupportFlag.START
        if self.binder.supports_status:
            flags |= SupportFlag.STATUS
        return flags

    @property
    def blocking(self) -> BlockMode:
        return self.binder.blocking

    @property
    def connections(self) -> List[ServiceConnection]:
        """Connections bound through this control and not yet released."""
        return list(self._connections)

    def service_exists(self) -> bool:
        return self._component() is not None

    def is_enabled(self) -> bool:
        component = self._component()
        return component is not None and component.enabled

    @property
    def status(self) -> Status:
        if not self.binder.supports_status:
            return super().status
        try:
            component = self.binder.resolve(self.service_id)
            if component is None:
                return Status.STOPPED
            return Status.RUNNING if self.binder.is_running(component) else Status.STOPPED
        except (PermissionError, ServiceControlError) as e:
            self._set_error(f'Failed to query service state: {e}')
            return Status.UNKNOWN

    def set_enabled(self, enabled: bool) -> bool:
        self.clear_error()
        component = self._require_component()
        if component is None:
            return False

        self.logger.info('%s component %s', 'Enabling' if enabled else 'Disabling', component.flatten())
        try:
            self.binder.set_component_enabled(component, enabled)
        except PermissionError as e:
            self._set_error(f'Permission denied while changing enabled state: {e}')
            return False
        except ServiceControlError as e:
            self._set_error(str(e))
            return False
        return True

    def start(self) -> bool:
        if not self.binder.supports_start:
            return super().start()
        self.clear_error()
        component = self._require_component()
        if component is None:
            return False
        return self.start_with_intent(ServiceIntent(component))

    def start_with_intent(self, intent: ServiceIntent) -> bool:
        """Hand an explicit intent to the platform's service start mechanism."""
        self.logger.info('Starting component %s', intent.component.flatten())
        try:
            ok = self.binder.start_service(intent)
        except (PermissionError, ServiceControlError) as e:
            self._set_error(f'Failed to start service: {e}')
            return False
        if not ok:
            self._set_error(f'Failed to start service component {intent.component.flatten()}')
        return ok

    def stop(self) -> bool:
        self.clear_error()
        for connection in list(self._connections):
            self.unbind(connection)

        component = self._require_component()
        if component is None:
            return False

        self.logger.info('Stopping component %s', component.flatten())
        try:
            ok = self.binder.stop_service(ServiceIntent(component))
        except (PermissionError, ServiceControlError) as e:
            self._set_error(f'Failed to stop service: {e}')
            return False
        if not ok:
            self._set_error(f'Failed to stop service component {component.flatten()}')
        return ok

    def bind(self, connection: ServiceConnection, flags: BindFlag = BindFlag.AUTO_CREATE) -> bool:
        """
        Bind connection to the service component.

        Returns:
            True if the binding is established. On failure any partial
            registration has already been released.
        """
        self.clear_error()
        component = self._require_component()
        if component is None:
            return False

        try:
            ok = self.binder.bind_service(ServiceIntent(component), connection, flags)
            reason = f'Failed to bind to service component {component.flatten()}'
        except (PermissionError, ServiceControlError) as e:
            ok = False
            reason = f'Failed to bind to service: {e}'

        if not ok:
            self.binder.unbind_service(connection)
            self._set_error(reason)
            return False

        self._connections.append(connection)
        self.logger.debug('Bound connection %r to %s', connection, component.flatten())
        return True

    def unbind(self, connection: ServiceConnection) -> None:
        """Release a binding created by bind()."""
        self.binder.unbind_service(connection)
        if connection in self._connections:
            self._connections.remove(connection)

    def call_generic_command(self, kind: str, *args: Any) -> Any:
        if kind in _COMMAND_ARGUMENTS:
            low, high = _COMMAND_ARGUMENTS[kind]
            if not low <= len(args) <= high:
                expected = str(low) if low == high else f'{low} to {high}'
                self._set_error(f'Command {kind} expects {expected} argument(s), got {len(args)}')
                return None
        if kind == 'bind':
            return self.bind(*args)
        if kind == 'unbind':
            self.unbind(*args)
            return True
        if kind == 'startWithIntent':
            return self.start_with_intent(*args)
        if kind == 'getComponent':
            return self._component()
        if kind == 'getVersion':
            component = self._component()
            return component.version if component is not None else None
        return None

    def _component(self) -> Optional[ComponentDescriptor]:
        try:
            return self.binder.resolve(self.service_id)
        except (PermissionError, ServiceControlError) as e:
            self._set_error(f'Failed to look up service component: {e}')
            return None

    def _require_component(self) -> Optional[ComponentDescriptor]:
        component = self._component()
        if component is None and self.error is None:
            self._set_error(f'Service "{self.service_id}" does not exist')
        return component
