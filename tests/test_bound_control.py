"""Tests for the bound-service backend against an in-memory binder."""

from typing import Dict, Optional

import pytest
from packaging.version import Version

from service_control import (
    BindFlag,
    BlockMode,
    BoundServiceControl,
    ComponentDescriptor,
    ServiceBinder,
    ServiceConfig,
    ServiceConnection,
    ServiceIntent,
    ServiceOperation,
    ServiceOperationError,
    Status,
    SupportFlag,
)
from conftest import POSIX_FEATURES

SERVICE_ID = "org.example.sync/org.example.sync.SyncService"


class FakeBinder(ServiceBinder):
    """Binder over a dict of components, recording every platform call."""

    def __init__(self, supports_start=True, supports_status=False, deny_enable=False,
                 bind_result=True, bind_error=None):
        self.components: Dict[str, ComponentDescriptor] = {}
        self.registered = set()
        self.running = set()
        self.calls = []
        self._supports_start = supports_start
        self._supports_status = supports_status
        self.deny_enable = deny_enable
        self.bind_result = bind_result
        self.bind_error = bind_error

    @property
    def backend_name(self) -> str:
        return "fake"

    @property
    def supports_start(self) -> bool:
        return self._supports_start

    @property
    def supports_status(self) -> bool:
        return self._supports_status

    def install(self, service_id: str, enabled: bool = True, version: Optional[str] = None) -> None:
        package, name = service_id.split("/", 1)
        self.components[service_id] = ComponentDescriptor(
            package, name, enabled, Version(version) if version else None
        )

    def resolve(self, service_id):
        self.calls.append(("resolve", service_id))
        return self.components.get(service_id)

    def set_component_enabled(self, component, enabled):
        self.calls.append(("set_enabled", enabled))
        if self.deny_enable:
            raise PermissionError("Permission Denial: requires CHANGE_COMPONENT_ENABLED_STATE")
        key = component.flatten()
        self.components[key] = ComponentDescriptor(component.package, component.name, enabled, component.version)

    def start_service(self, intent):
        self.calls.append(("start", intent.component.flatten()))
        self.running.add(intent.component.flatten())
        return True

    def stop_service(self, intent):
        self.calls.append(("stop", intent.component.flatten()))
        self.running.discard(intent.component.flatten())
        return True

    def bind_service(self, intent, connection, flags):
        self.calls.append(("bind", flags))
        self.registered.add(connection)
        if self.bind_error is not None:
            raise self.bind_error
        if self.bind_result:
            connection.on_service_connected(intent.component)
        return self.bind_result

    def unbind_service(self, connection):
        self.calls.append(("unbind", connection))
        self.registered.discard(connection)
        if connection.component is not None:
            connection.on_service_disconnected(connection.component)

    def is_running(self, component):
        return component.flatten() in self.running


@pytest.fixture
def config(runtime_base):
    return ServiceConfig(SERVICE_ID, features=POSIX_FEATURES)


@pytest.fixture
def binder():
    binder = FakeBinder()
    binder.install(SERVICE_ID, version="2.1.0")
    return binder


class TestBoundControlQueries:
    """Tests for metadata queries and capability flags."""

    def test_backend_and_flags(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.backend == "fake"
        assert control.support_flags == SupportFlag.START | SupportFlag.STOP | SupportFlag.SET_ENABLED
        assert control.blocking == BlockMode.NON_BLOCKING
        assert control.service_name == "SyncService"

    def test_flags_follow_binder_configuration(self, config):
        binder = FakeBinder(supports_start=False, supports_status=True)
        control = BoundServiceControl(config, binder)
        assert control.support_flags == SupportFlag.STATUS | SupportFlag.STOP | SupportFlag.SET_ENABLED

        assert not control.start()
        assert control.error == "Operation start is not supported by backend fake"
        assert ("start", SERVICE_ID) not in binder.calls

    def test_service_not_installed(self, config):
        """Scenario: missing component."""
        control = BoundServiceControl(config, FakeBinder())
        assert not control.service_exists()
        assert not control.is_enabled()
        assert control.status == Status.UNKNOWN
        assert not control.start()
        assert control.error == f'Service "{SERVICE_ID}" does not exist'

    def test_exists_has_no_side_effects(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.service_exists()
        assert binder.calls == [("resolve", SERVICE_ID)]
        assert not binder.running
        assert not binder.registered

    def test_status_unsupported_reports_unknown(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.status == Status.UNKNOWN
        assert control.error == "Operation getStatus is not supported by backend fake"

    def test_status_with_supporting_binder(self, config):
        binder = FakeBinder(supports_status=True)
        binder.install(SERVICE_ID)
        control = BoundServiceControl(config, binder)

        assert control.status == Status.STOPPED
        assert control.start()
        assert control.status == Status.RUNNING

    def test_lookup_failure_is_attached(self, config, binder, monkeypatch):
        def broken(service_id):
            raise ServiceOperationError(ServiceOperation.GET_STATUS, "metadata unavailable")

        monkeypatch.setattr(binder, "resolve", broken)
        control = BoundServiceControl(config, binder)

        assert not control.service_exists()
        assert "metadata unavailable" in control.error


class TestBoundControlOperations:
    """Tests for enablement, start/stop and bindings."""

    def test_set_enabled_toggles_component(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.is_enabled()

        assert control.set_enabled(False)
        assert not control.is_enabled()
        assert control.set_enabled(True)
        assert control.is_enabled()

    def test_set_enabled_permission_denied(self, config):
        binder = FakeBinder(deny_enable=True)
        binder.install(SERVICE_ID)
        control = BoundServiceControl(config, binder)

        assert not control.set_enabled(False)
        assert control.error.startswith("Permission denied while changing enabled state")
        assert control.is_enabled()

    def test_start_uses_explicit_component(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.start()
        assert ("start", SERVICE_ID) in binder.calls
        assert control.error is None

    def test_bind_and_stop_releases_connection(self, config, binder):
        control = BoundServiceControl(config, binder)
        connection = ServiceConnection()

        assert control.bind(connection)
        assert connection.is_connected
        assert control.connections == [connection]
        assert ("bind", BindFlag.AUTO_CREATE) in binder.calls

        assert control.stop()
        assert not connection.is_connected
        assert connection not in binder.registered
        assert control.connections == []
        unbind_index = binder.calls.index(("unbind", connection))
        assert unbind_index < binder.calls.index(("stop", SERVICE_ID))

    def test_failed_bind_unregisters_connection(self, config):
        binder = FakeBinder(bind_result=False)
        binder.install(SERVICE_ID)
        control = BoundServiceControl(config, binder)
        connection = ServiceConnection()

        assert not control.bind(connection, BindFlag.NONE)
        assert connection not in binder.registered
        assert control.connections == []
        assert control.error == f"Failed to bind to service component {SERVICE_ID}"

    def test_bind_error_unregisters_connection(self, config):
        binder = FakeBinder(bind_error=PermissionError("Not allowed to bind to service"))
        binder.install(SERVICE_ID)
        control = BoundServiceControl(config, binder)
        connection = ServiceConnection()

        assert not control.bind(connection)
        assert connection not in binder.registered
        assert "Not allowed to bind" in control.error


class TestBoundGenericCommands:
    """Tests for backend specific commands."""

    def test_bind_unbind_commands(self, config, binder):
        control = BoundServiceControl(config, binder)
        connection = ServiceConnection()

        assert control.call_generic_command("bind", connection, BindFlag.AUTO_CREATE)
        assert connection in binder.registered
        assert control.call_generic_command("unbind", connection)
        assert connection not in binder.registered

    def test_start_with_intent_command(self, config, binder):
        control = BoundServiceControl(config, binder)
        component = control.call_generic_command("getComponent")
        intent = ServiceIntent(component, action="org.example.sync.FULL_SYNC")

        assert control.call_generic_command("startWithIntent", intent)
        assert SERVICE_ID in binder.running

    def test_version_command(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.call_generic_command("getVersion") == Version("2.1.0")

    @pytest.mark.parametrize("kind", ["bind", "unbind", "startWithIntent"])
    def test_command_without_arguments(self, kind, config, binder):
        """Commands missing their argument report an error instead of raising."""
        control = BoundServiceControl(config, binder)

        assert control.call_generic_command(kind) is None
        assert control.error == f"Command {kind} expects 1{' to 2' if kind == 'bind' else ''} argument(s), got 0"
        assert not binder.registered
        assert not binder.running

    def test_bind_command_with_extra_arguments(self, config, binder):
        control = BoundServiceControl(config, binder)
        connection = ServiceConnection()

        assert control.call_generic_command("bind", connection, BindFlag.NONE, "extra") is None
        assert control.error == "Command bind expects 1 to 2 argument(s), got 3"
        assert connection not in binder.registered

    def test_unknown_command(self, config, binder):
        control = BoundServiceControl(config, binder)
        assert control.call_generic_command("getPid") is None
        assert control.error is None
