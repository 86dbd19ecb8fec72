"""
Service Control - local control of background OS services.

This library provides a uniform interface for querying, starting and stopping
a service through interchangeable backends: a process backend that tracks
instances with a status lock file, and bound-service backends driven by the
platform's service binder (systemd).
"""
__version__ = "0.1.0"

from service_control.manager import create_control, register_backend, available_backends
from service_control.config import ServiceConfig, PlatformFeatures
from service_control.status import Status, BlockMode, SupportFlag
from service_control.status_store import StatusLock, LockError, LockInfo
from service_control.backends import (
    ServiceControl,
    StandardServiceControl,
    BoundServiceControl,
    ServiceBinder,
    SystemdServiceBinder,
    ServiceConnection,
    ServiceIntent,
    ComponentDescriptor,
    BindFlag,
)
from service_control.exceptions import (
    ServiceControlError,
    ServiceOperationError,
    ServiceOperation,
    StatusLockError,
    BackendNotFoundError,
)

__all__ = [
    # Main entry points
    "create_control",
    "register_backend",
    "available_backends",
    "ServiceConfig",
    "PlatformFeatures",
    # Status types
    "Status",
    "BlockMode",
    "SupportFlag",
    # Status store
    "StatusLock",
    "LockError",
    "LockInfo",
    # Backends
    "ServiceControl",
    "StandardServiceControl",
    "BoundServiceControl",
    "ServiceBinder",
    "SystemdServiceBinder",
    "ServiceConnection",
    "ServiceIntent",
    "ComponentDescriptor",
    "BindFlag",
    # Exceptions
    "ServiceControlError",
    "ServiceOperationError",
    "ServiceOperation",
    "StatusLockError",
    "BackendNotFoundError",
]
