"""Service control backends."""

from service_control.backends.base import ServiceControl
from service_control.backends.binder import (
    BindFlag,
    ComponentDescriptor,
    ServiceBinder,
    ServiceConnection,
    ServiceIntent,
    SystemdServiceBinder,
)
from service_control.backends.bound import BoundServiceControl
from service_control.backends.standard import StandardServiceControl

__all__ = [
    'ServiceControl',
    'StandardServiceControl',
    'BoundServiceControl',
    'ServiceBinder',
    'SystemdServiceBinder',
    'ServiceConnection',
    'ServiceIntent',
    'ComponentDescriptor',
    'BindFlag',
]
