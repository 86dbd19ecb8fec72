"""Service control exceptions.

Public control operations report expected failures through the error side
channel of the control object. The exceptions below cross the internal seams
(status store, binders, backend registry) and are converted at the operation
boundary.
"""

from enum import Enum


class ServiceOperation(Enum):
    """Operations that can be performed on a service."""
    START = 'start'
    STOP = 'stop'
    SET_ENABLED = 'setEnabled'
    GET_STATUS = 'getStatus'


class ServiceControlError(Exception):
    """Base exception for service control errors."""
    pass


class ServiceOperationError(ServiceControlError):
    """Raised when a platform service operation fails."""

    def __init__(self, operation: ServiceOperation, message: str):
        super().__init__(f"Operation {operation.value} failed: {message}")
        self.operation = operation
        self.message = message


class StatusLockError(ServiceControlError):
    """Raised when the status lock cannot be acquired by a service instance."""
    pass


class BackendNotFoundError(ServiceControlError, LookupError):
    """Raised when no backend is registered under the requested name."""

    def __init__(self, backend: str):
        super().__init__(f'No service control backend named "{backend}"')
        self.backend = backend
