"""Backend registry - creates service controls by backend name."""

import logging
from typing import Any, Callable, Dict, List

from service_control.backends.base import ServiceControl
from service_control.backends.binder import SystemdServiceBinder
from service_control.backends.bound import BoundServiceControl
from service_control.backends.standard import StandardServiceControl
from service_control.config import ServiceConfig
from service_control.exceptions import BackendNotFoundError

logger = logging.getLogger(__name__)

BackendFactory = Callable[..., ServiceControl]


def _standard(config: ServiceConfig, **options: Any) -> ServiceControl:
    return StandardServiceControl(config, debug_mode=False, **options)


def _debug(config: ServiceConfig, **options: Any) -> ServiceControl:
    return StandardServiceControl(config, debug_mode=True, **options)


def _systemd(config: ServiceConfig, **options: Any) -> ServiceControl:
    return BoundServiceControl(config, SystemdServiceBinder(**options))


_BACKENDS: Dict[str, BackendFactory] = {
    'standard': _standard,
    'debug': _debug,
    'systemd': _systemd,
}


def register_backend(name: str, factory: BackendFactory) -> None:
    """
    Register a backend factory.

    Args:
        name: Backend name used by create_control().
        factory: Callable taking a ServiceConfig plus backend options.
    """
    if name in _BACKENDS:
        logger.info('Replacing service control backend %s', name)
    _BACKENDS[name] = factory


def available_backends() -> List[str]:
    """Names of all registered backends."""
    return sorted(_BACKENDS)


def create_control(backend: str, config: ServiceConfig, **options: Any) -> ServiceControl:
    """
    Create a service control for a named backend.

    Args:
        backend: Registered backend name.
        config: Configuration of the controlled service.
        options: Backend specific keyword arguments.

    Raises:
        BackendNotFoundError: If no backend is registered under that name.
    """
    try:
        factory = _BACKENDS[backend]
    except KeyError:
        raise BackendNotFoundError(backend) from None

    control = factory(config, **options)
    logger.debug('Created %r', control)
    return control
