"""Service control configuration."""

import os
import platform
import sys
from pathlib import Path
from typing import Optional

from service_control._paths import get_runtime_dir


def service_name_from_id(service_id: str) -> str:
    """
    Derive the display name of a service from its id.

    Ids naming an executable file map to the file's base name without its last
    suffix. Anything else maps to the last non-empty '/'-separated segment.

    Raises:
        ValueError: If the id has no usable segment.
    """
    path = Path(service_id)
    if path.is_file() and os.access(path, os.X_OK):
        return path.stem
    segments = [segment for segment in service_id.split('/') if segment]
    if not segments:
        raise ValueError(f'Service id "{service_id}" has no name segment')
    return segments[-1]


class PlatformFeatures:
    """Platform capabilities, resolved once and fed into backend support flags."""

    def __init__(self, process_spawning: bool, console_control: bool):
        self.process_spawning = process_spawning
        self.console_control = console_control

    @classmethod
    def detect(cls) -> 'PlatformFeatures':
        """Detect the features of the running interpreter and OS."""
        return cls(
            process_spawning=sys.platform not in ('emscripten', 'wasi'),
            console_control=platform.system() == 'Windows',
        )

    def __repr__(self) -> str:
        return (
            f'PlatformFeatures('
            f'process_spawning={self.process_spawning}, '
            f'console_control={self.console_control})'
        )


class ServiceConfig:
    """Configuration for controlling a service."""

    def __init__(
        self,
        service_id: str,
        runtime_dir: Optional[Path] = None,
        features: Optional[PlatformFeatures] = None
    ):
        """
        Initialize service configuration.

        Args:
            service_id: Identity of the service (executable name, path or component name).
            runtime_dir: Directory for runtime status data. Defaults to the platform runtime location.
            features: Platform capabilities. Detected when omitted.

        Raises:
            ValueError: If service_id is empty or has no name segment.
        """
        if not service_id:
            raise ValueError('Service id cannot be empty')
        self._service_id = service_id
        self._service_name = service_name_from_id(service_id)
        self.runtime_dir = runtime_dir if runtime_dir is not None else get_runtime_dir(self._service_name)
        self.features = features if features is not None else PlatformFeatures.detect()

    @property
    def service_id(self) -> str:
        return self._service_id

    @property
    def service_name(self) -> str:
        return self._service_name
