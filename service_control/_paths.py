"""Platform-specific runtime paths for service status data."""

import os
import platform
import tempfile
from pathlib import Path

RUNTIME_DIR_ENV = 'SERVICE_CONTROL_RUNTIME_DIR'
APP_DIR_NAME = 'service-control'


def get_runtime_base_dir() -> Path:
    """Get the platform-specific base directory for runtime data."""
    override = os.environ.get(RUNTIME_DIR_ENV)
    if override:
        return Path(override)

    system = platform.system()
    if system == 'Darwin':
        path = Path.home() / "Library" / "Caches" / APP_DIR_NAME
    elif system == 'Linux':
        xdg_runtime = os.environ.get('XDG_RUNTIME_DIR')
        if xdg_runtime:
            path = Path(xdg_runtime) / APP_DIR_NAME
        else:
            path = Path(tempfile.gettempdir()) / f'{APP_DIR_NAME}-{os.getuid()}'
    elif system == 'Windows':
        local_app_data = os.environ.get('LOCALAPPDATA')
        if local_app_data:
            path = Path(local_app_data) / "Temp" / APP_DIR_NAME
        else:
            path = Path(tempfile.gettempdir()) / APP_DIR_NAME
    else:
        path = Path(tempfile.gettempdir()) / APP_DIR_NAME

    return path


def get_runtime_dir(service_name: str) -> Path:
    """Get the runtime directory of a single service."""
    return get_runtime_base_dir() / service_name


def ensure_runtime_dir(runtime_dir: Path) -> Path:
    """Create the runtime directory if it doesn't exist."""
    runtime_dir.mkdir(parents=True, exist_ok=True)
    return runtime_dir
