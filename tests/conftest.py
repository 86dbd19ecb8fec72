"""Pytest configuration and fixtures for service-control tests."""

import os
import stat
import sys
import time
from pathlib import Path
from typing import Callable, Generator, List
import logging

import psutil
import pytest

from service_control import (
    PlatformFeatures,
    ServiceConfig,
    Status,
    StatusLock,
)
from service_control._paths import RUNTIME_DIR_ENV

# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

TEST_SERVICE_NAME = "sample_service"
SERVICE_MAIN = Path(__file__).parent / "test_service" / "service_main.py"
PROJECT_ROOT = Path(__file__).parent.parent

POSIX_FEATURES = PlatformFeatures(process_spawning=True, console_control=False)
CONSOLE_FEATURES = PlatformFeatures(process_spawning=True, console_control=True)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="spawns a shebang script")


@pytest.fixture
def runtime_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Fixture pointing the runtime base directory of controls and services at tmp_path."""
    base = tmp_path / "runtime"
    monkeypatch.setenv(RUNTIME_DIR_ENV, str(base))
    return base


@pytest.fixture
def service_config(runtime_base: Path) -> ServiceConfig:
    """Fixture providing a config for a service that is not installed."""
    return ServiceConfig(TEST_SERVICE_NAME, features=POSIX_FEATURES)


@pytest.fixture
def held_lock(service_config: ServiceConfig) -> Generator[StatusLock, None, None]:
    """Fixture holding the service's status lock in this process, as a running instance would."""
    lock = StatusLock.for_runtime_dir(service_config.runtime_dir)
    with lock.hold(app_name=TEST_SERVICE_NAME):
        yield lock


@pytest.fixture
def service_executable(tmp_path: Path, runtime_base: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Fixture providing an executable service script; kills every instance it spawned."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    executable = bin_dir / TEST_SERVICE_NAME
    executable.write_text(f"#!{sys.executable}\n{SERVICE_MAIN.read_text()}")
    executable.chmod(executable.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    python_path = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH",
        os.pathsep.join([str(PROJECT_ROOT)] + ([python_path] if python_path else [])),
    )

    yield executable

    for pid in launched_pids(runtime_base / TEST_SERVICE_NAME):
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            pass
        except Exception as e:
            logging.warning(f"Cleanup failed (can be ignored): {e}")


def launched_pids(runtime_dir: Path) -> List[int]:
    """PIDs of all service processes that recorded a launch in runtime_dir."""
    log = runtime_dir / "launches.log"
    if not log.exists():
        return []
    return [int(line.split()[0]) for line in log.read_text().splitlines() if line.strip()]


def launch_records(runtime_dir: Path) -> List[List[str]]:
    """Launch records as [pid, backend, cwd]."""
    log = runtime_dir / "launches.log"
    if not log.exists():
        return []
    return [line.split(" ", 2) for line in log.read_text().splitlines() if line.strip()]


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0, poll_interval: float = 0.1) -> bool:
    """Wait until predicate() holds.

    Returns:
        True if the predicate held before timeout, False otherwise.
    """
    start_time = time.time()
    while time.time() - start_time < timeout:
        if predicate():
            return True
        time.sleep(poll_interval)
    return False


def wait_for_status(control, expected: Status, timeout: float = 10.0) -> bool:
    """Wait for the control to report the expected status."""
    return wait_for(lambda: control.status == expected, timeout=timeout)
