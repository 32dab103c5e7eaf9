"""
Server Process Supervisor

Owns the single Suwayomi server process started by this launcher.

Features:
- Launch command building from LauncherConfig
- Console-window suppression on Windows
- Graceful shutdown (SIGTERM, then kill after a deadline)
- At most one tracked child, guarded by a lock
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import SpawnFailure
from .platform_utils import PlatformCapabilities, get_platform_capabilities

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 10.0
POLL_INTERVAL = 0.3

PROPERTY_PREFIX = "suwayomi.tachidesk.config.server"


@dataclass(frozen=True)
class LauncherConfig:
    """Everything needed to start the server, fixed for one bootstrap attempt"""
    runtime_root: Path
    interpreter_path: Path
    payload_path: Path
    base_url: str
    root_dir_override: Optional[str] = None


def build_java_args(root_dir: Optional[str] = None) -> List[str]:
    args = [
        f"-D{PROPERTY_PREFIX}.initialOpenInBrowserEnabled=false",
        f"-D{PROPERTY_PREFIX}.webUIInterface=browser",
    ]
    if root_dir is not None:
        args.append(f"-D{PROPERTY_PREFIX}.rootDir={root_dir}")
    return args


def build_command(config: LauncherConfig) -> List[str]:
    """
    Build the server command line.

    Example:
        -> ["/app/jre/bin/java", "-D...initialOpenInBrowserEnabled=false",
            "-D...webUIInterface=browser", "-jar", "/app/bin/Suwayomi-Server.jar"]
    """
    return [
        str(config.interpreter_path),
        *build_java_args(config.root_dir_override),
        "-jar",
        str(config.payload_path),
    ]


def spawn_server(
    config: LauncherConfig,
    platform: Optional[PlatformCapabilities] = None,
) -> subprocess.Popen:
    """
    Start the server process.

    Raises:
        SpawnFailure: the OS could not create the process
    """
    platform = platform or get_platform_capabilities()
    command = build_command(config)
    logger.info(f"Starting server: {' '.join(command)} (cwd={config.runtime_root})")

    try:
        child = subprocess.Popen(
            command,
            cwd=str(config.runtime_root),
            **platform.popen_kwargs(),
        )
    except OSError as e:
        raise SpawnFailure(str(e)) from e

    logger.info(f"Server process started (PID {child.pid})")
    return child


def wait_for_exit(
    child: subprocess.Popen,
    timeout: float,
    interval: float = POLL_INTERVAL,
) -> bool:
    """Poll until the child exits. Returns False if the deadline passed first."""
    started = time.monotonic()
    while time.monotonic() - started < timeout:
        if child.poll() is not None:
            return True
        time.sleep(interval)
    return False


def _force_kill(child: subprocess.Popen) -> None:
    try:
        child.kill()
    except ProcessLookupError:
        pass
    child.wait()


class ProcessSupervisor:
    """
    Tracks the server process started by this launcher.

    A child enters the tracked slot only after it answered its first health
    check; shutdown() takes it back out and owns termination from then on.
    """

    def __init__(
        self,
        platform: Optional[PlatformCapabilities] = None,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.platform = platform or get_platform_capabilities()
        self.shutdown_timeout = shutdown_timeout
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._child: Optional[subprocess.Popen] = None

    def spawn(self, config: LauncherConfig) -> subprocess.Popen:
        return spawn_server(config, self.platform)

    def track(self, child: subprocess.Popen) -> None:
        """
        Start supervising a healthy child.

        Raises:
            RuntimeError: another child is already tracked
        """
        with self._lock:
            if self._child is not None:
                raise RuntimeError(
                    f"already supervising PID {self._child.pid}, refusing to track PID {child.pid}"
                )
            self._child = child
        logger.info(f"Supervising server process (PID {child.pid})")

    @property
    def is_tracking(self) -> bool:
        with self._lock:
            return self._child is not None

    @property
    def is_running(self) -> bool:
        """True while a tracked child exists and has not exited on its own"""
        with self._lock:
            return self._child is not None and self._child.poll() is None

    @property
    def tracked_pid(self) -> Optional[int]:
        with self._lock:
            return self._child.pid if self._child is not None else None

    def discard(self, child: subprocess.Popen) -> None:
        """Kill and reap a child that never made it into the tracked slot."""
        logger.warning(f"Killing unhealthy server process (PID {child.pid})")
        _force_kill(child)

    def shutdown(self) -> None:
        """
        Stop the tracked child, if any.

        Sends the platform's graceful stop, waits up to shutdown_timeout, then
        kills. Safe to call more than once.
        """
        with self._lock:
            child, self._child = self._child, None

        if child is None:
            return

        if child.poll() is not None:
            logger.info(f"Server process {child.pid} already exited with code {child.returncode}")
            return

        logger.info(f"Stopping server process (PID {child.pid})")
        self.platform.graceful_terminate(child)

        if wait_for_exit(child, self.shutdown_timeout, self.poll_interval):
            logger.info(f"Server process {child.pid} terminated gracefully")
            return

        logger.warning(
            f"Server process {child.pid} did not exit after {self.shutdown_timeout:g}s, killing"
        )
        _force_kill(child)
        logger.info(f"Server process {child.pid} killed")
