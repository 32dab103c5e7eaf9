"""
Launcher bootstrap

Turns "I want a Suwayomi server" into a ready base URL:

    UNCHECKED -> READY                                      (already running)
    UNCHECKED -> DISCOVERING -> SPAWNING -> WAITING_HEALTHY -> READY
    DISCOVERING / SPAWNING / WAITING_HEALTHY -> FAILED

Bootstrap blocks for up to the startup timeout; hosting shells should call it
off their UI thread.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from . import health
from .config import is_valid_base_url, resolve_base_url
from .errors import InvalidBaseUrl, StartupTimeout
from .paths import current_app_dir, find_runtime_paths, runtime_roots
from .platform_utils import PlatformCapabilities
from .supervisor import LauncherConfig, ProcessSupervisor

logger = logging.getLogger(__name__)

ROOT_DIR_ENV = "SUWAYOMI_ROOT_DIR"


class BootstrapState(str, Enum):
    UNCHECKED = "UNCHECKED"
    DISCOVERING = "DISCOVERING"
    SPAWNING = "SPAWNING"
    WAITING_HEALTHY = "WAITING_HEALTHY"
    READY = "READY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class LauncherBootstrap:
    base_url: str
    spawned: bool = False


def discover_launcher_config(
    base_url: str,
    resource_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[PlatformCapabilities] = None,
    executable: Optional[str] = None,
) -> LauncherConfig:
    """
    Locate the runtime and assemble the launch configuration.

    Raises:
        MissingExecutable: launcher path unknown or nothing to search
        MissingFile: interpreter or jar missing in every candidate root
    """
    env = os.environ if environ is None else environ
    app_dir = current_app_dir(executable, platform)
    roots = runtime_roots(resource_dir, app_dir, platform)
    logger.debug(f"Runtime root candidates: {[str(r) for r in roots]}")

    found = find_runtime_paths(roots, platform)

    return LauncherConfig(
        runtime_root=found.runtime_root,
        interpreter_path=found.interpreter_path,
        payload_path=found.payload_path,
        base_url=base_url,
        root_dir_override=env.get(ROOT_DIR_ENV),
    )


class Launcher:
    """
    Bootstrap orchestrator.

    One instance per application; the supervisor passed in is the one the
    shell later shuts down.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        *,
        cli_url: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        executable: Optional[str] = None,
        startup_timeout: float = health.STARTUP_TIMEOUT,
        poll_interval: float = health.POLL_INTERVAL,
    ):
        self.supervisor = supervisor
        self.cli_url = cli_url
        self.environ = environ
        self.executable = executable
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self.state = BootstrapState.UNCHECKED

    @property
    def platform(self) -> PlatformCapabilities:
        return self.supervisor.platform

    def _transition(self, state: BootstrapState) -> None:
        logger.debug(f"bootstrap: {self.state.value} -> {state.value}")
        self.state = state

    def fallback_base_url(self) -> str:
        """Best-effort address without any health verification."""
        return resolve_base_url(self.cli_url, self.environ, self.platform)

    def bootstrap(self, resource_dir: Optional[Path] = None) -> LauncherBootstrap:
        """
        Make sure a healthy server answers at the resolved base URL.

        Args:
            resource_dir: Resource directory of the hosting shell, if it has one

        Raises:
            InvalidBaseUrl, MissingExecutable, MissingFile, SpawnFailure,
            StartupTimeout (all LauncherError)
        """
        self.state = BootstrapState.UNCHECKED
        base_url = resolve_base_url(self.cli_url, self.environ, self.platform)
        if not is_valid_base_url(base_url):
            self._transition(BootstrapState.FAILED)
            raise InvalidBaseUrl(base_url)

        if health.is_server_healthy(base_url, timeout=self.poll_interval):
            logger.info(f"Server already running at {base_url}")
            self._transition(BootstrapState.READY)
            return LauncherBootstrap(base_url=base_url)

        self._transition(BootstrapState.DISCOVERING)
        try:
            config = discover_launcher_config(
                base_url,
                resource_dir=resource_dir,
                environ=self.environ,
                platform=self.platform,
                executable=self.executable,
            )
        except Exception:
            self._transition(BootstrapState.FAILED)
            raise

        # Another instance may have brought the server up while we searched.
        if health.is_server_healthy(config.base_url, timeout=self.poll_interval):
            logger.info(f"Server came up at {config.base_url} during discovery")
            self._transition(BootstrapState.READY)
            return LauncherBootstrap(base_url=config.base_url)

        self._transition(BootstrapState.SPAWNING)
        try:
            child = self.supervisor.spawn(config)
        except Exception:
            self._transition(BootstrapState.FAILED)
            raise

        self._transition(BootstrapState.WAITING_HEALTHY)
        # The child is not tracked yet; any exit from here on must reap it.
        try:
            healthy = health.wait_for_server(config.base_url, self.startup_timeout, self.poll_interval)
            if not healthy:
                raise StartupTimeout(config.base_url, self.startup_timeout)
            self.supervisor.track(child)
        except BaseException:
            self.supervisor.discard(child)
            self._transition(BootstrapState.FAILED)
            raise
        self._transition(BootstrapState.READY)
        return LauncherBootstrap(base_url=config.base_url, spawned=True)

    def shutdown(self) -> None:
        self.supervisor.shutdown()
