"""Suwayomi Launcher.

Finds or starts a local Suwayomi server, waits until it is healthy and stops
it again when the hosting shell exits.
"""

__version__ = "0.1.0"

from suwayomi_launcher.errors import (
    InvalidBaseUrl,
    LauncherError,
    MissingExecutable,
    MissingFile,
    SpawnFailure,
    StartupTimeout,
)
from suwayomi_launcher.launcher import BootstrapState, Launcher, LauncherBootstrap
from suwayomi_launcher.supervisor import LauncherConfig, ProcessSupervisor

__all__ = [
    "__version__",
    "BootstrapState",
    "InvalidBaseUrl",
    "Launcher",
    "LauncherBootstrap",
    "LauncherConfig",
    "LauncherError",
    "MissingExecutable",
    "MissingFile",
    "ProcessSupervisor",
    "SpawnFailure",
    "StartupTimeout",
]
