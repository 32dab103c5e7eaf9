"""
Platform capabilities for the launcher.

Everything that differs between Windows, macOS and the other POSIX systems
lives here so the locator, supervisor and orchestrator stay platform-agnostic:

- Platform detection (Windows/macOS/Linux)
- Application directory detection for .app bundles
- Extra bundle-convention runtime roots
- Interpreter file name
- Console-window suppression for the spawned server
- Graceful termination signal delivery
- Local data directory (where the server keeps server.conf)
"""

from __future__ import annotations

import logging
import os
import platform
import signal
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

# subprocess.CREATE_NO_WINDOW only exists on Windows builds of Python
CREATE_NO_WINDOW = 0x08000000


def get_platform() -> str:
    """Capability key for the running OS; every non-Windows, non-macOS system uses the POSIX defaults."""
    return {'Windows': 'windows', 'Darwin': 'macos'}.get(platform.system(), 'linux')


class PlatformCapabilities:
    """
    Default (Linux / generic POSIX) behaviour.

    Subclasses override only what their platform does differently.
    """

    name = 'linux'
    interpreter_name = 'java'

    def app_dir_for(self, executable_dir: Path) -> Path:
        """Map the directory holding the launcher binary to the app directory."""
        return executable_dir

    def bundle_roots(self, app_dir: Path) -> List[Path]:
        """Additional runtime roots dictated by the platform's bundle layout."""
        return []

    def popen_kwargs(self) -> Dict[str, Any]:
        """Extra keyword arguments for subprocess.Popen when spawning the server."""
        return {}

    def graceful_terminate(self, child: subprocess.Popen) -> None:
        """Ask the child to stop cooperatively (SIGTERM)."""
        try:
            child.send_signal(signal.SIGTERM)
            logger.info(f"Sent SIGTERM to process {child.pid}")
        except ProcessLookupError:
            logger.debug(f"Process {child.pid} already gone before SIGTERM")

    def data_local_dir(self, environ: Optional[Mapping[str, str]] = None) -> Path:
        """
        Per-user local data directory.

        Honours $XDG_DATA_HOME when it holds an absolute path, otherwise
        ~/.local/share.
        """
        env = os.environ if environ is None else environ
        xdg = (env.get('XDG_DATA_HOME') or '').strip()
        if xdg and os.path.isabs(xdg):
            return Path(xdg)
        return Path.home() / '.local' / 'share'


class MacOSPlatform(PlatformCapabilities):
    """macOS: .app bundles keep resources under Contents/Resources."""

    name = 'macos'

    def app_dir_for(self, executable_dir: Path) -> Path:
        # Foo.app/Contents/MacOS/launcher -> Foo.app/Contents
        if executable_dir.name == 'MacOS' and executable_dir.parent != executable_dir:
            return executable_dir.parent
        return executable_dir

    def bundle_roots(self, app_dir: Path) -> List[Path]:
        return [
            app_dir / 'Resources',
            app_dir / 'Resources' / 'resources',
        ]

    def data_local_dir(self, environ: Optional[Mapping[str, str]] = None) -> Path:
        return Path.home() / 'Library' / 'Application Support'


class WindowsPlatform(PlatformCapabilities):
    """Windows: no cooperative stop signal, hide the server console."""

    name = 'windows'
    interpreter_name = 'java.exe'

    def popen_kwargs(self) -> Dict[str, Any]:
        return {'creationflags': getattr(subprocess, 'CREATE_NO_WINDOW', CREATE_NO_WINDOW)}

    def graceful_terminate(self, child: subprocess.Popen) -> None:
        # Popen.terminate() is TerminateProcess here, which is already the
        # forced path. Leave the child alone and let the kill deadline act.
        logger.debug(f"No graceful stop available for process {child.pid} on Windows")

    def data_local_dir(self, environ: Optional[Mapping[str, str]] = None) -> Path:
        env = os.environ if environ is None else environ
        local_appdata = (env.get('LOCALAPPDATA') or '').strip()
        if local_appdata:
            return Path(local_appdata)
        # Fallback if LOCALAPPDATA is not set
        return Path.home() / 'AppData' / 'Local'


_PLATFORMS = {
    'linux': PlatformCapabilities,
    'macos': MacOSPlatform,
    'windows': WindowsPlatform,
}


def get_platform_capabilities(platform_name: Optional[str] = None) -> PlatformCapabilities:
    """
    Return the capability object for a platform.

    Args:
        platform_name: 'windows', 'macos' or 'linux'; detected when omitted

    Raises:
        ValueError: unknown platform name
    """
    name = platform_name or get_platform()
    try:
        return _PLATFORMS[name]()
    except KeyError:
        raise ValueError(f"Unknown platform: {name}") from None
