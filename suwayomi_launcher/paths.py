"""
Runtime discovery

Finds the bundled JRE and the server jar across the places an installer may
have put them (flat install, resources/ subdirectory, macOS .app bundle).
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import MissingExecutable, MissingFile
from .platform_utils import PlatformCapabilities, get_platform_capabilities

logger = logging.getLogger(__name__)

PAYLOAD_NAME = "Suwayomi-Server.jar"


@dataclass(frozen=True)
class RuntimePaths:
    runtime_root: Path
    interpreter_path: Path
    payload_path: Path


def _push_unique(paths: List[Path], path: Path) -> None:
    if path not in paths:
        paths.append(path)


def runtime_roots(
    resource_dir: Optional[Path],
    app_dir: Path,
    platform: Optional[PlatformCapabilities] = None,
) -> List[Path]:
    """
    Candidate runtime roots in priority order, first occurrence wins.

    Args:
        resource_dir: Resource directory reported by the hosting shell, if any
        app_dir: Application directory (see current_app_dir)
        platform: Platform capabilities (default: detected)
    """
    platform = platform or get_platform_capabilities()
    roots: List[Path] = []

    if resource_dir is not None:
        resource_dir = Path(resource_dir)
        _push_unique(roots, resource_dir)
        _push_unique(roots, resource_dir / "resources")

    app_dir = Path(app_dir)
    _push_unique(roots, app_dir)
    _push_unique(roots, app_dir / "resources")

    for extra in platform.bundle_roots(app_dir):
        _push_unique(roots, extra)

    return roots


def current_app_dir(
    executable: Optional[str] = None,
    platform: Optional[PlatformCapabilities] = None,
) -> Path:
    """
    Directory of the running launcher executable.

    On macOS an executable inside Foo.app/Contents/MacOS resolves to
    Foo.app/Contents so both flat and bundled layouts work.

    Raises:
        MissingExecutable: the executable path is unknown
    """
    platform = platform or get_platform_capabilities()
    executable = executable if executable is not None else sys.executable
    if not executable:
        raise MissingExecutable()

    executable_path = Path(executable).absolute()
    executable_dir = executable_path.parent
    if executable_dir == executable_path:
        raise MissingExecutable()

    return platform.app_dir_for(executable_dir)


def interpreter_path(root: Path, platform: Optional[PlatformCapabilities] = None) -> Path:
    platform = platform or get_platform_capabilities()
    return Path(root) / "jre" / "bin" / platform.interpreter_name


def payload_path(root: Path) -> Path:
    return Path(root) / "bin" / PAYLOAD_NAME


def find_runtime_paths(
    roots: Iterable[Path],
    platform: Optional[PlatformCapabilities] = None,
) -> RuntimePaths:
    """
    Pick the first root holding both the interpreter and the jar.

    A missing interpreter is reported ahead of a missing jar, since without
    a JRE the jar is of no use.

    Raises:
        MissingFile: first missing interpreter, else first missing jar
        MissingExecutable: no candidate roots at all
    """
    platform = platform or get_platform_capabilities()
    first_missing_interpreter: Optional[Path] = None
    first_missing_payload: Optional[Path] = None

    for root in roots:
        java_bin = interpreter_path(root, platform)
        jar_file = payload_path(root)

        if not java_bin.exists():
            logger.debug(f"No interpreter under {root}")
            if first_missing_interpreter is None:
                first_missing_interpreter = java_bin
            continue

        if not jar_file.exists():
            logger.debug(f"No server jar under {root}")
            if first_missing_payload is None:
                first_missing_payload = jar_file
            continue

        logger.info(f"Using runtime root {root}")
        return RuntimePaths(runtime_root=Path(root), interpreter_path=java_bin, payload_path=jar_file)

    if first_missing_interpreter is not None:
        raise MissingFile(first_missing_interpreter)
    if first_missing_payload is not None:
        raise MissingFile(first_missing_payload)
    raise MissingExecutable("no runtime root candidates to search")
