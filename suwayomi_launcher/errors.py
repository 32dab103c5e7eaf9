"""
Launcher errors

Every failure that can abort a bootstrap attempt is raised as a subclass of
LauncherError so the hosting shell can catch one type and fall back to a
degraded address.
"""

from __future__ import annotations


class LauncherError(Exception):
    """Base class for bootstrap failures"""
    pass


class MissingExecutable(LauncherError):
    """The launcher's own executable or any usable runtime root is unknown"""

    def __init__(self, message: str = "could not determine launcher executable path"):
        super().__init__(message)


class MissingFile(LauncherError):
    """A required interpreter or payload file is absent"""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"required file is missing: {self.path}")


class SpawnFailure(LauncherError):
    """The OS refused to create the server process"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"failed to start server process: {reason}")


class StartupTimeout(LauncherError):
    """The server was spawned but never answered the health check in time"""

    def __init__(self, base_url: str, timeout: float):
        self.base_url = base_url
        self.timeout = timeout
        super().__init__(
            f"server did not become healthy at {base_url} within {timeout:g} seconds"
        )


class InvalidBaseUrl(LauncherError):
    """The resolved base address is not a usable URL"""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"invalid base url: {value}")
