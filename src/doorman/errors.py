from __future__ import annotations

from pathlib import Path
from typing import Optional


class DoormanError(RuntimeError):
    """Base class for failures reported to the caller (exit code 1)."""


class ConfigurationError(DoormanError):
    """Bad or missing configuration: unknown door, unreadable file, no engine."""


class UnknownEngineError(ConfigurationError):
    """The configured container engine is neither podman nor docker."""


class IdentityError(DoormanError):
    """A user or uid could not be resolved, or privileges could not be changed."""


class PermissionDeniedError(DoormanError):
    pass


class NotConfiguredError(DoormanError):
    """A maintenance command was requested but the door has no template for it."""


class DoorBusyError(DoormanError):
    pass


class AllNodesBusyError(DoormanError):
    pass


class LaunchFailedError(DoormanError):
    pass


class _PathError(DoormanError):
    def __init__(self, message: str, *, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class LockFileError(_PathError):
    pass


class WorkspaceError(_PathError):
    pass
