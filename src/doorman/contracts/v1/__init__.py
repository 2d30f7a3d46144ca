from __future__ import annotations

from .config import ConfigFile, ContainerOptions, DoormanOptions, DoorOptions
from .session import (
    LABEL_COMMAND,
    LABEL_DOOR,
    LABEL_NODE,
    LABEL_RUNDIR,
    LABEL_USER,
    MaintenanceCommand,
    SessionRecord,
)
from .user import User

__all__ = [
    "ConfigFile",
    "ContainerOptions",
    "DoorOptions",
    "DoormanOptions",
    "LABEL_COMMAND",
    "LABEL_DOOR",
    "LABEL_NODE",
    "LABEL_RUNDIR",
    "LABEL_USER",
    "MaintenanceCommand",
    "SessionRecord",
    "User",
]
