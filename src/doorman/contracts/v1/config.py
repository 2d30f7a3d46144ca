from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_DOSEMU_IMAGE = "ghcr.io/jordemort/doorman-dosemu:main"


class DoormanOptions(BaseModel):
    # Persistent data; defaults to $XDG_DATA_HOME/doorman
    datadir: Optional[Path] = None
    # Lockfiles and session workspaces; defaults to $XDG_RUNTIME_DIR/doorman or {datadir}/run
    rundir: Optional[Path] = None
    sysops: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ContainerOptions(BaseModel):
    # /path/to/podman or /path/to/docker; probed from PATH when unset
    engine_path: Optional[Path] = None
    # Explicit override; detected via `podman info` when unset
    rootless_podman: Optional[bool] = None
    dosemu_image: str = DEFAULT_DOSEMU_IMAGE

    model_config = ConfigDict(extra="ignore")


class DoorOptions(BaseModel):
    # Mounted as drive Z: inside DOSEMU
    door_path: Path
    # Concurrent players; the door itself must have this many nodes configured
    max_nodes: int = Field(default=1, ge=1)
    launch_commands: str
    configure_commands: Optional[str] = None
    nightly_commands: Optional[str] = None

    model_config = ConfigDict(extra="ignore", frozen=True)


class ConfigFile(BaseModel):
    doorman: DoormanOptions = Field(default_factory=DoormanOptions)
    container: ContainerOptions = Field(default_factory=ContainerOptions)
    doors: Dict[str, DoorOptions] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")
