"""Loading doorman.yml and resolving the runtime context for one invocation.

The file looks like::

    doorman:
      rundir: /run/doorman
      sysops: [jordan]
    container:
      dosemu_image: ghcr.io/jordemort/doorman-dosemu:main
    doors:
      lord:
        door_path: /srv/doors/lord
        max_nodes: 2
        launch_commands: "LORD.EXE /N{{ node }}"
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml  # type: ignore
from pydantic import ValidationError

from ..contracts.v1 import ConfigFile, DoorOptions, User
from ..errors import ConfigurationError
from ..paths import config_path, default_datadir, default_rundir
from ..runners.engine import ContainerEngine, detect_engine
from .identity import is_sysop, switch_user


@dataclass(frozen=True)
class Door:
    name: str
    options: DoorOptions


@dataclass
class Config:
    rundir: Path
    datadir: Path
    user: User
    engine: ContainerEngine
    dosemu_image: str
    uid: int
    gid: int
    sysops: List[str] = field(default_factory=list)
    doors: Dict[str, DoorOptions] = field(default_factory=dict)

    def get_door(self, name: str) -> Door:
        options = self.doors.get(name)
        if options is None:
            raise ConfigurationError(f"Unknown door '{name}'")
        return Door(name=name, options=options)

    def is_sysop(self) -> bool:
        return is_sysop(self.user, service_uid=self.uid, sysops=self.sysops)

    def switch_user(
        self,
        username: Optional[str] = None,
        uid: Optional[int] = None,
        display_name: Optional[str] = None,
    ) -> None:
        self.user = switch_user(
            self.user,
            sysop=self.is_sysop(),
            username=username,
            uid=uid,
            display_name=display_name,
        )


def read_config_file(path: Path) -> ConfigFile:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Couldn't open config file: {path} ({e})") from e
    try:
        doc = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Couldn't parse config file: {path} ({e})") from e
    if not isinstance(doc, dict):
        raise ConfigurationError(f"Couldn't parse config file: {path} (expected a mapping)")
    try:
        return ConfigFile.model_validate(doc)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config file: {path}\n{e}") from e


def _ensure_dir(path: Path, what: str) -> Path:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Couldn't create {what}: {path} ({e})") from e
    return path


def load_config(user: User, *, path: Optional[Path] = None) -> Config:
    """Read the config file and detect the container engine.

    `user` is the caller, resolved before privileges were narrowed.
    """
    cfg_path = config_path(path)
    doc = read_config_file(cfg_path)

    datadir = _ensure_dir(doc.doorman.datadir or default_datadir(), "datadir")
    rundir = _ensure_dir(doc.doorman.rundir or default_rundir(datadir), "rundir")

    engine = detect_engine(
        rundir=rundir,
        engine_path=doc.container.engine_path,
        rootless_podman=doc.container.rootless_podman,
    )

    return Config(
        rundir=rundir,
        datadir=datadir,
        user=user,
        engine=engine,
        dosemu_image=doc.container.dosemu_image,
        uid=os.getuid(),
        gid=os.getgid(),
        sysops=list(doc.doorman.sysops),
        doors=dict(doc.doors),
    )
