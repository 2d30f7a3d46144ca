from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


CONFIG_ENV = "DOORMAN_CONFIG"
CONFIG_FILENAME = "doorman.yml"


def _xdg_dir(env: str, fallback: Path) -> Path:
    value = os.environ.get(env, "").strip()
    if value:
        return Path(value).expanduser()
    return fallback


def config_path(explicit: Optional[Path] = None) -> Path:
    if explicit is not None:
        return Path(explicit).expanduser()
    env = os.environ.get(CONFIG_ENV, "").strip()
    if env:
        return Path(env).expanduser()
    return _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config") / "doorman" / CONFIG_FILENAME


def default_datadir() -> Path:
    return _xdg_dir("XDG_DATA_HOME", Path.home() / ".local" / "share") / "doorman"


def default_rundir(datadir: Path) -> Path:
    runtime = os.environ.get("XDG_RUNTIME_DIR", "").strip()
    if runtime:
        return Path(runtime) / "doorman"
    return datadir / "run"


def door_lock_path(rundir: Path, door: str) -> Path:
    return rundir / f"{door}.lock"


def node_lock_path(rundir: Path, door: str, node: int) -> Path:
    return rundir / f"{door}.{node}.lock"


def node_workspace_path(rundir: Path, door: str, node: int) -> Path:
    return rundir / f"{door}.{node}"


def sysop_workspace_path(rundir: Path, door: str) -> Path:
    return rundir / f"{door}.sysop"
