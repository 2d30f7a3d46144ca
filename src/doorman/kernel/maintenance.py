"""Sysop-only door maintenance (configure / nightly) under the exclusive door lock."""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Literal, Optional

from ..contracts.v1 import LABEL_COMMAND, LABEL_DOOR, LABEL_RUNDIR, LABEL_USER, MaintenanceCommand
from ..errors import DoorBusyError, LaunchFailedError, NotConfiguredError, PermissionDeniedError
from ..paths import door_lock_path, sysop_workspace_path
from ..util.file_lock import LockFile, open_lock
from .config import Config, Door
from .dos import Templates
from .session import MNT_DOOR, MNT_DOOR_LOCK, MNT_WORKSPACE, get_term
from .workspace import stage_maintenance, template_vars

logger = logging.getLogger("doorman.maintenance")

MaintenanceState = Literal[
    "idle",
    "authorized",
    "door_lock_attempt",
    "workspace_staged",
    "container_running",
    "done",
    "failed",
]


def lock_door_exclusive(rundir: Path, door_name: str, *, nowait: bool) -> LockFile:
    lock = open_lock(door_lock_path(rundir, door_name))
    try:
        if not lock.try_lock_exclusive():
            if nowait:
                raise DoorBusyError(f"Sorry, I couldn't lock the door '{door_name}' exclusively.")
            logger.info(f"waiting for exclusive lock on {door_name}", extra={"door": door_name})
            lock.lock_exclusive()
    except BaseException:
        lock.close()
        raise
    return lock


def command_template(door: Door, command: MaintenanceCommand) -> Optional[str]:
    if command == "configure":
        return door.options.configure_commands
    return door.options.nightly_commands


class MaintenanceRun:
    def __init__(
        self,
        config: Config,
        door: Door,
        command: MaintenanceCommand,
        *,
        nowait: bool = False,
        templates: Optional[Templates] = None,
    ):
        self.config = config
        self.door = door
        self.command = command
        self.nowait = nowait
        self.templates = templates or Templates()
        self.state: MaintenanceState = "idle"
        self.failure: Optional[str] = None
        self.workspace = sysop_workspace_path(config.rundir, door.name)
        self.returncode: Optional[int] = None

    def _enter(self, state: MaintenanceState) -> None:
        self.state = state
        logger.debug(
            f"{self.door.name} {self.command}: -> {state}",
            extra={"op": self.command, "door": self.door.name, "command": self.command, "state": state},
        )

    def run(self) -> "MaintenanceRun":
        try:
            self._run()
        except Exception as e:
            self.failure = str(e)
            self._enter("failed")
            raise
        self._enter("done")
        return self

    def _run(self) -> None:
        if not self.config.is_sysop():
            raise PermissionDeniedError("This command is only for sysops!")
        self._enter("authorized")

        template = command_template(self.door, self.command)
        if template is None:
            raise NotConfiguredError(f"No {self.command} command configured for {self.door.name}!")

        self._enter("door_lock_attempt")
        with lock_door_exclusive(self.config.rundir, self.door.name, nowait=self.nowait) as door_lock:
            stage_maintenance(
                self.workspace,
                templates=self.templates,
                command_template=template,
                variables=template_vars(self.config.user),
            )
            self._enter("workspace_staged")

            try:
                proc = subprocess.Popen(self.run_command())
            except OSError as e:
                raise LaunchFailedError(f"While spawning container for door '{self.door.name}': {e}") from e
            # From here the container's own use of /mnt/door.lock keeps players out.
            door_lock.unlock()
            self._enter("container_running")

        self.returncode = proc.wait()
        if self.returncode != 0:
            logger.warning(
                f"{self.command} container for {self.door.name} exited with {self.returncode}",
                extra={"op": self.command, "door": self.door.name},
            )

    def run_command(self) -> List[str]:
        rundir = self.config.rundir
        volumes = {
            self.workspace: MNT_WORKSPACE,
            self.door.options.door_path: MNT_DOOR,
            door_lock_path(rundir, self.door.name): MNT_DOOR_LOCK,
        }
        labels = {
            LABEL_DOOR: self.door.name,
            LABEL_COMMAND: self.command,
            LABEL_USER: self.config.user.username,
            LABEL_RUNDIR: str(self.workspace),
        }
        return self.config.engine.run_command(
            uid=self.config.uid,
            gid=self.config.gid,
            env={"TERM": get_term()},
            volumes=volumes,
            labels=labels,
            mode=["-ti"],
            image=self.config.dosemu_image,
            entrypoint=f"{self.command}.sh",
        )


def configure(config: Config, door_name: str, *, nowait: bool = False) -> MaintenanceRun:
    return MaintenanceRun(config, config.get_door(door_name), "configure", nowait=nowait).run()


def nightly(config: Config, door_name: str, *, nowait: bool = False) -> MaintenanceRun:
    return MaintenanceRun(config, config.get_door(door_name), "nightly", nowait=nowait).run()
