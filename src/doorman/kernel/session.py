"""Launching a door for one caller: door lock, node claim, workspace, container, attach.

Lock order is always door lock (shared) then node lock (exclusive). The node
lock is released once the container reports ready; from then on the container
itself holds `/mnt/node.lock` (bind-mounted from the same file) for as long
as the session runs.
"""
from __future__ import annotations

import logging
import os
import subprocess
from contextlib import ExitStack
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

from ..contracts.v1 import LABEL_DOOR, LABEL_NODE, LABEL_RUNDIR, LABEL_USER
from ..errors import AllNodesBusyError, DoorBusyError, LaunchFailedError, LockFileError
from ..paths import door_lock_path, node_lock_path, node_workspace_path
from ..util.file_lock import LockFile, open_lock
from .config import Config, Door
from .dos import Templates
from .workspace import stage_session, template_vars

logger = logging.getLogger("doorman.session")

SessionState = Literal[
    "idle",
    "door_locked",
    "node_scanning",
    "node_claimed",
    "workspace_staged",
    "container_starting",
    "container_ready",
    "attached",
    "done",
    "failed",
]

# Container-side mount points; the dosemu image's scripts expect exactly these.
MNT_WORKSPACE = "/mnt/doorman"
MNT_DOOR = "/mnt/door"
MNT_DOOR_LOCK = "/mnt/door.lock"
MNT_NODE_LOCK = "/mnt/node.lock"

WAIT_ENTRYPOINT = "wait-for-launch.sh"
LAUNCH_SCRIPT = "launch.sh"


def get_term() -> str:
    return os.environ.get("TERM") or "xterm"


def lock_door_shared(rundir: Path, door_name: str) -> LockFile:
    """Shared door lock: many players at once, but never during maintenance."""
    lock = open_lock(door_lock_path(rundir, door_name))
    try:
        acquired = lock.try_lock_shared()
    except LockFileError:
        lock.close()
        raise
    if not acquired:
        lock.close()
        raise DoorBusyError(f"Sorry, {door_name} is currently undergoing maintenance.")
    return lock


def claim_node(rundir: Path, door_name: str, max_nodes: int) -> Tuple[int, LockFile]:
    """Exclusively lock the lowest free node in 1..max_nodes."""
    for node in range(1, max_nodes + 1):
        path = node_lock_path(rundir, door_name, node)
        try:
            lock = open_lock(path)
        except LockFileError as e:
            raise LockFileError(f"Failed to lock node {node} for door '{door_name}': {e}", path=path) from e
        try:
            acquired = lock.try_lock_exclusive()
        except LockFileError:
            lock.close()
            raise
        if acquired:
            return node, lock
        lock.close()
        logger.info(f"node {node} of {door_name} is busy", extra={"door": door_name, "node": node})
    raise AllNodesBusyError(f"All nodes for {door_name} are busy!")


class DoorSession:
    """One play session. `run()` blocks until the caller leaves the door."""

    def __init__(
        self,
        config: Config,
        door: Door,
        *,
        raw: bool = False,
        templates: Optional[Templates] = None,
    ):
        self.config = config
        self.door = door
        self.raw = raw
        self.templates = templates or Templates()
        self.state: SessionState = "idle"
        self.failure: Optional[str] = None
        self.node: Optional[int] = None
        self.workspace: Optional[Path] = None
        self.container_id: Optional[str] = None
        self.attach_returncode: Optional[int] = None
        self._node_lock: Optional[LockFile] = None

    def _log_extra(self) -> Dict[str, object]:
        return {"op": "launch", "door": self.door.name, "node": self.node, "state": self.state}

    def _enter(self, state: SessionState) -> None:
        self.state = state
        logger.debug(f"{self.door.name}: -> {state}", extra=self._log_extra())

    def run(self) -> "DoorSession":
        with ExitStack() as stack:
            try:
                stack.enter_context(lock_door_shared(self.config.rundir, self.door.name))
                self._enter("door_locked")

                self._enter("node_scanning")
                self.node, self._node_lock = claim_node(
                    self.config.rundir, self.door.name, self.door.options.max_nodes
                )
                stack.enter_context(self._node_lock)
                self._enter("node_claimed")

                self._stage()
                self._enter("workspace_staged")

                self._enter("container_starting")
                self.container_id = self._start_container()
                self._enter("container_ready")

                self._release_node()
                self._enter("attached")
                self.attach_returncode = self._attach()
            except Exception as e:
                self.failure = str(e)
                self._enter("failed")
                raise
        self._enter("done")
        return self

    def _stage(self) -> None:
        assert self.node is not None
        self.workspace = node_workspace_path(self.config.rundir, self.door.name, self.node)
        stage_session(
            self.workspace,
            templates=self.templates,
            launch_template=self.door.options.launch_commands,
            variables=template_vars(self.config.user, node=self.node),
        )

    def run_command(self) -> List[str]:
        assert self.node is not None and self.workspace is not None
        rundir = self.config.rundir
        env = {"TERM": get_term(), "DOORMAN_RAW": "1" if self.raw else "0"}
        volumes = {
            self.workspace: MNT_WORKSPACE,
            self.door.options.door_path: MNT_DOOR,
            door_lock_path(rundir, self.door.name): MNT_DOOR_LOCK,
            node_lock_path(rundir, self.door.name, self.node): MNT_NODE_LOCK,
        }
        labels = {
            LABEL_DOOR: self.door.name,
            LABEL_NODE: str(self.node),
            LABEL_USER: self.config.user.username,
            LABEL_RUNDIR: str(self.workspace),
        }
        return self.config.engine.run_command(
            uid=self.config.uid,
            gid=self.config.gid,
            env=env,
            volumes=volumes,
            labels=labels,
            mode=["-d"],
            image=self.config.dosemu_image,
            entrypoint=WAIT_ENTRYPOINT,
        )

    def _start_container(self) -> str:
        """Run detached; the entrypoint only exits once dosemu is ready for us."""
        name = self.door.name
        try:
            p = subprocess.run(self.run_command(), stdout=subprocess.PIPE, check=False)
        except OSError as e:
            raise LaunchFailedError(f"While starting container for door '{name}': {e}") from e

        if p.returncode < 0:
            raise LaunchFailedError(f"Starting container for {name} failed with an unknown exit code")
        if p.returncode != 0:
            raise LaunchFailedError(f"Starting container for {name} failed with exit code {p.returncode}")

        try:
            container_id = (p.stdout or b"").decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise LaunchFailedError(f"While decoding container ID for door '{name}'") from e
        if not container_id:
            raise LaunchFailedError(f"Container engine returned no container ID for door '{name}'")

        logger.debug(f"Container ID: {container_id}", extra={**self._log_extra(), "container_id": container_id})
        return container_id

    def _release_node(self) -> None:
        # The slot assignment is done; the running container holds /mnt/node.lock from here on.
        if self._node_lock is not None:
            self._node_lock.unlock()
            self._node_lock.close()

    def _attach(self) -> int:
        assert self.container_id is not None
        argv = self.config.engine.exec_command(self.container_id, LAUNCH_SCRIPT)
        try:
            p = subprocess.run(argv, check=False)
        except OSError as e:
            raise LaunchFailedError(f"While starting client for door '{self.door.name}': {e}") from e
        return int(p.returncode)


def launch(config: Config, door_name: str, *, raw: bool = False) -> DoorSession:
    door = config.get_door(door_name)
    return DoorSession(config, door, raw=raw).run()
