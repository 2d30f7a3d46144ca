"""Who's playing what, rebuilt from the container engine's `ps` listing.

podman prints one JSON array (`Id`, epoch `Created`, `Labels` object);
docker prints one JSON object per line (`ID`, textual `CreatedAt`, `Labels`
as a comma-joined "k=v" string). Containers without doorman's user/door
labels are ignored.
"""
from __future__ import annotations

import json
import logging
import subprocess
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from rich import box
from rich.table import Table

from ..contracts.v1 import LABEL_COMMAND, LABEL_DOOR, LABEL_NODE, LABEL_USER, SessionRecord
from ..errors import DoormanError
from ..runners.engine import ContainerEngine
from ..util.time import humanize_duration, parse_docker_created, utc_from_epoch, utc_now

logger = logging.getLogger("doorman.who")


def _record(container_id: str, labels: Mapping[str, str], since: Optional[datetime]) -> Optional[SessionRecord]:
    user = labels.get(LABEL_USER)
    door = labels.get(LABEL_DOOR)
    if not user or not door or since is None:
        return None
    node: Optional[int] = None
    raw_node = labels.get(LABEL_NODE)
    if raw_node is not None:
        try:
            node = int(raw_node)
        except ValueError:
            return None
    return SessionRecord(
        container_id=str(container_id or ""),
        user=user,
        door=door,
        node=node,
        command=labels.get(LABEL_COMMAND),
        since=since,
    )


def split_docker_labels(raw: str) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for item in (raw or "").split(","):
        if not item:
            continue
        key, _, value = item.partition("=")
        labels[key] = value
    return labels


def parse_podman(output: str) -> List[SessionRecord]:
    """Raises ValueError when `output` is not a podman-style JSON array."""
    containers = json.loads(output)
    if not isinstance(containers, list):
        raise ValueError("podman ps output is not a JSON array")
    records: List[SessionRecord] = []
    for c in containers:
        if not isinstance(c, dict):
            continue
        labels = c.get("Labels") or {}
        if not isinstance(labels, dict):
            continue
        rec = _record(str(c.get("Id") or ""), labels, utc_from_epoch(c.get("Created")))
        if rec is not None:
            records.append(rec)
    return records


def parse_docker(output: str) -> List[SessionRecord]:
    records: List[SessionRecord] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            c = json.loads(line)
        except ValueError:
            continue
        if not isinstance(c, dict):
            continue
        labels = split_docker_labels(str(c.get("Labels") or ""))
        rec = _record(str(c.get("ID") or ""), labels, parse_docker_created(str(c.get("CreatedAt") or "")))
        if rec is not None:
            records.append(rec)
    return records


def parse_ps(output: str) -> List[SessionRecord]:
    try:
        return parse_podman(output)
    except ValueError:
        return parse_docker(output)


def sort_sessions(records: List[SessionRecord]) -> List[SessionRecord]:
    return sorted(records, key=lambda r: r.sort_key())


def who(engine: ContainerEngine, door: Optional[str] = None) -> List[SessionRecord]:
    argv = engine.ps_command(door)
    try:
        p = subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=False)
    except OSError as e:
        raise DoormanError(f"Couldn't run '{engine.kind} ps': {e}") from e
    if p.returncode < 0:
        raise DoormanError(f"'{engine.kind} ps' exited with unknown status")
    if p.returncode != 0:
        raise DoormanError(f"'{engine.kind} ps' exited with non-zero status: {p.returncode}")

    output = (p.stdout or b"").decode("utf-8", errors="replace")
    records = sort_sessions(parse_ps(output))
    logger.debug(f"{len(records)} active sessions", extra={"op": "who", "door": door})
    return records


def sessions_as_data(records: List[SessionRecord]) -> List[Dict[str, Any]]:
    return [r.model_dump(mode="json") for r in records]


EMPTY_MESSAGE = "Nobody is playing anything right now. How boring."


def node_column(record: SessionRecord) -> str:
    if record.node is not None:
        return str(record.node)
    return record.command or "???"


def build_table(records: List[SessionRecord], *, now: Optional[datetime] = None) -> Table:
    now = now or utc_now()
    table = Table(box=box.ROUNDED, show_lines=True)
    for header in ("User", "Door", "Node", "Duration"):
        table.add_column(header)
    for r in records:
        table.add_row(r.user, r.door, node_column(r), humanize_duration(now - r.since))
    return table
