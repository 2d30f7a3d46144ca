from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_serializer


LABEL_DOOR = "doorman.door"
LABEL_NODE = "doorman.node"
LABEL_USER = "doorman.user"
LABEL_COMMAND = "doorman.command"
LABEL_RUNDIR = "doorman.rundir"

MaintenanceCommand = Literal["configure", "nightly"]


class SessionRecord(BaseModel):
    """One running door container, rebuilt from the engine's `ps` listing."""

    container_id: str
    user: str
    door: str
    node: Optional[int] = None
    command: Optional[str] = None
    since: datetime

    model_config = ConfigDict(extra="forbid")

    @field_serializer("since")
    def _since_epoch(self, since: datetime) -> int:
        return int(since.timestamp())

    def sort_key(self) -> tuple:
        # Maintenance sessions have no node and sort first within their door.
        return (self.door, self.node if self.node is not None else 0)
