from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    uid: int
    username: str
    display_name: str

    model_config = ConfigDict(extra="forbid")
