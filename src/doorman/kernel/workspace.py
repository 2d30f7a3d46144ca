from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..contracts.v1 import User
from ..errors import WorkspaceError
from ..util.fs import recreate_dir
from ..util.time import local_hhmm
from .dos import Templates

logger = logging.getLogger("doorman.workspace")

DROP_FILE = "door.sys"
BATCH_FILE = "doorman.bat"


def template_vars(user: User, *, node: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    variables: Dict[str, Any] = {"user": user.model_dump(), "current_time": local_hhmm(now)}
    if node is not None:
        variables["node"] = node
    return variables


def prepare_workspace(path: Path) -> Path:
    """Wipe whatever a previous (possibly crashed) run left behind and start empty."""
    try:
        recreate_dir(path)
    except OSError as e:
        raise WorkspaceError(f"Couldn't recreate workspace {path}: {e}", path=path) from e
    logger.debug(f"workspace ready: {path}")
    return path


def stage_session(
    path: Path,
    *,
    templates: Templates,
    launch_template: str,
    variables: Dict[str, Any],
) -> Path:
    """DOOR.SYS plus a DOORMAN.BAT running the door's launch commands."""
    prepare_workspace(path)
    templates.write_dos(DROP_FILE, path, variables)
    commands = templates.render_string(launch_template, variables)
    templates.write_dos(BATCH_FILE, path, {"commands": commands})
    return path


def stage_maintenance(
    path: Path,
    *,
    templates: Templates,
    command_template: str,
    variables: Dict[str, Any],
) -> Path:
    prepare_workspace(path)
    commands = templates.render_string(command_template, variables)
    templates.write_dos(BATCH_FILE, path, {"commands": commands})
    return path
