from __future__ import annotations

import logging
import os
import pwd

from ..errors import IdentityError

logger = logging.getLogger("doorman.privileges")


def drop_privileges() -> None:
    """Settle on the effective (service) identity when installed setuid/setgid.

    The caller's real uid/gid is kept as the saved id. Must run once, before
    any configuration or runtime path is touched.
    """
    uid, euid = os.getuid(), os.geteuid()
    if euid != uid:
        try:
            os.setresuid(euid, euid, uid)
        except OSError as e:
            raise IdentityError(f"Couldn't change user ID to {euid}") from e
        try:
            pwent = pwd.getpwuid(euid)
        except KeyError as e:
            raise IdentityError(f"Couldn't look up setuid user ID {euid}") from e

        os.environ["LOGNAME"] = pwent.pw_name
        os.environ["USER"] = pwent.pw_name
        os.environ["HOME"] = pwent.pw_dir
        os.environ.pop("XDG_RUNTIME_DIR", None)
        os.environ.pop("DBUS_SESSION_BUS_ADDRESS", None)
        logger.debug(f"switched uid {uid} -> {euid}")

    gid, egid = os.getgid(), os.getegid()
    if egid != gid:
        try:
            os.setresgid(egid, egid, gid)
        except OSError as e:
            raise IdentityError(f"Couldn't change group ID to {egid}") from e
        logger.debug(f"switched gid {gid} -> {egid}")
