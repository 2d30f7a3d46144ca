"""Mapping callers to password-database identities."""
from __future__ import annotations

import logging
import os
import pwd
from typing import Optional

from ..contracts.v1 import User
from ..errors import IdentityError, PermissionDeniedError

logger = logging.getLogger("doorman.identity")


def _from_pwent(pwent: pwd.struct_passwd) -> User:
    gecos = pwent.pw_gecos or ""
    display_name = gecos.split(",")[0].strip() if gecos else ""
    return User(
        uid=int(pwent.pw_uid),
        username=pwent.pw_name,
        display_name=display_name or pwent.pw_name,
    )


def user_from_uid(uid: int) -> User:
    try:
        return _from_pwent(pwd.getpwuid(int(uid)))
    except KeyError as e:
        raise IdentityError(f"Couldn't look up user ID {uid}") from e


def user_from_username(username: str) -> User:
    try:
        return _from_pwent(pwd.getpwnam(username))
    except KeyError as e:
        raise IdentityError(f"Couldn't look up username '{username}'") from e


def current_user() -> User:
    """The caller, as seen by the real uid (before privileges are narrowed)."""
    return user_from_uid(os.getuid())


def is_sysop(user: User, *, service_uid: int, sysops: list) -> bool:
    # The account doorman runs as is always a sysop.
    if user.uid == service_uid:
        return True
    return user.username in sysops


def switch_user(
    user: User,
    *,
    sysop: bool,
    username: Optional[str] = None,
    uid: Optional[int] = None,
    display_name: Optional[str] = None,
) -> User:
    """Resolve the identity a sysop wants to launch a door as."""
    if not sysop:
        raise PermissionDeniedError("Only sysops can switch identities!")

    if uid is not None and username:
        target = User(uid=int(uid), username=username, display_name=display_name or username)
    else:
        target = user
        if uid is not None:
            target = user_from_uid(uid)
            if username:
                target = target.model_copy(update={"username": username})
        elif username:
            target = user_from_username(username)
        if display_name:
            target = target.model_copy(update={"display_name": display_name})

    logger.info(f"{user.username} is acting as {target.username} (uid {target.uid})", extra={"user": user.username})
    return target
