from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml  # type: ignore
from rich.console import Console

from . import __version__
from .errors import DoormanError
from .kernel.config import Config, load_config
from .kernel.identity import current_user
from .kernel.maintenance import configure, nightly
from .kernel.privileges import drop_privileges
from .kernel.session import launch
from .kernel.who import EMPTY_MESSAGE, build_table, sessions_as_data, who
from .util.obslog import resolve_level, setup_root_json_logging

logger = logging.getLogger("doorman.cli")


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _load(args: argparse.Namespace) -> Config:
    # Resolve the caller while the real uid still says who they are.
    user = current_user()
    drop_privileges()
    return load_config(user, path=args.config)


def cmd_launch(args: argparse.Namespace) -> int:
    config = _load(args)
    if args.user or args.uid is not None or args.display_name:
        config.switch_user(username=args.user, uid=args.uid, display_name=args.display_name)
    session = launch(config, args.door, raw=bool(args.raw))
    logger.info(
        f"{config.user.username} left {args.door} (node {session.node})",
        extra={"op": "launch", "door": args.door, "node": session.node},
    )
    return 0


def cmd_configure(args: argparse.Namespace) -> int:
    configure(_load(args), args.door, nowait=bool(args.nowait))
    return 0


def cmd_nightly(args: argparse.Namespace) -> int:
    nightly(_load(args), args.door, nowait=bool(args.nowait))
    return 0


def cmd_who(args: argparse.Namespace) -> int:
    config = _load(args)
    records = who(config.engine, args.door)

    if args.format == "json":
        _print_json(sessions_as_data(records))
        return 0
    if args.format == "yaml":
        print(yaml.safe_dump(sessions_as_data(records), allow_unicode=True, sort_keys=False), end="")
        return 0

    if not records:
        print(EMPTY_MESSAGE)
        return 0
    Console().print(build_table(records))
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="doorman", description="Run DOS doors in containers")
    p.add_argument("--config", type=Path, default=None, help="Config file (default: $DOORMAN_CONFIG or ~/.config/doorman/doorman.yml)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_launch = sub.add_parser("launch", help="Launch a door")
    p_launch.add_argument("door", help="Door name")
    p_launch.add_argument("-u", "--user", metavar="USERNAME", default=None, help="User to run the door as (sysops only)")
    p_launch.add_argument("--uid", type=int, default=None, help="User ID to run the door as (sysops only)")
    p_launch.add_argument("--display-name", default=None, help="Display name to present to the door (sysops only)")
    p_launch.add_argument("-r", "--raw", action="store_true", help="Don't translate from ANSI+CP437")
    p_launch.set_defaults(func=cmd_launch)

    p_configure = sub.add_parser("configure", help="Launch a door's configuration program")
    p_configure.add_argument("door", help="Door name")
    p_configure.add_argument("-n", "--nowait", action="store_true", help="Fail immediately if the door is busy")
    p_configure.set_defaults(func=cmd_configure)

    p_nightly = sub.add_parser("nightly", help="Run a door's nightly maintenance")
    p_nightly.add_argument("door", help="Door name")
    p_nightly.add_argument("-n", "--nowait", action="store_true", help="Fail immediately if the door is busy")
    p_nightly.set_defaults(func=cmd_nightly)

    p_who = sub.add_parser("who", help="Show who's playing what")
    p_who.add_argument("door", nargs="?", default=None, help="Only show people playing DOOR (optional)")
    p_who.add_argument("-f", "--format", choices=["json", "yaml"], default=None, help="Output format")
    p_who.set_defaults(func=cmd_who)

    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_root_json_logging(component="doorman", level=resolve_level(verbose=bool(args.verbose)))
    try:
        return int(args.func(args))
    except DoormanError as e:
        print(f"doorman: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
