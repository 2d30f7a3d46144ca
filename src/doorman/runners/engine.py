"""Container engine detection and command-line construction (podman or docker)."""
from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import ClassVar, Dict, List, Literal, Mapping, Optional, Tuple

from ..contracts.v1 import LABEL_DOOR
from ..errors import ConfigurationError, UnknownEngineError

logger = logging.getLogger("doorman.engine")

EngineKind = Literal["podman", "docker"]

# Candidates probed on PATH, in order, when no engine_path is configured.
ENGINE_CANDIDATES = ("podman", "docker")

TMPFS_MOUNTS = ("/run/user", "/tmp", "/var/tmp")


def _run_engine(argv: List[str], *, timeout_s: float = 30.0) -> Tuple[int, str, str]:
    p = subprocess.run(
        argv,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        timeout=timeout_s,
        check=False,
    )
    return int(p.returncode), (p.stdout or ""), (p.stderr or "")


class ContainerEngine:
    """Builds argv lists for one container engine binary.

    Use `detect_engine()` to pick the right variant; call sites only ever see
    this interface.
    """

    kind: ClassVar[EngineKind]

    def __init__(self, path: Path, *, rundir: Path):
        self.path = Path(path)
        self.rundir = Path(rundir)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r}, rootless_podman={self.rootless_podman})"

    @property
    def rootless_podman(self) -> bool:
        return False

    def global_args(self) -> List[str]:
        return []

    def run_suffix(self) -> List[str]:
        return []

    def command(self, subcommand: str) -> List[str]:
        return [str(self.path), *self.global_args(), subcommand]

    def run_args(
        self,
        *,
        uid: int,
        gid: int,
        env: Mapping[str, str],
        volumes: Mapping[Path, str],
        labels: Mapping[str, str],
    ) -> List[str]:
        args = [f"--user={uid}:{gid}"]
        args.extend(f"--tmpfs={p}" for p in TMPFS_MOUNTS)
        for host_path, container_path in volumes.items():
            args.append(f"-v{host_path}:{container_path}")
        for key, value in env.items():
            args.append(f"-e{key}={value}")
        for key, value in labels.items():
            args.append(f"-l{key}={value}")
        args.extend(self.run_suffix())
        return args

    def run_command(
        self,
        *,
        uid: int,
        gid: int,
        env: Mapping[str, str],
        volumes: Mapping[Path, str],
        labels: Mapping[str, str],
        mode: List[str],
        image: str,
        entrypoint: str,
    ) -> List[str]:
        """`run` argv; `mode` is ["-d"] for detached sessions or ["-ti"] for interactive ones."""
        return [
            *self.command("run"),
            *self.run_args(uid=uid, gid=gid, env=env, volumes=volumes, labels=labels),
            *mode,
            image,
            entrypoint,
        ]

    def exec_command(self, container_id: str, script: str) -> List[str]:
        return [*self.command("exec"), "-ti", container_id, script]

    def ps_command(self, door: Optional[str] = None) -> List[str]:
        label_filter = f"label={LABEL_DOOR}={door}" if door else f"label={LABEL_DOOR}"
        return [*self.command("ps"), "--format=json", "--filter", label_filter]


class DockerEngine(ContainerEngine):
    kind = "docker"


class PodmanEngine(ContainerEngine):
    kind = "podman"

    def __init__(self, path: Path, *, rundir: Path, rootless: bool = False):
        super().__init__(path, rundir=rundir)
        self._rootless = bool(rootless)

    @property
    def rootless_podman(self) -> bool:
        return self._rootless

    def global_args(self) -> List[str]:
        if not self._rootless:
            return []
        # Keep container storage inside doorman's rundir so the service account owns it.
        return [
            f"--root={self.rundir / 'podman'}",
            f"--runroot={self.rundir / 'podman-run'}",
            "--cgroup-manager=cgroupfs",
        ]

    def run_suffix(self) -> List[str]:
        if not self._rootless:
            return []
        return ["--userns=keep-id", "--passwd=false"]


_VARIANTS: Dict[str, type] = {"PODMAN ": PodmanEngine, "DOCKER ": DockerEngine}


def classify_engine(path: Path) -> EngineKind:
    try:
        _, out, _ = _run_engine([str(path), "--version"])
    except (OSError, subprocess.SubprocessError) as e:
        raise ConfigurationError(f"Couldn't run container engine {path}: {e}") from e
    banner = out.strip().upper()
    for prefix, variant in _VARIANTS.items():
        if banner.startswith(prefix):
            return variant.kind
    raise UnknownEngineError(f"{path} is neither podman nor docker (version output: {out.strip()!r})")


def detect_rootless(path: Path) -> bool:
    """Ask podman whether it runs rootless. Any failure means "no"."""
    try:
        code, out, _ = _run_engine([str(path), "info", "--format=json"])
        if code != 0:
            return False
        info = json.loads(out)
        return info["host"]["security"]["rootless"] is True
    except Exception as e:
        logger.debug(f"rootless detection failed, assuming rootful: {e}")
        return False


def find_engine_path() -> Path:
    for name in ENGINE_CANDIDATES:
        found = shutil.which(name)
        if found:
            return Path(found)
    raise ConfigurationError("Couldn't find podman or docker in PATH")


def detect_engine(
    *,
    rundir: Path,
    engine_path: Optional[Path] = None,
    rootless_podman: Optional[bool] = None,
) -> ContainerEngine:
    path = Path(engine_path) if engine_path is not None else find_engine_path()
    kind = classify_engine(path)
    if kind == "docker":
        engine: ContainerEngine = DockerEngine(path, rundir=rundir)
    else:
        rootless = detect_rootless(path) if rootless_podman is None else bool(rootless_podman)
        engine = PodmanEngine(path, rundir=rundir, rootless=rootless)
    logger.debug(f"using {engine!r}")
    return engine
