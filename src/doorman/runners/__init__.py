from __future__ import annotations

from .engine import ContainerEngine, DockerEngine, PodmanEngine, detect_engine

__all__ = ["ContainerEngine", "DockerEngine", "PodmanEngine", "detect_engine"]
