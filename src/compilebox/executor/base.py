from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Protocol

from ..core.models import ResourceLimits


@dataclass
class SandboxSpec:
    name: str
    image: str
    cmd: List[str]
    limits: ResourceLimits
    binds: Dict[str, str] = field(default_factory=dict)  # host path -> sandbox path (rw)
    env: Dict[str, str] = field(default_factory=dict)
    user: str = "root"


class ContainerRuntime(Protocol):
    """Capabilities the job controller needs from a container engine."""

    async def create(self, spec: SandboxSpec) -> Any: ...
    async def start(self, handle: Any) -> None: ...
    async def wait(self, handle: Any) -> int: ...
    async def logs(self, handle: Any) -> bytes: ...
    async def get_archive(self, handle: Any, path: str) -> Iterable[bytes]: ...
    async def stop(self, handle: Any, timeout_s: int) -> None: ...
    async def remove(self, handle: Any, force: bool = True) -> None: ...
