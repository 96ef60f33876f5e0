from __future__ import annotations
import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import docker
from docker.models.containers import Container

from .base import SandboxSpec


class DockerRuntime:
    """
    ContainerRuntime backed by the Docker SDK. The SDK is blocking, so every
    call runs on a dedicated thread pool. `wait` holds a worker for the whole
    build, so the pool is sized apart from the loop's default executor.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[docker.DockerClient] = None,
        max_workers: int = 64,
    ):
        self.base_url = base_url
        self._client = client
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="docker-rt")

    @property
    def client(self) -> docker.DockerClient:
        # connect lazily so the app can boot without a daemon
        if self._client is None:
            self._client = docker.DockerClient(base_url=self.base_url) if self.base_url else docker.from_env()
        return self._client

    async def _call(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._pool, functools.partial(fn, *args, **kwargs))

    async def create(self, spec: SandboxSpec) -> Container:
        return await self._call(
            self.client.containers.create,
            spec.image,
            command=spec.cmd,
            name=spec.name,
            environment=spec.env,
            volumes={host: {"bind": cont, "mode": "rw"} for host, cont in spec.binds.items()},
            mem_limit=spec.limits.memory_bytes,
            cpu_period=spec.limits.cpu_period,
            cpu_quota=spec.limits.cpu_quota,
            user=spec.user,
        )

    async def start(self, handle: Container) -> None:
        await self._call(handle.start)

    async def wait(self, handle: Container) -> int:
        res = await self._call(handle.wait)
        return int(res.get("StatusCode", -1))

    def _raw_logs(self, handle: Container) -> bytes:
        # container.logs() already strips the frame headers; fetch the raw
        # multiplexed body so the demuxer sees exactly what the engine sent
        api = self.client.api
        res = api._get(
            api._url("/containers/{0}/logs", handle.id),
            params={"stdout": 1, "stderr": 1, "follow": 0, "timestamps": 0},
        )
        api._raise_for_status(res)
        return res.content

    async def logs(self, handle: Container) -> bytes:
        return await self._call(self._raw_logs, handle)

    async def get_archive(self, handle: Container, path: str) -> Iterable[bytes]:
        stream, _stat = await self._call(handle.get_archive, path)
        return stream

    async def stop(self, handle: Container, timeout_s: int) -> None:
        await self._call(handle.stop, timeout=timeout_s)

    async def remove(self, handle: Container, force: bool = True) -> None:
        await self._call(handle.remove, force=force)

    def close(self) -> None:
        self._pool.shutdown(wait=False)
