from __future__ import annotations
import asyncio
import io
import tarfile
from collections import Counter
from typing import Dict, List, Optional, Tuple

import pytest

from compilebox.core.frameworks import COMPLETION_MARKER
from compilebox.executor.logs import mux


class FakeHandle:
    def __init__(self, name: str):
        self.name = name
        self.id = name


class FakeRuntime:
    """In-memory ContainerRuntime that records every call."""

    def __init__(
        self,
        exit_status: int = 0,
        records: Optional[List[Tuple[int, bytes]]] = None,
        archive: bytes = b"",
        wait_delay: float = 0.0,
        fail_on: Optional[str] = None,
        fail_exc: type = RuntimeError,
    ):
        self.exit_status = exit_status
        self.records = records if records is not None else [(1, f"built\n{COMPLETION_MARKER}\n".encode())]
        self.archive = archive
        self.wait_delay = wait_delay
        self.fail_on = fail_on
        self.fail_exc = fail_exc
        self.calls: Counter = Counter()
        self.specs = []

    def _step(self, name: str):
        self.calls[name] += 1
        if self.fail_on == name:
            raise self.fail_exc(f"{name} exploded")

    async def create(self, spec):
        self._step("create")
        self.specs.append(spec)
        return FakeHandle(spec.name)

    async def start(self, handle):
        self._step("start")

    async def wait(self, handle):
        self._step("wait")
        if self.wait_delay:
            await asyncio.sleep(self.wait_delay)
        return self.exit_status

    async def logs(self, handle):
        self._step("logs")
        return mux(self.records)

    async def get_archive(self, handle, path):
        self._step("get_archive")
        data = self.archive
        return [data[i:i + 512] for i in range(0, len(data), 512)]

    async def stop(self, handle, timeout_s):
        self._step("stop")

    async def remove(self, handle, force=True):
        self._step("remove")


def make_tar(files: Dict[str, bytes], dirs=()) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for d in dirs:
            info = tarfile.TarInfo(d)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def fake_runtime():
    return FakeRuntime


@pytest.fixture
def tar_of():
    return make_tar
