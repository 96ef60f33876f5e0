from __future__ import annotations
import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, List, Tuple

import structlog

from ..core.frameworks import COMPLETION_MARKER
from ..core.models import BuildJob, BuildResult, ErrorKind, JobState
from ..core.utils import container_name
from ..executor.artifacts import collect_artifacts
from ..executor.base import ContainerRuntime, SandboxSpec
from ..executor.logs import demux

log = structlog.get_logger()


def build_command(job: BuildJob) -> List[str]:
    """
    Shell script run inside the sandbox. The source only ever appears as
    base64, so nothing the user wrote can end the quoted string.
    """
    p = job.framework
    lines = ["set -e", f"cd {p.workdir}"]
    if p.cleanup_globs:
        lines.append(f"rm -f {' '.join(p.cleanup_globs)}")
    lines += [
        f'echo "{job.encoded_source}" | base64 -d > {p.file_path}',
        # fresh mtime so vite/ng notice the change despite the shared cache
        f"touch {p.file_path}",
        "sync",
        f'{p.build_cmd} && echo "{COMPLETION_MARKER}"',
    ]
    return ["/bin/sh", "-c", "\n".join(lines)]


class JobController:
    """
    Drives one BuildJob through
    CREATED -> RUNNING -> {SUCCESS, BUILD_FAILED, TIMED_OUT, ERRORED} -> CLEANED_UP.
    Every sandbox that gets created is removed exactly once.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        user: str = "root",
        stop_before_remove: bool = False,
        stop_grace_s: int = 2,
    ):
        self.runtime = runtime
        self.user = user
        self.stop_before_remove = stop_before_remove
        self.stop_grace_s = stop_grace_s

    def build_spec(self, job: BuildJob) -> SandboxSpec:
        p = job.framework
        return SandboxSpec(
            name=container_name(p.name, job.job_id),
            image=p.image,
            cmd=build_command(job),
            limits=job.limits,
            binds={p.cache_host_path: p.cache_cont_path},
            user=self.user,
        )

    async def run(self, job: BuildJob) -> BuildResult:
        jlog = log.bind(job_id=job.job_id, framework=job.framework.name)
        job.started_at = time.monotonic()
        spec = self.build_spec(job)

        try:
            handle = await self.runtime.create(spec)
        except Exception as e:
            # nothing was created, so there is nothing to clean up
            return self._errored(job, e, jlog)
        jlog.info("sandbox_created", name=spec.name, image=spec.image)

        async with self._owned(job, handle, jlog):
            return await self._execute(job, handle, jlog)

    @asynccontextmanager
    async def _owned(self, job: BuildJob, handle: Any, jlog):
        try:
            yield handle
        finally:
            await self._cleanup(job, handle, jlog)

    async def _cleanup(self, job: BuildJob, handle: Any, jlog) -> None:
        if self.stop_before_remove and job.state == JobState.TIMED_OUT:
            try:
                await self.runtime.stop(handle, self.stop_grace_s)
            except Exception as e:
                jlog.warning("sandbox_stop_failed", error=str(e))
        try:
            await self.runtime.remove(handle, force=True)
            jlog.info("sandbox_removed")
        except Exception as e:
            jlog.error("cleanup_failed", error=str(e))
        job.state = JobState.CLEANED_UP

    async def _run_to_exit(self, job: BuildJob, handle: Any, jlog) -> Tuple[int, str]:
        await self.runtime.start(handle)
        job.state = JobState.RUNNING
        jlog.info("sandbox_started")
        status = await self.runtime.wait(handle)
        raw = await self.runtime.logs(handle)
        return status, demux(raw)

    async def _execute(self, job: BuildJob, handle: Any, jlog) -> BuildResult:
        # the deadline is its own timer, so a TimeoutError raised by the
        # runtime itself is still an infrastructure error
        task = asyncio.ensure_future(self._run_to_exit(job, handle, jlog))
        try:
            done, _ = await asyncio.wait({task}, timeout=job.timeout_ms / 1000.0)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            task.cancel()
            # the loser settles later; retrieve its outcome so nothing leaks
            task.add_done_callback(lambda t: t.cancelled() or t.exception())
            job.state = JobState.TIMED_OUT
            jlog.warning("compile_timed_out", timeout_ms=job.timeout_ms)
            return BuildResult(
                state=JobState.TIMED_OUT,
                error_kind=ErrorKind.TIMEOUT,
                error="Compilation timeout",
                duration_ms=self._elapsed_ms(job),
            )
        try:
            status, transcript = task.result()
        except Exception as e:
            return self._errored(job, e, jlog)

        job.transcript = transcript
        if status != 0 or COMPLETION_MARKER not in transcript:
            job.state = JobState.BUILD_FAILED
            jlog.info("compile_failed", error_kind=ErrorKind.BUILD_FAILED.value, exit_status=status)
            return BuildResult(
                state=JobState.BUILD_FAILED,
                error_kind=ErrorKind.BUILD_FAILED,
                error=f"{job.framework.name.upper()} Build Failed",
                transcript=transcript,
                duration_ms=self._elapsed_ms(job),
            )

        job.state = JobState.SUCCESS
        job.files = await self._collect(job, handle, jlog)
        duration = self._elapsed_ms(job)
        jlog.info("compile_succeeded", duration_ms=duration, files=len(job.files))
        return BuildResult(state=JobState.SUCCESS, files=job.files, transcript=transcript, duration_ms=duration)

    async def _collect(self, job: BuildJob, handle: Any, jlog):
        path = job.framework.dist_path
        try:
            stream = await self.runtime.get_archive(handle, path)
        except Exception as e:
            jlog.warning("artifact_extraction_failed", path=path, error=str(e))
            return {}
        try:
            # tar parsing pulls from a blocking chunk iterator
            return await asyncio.to_thread(collect_artifacts, stream, path)
        except Exception as e:
            jlog.warning("artifact_extraction_failed", path=path, error=str(e))
            return {}

    def _errored(self, job: BuildJob, exc: Exception, jlog) -> BuildResult:
        job.state = JobState.ERRORED
        jlog.error("sandbox_error", error=str(exc), error_type=type(exc).__name__)
        return BuildResult(
            state=JobState.ERRORED,
            error_kind=ErrorKind.INFRASTRUCTURE,
            error=str(exc) or type(exc).__name__,
            duration_ms=self._elapsed_ms(job),
        )

    @staticmethod
    def _elapsed_ms(job: BuildJob) -> int:
        if job.started_at is None:
            return 0
        return int((time.monotonic() - job.started_at) * 1000)
