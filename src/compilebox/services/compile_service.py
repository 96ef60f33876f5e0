from __future__ import annotations
from typing import Any, Dict, Mapping, Optional

import structlog

from ..core.defaults import DefaultsStore
from ..core.errors import ValidationError
from ..core.frameworks import FRAMEWORKS, build_registry, get_profile
from ..core.limits import BuildDefaults, resolve_limits
from ..core.models import BuildJob, BuildResult
from ..core.utils import new_job_id
from ..executor.base import ContainerRuntime
from ..settings import Settings
from ..source.normalizer import encode, normalize
from .job_controller import JobController

log = structlog.get_logger()


class CompileService:
    """
    Entry point for one compile request: validate, normalize, run the job,
    shape the outcome. All validation happens before a sandbox exists.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        defaults: DefaultsStore,
        frameworks=None,
        controller: Optional[JobController] = None,
        default_framework: str = "angular",
        max_source_bytes: int = 96_000,
    ):
        self.runtime = runtime
        self.defaults = defaults
        self.frameworks = frameworks if frameworks is not None else dict(FRAMEWORKS)
        self.controller = controller or JobController(runtime)
        self.default_framework = default_framework
        self.max_source_bytes = max_source_bytes

    @classmethod
    def from_settings(cls, s: Settings, runtime: ContainerRuntime) -> "CompileService":
        controller = JobController(
            runtime,
            user=s.container_user,
            stop_before_remove=s.stop_before_remove,
            stop_grace_s=s.stop_grace_s,
        )
        return cls(
            runtime,
            DefaultsStore.from_settings(s),
            frameworks=build_registry(s.frameworks),
            controller=controller,
            default_framework=s.default_framework,
            max_source_bytes=s.max_source_bytes,
        )

    def prepare(
        self,
        code: Any,
        framework: Any = None,
        overrides: Optional[Mapping[str, Any]] = None,
        defaults: Optional[BuildDefaults] = None,
    ) -> BuildJob:
        profile = get_profile(framework if framework is not None else self.default_framework, self.frameworks)
        if not code or not isinstance(code, str):
            raise ValidationError("Invalid code provided", field="sourceCode")
        snapshot = defaults if defaults is not None else self.defaults.snapshot()
        limits, timeout_ms = resolve_limits(overrides, snapshot)

        source = normalize(profile.name, code)
        size = len(source.encode("utf-8"))
        if size > self.max_source_bytes:
            raise ValidationError(
                f"sourceCode is too large ({size} bytes, limit {self.max_source_bytes})",
                field="sourceCode",
            )
        return BuildJob(
            job_id=new_job_id(),
            framework=profile,
            source=source,
            encoded_source=encode(source),
            limits=limits,
            timeout_ms=timeout_ms,
        )

    async def compile(
        self,
        code: Any,
        framework: Any = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> BuildResult:
        job = self.prepare(code, framework, overrides)
        log.info(
            "compile_started",
            job_id=job.job_id,
            framework=job.framework.name,
            timeout_ms=job.timeout_ms,
            memory=job.limits.memory_bytes,
        )
        result = await self.controller.run(job)
        result.framework = job.framework.name
        return result


def to_response(result: BuildResult) -> Dict[str, Any]:
    if result.success:
        return {
            "success": True,
            "framework": result.framework,
            "files": result.files,
            "compilationTimeMs": result.duration_ms,
        }
    body: Dict[str, Any] = {
        "success": False,
        "errorKind": result.error_kind.value if result.error_kind else None,
        "error": result.error,
    }
    if result.transcript is not None:
        body["transcript"] = result.transcript
    return body
