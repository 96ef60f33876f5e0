from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

# filename (base name only) -> text content
ArtifactSet = Dict[str, str]


class JobState(str, Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    BUILD_FAILED = "BUILD_FAILED"
    TIMED_OUT = "TIMED_OUT"
    ERRORED = "ERRORED"
    CLEANED_UP = "CLEANED_UP"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    BUILD_FAILED = "build_failed"
    TIMEOUT = "timeout"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True)
class FrameworkProfile:
    name: str
    image: str
    file_path: str        # relative to workdir
    dist_path: str        # absolute, inside the sandbox
    cache_host_path: str
    cache_cont_path: str
    build_cmd: str
    cleanup_globs: Tuple[str, ...] = ()
    workdir: str = "/workspace/template-app"


@dataclass(frozen=True)
class ResourceLimits:
    memory_bytes: int
    cpu_period: int
    cpu_quota: int


@dataclass
class BuildJob:
    job_id: str
    framework: FrameworkProfile
    source: str           # normalized, not yet encoded
    encoded_source: str   # base64 of `source`
    limits: ResourceLimits
    timeout_ms: float
    state: JobState = JobState.CREATED
    started_at: Optional[float] = None
    transcript: str = ""
    files: ArtifactSet = field(default_factory=dict)


@dataclass
class BuildResult:
    state: JobState
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    transcript: Optional[str] = None
    files: ArtifactSet = field(default_factory=dict)
    duration_ms: int = 0
    framework: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == JobState.SUCCESS
