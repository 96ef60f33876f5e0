from __future__ import annotations
from typing import Any, Mapping

import structlog

from .limits import FIELDS, BuildDefaults, merge_defaults, parse_positive
from ..settings import Settings

log = structlog.get_logger()


class DefaultsStore:
    """
    Holds the process-wide default limits. Readers get an immutable
    snapshot; updates swap in a new snapshot only once fully validated.
    """

    def __init__(self, initial: BuildDefaults):
        self._current = initial

    @classmethod
    def from_settings(cls, s: Settings) -> "DefaultsStore":
        raw = {
            "memory": s.default_memory_bytes,
            "cpuPeriod": s.default_cpu_period,
            "cpuQuota": s.default_cpu_quota,
            "timeoutMs": s.default_timeout_ms,
        }
        parsed = {FIELDS[name]: parse_positive(name, value) for name, value in raw.items()}
        return cls(BuildDefaults(**parsed))

    def snapshot(self) -> BuildDefaults:
        return self._current

    def update(self, overrides: Mapping[str, Any]) -> BuildDefaults:
        new = merge_defaults(self._current, overrides)
        self._current = new
        log.info("defaults_updated", **new.to_dict())
        return new
