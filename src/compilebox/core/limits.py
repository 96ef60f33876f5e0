from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

from .errors import ValidationError
from .models import ResourceLimits

# request field name -> BuildDefaults attribute
FIELDS = {
    "memory": "memory_bytes",
    "cpuPeriod": "cpu_period",
    "cpuQuota": "cpu_quota",
    "timeoutMs": "timeout_ms",
}
# Docker only accepts integers for these
INTEGRAL_FIELDS = {"memory", "cpuPeriod", "cpuQuota"}
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class BuildDefaults:
    memory_bytes: int
    cpu_period: int
    cpu_quota: int
    timeout_ms: float

    def to_dict(self) -> dict:
        return {name: getattr(self, attr) for name, attr in FIELDS.items()}


def _to_number(field: str, value: Any) -> Union[int, float]:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        # ints stay exact; float() would round anything above 2**53
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise ValidationError(f"{field} must be a number", field=field) from None
    raise ValidationError(f"{field} must be a number", field=field)


def parse_positive(field: str, value: Any) -> Union[int, float]:
    """
    Parse one limit value. Accepts ints, floats and numeric strings;
    rejects bools, NaN/inf, anything <= 0 and integers Docker cannot hold.
    """
    num = _to_number(field, value)
    if isinstance(num, float) and not math.isfinite(num):
        raise ValidationError(f"{field} must be a finite number", field=field)
    if num <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)

    if field in INTEGRAL_FIELDS:
        if isinstance(num, float):
            if not num.is_integer():
                raise ValidationError(f"{field} must be a whole number", field=field)
            num = int(num)
        if num > INT64_MAX:
            raise ValidationError(f"{field} is too large", field=field)
        return num

    try:
        return float(num)
    except OverflowError:
        raise ValidationError(f"{field} is too large", field=field) from None


def merge_defaults(defaults: BuildDefaults, overrides: Mapping[str, Any]) -> BuildDefaults:
    values = defaults.to_dict()
    for name in FIELDS:
        raw = overrides.get(name)
        if raw is not None:
            values[name] = parse_positive(name, raw)
    return BuildDefaults(**{FIELDS[name]: v for name, v in values.items()})


def resolve_limits(
    overrides: Optional[Mapping[str, Any]],
    defaults: BuildDefaults,
) -> Tuple[ResourceLimits, float]:
    """Merge request overrides over a defaults snapshot. Pure."""
    merged = merge_defaults(defaults, overrides or {})
    limits = ResourceLimits(
        memory_bytes=merged.memory_bytes,
        cpu_period=merged.cpu_period,
        cpu_quota=merged.cpu_quota,
    )
    return limits, merged.timeout_ms
