from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- server ----
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # ---- container runtime ----
    docker_base_url: Optional[str] = None
    container_user: str = "root"
    stop_before_remove: bool = False
    stop_grace_s: int = 2
    docker_workers: int = 64
    # base64 of the source travels inside one `sh -c` argument (128 KiB on Linux)
    max_source_bytes: int = 96_000

    # ---- default build limits (runtime-updatable through /config) ----
    default_memory_bytes: int = 2 * 1024 * 1024 * 1024
    default_cpu_period: int = 100_000
    default_cpu_quota: int = 200_000
    default_timeout_ms: int = 60_000
    default_framework: str = "angular"

    # ---- per-framework profile overrides, keyed by framework ----
    frameworks: Dict[str, Dict[str, Any]] = {}

    config_file: Path = Path("conf/compiler.yaml")

    # env prefix CBX_*
    model_config = SettingsConfigDict(env_prefix="CBX_", extra="ignore")


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = data.get(name) or {}
    return block if isinstance(block, dict) else {}


def load_settings() -> Settings:
    # 0) base from env CBX_*
    s = Settings()

    # 1) YAML overlay (CBX_CONFIG or conf/compiler.yaml)
    conf_path = Path(os.environ.get("CBX_CONFIG", str(s.config_file)))
    try:
        with open(conf_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    server = _section(data, "server")
    defaults = _section(data, "defaults")
    sandbox = _section(data, "sandbox")
    frameworks = _section(data, "frameworks")

    # 2) merge, keeping the declared field types
    return s.model_copy(
        update={
            "host": str(server.get("host", s.host)),
            "port": int(server.get("port", s.port)),
            "log_level": str(server.get("log_level", s.log_level)),
            "cors_origins": list(server.get("cors_origins", s.cors_origins)),
            "docker_base_url": sandbox.get("docker_base_url", s.docker_base_url),
            "container_user": str(sandbox.get("user", s.container_user)),
            "stop_before_remove": bool(sandbox.get("stop_before_remove", s.stop_before_remove)),
            "stop_grace_s": int(sandbox.get("stop_grace_s", s.stop_grace_s)),
            "docker_workers": int(sandbox.get("docker_workers", s.docker_workers)),
            "max_source_bytes": int(sandbox.get("max_source_bytes", s.max_source_bytes)),
            # limits are validated by the resource policy, not coerced here
            "default_memory_bytes": defaults.get("memory", s.default_memory_bytes),
            "default_cpu_period": defaults.get("cpu_period", s.default_cpu_period),
            "default_cpu_quota": defaults.get("cpu_quota", s.default_cpu_quota),
            "default_timeout_ms": defaults.get("timeout_ms", s.default_timeout_ms),
            "default_framework": str(defaults.get("framework", s.default_framework)),
            "frameworks": {**s.frameworks, **{k: v for k, v in frameworks.items() if isinstance(v, dict)}},
            "config_file": conf_path,
        }
    )
