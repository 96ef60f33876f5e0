from __future__ import annotations
import uuid


def new_job_id() -> str:
    return str(uuid.uuid4())


def container_name(framework: str, job_id: str) -> str:
    return f"{framework}-compile-{job_id}"
