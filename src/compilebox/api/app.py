from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from ..core.errors import ValidationError
from ..core.models import ErrorKind, JobState
from ..executor.base import ContainerRuntime
from ..executor.docker_runtime import DockerRuntime
from ..logging import setup_logging
from ..services.compile_service import CompileService, to_response
from ..settings import Settings, load_settings


# --------- Schemas ---------
# numeric fields stay untyped so the resource policy, not pydantic,
# produces the field-naming 400
class CompileReq(BaseModel):
    sourceCode: Any = Field(default=None, validation_alias=AliasChoices("sourceCode", "code"))
    framework: Any = None
    timeoutMs: Any = Field(default=None, validation_alias=AliasChoices("timeoutMs", "timeout"))
    memory: Any = None
    cpuPeriod: Any = None
    cpuQuota: Any = None

    def overrides(self) -> dict:
        return {
            "timeoutMs": self.timeoutMs,
            "memory": self.memory,
            "cpuPeriod": self.cpuPeriod,
            "cpuQuota": self.cpuQuota,
        }


class ConfigReq(BaseModel):
    timeoutMs: Any = None
    memory: Any = None
    cpuPeriod: Any = None
    cpuQuota: Any = None


class ConfigRes(BaseModel):
    memory: int
    cpuPeriod: int
    cpuQuota: int
    timeoutMs: float


def _status_for(result) -> int:
    if result.state == JobState.SUCCESS:
        return 200
    if result.error_kind == ErrorKind.INFRASTRUCTURE:
        return 500
    return 400


def create_app(settings: Optional[Settings] = None, runtime: Optional[ContainerRuntime] = None) -> FastAPI:
    s = settings or load_settings()
    setup_logging(s.log_level)
    rt = runtime or DockerRuntime(base_url=s.docker_base_url, max_workers=s.docker_workers)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        close = getattr(rt, "close", None)
        if close is not None:
            close()

    app = FastAPI(title="Multi-Framework Compiler", lifespan=lifespan)
    app.state.settings = s
    app.state.service = CompileService.from_settings(s, rt)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _bad_request(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "errorKind": ErrorKind.VALIDATION.value,
                "error": exc.message,
                "field": exc.field,
            },
        )

    # --------- Endpoints ---------

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "multi-compiler"}

    @app.post("/compile")
    async def compile_source(req: CompileReq, request: Request):
        svc: CompileService = request.app.state.service
        result = await svc.compile(req.sourceCode, req.framework, req.overrides())
        return JSONResponse(status_code=_status_for(result), content=to_response(result))

    @app.get("/config", response_model=ConfigRes)
    def get_config(request: Request):
        return ConfigRes(**request.app.state.service.defaults.snapshot().to_dict())

    @app.put("/config", response_model=ConfigRes)
    def update_config(req: ConfigReq, request: Request):
        updated = request.app.state.service.defaults.update(req.model_dump())
        return ConfigRes(**updated.to_dict())

    return app


def main() -> None:
    import uvicorn

    s = load_settings()
    uvicorn.run(create_app(s), host=s.host, port=s.port)


if __name__ == "__main__":
    main()
