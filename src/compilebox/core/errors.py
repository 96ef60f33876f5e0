from __future__ import annotations
from typing import Optional


class CompileError(Exception):
    """Base class for errors raised by the compile pipeline."""


class ValidationError(CompileError):
    """Request rejected before any sandbox is created."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class UnsupportedFramework(ValidationError):
    def __init__(self, framework: object):
        super().__init__(f"Unsupported framework: {framework}", field="framework")
        self.framework = framework
