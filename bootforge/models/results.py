"""Invocation request/result values exchanged with the toolchain invoker."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from bootforge.models.artifacts import Artifact, SourceSnapshot
from bootforge.models.platforms import Platform


class InvocationRequest(BaseModel):
    """Everything one toolchain run needs, fixed before the process starts."""

    model_config = ConfigDict(frozen=True)

    stage: int
    host: Platform
    target: Platform
    previous_artifact: Artifact
    source: SourceSnapshot
    output_dir: Path
    fingerprint: str = ""
    mode: Literal["build", "test"] = "build"
    build_flags: tuple[str, ...] = ()
    timeout: float | None = None


class BuildSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    artifact: Artifact
    diagnostics: str = ""


class CompileFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["compile_error"] = "compile_error"
    diagnostics: str = ""
    exit_code: int = 1


class ProcessFailure(BaseModel):
    """The process crashed, was signalled, timed out or was cancelled."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["process_error"] = "process_error"
    exit_code: int | None = None
    signal: int | None = None
    reason: str = ""
    diagnostics: str = ""
    cancelled: bool = False


BuildResult = Union[BuildSuccess, CompileFailure, ProcessFailure]
