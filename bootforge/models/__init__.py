"""Bootforge data models: all Pydantic v2, all frozen (immutable)."""

from bootforge.models.artifacts import (
    TOOLCHAIN_ENTRYPOINT,
    Artifact,
    CacheEntry,
    SourceSnapshot,
)
from bootforge.models.config import BuildConfig
from bootforge.models.manifest import (
    SUPPORTED_FORMAT_VERSIONS,
    SnapshotEntry,
    SnapshotManifest,
)
from bootforge.models.plan import BuildPlan, BuildRequest, PlanStep
from bootforge.models.platforms import Platform
from bootforge.models.reports import ErrorRecord, RunEvent, RunReport, StepOutcome
from bootforge.models.results import (
    BuildResult,
    BuildSuccess,
    CompileFailure,
    InvocationRequest,
    ProcessFailure,
)
from bootforge.models.stages import (
    MAX_STAGE,
    VALID_TRANSITIONS,
    BuildAction,
    RunState,
    StepKind,
    StepStatus,
)

__all__ = [
    # platforms
    "Platform",
    # stages
    "MAX_STAGE",
    "VALID_TRANSITIONS",
    "BuildAction",
    "RunState",
    "StepKind",
    "StepStatus",
    # artifacts
    "TOOLCHAIN_ENTRYPOINT",
    "Artifact",
    "CacheEntry",
    "SourceSnapshot",
    # manifest
    "SUPPORTED_FORMAT_VERSIONS",
    "SnapshotEntry",
    "SnapshotManifest",
    # plan
    "BuildPlan",
    "BuildRequest",
    "PlanStep",
    # results
    "BuildResult",
    "BuildSuccess",
    "CompileFailure",
    "InvocationRequest",
    "ProcessFailure",
    # reports
    "ErrorRecord",
    "RunEvent",
    "RunReport",
    "StepOutcome",
    # config
    "BuildConfig",
]
