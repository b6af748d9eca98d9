"""Build plan models: derived per request, never persisted."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from bootforge.models.platforms import Platform
from bootforge.models.stages import BuildAction, StepKind


class PlanStep(BaseModel):
    """One (kind, stage, host, target) execution step.

    ``depends_on`` lists the step_ids whose artifacts must be committed
    before this step may start.
    """

    model_config = ConfigDict(frozen=True)

    step_id: str
    kind: StepKind
    stage: int
    host: Platform
    target: Platform
    depends_on: tuple[str, ...] = ()

    @staticmethod
    def make_id(kind: StepKind, stage: int, host: Platform, target: Platform) -> str:
        if kind is StepKind.FETCH:
            return f"fetch:{host}"
        return f"{kind.value}:{stage}:{host}:{target}"


class BuildRequest(BaseModel):
    """What the caller asked for. Empty ``hosts`` means the current platform."""

    model_config = ConfigDict(frozen=True)

    action: BuildAction = BuildAction.BUILD
    hosts: tuple[Platform, ...] = ()
    targets: tuple[Platform, ...] = ()
    stage: int | None = None  # falls back to BuildConfig.stages
    prefix: Path | None = None  # install destination
    keep_going: bool | None = None
    keep_snapshots: bool = False
    corrupted_only: bool = False


class BuildPlan(BaseModel):
    """Topologically ordered steps plus their parallelizable layers."""

    model_config = ConfigDict(frozen=True)

    action: BuildAction
    final_stage: int
    hosts: tuple[Platform, ...]
    targets: tuple[Platform, ...]
    steps: tuple[PlanStep, ...]
    groups: tuple[tuple[str, ...], ...] = ()

    def step(self, step_id: str) -> PlanStep:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        raise KeyError(step_id)

    def steps_of(self, kind: StepKind) -> list[PlanStep]:
        return [s for s in self.steps if s.kind is kind]

    @property
    def step_ids(self) -> list[str]:
        return [s.step_id for s in self.steps]
