"""Run journal and final report models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from bootforge.models.stages import BuildAction, RunState, StepStatus


class RunEvent(BaseModel):
    """One journal entry. ``seq`` is strictly increasing within a run."""

    model_config = ConfigDict(frozen=True)

    seq: int
    event: str  # "transition", "step_started", "step_committed", ...
    state: RunState | None = None
    stage: int | None = None
    step_id: str | None = None
    fingerprint: str | None = None
    detail: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class StepOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepStatus
    fingerprint: str | None = None
    detail: str = ""


class ErrorRecord(BaseModel):
    """A surfaced error with its full (stage, platform, fingerprint) context."""

    model_config = ConfigDict(frozen=True)

    error_type: str
    message: str
    exit_code: int
    stage: int | None = None
    platform: str | None = None
    fingerprint: str | None = None
    step_id: str | None = None
    diagnostics: str = ""


class RunReport(BaseModel):
    """What a finished run hands back to its caller."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    action: BuildAction
    final_state: RunState
    exit_code: int
    outcomes: list[StepOutcome] = []
    errors: list[ErrorRecord] = []
    events: list[RunEvent] = []

    @property
    def succeeded(self) -> bool:
        return self.final_state is RunState.DONE

    def count(self, status: StepStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    def transitions(self) -> list[RunEvent]:
        return [e for e in self.events if e.event == "transition"]

    def outcome(self, step_id: str) -> StepOutcome:
        for o in self.outcomes:
            if o.step_id == step_id:
                return o
        raise KeyError(step_id)
