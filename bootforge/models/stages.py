"""Run states, step kinds and requested actions (the orchestrator state model)."""

from __future__ import annotations

from enum import Enum

# Stage 0 is the fetched snapshot; 2 is the highest stage built from source.
MAX_STAGE = 2


class BuildAction(str, Enum):
    """Verbs a bootstrap request can ask for."""

    BUILD = "build"
    TEST = "test"
    INSTALL = "install"
    CLEAN = "clean"
    VALIDATE = "validate"


class StepKind(str, Enum):
    """What a single plan step does."""

    FETCH = "fetch"
    BUILD = "build"
    FIXPOINT = "fixpoint"
    TEST = "test"
    INSTALL = "install"


class RunState(str, Enum):
    """Orchestrator run states."""

    IDLE = "idle"
    PLANNING = "planning"
    FETCHING = "fetching"
    BUILDING = "building"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


# Valid run-state transitions, enforced by RunMachine.
# BUILDING -> BUILDING is the move to the next stage.
# Terminal states (DONE, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.PLANNING},
    RunState.PLANNING: {RunState.FETCHING, RunState.FAILED},
    RunState.FETCHING: {
        RunState.BUILDING,
        RunState.VALIDATING,
        RunState.DONE,
        RunState.FAILED,
    },
    RunState.BUILDING: {
        RunState.BUILDING,
        RunState.VALIDATING,
        RunState.DONE,
        RunState.FAILED,
    },
    RunState.VALIDATING: {RunState.BUILDING, RunState.DONE, RunState.FAILED},
    RunState.DONE: set(),
    RunState.FAILED: set(),
}


class StepStatus(str, Enum):
    """Outcome of a plan step in the final report."""

    PENDING = "pending"
    FETCHED = "fetched"
    CACHED = "cached"
    BUILT = "built"
    VALIDATED = "validated"
    TESTED = "tested"
    INSTALLED = "installed"
    FAILED = "failed"
    SKIPPED = "skipped"
