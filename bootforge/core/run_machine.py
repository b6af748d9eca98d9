"""Deterministic run state machine for the orchestrator.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Terminal states (done, failed) are final
- Every transition recorded in the run journal, with the stage for
  ``building`` transitions and the reason for ``failed``
"""

from __future__ import annotations

import logging

from bootforge.core.context import BuildContext
from bootforge.models.stages import VALID_TRANSITIONS, RunState

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class RunMachine:
    """Tracks the orchestrator's run state and journals every move.

    Parameters
    ----------
    ctx:
        The build context whose journal receives the transitions.
    """

    def __init__(self, ctx: BuildContext) -> None:
        self._ctx = ctx
        self._state = RunState.IDLE
        self._stage: int | None = None
        self.failure_reason: str | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def stage(self) -> int | None:
        """The stage being built while in ``building``."""
        return self._stage

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self._state]

    def can_transition(self, target: RunState) -> bool:
        return target in VALID_TRANSITIONS.get(self._state, set())

    def transition(
        self,
        target: RunState,
        *,
        stage: int | None = None,
        reason: str = "",
    ) -> None:
        """Move to ``target``; re-entering the current state (and stage) is a no-op."""
        if target is self._state and target in (RunState.BUILDING, RunState.VALIDATING) and stage == self._stage:
            return
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Cannot transition run from {self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in VALID_TRANSITIONS[self._state])}"
            )

        previous = self._state
        self._state = target
        self._stage = stage if target is RunState.BUILDING else None
        if target is RunState.FAILED:
            self.failure_reason = reason

        label = f"{target.value}({stage})" if target is RunState.BUILDING else target.value
        logger.info("Run %s: %s -> %s %s", self._ctx.run_id, previous.value, label, reason)
        self._ctx.record(
            "transition",
            state=target,
            stage=stage if target is RunState.BUILDING else None,
            detail=reason or f"{previous.value}->{label}",
        )

    def fail(self, reason: str) -> None:
        if not self.is_terminal:
            self.transition(RunState.FAILED, reason=reason)
