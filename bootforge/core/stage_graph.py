"""Stage dependency graph crossed with the requested platforms.

The graph encodes the bootstrap rule:

- Stage 0 for host H is the fetched snapshot (one ``fetch`` step per host).
- Stage N for target P is built by the stage N-1 toolchain built *for* host
  H (host -> host); cross-compilation means the compiler runs on the host
  but emits code for P. No edge ever skips a stage.
- The fixed-point step rebuilds stage F for H with stage F for H itself.

Plans are ordered with Kahn's algorithm; each topological layer is a group of
steps that share no dependency and may run in parallel.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from bootforge.errors import InvalidConfigurationError
from bootforge.models.plan import BuildPlan, PlanStep
from bootforge.models.platforms import Platform
from bootforge.models.stages import MAX_STAGE, BuildAction, StepKind

logger = logging.getLogger(__name__)

_KIND_ORDER: dict[StepKind, int] = {
    StepKind.FETCH: 0,
    StepKind.BUILD: 1,
    StepKind.FIXPOINT: 2,
    StepKind.TEST: 3,
    StepKind.INSTALL: 4,
}


class CyclicDependencyError(ValueError):
    """Raised when the step graph contains a cycle."""


def _sort_key(step: PlanStep) -> tuple[int, int, str, str]:
    return (step.stage, _KIND_ORDER[step.kind], step.host.triple, step.target.triple)


def _dedupe(platforms: Iterable[Platform]) -> tuple[Platform, ...]:
    return tuple(sorted(set(platforms)))


class StageGraph:
    """Expands a request into the minimal ordered set of steps."""

    def plan(
        self,
        hosts: Iterable[Platform],
        targets: Iterable[Platform],
        action: BuildAction,
        final_stage: int = MAX_STAGE,
    ) -> BuildPlan:
        """Compute the BuildPlan for ``action``.

        ``targets`` defaults to the hosts when empty. ``validate`` raises the
        final stage to at least 2 and always appends the fixed-point steps;
        ``build`` appends them only when the final stage is 2 or higher.
        """
        if action is BuildAction.CLEAN:
            raise InvalidConfigurationError("The clean action operates on the cache directly and has no plan")
        if not 1 <= final_stage <= MAX_STAGE:
            raise InvalidConfigurationError(
                f"Stage must be between 1 and {MAX_STAGE}, got {final_stage}"
            )

        host_set = _dedupe(hosts)
        if not host_set:
            raise InvalidConfigurationError("At least one host platform is required")
        target_set = _dedupe(targets) or host_set

        if action is BuildAction.VALIDATE:
            final_stage = max(final_stage, 2)
        validate = action is BuildAction.VALIDATE or final_stage >= 2

        steps: dict[str, PlanStep] = {}

        def add(kind: StepKind, stage: int, host: Platform, target: Platform, deps: list[str]) -> str:
            step_id = PlanStep.make_id(kind, stage, host, target)
            steps[step_id] = PlanStep(
                step_id=step_id,
                kind=kind,
                stage=stage,
                host=host,
                target=target,
                depends_on=tuple(deps),
            )
            return step_id

        for host in host_set:
            add(StepKind.FETCH, 0, host, host, [])
            # Every stage below the final one must exist for the host itself,
            # since it is the compiler that builds the next stage.
            for stage in range(1, final_stage + 1):
                builder = PlanStep.make_id(
                    StepKind.FETCH if stage == 1 else StepKind.BUILD, stage - 1, host, host
                )
                stage_targets = target_set if stage == final_stage else (host,)
                for target in stage_targets:
                    add(StepKind.BUILD, stage, host, target, [builder])
            # The host's own final toolchain runs the fixed-point rebuild and
            # the test suites, so it is needed even when the host is not a target.
            final_host_step = PlanStep.make_id(StepKind.BUILD, final_stage, host, host)
            if (validate or action is BuildAction.TEST) and final_host_step not in steps:
                add(StepKind.BUILD, final_stage, host, host, [
                    PlanStep.make_id(
                        StepKind.FETCH if final_stage == 1 else StepKind.BUILD,
                        final_stage - 1, host, host,
                    )
                ])
            validation_deps: list[str] = []
            if validate:
                fix_id = add(StepKind.FIXPOINT, final_stage, host, host, [final_host_step])
                validation_deps.append(fix_id)

            for target in target_set:
                final_step = PlanStep.make_id(StepKind.BUILD, final_stage, host, target)
                if action is BuildAction.TEST:
                    add(StepKind.TEST, final_stage, host, target, sorted(
                        {final_step, final_host_step, *validation_deps}
                    ))
                elif action is BuildAction.INSTALL:
                    add(StepKind.INSTALL, final_stage, host, target, [final_step, *validation_deps])

        ordered, groups = self._toposort(steps)
        plan = BuildPlan(
            action=action,
            final_stage=final_stage,
            hosts=host_set,
            targets=target_set,
            steps=tuple(ordered),
            groups=tuple(tuple(g) for g in groups),
        )
        logger.debug(
            "Planned %d steps in %d groups for %s (final stage %d)",
            len(plan.steps), len(plan.groups), action.value, final_stage,
        )
        return plan

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    @staticmethod
    def _toposort(steps: dict[str, PlanStep]) -> tuple[list[PlanStep], list[list[str]]]:
        """Kahn's algorithm, layer by layer, stable within each layer."""
        in_degree = {sid: len(s.depends_on) for sid, s in steps.items()}
        dependents: dict[str, list[str]] = {sid: [] for sid in steps}
        for sid, step in steps.items():
            for dep in step.depends_on:
                if dep not in steps:
                    raise CyclicDependencyError(f"Step {sid} depends on unknown step {dep}")
                dependents[dep].append(sid)

        layer = sorted((steps[s] for s, d in in_degree.items() if d == 0), key=_sort_key)
        ordered: list[PlanStep] = []
        groups: list[list[str]] = []
        while layer:
            groups.append([s.step_id for s in layer])
            ordered.extend(layer)
            nxt: list[PlanStep] = []
            for step in layer:
                for dep in dependents[step.step_id]:
                    in_degree[dep] -= 1
                    if in_degree[dep] == 0:
                        nxt.append(steps[dep])
            layer = sorted(nxt, key=_sort_key)

        if len(ordered) != len(steps):
            raise CyclicDependencyError(
                f"Step graph has a cycle. Ordered {len(ordered)}/{len(steps)} steps."
            )
        return ordered, groups

    @staticmethod
    def dependents_of(plan: BuildPlan, step_id: str) -> list[str]:
        """All transitive dependents of a step (BFS)."""
        reverse: dict[str, list[str]] = {s.step_id: [] for s in plan.steps}
        for step in plan.steps:
            for dep in step.depends_on:
                reverse[dep].append(step.step_id)
        result: list[str] = []
        queue = deque(reverse.get(step_id, []))
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(reverse.get(node, []))
        return result
