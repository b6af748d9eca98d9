"""Tests for StageGraph planning and ordering."""

from __future__ import annotations

import pytest

from bootforge.core.stage_graph import CyclicDependencyError, StageGraph
from bootforge.errors import InvalidConfigurationError
from bootforge.models.plan import PlanStep
from bootforge.models.platforms import Platform
from bootforge.models.stages import BuildAction, StepKind

H = Platform.parse("x86_64-unknown-linux-gnu")
H2 = Platform.parse("aarch64-unknown-linux-gnu")
T = Platform.parse("riscv64gc-unknown-linux-gnu")


@pytest.fixture
def graph() -> StageGraph:
    return StageGraph()


def _ids(kind: StepKind, plan) -> list[str]:
    return [s.step_id for s in plan.steps_of(kind)]


class TestPlanShape:
    def test_stage_one_build(self, graph: StageGraph):
        plan = graph.plan([H], [], BuildAction.BUILD, final_stage=1)
        assert plan.step_ids == [f"fetch:{H}", f"build:1:{H}:{H}"]
        assert plan.steps_of(StepKind.FIXPOINT) == []

    def test_stage_two_build_includes_fixpoint(self, graph: StageGraph):
        plan = graph.plan([H], [], BuildAction.BUILD, final_stage=2)
        assert plan.step_ids == [
            f"fetch:{H}",
            f"build:1:{H}:{H}",
            f"build:2:{H}:{H}",
            f"fixpoint:2:{H}:{H}",
        ]
        assert plan.step(f"fixpoint:2:{H}:{H}").depends_on == (f"build:2:{H}:{H}",)

    def test_validate_raises_final_stage(self, graph: StageGraph):
        plan = graph.plan([H], [], BuildAction.VALIDATE, final_stage=1)
        assert plan.final_stage == 2
        assert _ids(StepKind.FIXPOINT, plan) == [f"fixpoint:2:{H}:{H}"]

    def test_cross_target_only_at_final_stage(self, graph: StageGraph):
        plan = graph.plan([H], [T], BuildAction.BUILD, final_stage=2)
        builds = _ids(StepKind.BUILD, plan)
        assert f"build:1:{H}:{T}" not in builds
        assert f"build:2:{H}:{T}" in builds
        # The host's own stage 2 still exists for the fixed-point check.
        assert f"build:2:{H}:{H}" in builds
        assert plan.step(f"build:2:{H}:{T}").depends_on == (f"build:1:{H}:{H}",)

    def test_cross_target_stage_one_without_validation(self, graph: StageGraph):
        plan = graph.plan([H], [T], BuildAction.BUILD, final_stage=1)
        assert _ids(StepKind.BUILD, plan) == [f"build:1:{H}:{T}"]
        assert plan.step(f"build:1:{H}:{T}").depends_on == (f"fetch:{H}",)

    def test_targets_default_to_hosts(self, graph: StageGraph):
        plan = graph.plan([H, H2], [], BuildAction.BUILD, final_stage=1)
        assert plan.targets == plan.hosts == (H2, H)

    def test_test_steps_depend_on_fixpoint(self, graph: StageGraph):
        plan = graph.plan([H], [H, T], BuildAction.TEST, final_stage=2)
        step = plan.step(f"test:2:{H}:{T}")
        assert set(step.depends_on) == {
            f"build:2:{H}:{T}", f"build:2:{H}:{H}", f"fixpoint:2:{H}:{H}"
        }

    def test_test_at_stage_one_needs_host_toolchain(self, graph: StageGraph):
        plan = graph.plan([H], [T], BuildAction.TEST, final_stage=1)
        assert f"build:1:{H}:{H}" in plan.step_ids
        assert set(plan.step(f"test:1:{H}:{T}").depends_on) == {
            f"build:1:{H}:{T}", f"build:1:{H}:{H}"
        }

    def test_install_steps(self, graph: StageGraph):
        plan = graph.plan([H], [T], BuildAction.INSTALL, final_stage=2)
        assert set(plan.step(f"install:2:{H}:{T}").depends_on) == {
            f"build:2:{H}:{T}", f"fixpoint:2:{H}:{H}"
        }


class TestPlanValidation:
    @pytest.mark.parametrize("stage", [0, 3])
    def test_stage_out_of_range(self, graph: StageGraph, stage: int):
        with pytest.raises(InvalidConfigurationError):
            graph.plan([H], [], BuildAction.BUILD, final_stage=stage)

    def test_clean_has_no_plan(self, graph: StageGraph):
        with pytest.raises(InvalidConfigurationError):
            graph.plan([H], [], BuildAction.CLEAN)

    def test_no_hosts(self, graph: StageGraph):
        with pytest.raises(InvalidConfigurationError):
            graph.plan([], [], BuildAction.BUILD)


class TestOrdering:
    def test_dependencies_precede_dependents(self, graph: StageGraph):
        plan = graph.plan([H, H2], [H, H2, T], BuildAction.TEST, final_stage=2)
        position = {sid: i for i, sid in enumerate(plan.step_ids)}
        for step in plan.steps:
            for dep in step.depends_on:
                assert position[dep] < position[step.step_id]

    def test_groups_are_layers(self, graph: StageGraph):
        plan = graph.plan([H, H2], [], BuildAction.BUILD, final_stage=2)
        assert plan.groups[0] == (f"fetch:{H2}", f"fetch:{H}")
        assert plan.groups[1] == (f"build:1:{H2}:{H2}", f"build:1:{H}:{H}")
        assert [sid for group in plan.groups for sid in group] == plan.step_ids

    def test_planning_is_deterministic(self, graph: StageGraph):
        a = graph.plan([H, H2], [T, H], BuildAction.BUILD)
        b = graph.plan([H2, H], [H, T, T], BuildAction.BUILD)
        assert a == b

    def test_cycle_detected(self):
        a = PlanStep(step_id="a", kind=StepKind.BUILD, stage=1, host=H, target=H, depends_on=("b",))
        b = PlanStep(step_id="b", kind=StepKind.BUILD, stage=1, host=H, target=H, depends_on=("a",))
        with pytest.raises(CyclicDependencyError):
            StageGraph._toposort({"a": a, "b": b})

    def test_dependents_of(self, graph: StageGraph):
        plan = graph.plan([H], [], BuildAction.BUILD, final_stage=2)
        assert StageGraph.dependents_of(plan, f"build:1:{H}:{H}") == [
            f"build:2:{H}:{H}", f"fixpoint:2:{H}:{H}"
        ]
