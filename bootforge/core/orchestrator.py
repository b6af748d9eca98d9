"""Bootstrap orchestrator: the central coordinator for bootforge runs.

The Orchestrator wires the SnapshotManager, BuildCache, ToolchainInvoker,
StageGraph and RunMachine into one execution engine. It plans a request,
fetches stage 0 for every host, then walks the plan: cache hits are taken
as-is, misses go to a bounded worker pool, and every commit happens here,
on the orchestrating thread, in the order results come back.

A worker holds the fingerprint lock from its cache re-check until the
orchestrator has committed (or discarded) its output, so two processes
sharing a cache never build the same fingerprint at once.
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path

import httpx

from bootforge.config import BootforgeSettings
from bootforge.core.build_cache import BUNDLE_NAME, BuildCache
from bootforge.core.context import BuildContext
from bootforge.core.equivalence import compare_artifacts
from bootforge.core.hasher import compute_fingerprint, snapshot_sources
from bootforge.core.locking import FingerprintLock
from bootforge.core.run_machine import RunMachine
from bootforge.core.snapshot_manager import SnapshotManager
from bootforge.core.stage_graph import StageGraph
from bootforge.core.toolchain_invoker import ToolchainInvoker
from bootforge.errors import (
    EXIT_OK,
    BootstrapError,
    CacheCorruptionError,
    CompileError,
    FixedPointMismatchError,
    InvalidConfigurationError,
    ProcessError,
    most_severe_exit_code,
)
from bootforge.models.artifacts import Artifact, SourceSnapshot
from bootforge.models.config import BuildConfig
from bootforge.models.manifest import SnapshotManifest
from bootforge.models.plan import BuildPlan, BuildRequest, PlanStep
from bootforge.models.platforms import Platform
from bootforge.models.reports import ErrorRecord, RunReport, StepOutcome
from bootforge.models.results import (
    BuildResult,
    BuildSuccess,
    CompileFailure,
    InvocationRequest,
)
from bootforge.models.stages import BuildAction, RunState, StepKind, StepStatus

logger = logging.getLogger(__name__)

_SUCCESS = frozenset({
    StepStatus.FETCHED,
    StepStatus.CACHED,
    StepStatus.BUILT,
    StepStatus.VALIDATED,
    StepStatus.TESTED,
    StepStatus.INSTALLED,
})


@dataclass
class _Job:
    """A step handed to the worker pool."""

    step: PlanStep
    fingerprint: str
    request: InvocationRequest
    lock: FingerprintLock | None = None
    cached: Artifact | None = None
    result: BuildResult | None = None


class Orchestrator:
    """Central bootstrap orchestrator.

    Parameters
    ----------
    config:
        Resolved build configuration.
    settings:
        Environment settings (proxy, HTTP timeout). Read from the
        environment if not provided.
    ctx:
        Build context. A fresh one rooted at ``config.cache_dir`` if omitted.
    manifest:
        Pre-loaded snapshot manifest; otherwise ``config.manifest`` is read
        when a run is planned.
    client:
        HTTP client for snapshot downloads (tests inject a mock transport).
    sleep:
        Retry backoff sleeper, injectable for tests.
    """

    def __init__(
        self,
        config: BuildConfig | None = None,
        *,
        settings: BootforgeSettings | None = None,
        ctx: BuildContext | None = None,
        manifest: SnapshotManifest | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or BuildConfig()
        self._settings = settings or BootforgeSettings()
        self.ctx = ctx or BuildContext(self.config.cache_dir)
        self._manifest = manifest
        self._client = client
        self._sleep = sleep

        self.cache = BuildCache(self.ctx)
        self.graph = StageGraph()
        self.invoker = ToolchainInvoker(self.ctx)
        self.machine = RunMachine(self.ctx)
        self.snapshots: SnapshotManager | None = None

        self._plan: BuildPlan | None = None
        self._source: SourceSnapshot | None = None
        self._status: dict[str, StepStatus] = {}
        self._details: dict[str, str] = {}
        self._fingerprints: dict[str, str] = {}
        self._artifacts: dict[str, Artifact] = {}
        self._errors: list[BootstrapError] = []
        self._halted = False
        self._keep_going = False

    @property
    def run_id(self) -> str:
        return self.ctx.run_id

    def cancel(self) -> None:
        """Request cancellation; running toolchains are torn down."""
        self.ctx.cancel()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def run(self, request: BuildRequest) -> RunReport:
        """Execute ``request`` to a terminal state and report.

        Every failure is collected with its context; nothing raised by a
        component escapes except KeyboardInterrupt after cleanup.
        """
        if request.action is BuildAction.CLEAN:
            return self.clean(
                stage=request.stage,
                targets=request.targets,
                hosts=request.hosts,
                keep_snapshots=request.keep_snapshots,
                corrupted_only=request.corrupted_only,
            )

        self.machine.transition(RunState.PLANNING)
        try:
            plan = self._plan_request(request)
        except BootstrapError as exc:
            self._errors.append(exc)
            return self._finish(request.action)

        live_hosts = self._check_hosts(plan)
        if not live_hosts:
            return self._finish(request.action)

        self.machine.transition(RunState.FETCHING)
        try:
            self._fetch(plan, live_hosts)
            if any(self._status[s.step_id] is StepStatus.FETCHED for s in plan.steps_of(StepKind.FETCH)):
                self._execute(plan, request)
        except KeyboardInterrupt:
            self.ctx.cancel()
            self._errors.append(ProcessError("Run interrupted"))
            self._finish(request.action)
            raise
        finally:
            if self.snapshots is not None:
                self.snapshots.close()
        return self._finish(request.action)

    def _plan_request(self, request: BuildRequest) -> BuildPlan:
        if request.action is BuildAction.INSTALL and request.prefix is None:
            raise InvalidConfigurationError("install requires a destination prefix")
        manifest = self._manifest or SnapshotManifest.load(self.config.manifest)
        self.snapshots = SnapshotManager(
            manifest,
            self.ctx,
            retry_count=self.config.retry_count,
            mirror=self.config.snapshot_mirror,
            client=self._client,
            proxy=self._settings.proxy,
            timeout=self._settings.http_timeout_seconds,
            sleep=self._sleep,
        )
        source_root = Path(self.config.source_dir)
        if not source_root.is_dir():
            raise InvalidConfigurationError(f"Source directory {source_root} does not exist")
        self._source = snapshot_sources(source_root)

        hosts = request.hosts or (Platform.current(),)
        plan = self.graph.plan(
            hosts,
            request.targets,
            request.action,
            final_stage=request.stage if request.stage is not None else self.config.stages,
        )
        self._plan = plan
        for step in plan.steps:
            self._status[step.step_id] = StepStatus.PENDING
        logger.info(
            "Run %s planned %d steps for %s (stage %d, source %s)",
            self.run_id, len(plan.steps), request.action.value,
            plan.final_stage, self._source.digest[:12],
        )
        return plan

    def _check_hosts(self, plan: BuildPlan) -> list[Platform]:
        """Manifest checks for every host before anything is downloaded."""
        live: list[Platform] = []
        for host in plan.hosts:
            fetch_id = PlanStep.make_id(StepKind.FETCH, 0, host, host)
            try:
                self.snapshots.check_supported(host)
            except BootstrapError as exc:
                self._fail_step(plan, fetch_id, exc.with_context(step_id=fetch_id))
                continue
            live.append(host)
        return live

    def _fetch(self, plan: BuildPlan, hosts: list[Platform]) -> None:
        # A failed host loses only its own chain.
        for host in hosts:
            step_id = PlanStep.make_id(StepKind.FETCH, 0, host, host)
            try:
                artifact = self.snapshots.ensure_stage0(host)
            except BootstrapError as exc:
                self._fail_step(plan, step_id, exc.with_context(step_id=step_id, platform=host))
                continue
            self._artifacts[step_id] = artifact
            self._fingerprints[step_id] = artifact.fingerprint
            self._mark(step_id, StepStatus.FETCHED)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _execute(self, plan: BuildPlan, request: BuildRequest) -> None:
        self._keep_going = (
            self.config.keep_going if request.keep_going is None else request.keep_going
        )
        jobs = self.config.jobs
        in_flight: dict[Future, _Job] = {}

        with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="bootforge") as pool:
            try:
                while True:
                    if not self._halted and not self.ctx.cancelled:
                        self._dispatch(plan, request, pool, in_flight, jobs)
                    if not in_flight:
                        break
                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in sorted(done, key=lambda f: in_flight[f].step.step_id):
                        job = in_flight.pop(future)
                        self._complete(plan, job, future)
            except KeyboardInterrupt:
                self.ctx.cancel()
                for future, job in list(in_flight.items()):
                    try:
                        future.result()
                    except Exception:
                        logger.debug("Worker for %s ended with an error during cancel", job.step.step_id)
                    self._discard(job)
                raise

        for step in plan.steps:
            if self._status[step.step_id] is StepStatus.PENDING:
                self._mark(step.step_id, StepStatus.SKIPPED, "not started")
        if self.ctx.cancelled and not self._errors:
            self._errors.append(ProcessError("Run cancelled before completion"))

    def _ready(self, step: PlanStep) -> bool:
        return all(self._status[dep] in _SUCCESS for dep in step.depends_on)

    def _dispatch(
        self,
        plan: BuildPlan,
        request: BuildRequest,
        pool: ThreadPoolExecutor,
        in_flight: dict[Future, _Job],
        jobs: int,
    ) -> None:
        """Start every ready step, resolving cache hits inline."""
        running = {job.step.step_id for job in in_flight.values()}
        progressed = True
        while progressed and not self._halted:
            progressed = False
            for step in plan.steps:
                if (
                    self._status[step.step_id] is not StepStatus.PENDING
                    or step.step_id in running
                    or not self._ready(step)
                ):
                    continue
                if step.kind is StepKind.INSTALL:
                    self._install(step, request.prefix)
                    progressed = True
                    continue

                job = self._job_for(step)
                if step.kind is not StepKind.TEST:
                    hit = self.cache.lookup(job.fingerprint)
                    if hit is not None:
                        self._take_hit(plan, step, job.fingerprint, hit)
                        progressed = True
                        continue
                if len(in_flight) >= jobs:
                    continue

                if step.kind is StepKind.BUILD:
                    self.machine.transition(RunState.BUILDING, stage=step.stage)
                elif step.kind is StepKind.FIXPOINT:
                    self.machine.transition(RunState.VALIDATING)
                self.ctx.record(
                    "step_started",
                    step_id=step.step_id,
                    stage=step.stage,
                    fingerprint=job.fingerprint,
                )
                worker = self._test_worker if step.kind is StepKind.TEST else self._build_worker
                in_flight[pool.submit(worker, job)] = job
                running.add(step.step_id)

    def _job_for(self, step: PlanStep) -> _Job:
        """Fingerprint a step and fix its invocation."""
        source = self._source
        if step.kind is StepKind.BUILD:
            builder_id = step.depends_on[0]
            builder = self._artifacts[builder_id]
            fingerprint = compute_fingerprint(
                role="build",
                stage=step.stage,
                host=step.host,
                target=step.target,
                source_digest=source.digest,
                config_inputs=self.config.fingerprint_inputs(),
                upstream=self._fingerprints[builder_id],
            )
            mode = "build"
        elif step.kind is StepKind.FIXPOINT:
            reference_id = PlanStep.make_id(StepKind.BUILD, step.stage, step.host, step.host)
            builder = self._artifacts[reference_id]
            fingerprint = compute_fingerprint(
                role="fixpoint",
                stage=step.stage,
                host=step.host,
                target=step.host,
                source_digest=source.digest,
                config_inputs=self.config.fingerprint_inputs(),
                upstream=self._fingerprints[reference_id],
            )
            mode = "build"
        else:
            # Tests run the host's final toolchain against the requested target.
            runner_id = PlanStep.make_id(StepKind.BUILD, step.stage, step.host, step.host)
            builder = self._artifacts[runner_id]
            fingerprint = compute_fingerprint(
                role="test",
                stage=step.stage,
                host=step.host,
                target=step.target,
                source_digest=source.digest,
                config_inputs=self.config.fingerprint_inputs(),
                upstream=self._fingerprints[
                    PlanStep.make_id(StepKind.BUILD, step.stage, step.host, step.target)
                ],
            )
            mode = "test"

        if mode == "test":
            output_dir = self.ctx.work_dir / f"test-{fingerprint[:16]}-{uuid.uuid4().hex[:8]}" / "out"
        else:
            output_dir = self.ctx.build_dir(fingerprint)
        request = InvocationRequest(
            stage=step.stage,
            host=step.host,
            target=step.target,
            previous_artifact=builder,
            source=source,
            output_dir=output_dir,
            fingerprint=fingerprint,
            mode=mode,
            build_flags=self.config.build_flags,
            timeout=self.config.step_timeout,
        )
        return _Job(step=step, fingerprint=fingerprint, request=request)

    # ------------------------------------------------------------------
    # Workers (pool threads)
    # ------------------------------------------------------------------

    def _build_worker(self, job: _Job) -> _Job:
        """Lock the fingerprint, re-check the cache, build on a miss.

        Returns with the lock still held; the orchestrator releases it after
        committing.
        """
        lock = self.cache.lock(job.fingerprint)
        lock.acquire()
        job.lock = lock
        try:
            # Another process may have committed while we waited.
            job.cached = self.cache.lookup(job.fingerprint)
            if job.cached is not None:
                return job
            job.result = self.invoker.run(job.request)
        except BaseException:
            lock.release()
            job.lock = None
            raise
        return job

    def _test_worker(self, job: _Job) -> _Job:
        job.result = self.invoker.run(job.request)
        return job

    # ------------------------------------------------------------------
    # Completion (orchestrator thread)
    # ------------------------------------------------------------------

    def _complete(self, plan: BuildPlan, job: _Job, future: Future) -> None:
        step = job.step
        try:
            future.result()
        except Exception as exc:
            logger.exception("Worker for %s raised", step.step_id)
            self._discard(job)
            self._fail_step(plan, step.step_id, ProcessError(
                f"Internal error while running {step.step_id}: {exc}",
                stage=step.stage, platform=step.target,
                fingerprint=job.fingerprint, step_id=step.step_id,
            ))
            self._halt()
            return

        try:
            if self.ctx.cancelled:
                self._discard(job)
                self._fail_step(plan, step.step_id, ProcessError(
                    "Cancelled", stage=step.stage, platform=step.target,
                    fingerprint=job.fingerprint, step_id=step.step_id,
                ))
                return
            if job.cached is not None:
                self._take_hit(plan, step, job.fingerprint, job.cached)
                return

            result = job.result
            if isinstance(result, BuildSuccess):
                if step.kind is StepKind.TEST:
                    shutil.rmtree(job.request.output_dir.parent, ignore_errors=True)
                    self._mark(step.step_id, StepStatus.TESTED, fingerprint=job.fingerprint)
                elif step.kind is StepKind.FIXPOINT:
                    self._finish_fixpoint(plan, step, job, result.artifact)
                else:
                    self._commit(step, job.fingerprint, result.artifact)
                return

            error = self._error_for(step, job, result)
            if job.fingerprint in self.cache.scheduled:
                self._errors.append(CacheCorruptionError(
                    "Corrupted cache entry could not be rebuilt",
                    stage=step.stage, platform=step.target,
                    fingerprint=job.fingerprint, step_id=step.step_id,
                ))
            self._discard(job)
            self._fail_step(plan, step.step_id, error)
            self._halt()
        finally:
            if job.lock is not None:
                job.lock.release()
                job.lock = None

    def _error_for(self, step: PlanStep, job: _Job, result: BuildResult) -> BootstrapError:
        context = dict(
            stage=step.stage,
            platform=step.target,
            fingerprint=job.fingerprint,
            step_id=step.step_id,
        )
        what = "Tests failed" if step.kind is StepKind.TEST else "Compilation failed"
        if isinstance(result, CompileFailure):
            return CompileError(what, diagnostics=result.diagnostics, **context)
        return ProcessError(
            f"Toolchain {result.reason}",
            returncode=result.exit_code,
            signal=result.signal,
            diagnostics=result.diagnostics,
            **context,
        )

    def _commit(self, step: PlanStep, fingerprint: str, built: Artifact) -> None:
        self.cache.commit(fingerprint, built)
        shutil.rmtree(self.ctx.build_dir(fingerprint).parent, ignore_errors=True)
        artifact = self.cache.artifact(fingerprint)
        self._artifacts[step.step_id] = artifact
        self._fingerprints[step.step_id] = fingerprint
        status = StepStatus.VALIDATED if step.kind is StepKind.FIXPOINT else StepStatus.BUILT
        self._mark(step.step_id, status, fingerprint=fingerprint)
        self.ctx.record(
            "step_committed", step_id=step.step_id, stage=step.stage, fingerprint=fingerprint
        )

    def _take_hit(self, plan: BuildPlan, step: PlanStep, fingerprint: str, hit: Artifact) -> None:
        if step.kind is StepKind.FIXPOINT:
            # Re-checked against the reference this run resolved.
            self.machine.transition(RunState.VALIDATING)
            if not self._compare(plan, step, fingerprint, hit):
                self._halt()
                return
        self._artifacts[step.step_id] = hit
        self._fingerprints[step.step_id] = fingerprint
        status = StepStatus.VALIDATED if step.kind is StepKind.FIXPOINT else StepStatus.CACHED
        self._mark(step.step_id, status, fingerprint=fingerprint, detail="cache hit")
        self.ctx.record("step_cached", step_id=step.step_id, stage=step.stage, fingerprint=fingerprint)

    def _finish_fixpoint(
        self, plan: BuildPlan, step: PlanStep, job: _Job, candidate: Artifact
    ) -> None:
        if self._compare(plan, step, job.fingerprint, candidate):
            self._commit(step, job.fingerprint, candidate)
        else:
            self._discard(job)
            self._halt()

    def _compare(self, plan: BuildPlan, step: PlanStep, fingerprint: str, candidate: Artifact) -> bool:
        reference_id = PlanStep.make_id(StepKind.BUILD, step.stage, step.host, step.host)
        reference = self._artifacts[reference_id]
        build_paths = (
            self.ctx.build_dir(reference.fingerprint),
            self.ctx.build_dir(fingerprint),
            self.ctx.entries_dir / reference.fingerprint / BUNDLE_NAME,
            self.ctx.entries_dir / fingerprint / BUNDLE_NAME,
            reference.path,
            candidate.path,
        )
        result = compare_artifacts(reference, candidate, build_paths=build_paths)
        if result.equivalent:
            logger.info("Stage %d for %s reached a fixed point", step.stage, step.host)
            self.ctx.record(
                "validation_passed", step_id=step.step_id, stage=step.stage, fingerprint=fingerprint
            )
            return True
        shown = ", ".join(result.differing_paths[:5]) or "(tree layout)"
        self.ctx.record(
            "validation_failed",
            step_id=step.step_id,
            stage=step.stage,
            fingerprint=fingerprint,
            detail=shown,
        )
        self._fail_step(plan, step.step_id, FixedPointMismatchError(
            f"Stage {step.stage} rebuilt by itself differs from its parent build: {shown}",
            stage=step.stage,
            platform=step.host,
            fingerprint=fingerprint,
            step_id=step.step_id,
        ))
        return False

    def _install(self, step: PlanStep, prefix: Path | None) -> None:
        source = self._artifacts[PlanStep.make_id(StepKind.BUILD, step.stage, step.host, step.target)]
        dest = Path(prefix) / step.host.triple / step.target.triple
        dest.parent.mkdir(parents=True, exist_ok=True)
        staging = dest.parent / f".tmp-{dest.name}-{uuid.uuid4().hex[:8]}"
        try:
            shutil.copytree(source.path, staging, symlinks=True)
            if dest.exists():
                shutil.rmtree(dest)
            staging.rename(dest)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            self._fail_step(self._plan, step.step_id, ProcessError(
                f"Could not install to {dest}: {exc}",
                stage=step.stage, platform=step.target, step_id=step.step_id,
            ))
            return
        logger.info("Installed %s -> %s", step.step_id, dest)
        self._mark(step.step_id, StepStatus.INSTALLED, fingerprint=source.fingerprint, detail=str(dest))

    def _discard(self, job: _Job) -> None:
        shutil.rmtree(job.request.output_dir.parent, ignore_errors=True)
        if job.lock is not None:
            job.lock.release()
            job.lock = None

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _mark(
        self, step_id: str, status: StepStatus, detail: str = "", *, fingerprint: str | None = None
    ) -> None:
        self._status[step_id] = status
        if detail:
            self._details[step_id] = detail
        if fingerprint is not None:
            self._fingerprints[step_id] = fingerprint

    def _fail_step(self, plan: BuildPlan, step_id: str, error: BootstrapError) -> None:
        """Record ``error`` and skip everything that depends on ``step_id``."""
        logger.error("%s", error)
        self._errors.append(error)
        self._mark(step_id, StepStatus.FAILED, error.message)
        self.ctx.record("step_failed", step_id=step_id, stage=error.stage,
                        fingerprint=error.fingerprint, detail=error.message)
        for dependent in self.graph.dependents_of(plan, step_id):
            if self._status.get(dependent) is StepStatus.PENDING:
                self._mark(dependent, StepStatus.SKIPPED, f"upstream {step_id} failed")
                self.ctx.record("step_skipped", step_id=dependent, detail=step_id)

    def _halt(self) -> None:
        if not self._keep_going:
            self._halted = True

    def _finish(self, action: BuildAction) -> RunReport:
        evicted = self.cache.evict_scheduled()
        if evicted:
            logger.info("Evicted %d corrupted cache entries", len(evicted))

        if self._errors:
            self.machine.fail(self._errors[0].message)
        elif not self.machine.is_terminal:
            self.machine.transition(RunState.DONE)

        exit_code = most_severe_exit_code(self._errors) if self._errors else EXIT_OK
        outcomes = []
        if self._plan is not None:
            outcomes = [
                StepOutcome(
                    step_id=s.step_id,
                    status=self._status[s.step_id],
                    fingerprint=self._fingerprints.get(s.step_id),
                    detail=self._details.get(s.step_id, ""),
                )
                for s in self._plan.steps
            ]
        return RunReport(
            run_id=self.run_id,
            action=action,
            final_state=self.machine.state,
            exit_code=exit_code,
            outcomes=outcomes,
            errors=[_record(e) for e in self._errors],
            events=self.ctx.events,
        )

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def clean(
        self,
        *,
        stage: int | None = None,
        targets: tuple[Platform, ...] = (),
        hosts: tuple[Platform, ...] = (),
        keep_snapshots: bool = False,
        corrupted_only: bool = False,
    ) -> RunReport:
        """Evict cache entries. No plan, no state machine run."""
        if corrupted_only:
            removed = [fp for fp in sorted(self.cache.verify_integrity()) if self.cache.evict(fp)]
            count = len(removed)
        elif stage is not None or targets or hosts:
            count = 0
            for host in hosts or (None,):
                for target in targets or (None,):
                    count += len(self.cache.evict_matching(
                        stage=stage,
                        target=target.triple if target else None,
                        host=host.triple if host else None,
                    ))
        else:
            count = self.cache.clear()
            shutil.rmtree(self.ctx.work_dir, ignore_errors=True)
            if not keep_snapshots:
                shutil.rmtree(self.ctx.snapshots_dir, ignore_errors=True)
        logger.info("Removed %d cache entries", count)
        self.ctx.record("cache_cleaned", detail=f"removed={count}")
        return RunReport(
            run_id=self.run_id,
            action=BuildAction.CLEAN,
            final_state=RunState.DONE,
            exit_code=EXIT_OK,
            events=self.ctx.events,
        )

    def verify_cache(self) -> set[str]:
        """Corrupted fingerprints currently in the cache (nothing is evicted)."""
        return self.cache.verify_integrity()


def _record(error: BootstrapError) -> ErrorRecord:
    return ErrorRecord(
        error_type=type(error).__name__,
        message=error.message,
        exit_code=error.exit_code,
        stage=error.stage,
        platform=error.platform,
        fingerprint=error.fingerprint,
        step_id=error.step_id,
        diagnostics=getattr(error, "diagnostics", ""),
    )
