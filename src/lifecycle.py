"""Lifecycle orchestration for a single resource.

One LifecycleOrchestrator drives one run through

    IDLE -> CREATING -> WAITING_READY -> VERIFYING -> DELETING -> DONE

with FAILED reachable from every non-terminal state. DONE and FAILED are
terminal; an orchestrator that has left IDLE cannot be run again.

A ConflictError on create is the only error recovered locally (the object
already exists, carry on). Every other error ends the run in FAILED, and
the first fatal error is kept as a LifecycleError carrying the stage, the
resource name and the underlying cause. Nothing is retried.
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from cluster.errors import ApiError, ConflictError
from cluster.resources import DeleteOutcome, Deleted, DeletionInitiated, ObservedResource
from common import EventSink, LoggingEventSink
from conditions import Condition, describe, is_deleted, is_pod_running
from reporting import LifecycleReport
from waiter import DEFAULT_POLL_INTERVAL, WaitError, WaitOutcome, await_condition

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    IDLE = 'idle'
    CREATING = 'creating'
    WAITING_READY = 'waiting_ready'
    VERIFYING = 'verifying'
    DELETING = 'deleting'
    DONE = 'done'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleState.DONE, LifecycleState.FAILED)


TRANSITIONS: dict[LifecycleState, frozenset] = {
    LifecycleState.IDLE: frozenset({LifecycleState.CREATING, LifecycleState.FAILED}),
    LifecycleState.CREATING: frozenset({LifecycleState.WAITING_READY, LifecycleState.FAILED}),
    LifecycleState.WAITING_READY: frozenset({LifecycleState.VERIFYING, LifecycleState.FAILED}),
    LifecycleState.VERIFYING: frozenset({LifecycleState.DELETING, LifecycleState.FAILED}),
    LifecycleState.DELETING: frozenset({LifecycleState.DONE, LifecycleState.FAILED}),
    LifecycleState.DONE: frozenset(),
    LifecycleState.FAILED: frozenset(),
}


class InvalidTransition(Exception):
    """Attempted a state change the lifecycle does not allow."""

    def __init__(self, current: LifecycleState, target: LifecycleState):
        self.current = current
        self.target = target
        super().__init__(f"Invalid lifecycle transition: {current.value} -> {target.value}")


class VerificationError(AssertionError):
    """Observed state does not match the manifest."""

    def __init__(self, field: str, expected: Any, observed: Any):
        self.field = field
        self.expected = expected
        self.observed = observed
        super().__init__(f"{field} mismatch: expected {expected!r}, observed {observed!r}")


class LifecycleError(Exception):
    """First fatal error of a run."""

    def __init__(self, stage: LifecycleState, name: str, cause: BaseException):
        self.stage = stage
        self.name = name
        self.cause = cause
        super().__init__(f"{stage.value} failed for {name}: {type(cause).__name__}: {cause}")


class LifecycleOrchestrator:
    """Runs create -> wait -> verify -> delete for one manifest."""

    def __init__(
        self,
        handle,
        manifest,
        ready_condition: Condition = is_pod_running,
        ready_timeout: float = 15.0,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        grace_period: Optional[int] = None,
        wait_for_deletion: bool = False,
        delete_timeout: float = 60.0,
        events: Optional[EventSink] = None,
        report: Optional[LifecycleReport] = None,
    ):
        """Initialize orchestrator.

        Args:
            handle: ResourceHandle bound to the manifest's namespace
            manifest: PodManifest to submit
            ready_condition: Predicate that marks the resource ready
            ready_timeout: Seconds allowed for the readiness wait
            poll_interval: Seconds between observations while waiting
            grace_period: Deletion grace period (None = server default)
            wait_for_deletion: After DeletionInitiated, wait until the object is gone
            delete_timeout: Seconds allowed for that wait
            events: Structured event sink (default: LoggingEventSink)
            report: Report to record stages in (default: in-memory only)
        """
        self.handle = handle
        self.manifest = manifest
        self.ready_condition = ready_condition
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.grace_period = grace_period
        self.wait_for_deletion = wait_for_deletion
        self.delete_timeout = delete_timeout
        self.events = events or LoggingEventSink()
        self.report = report or LifecycleReport(
            resource=manifest.name,
            namespace=getattr(handle, 'namespace', ''),
        )

        self._state = LifecycleState.IDLE
        self.error: Optional[LifecycleError] = None
        self.created: Optional[bool] = None
        self.ready: Optional[WaitOutcome] = None
        self.observed: Optional[ObservedResource] = None
        self.delete_outcome: Optional[DeleteOutcome] = None

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _transition(self, target: LifecycleState) -> None:
        if target not in TRANSITIONS[self._state]:
            raise InvalidTransition(self._state, target)
        logger.debug(f"[{self.name}] {self._state.value} -> {target.value}")
        self._state = target

    def get_stages(self) -> list[tuple[LifecycleState, Callable[[], Awaitable[str]], str]]:
        """Return (state, step, description) tuples in execution order."""
        return [
            (LifecycleState.CREATING, self._create, f'Create {self.name} (409 tolerated)'),
            (LifecycleState.WAITING_READY, self._wait_ready,
             f'Wait for {describe(self.ready_condition)} (timeout: {self.ready_timeout}s)'),
            (LifecycleState.VERIFYING, self._verify, 'Verify observed state matches manifest'),
            (LifecycleState.DELETING, self._delete, f'Delete {self.name}'),
        ]

    async def run(self) -> bool:
        """Run every stage once. Returns True if the run reached DONE.

        Raises:
            InvalidTransition: If this orchestrator has already been run
        """
        if self._state is not LifecycleState.IDLE:
            raise InvalidTransition(self._state, LifecycleState.CREATING)

        namespace = getattr(self.handle, 'namespace', '')
        self.events.emit('run_started', resource=self.name, namespace=namespace)
        self.report.start()
        start_time = time.monotonic()

        stages = self.get_stages()
        for i, (stage, step, description) in enumerate(stages):
            self._transition(stage)
            self.report.start_stage(stage.value, description)
            self.events.emit('stage_started', stage=stage.value, resource=self.name)
            stage_start = time.monotonic()

            try:
                message = await step()
            except Exception as e:
                if not isinstance(e, (ApiError, WaitError, VerificationError)):
                    logger.exception(f"[{self.name}] Stage {stage.value} raised unexpected exception")
                self._fail(stage, e, time.monotonic() - stage_start, skipped=stages[i + 1:])
                return False

            self.report.pass_stage(stage.value, message, time.monotonic() - stage_start)

        self._transition(LifecycleState.DONE)
        total = time.monotonic() - start_time
        self.events.emit('run_finished', resource=self.name, state=self._state.value,
                         duration=f"{total:.2f}s")
        self.report.finish(True, self._state.value)
        return True

    def _fail(self, stage: LifecycleState, cause: BaseException, duration: float, skipped=()) -> None:
        self.error = LifecycleError(stage, self.name, cause)
        self._transition(LifecycleState.FAILED)
        self.events.emit('stage_failed', stage=stage.value, resource=self.name,
                         error=type(cause).__name__, cause=str(cause))
        self.report.fail_stage(stage.value, str(self.error), duration)
        for remaining, _step, description in skipped:
            self.report.skip_stage(remaining.value, description)
        self.events.emit('run_failed', resource=self.name, stage=stage.value)
        self.report.finish(False, self._state.value)

    async def _create(self) -> str:
        try:
            created = await self.handle.create(self.manifest)
        except ConflictError:
            self.created = False
            self.events.emit('already_exists', resource=self.name)
            self.report.record_create(False)
            return f"{self.name} already exists"

        if created.name != self.name:
            raise VerificationError('metadata.name', self.name, created.name)
        self.created = True
        self.report.record_create(True, created.uid)
        self.events.emit('created', resource=created.name, uid=created.uid)
        return f"Created {created.name}"

    async def _wait_ready(self) -> str:
        self.ready = await await_condition(
            self.handle,
            self.name,
            self.ready_condition,
            timeout=self.ready_timeout,
            poll_interval=self.poll_interval,
        )
        phase = self.ready.last_observed.phase if self.ready.last_observed else ''
        self.report.record_ready(describe(self.ready_condition), phase, self.ready.elapsed)
        self.events.emit('ready', resource=self.name, phase=phase,
                         elapsed=f"{self.ready.elapsed:.2f}s")
        return f"{self.name} ready after {self.ready.elapsed:.1f}s"

    async def _verify(self) -> str:
        # NotFound here is not a benign race: the object was ready a moment ago
        observed = await self.handle.get(self.name)
        self.observed = observed

        if observed.name != self.name:
            raise VerificationError('metadata.name', self.name, observed.name)
        expected = self.manifest.first_container_name
        if observed.first_container_name != expected:
            raise VerificationError('spec.containers[0].name', expected, observed.first_container_name)

        names = [c.name for c in observed.containers]
        self.report.record_verified(observed.uid, names)
        containers = ', '.join(names)
        self.events.emit('verified', resource=self.name, containers=containers)
        return f"Containers: {containers}"

    async def _delete(self) -> str:
        outcome = await self.handle.delete(self.name, grace_period_seconds=self.grace_period)
        self.delete_outcome = outcome

        match outcome:
            case DeletionInitiated(state=state):
                if state.name != self.name:
                    raise VerificationError('metadata.name', self.name, state.name)
                self.events.emit('deletion_started', resource=state.name, uid=state.uid,
                                 deletion_timestamp=state.deletion_timestamp)
                self.report.record_delete('deletion_initiated', state.deletion_timestamp)
                if not self.wait_for_deletion:
                    return f"Deletion of {state.name} started"
                gone = await await_condition(
                    self.handle,
                    self.name,
                    is_deleted(state.uid),
                    timeout=self.delete_timeout,
                    poll_interval=self.poll_interval,
                )
                self.events.emit('deleted', resource=self.name, elapsed=f"{gone.elapsed:.2f}s")
                self.report.record_delete('deleted', state.deletion_timestamp, gone.elapsed)
                return f"Deleted {self.name} after {gone.elapsed:.1f}s"
            case Deleted(name=name):
                self.report.record_delete('deleted')
                self.events.emit('deleted', resource=name)
                return f"Deleted {name}"
            case _:
                raise TypeError(f"Unexpected delete outcome: {outcome!r}")
