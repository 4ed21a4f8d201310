"""The simulation environment: virtual clock, event queue and public API.

The :class:`Environment` owns all mutable state of one simulation run: the clock, the event list,
the table of live processes and the registry of resources. Independent environments share nothing,
so several runs can be built and executed side by side.

The engine uses next event time progression. Each step pops the earliest ``(fire_time, sequence)``
entry, advances the clock to its fire time and notifies the event's waiters in registration order.
Events triggered while waiters run are scheduled at the same instant with a larger sequence number,
so chains of zero-delay events settle completely before the clock moves on.
"""

from __future__ import annotations

import itertools
import logging
import math
import random
import warnings
from collections.abc import Callable, Iterable
from enum import Enum
from inspect import isgenerator
from typing import TYPE_CHECKING, Any

import numpy as np

from procsim.events import AllOf, AnyOf, Event, EventState, Timeout
from procsim.exceptions import (
    ResourceLeakDiagnostic,
    ResourceLeakWarning,
    SimulationCorruptedError,
)
from procsim.process import Process
from procsim.time import EventGenerator, EventList, Schedule

if TYPE_CHECKING:
    from procsim.resources.base import BaseResource
    from procsim.resources.resource import Resource
    from procsim.resources.store import Store

_logger = logging.getLogger(__name__)

SeedLike = int | None


class RunState(Enum):
    """State of the environment with respect to :meth:`Environment.run`."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED_EARLY = "stopped_early"


class Environment:
    """Execution environment for a process-oriented simulation.

    Attributes:
        random (random.Random): seeded python random number generator
        rng (np.random.Generator): seeded numpy random number generator

    """

    def __init__(self, initial_time: int | float = 0, rng: SeedLike = None) -> None:
        """Create a new environment.

        Args:
            initial_time: the virtual time at which the simulation starts
            rng: seed for both random number generators; runs with equal seeds are reproducible

        Raises:
            ValueError: if initial_time is negative
        """
        if initial_time < 0:
            raise ValueError(f"initial_time must be >= 0, got {initial_time}")

        self._now: int | float = initial_time
        self._queue = EventList()
        self._event_ids = itertools.count()
        self._process_ids = itertools.count()
        self._resource_ids = itertools.count()
        self._processes: dict[int, Process] = {}
        self._resources: dict[int, BaseResource] = {}
        self._active_process: Process | None = None
        self._run_state = RunState.IDLE
        self._stop_requested = False

        if rng is None:
            rng = np.random.SeedSequence().entropy
        self._seed = rng
        self.rng: np.random.Generator = np.random.default_rng(rng)
        self.random = random.Random(rng)

    def __repr__(self) -> str:
        return (
            f"<Environment now={self._now} state={self._run_state.value} "
            f"queued={len(self._queue)} processes={len(self._processes)}>"
        )

    def __enter__(self) -> Environment:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.teardown()

    # --- clock and introspection ---
    @property
    def now(self) -> int | float:
        """Return the current virtual time."""
        return self._now

    @property
    def active_process(self) -> Process | None:
        """Return the process whose logic is currently executing, if any."""
        return self._active_process

    @property
    def run_state(self) -> RunState:
        """Return the state of the most recent run."""
        return self._run_state

    @property
    def processes(self) -> tuple[Process, ...]:
        """Return the live processes in creation order."""
        return tuple(self._processes.values())

    @property
    def resources(self) -> tuple[BaseResource, ...]:
        """Return all resources created in this environment."""
        return tuple(self._resources.values())

    @property
    def event_list(self) -> EventList:
        """Return the event list."""
        return self._queue

    def peek(self) -> int | float:
        """Return the fire time of the next scheduled event, or infinity if there is none."""
        time = self._queue.peek_time()
        return math.inf if time is None else time

    # --- event factories ---
    def event(self) -> Event:
        """Create a new pending event."""
        return Event(self)

    def timeout(self, delay: int | float, value: Any = None) -> Timeout:
        """Return an event that fires ``delay`` time units from now.

        Raises:
            NegativeDurationError: if delay is negative
        """
        return Timeout(self, delay, value)

    def any_of(self, events: Iterable[Event | Process]) -> AnyOf:
        """Return an event that triggers when the first of ``events`` fires.

        Processes stand for their completion events.
        """
        return AnyOf(self, [self.wait(event) for event in events])

    def all_of(self, events: Iterable[Event | Process]) -> AllOf:
        """Return an event that triggers once all of ``events`` have fired.

        Processes stand for their completion events.
        """
        return AllOf(self, [self.wait(event) for event in events])

    # --- processes ---
    def spawn(
        self,
        logic: Callable[..., Any] | Any,
        *args: Any,
        name: str | None = None,
        **kwargs: Any,
    ) -> Process:
        """Start a new process at the current instant.

        The process begins running on a later step of the current instant, never inside the caller.

        Args:
            logic: a generator function called as ``logic(env, *args, **kwargs)``, or a generator
            args: positional arguments for logic
            name: optional name of the process
            kwargs: keyword arguments for logic

        Returns:
            the new Process

        Raises:
            TypeError: if logic does not produce a generator
        """
        if isgenerator(logic):
            if args or kwargs:
                raise TypeError("arguments cannot be passed along with a generator")
            generator = logic
        elif callable(logic):
            generator = logic(self, *args, **kwargs)
        else:
            raise TypeError(f"{logic!r} is neither a generator nor callable")

        process = Process(self, generator, name=name)
        _logger.debug("spawned %s at %s", process, self._now)
        return process

    def wait(self, target: Event | Process) -> Event:
        """Return the event to yield in order to wait on ``target``."""
        if isinstance(target, Process):
            return target.completion
        if not isinstance(target, Event):
            raise TypeError(f"cannot wait on {target!r}")
        return target

    def wait_for_process(self, process: Process) -> Event:
        """Return the completion event of ``process``."""
        return process.completion

    def interrupt(self, process: Process, cause: Any = None) -> Event:
        """Interrupt a waiting process, see :meth:`Process.interrupt`."""
        return process.interrupt(cause)

    def passivate(self) -> Event:
        """Return the event the active process yields to become passive.

        Raises:
            RuntimeError: if called outside process logic
        """
        if self._active_process is None:
            raise RuntimeError("passivate() must be called from within a process")
        return self._active_process.passivate()

    def activate(self, *processes: Process, value: Any = None) -> None:
        """Wake one or more passive processes at the current instant."""
        for process in processes:
            process.activate(value)

    def schedule_recurring(
        self, function: Callable[[], object], schedule: Schedule
    ) -> EventGenerator:
        """Call ``function`` repeatedly according to ``schedule``.

        Returns:
            the started EventGenerator
        """
        return EventGenerator(self, function, schedule).start()

    # --- resources ---
    def create_resource(
        self, capacity: int = 1, *, kind: str = "fifo", name: str | None = None
    ) -> Resource:
        """Create a capacity-bounded resource.

        Args:
            capacity: number of concurrent holders
            kind: "fifo", "priority" or "preemptive"
            name: optional name used in diagnostics

        Raises:
            ValueError: for an unknown kind or a non positive capacity
        """
        from procsim.resources.resource import (  # noqa: PLC0415
            PreemptiveResource,
            PriorityResource,
            Resource,
        )

        kinds = {
            "fifo": Resource,
            "priority": PriorityResource,
            "preemptive": PreemptiveResource,
        }
        if kind not in kinds:
            raise ValueError(f"unknown resource kind {kind!r}, use one of {list(kinds)}")
        return kinds[kind](self, capacity, name=name)

    def create_store(
        self, capacity: int | float = math.inf, *, kind: str = "fifo", name: str | None = None
    ) -> Store:
        """Create a store of items.

        Args:
            capacity: maximum number of items held
            kind: "fifo", "filter" or "priority"
            name: optional name used in diagnostics

        Raises:
            ValueError: for an unknown kind or a non positive capacity
        """
        from procsim.resources.store import (  # noqa: PLC0415
            FilterStore,
            PriorityStore,
            Store,
        )

        kinds = {"fifo": Store, "filter": FilterStore, "priority": PriorityStore}
        if kind not in kinds:
            raise ValueError(f"unknown store kind {kind!r}, use one of {list(kinds)}")
        return kinds[kind](self, capacity, name=name)

    def _register_resource(self, resource: BaseResource) -> int:
        resource_id = next(self._resource_ids)
        self._resources[resource_id] = resource
        return resource_id

    # --- scheduling ---
    def _schedule(self, event: Event, delay: int | float = 0) -> None:
        self._queue.add_event(self._now + delay, event)

    def step(self) -> bool:
        """Process the next event.

        Returns:
            True if an event was processed, False if the event list was empty

        Raises:
            SimulationCorruptedError: if the event would move time backward or is in an invalid state
        """
        try:
            time, event = self._queue.pop_event()
        except IndexError:
            return False

        if time < self._now:
            raise SimulationCorruptedError(
                f"{event} scheduled at {time} popped after current time {self._now}"
            )
        if event.processed:
            raise SimulationCorruptedError(f"{event} was already processed")

        self._now = time
        if event._state is EventState.PENDING:
            event._state = EventState.TRIGGERED
            if event._ok is None:
                raise SimulationCorruptedError(f"{event} has no outcome")

        waiters = event._fire()
        if not event._ok and not waiters:
            _logger.warning("unobserved failure of %s at %s: %r", event, time, event._value)

        for waiter in waiters:
            waiter(event)
        return True

    def stop(self) -> None:
        """Stop the current run once the step in progress has completed.

        Called between runs, the request is kept and the next run stops before its first step.
        """
        self._stop_requested = True

    def run(self, until: int | float | Event | None = None) -> Any:
        """Run the simulation.

        Args:
            until: None to run until no events are left, a time to run until the next event lies
                beyond it, or an event to run until that event has been processed

        Returns:
            the outcome of ``until`` if it is an event (its value, or the exception it failed
            with), else None

        Raises:
            SimulationCorruptedError: on a fatal engine invariant breach
            RuntimeError: if ``until`` is an event and no events are left before it fires
        """
        horizon: int | float | None = None
        until_event: Event | None = None
        if isinstance(until, Event):
            until_event = until
        elif until is not None:
            if until < self._now:
                warnings.warn(
                    f"end time {until} is before current time {self._now}, nothing to run",
                    RuntimeWarning,
                    stacklevel=2,
                )
                return None
            horizon = until

        self._run_state = RunState.RUNNING
        _logger.info("run started at %s (until=%s)", self._now, until)

        try:
            while True:
                if self._stop_requested:
                    self._stop_requested = False
                    self._run_state = RunState.STOPPED_EARLY
                    break
                if until_event is not None and until_event.processed:
                    self._run_state = RunState.COMPLETED
                    break

                next_time = self._queue.peek_time()
                if next_time is None:
                    if until_event is not None:
                        raise RuntimeError(
                            f"No scheduled events left but {until_event} was not processed"
                        )
                    self._run_state = RunState.COMPLETED
                    break
                if horizon is not None and next_time > horizon:
                    self._run_state = RunState.COMPLETED
                    break

                self.step()
        except BaseException:
            self._run_state = RunState.STOPPED_EARLY
            raise

        if horizon is not None and self._run_state is RunState.COMPLETED:
            self._now = horizon
        _logger.info("run %s at %s", self._run_state.value, self._now)

        if until_event is not None and until_event.processed:
            return until_event._value
        return None

    def run_for(self, time_delta: int | float) -> None:
        """Run the simulation for ``time_delta`` time units from now."""
        self.run(self._now + time_delta)

    # --- teardown ---
    def check_resources(self) -> list[ResourceLeakDiagnostic]:
        """Return a diagnostic for every resource with outstanding holders or queued requests."""
        diagnostics = []
        for resource in self._resources.values():
            diagnostic = resource.diagnose()
            if diagnostic is not None:
                diagnostics.append(diagnostic)
        return diagnostics

    def teardown(self) -> list[ResourceLeakDiagnostic]:
        """End the run and report unclean resources.

        Every diagnostic is logged and emitted as a ResourceLeakWarning; nothing is raised.

        Returns:
            the list of diagnostics, empty for a clean run
        """
        diagnostics = self.check_resources()
        for diagnostic in diagnostics:
            _logger.warning("%s", diagnostic)
            warnings.warn(str(diagnostic), ResourceLeakWarning, stacklevel=2)
        return diagnostics
