"""Event queue and recurring schedules for procsim's discrete event engine.

This module provides the foundational data structures the :class:`~procsim.Environment` uses to
order pending events in virtual time. Key features:

- Deterministic ordering on ``(fire_time, sequence)``, so events sharing an instant are delivered
  in the order they were scheduled
- Efficient insertion and removal using a heap queue
- Support for event cancellation without breaking the heap structure (lazy deletion)

The module contains four components:
- Priority: named priority levels for resource requests (lower value is served first)
- EventList: the heap-based priority queue of ``(fire_time, sequence, event)`` entries
- Schedule: a validated description of when something should happen repeatedly
- EventGenerator: runs a callable on a Schedule by means of an ordinary simulation process
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from heapq import heappop, heappush
from typing import TYPE_CHECKING

from procsim.exceptions import Interrupt

if TYPE_CHECKING:
    from procsim.environment import Environment
    from procsim.events import Event
    from procsim.process import Process


class Priority(IntEnum):
    """Enumeration of priority levels."""

    LOW = 10
    DEFAULT = 5
    HIGH = 1


class EventList:
    """An event list.

    This is a heap queue sorted list of ``(fire_time, sequence, event)`` entries. Entries are always
    removed from the left, so heapq is a performant and appropriate data structure. The sequence
    number is drawn from a per-list counter when the event is added, which makes the ordering
    total and breaks ties between events sharing a fire time in insertion order.
    """

    def __init__(self):
        """Initialize an event list."""
        self._events: list[tuple[int | float, int, Event]] = []
        self._sequence = itertools.count()

    def add_event(self, time: int | float, event: Event) -> int:
        """Add the event to the event list.

        Args:
            time: the virtual time at which the event fires
            event: The event to be added

        Returns:
            the sequence number assigned to the entry
        """
        sequence = next(self._sequence)
        heappush(self._events, (time, sequence, event))
        return sequence

    def peek_time(self) -> int | float | None:
        """Return the fire time of the next non-canceled entry, or None if there is none."""
        # we cannot simply remove canceled entries from _events because this breaks
        # the heap structure invariant, so they are dropped once they reach the head
        while self._events and self._events[0][2].cancelled:
            heappop(self._events)
        return self._events[0][0] if self._events else None

    def pop_event(self) -> tuple[int | float, Event]:
        """Pop the first non-canceled entry from the event list.

        Returns:
            tuple of fire time and event

        Raises:
            IndexError: If no non-canceled entry is left
        """
        while self._events:
            time, _, event = heappop(self._events)
            if not event.cancelled:
                return time, event
        raise IndexError("Event list is empty")

    def __len__(self) -> int:  # noqa
        return len(self._events)

    def __repr__(self) -> str:
        """Return a string representation of the event list."""
        events_str = ", ".join(
            [
                f"{type(e).__name__}(time={t}, seq={s}, id={e.id})"
                for t, s, e in sorted(self._events)
                if not e.cancelled
            ]
        )
        return f"EventList([{events_str}])"


@dataclass(frozen=True, slots=True)
class Schedule:
    """Defines when something should happen repeatedly.

    Attributes:
        interval: Time between executions (fixed value or callable taking the environment)
        start: Absolute time to begin (None = current time + interval)
        end: Absolute time to stop (None = no end)
        count: Maximum executions (None = unlimited)
    """

    interval: float | int | Callable[[Environment], float | int] = 1.0
    start: float | None = None
    end: float | None = None
    count: int | None = None

    def __post_init__(self):
        """Validate schedule parameters."""
        if not callable(self.interval) and self.interval <= 0:
            raise ValueError(f"Schedule interval must be > 0, got {self.interval}")

        if self.count is not None and self.count <= 0:
            raise ValueError(
                f"Schedule count must be > 0 if provided, got {self.count}"
            )

        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError(
                f"Schedule start ({self.start}) cannot be after end ({self.end})"
            )


class EventGenerator:
    """Calls a function repeatedly according to a Schedule.

    The generator drives itself with a plain simulation process that alternates between calling
    the function and waiting on a timeout, so recurring work is ordered with all other events
    by the normal ``(fire_time, sequence)`` rule.

    Attributes:
        env: The environment this generator belongs to
        function: The callable to execute, called without arguments
        schedule: The Schedule defining when executions occur
    """

    def __init__(
        self,
        env: Environment,
        function: Callable[[], object],
        schedule: Schedule,
    ) -> None:
        """Initialize an EventGenerator.

        Args:
            env: The environment this generator belongs to
            function: The callable to execute for each occurrence.
                     Use functools.partial to bind arguments.
            schedule: The Schedule defining timing
        """
        self.env = env
        self.function = function
        self.schedule = schedule

        self._active: bool = False
        self._process: Process | None = None
        self._execution_count: int = 0

    @property
    def is_active(self) -> bool:
        """Return whether the generator is currently active."""
        return self._active

    @property
    def execution_count(self) -> int:
        """Return the number of times this generator has executed."""
        return self._execution_count

    def _get_interval(self) -> float | int:
        if callable(self.schedule.interval):
            return self.schedule.interval(self.env)
        return self.schedule.interval

    def _should_stop(self, next_time: float) -> bool:
        return (
            self.schedule.count is not None
            and self._execution_count >= self.schedule.count
        ) or (self.schedule.end is not None and next_time > self.schedule.end)

    def _run(self, env: Environment, start_time: int | float):
        try:
            yield env.timeout(start_time - env.now)
            # a stopped or restarted generator hands over to a newer process
            while self._active and self._process is env.active_process:
                self.function()
                self._execution_count += 1

                interval = self._get_interval()
                if self._should_stop(env.now + interval):
                    break
                yield env.timeout(interval)
        except Interrupt:
            pass
        finally:
            if self._process is env.active_process:
                self._active = False
                self._process = None

    def start(self) -> EventGenerator:
        """Start the event generator.

        Returns:
            Self for method chaining

        Raises:
            ValueError: if the schedule starts in the past
        """
        if self._active:
            return self

        if self.schedule.start is not None:
            start_time = self.schedule.start
            if start_time < self.env.now:
                raise ValueError(
                    f"Schedule start ({start_time}) is before current time ({self.env.now})"
                )
        else:
            start_time = self.env.now + self._get_interval()

        self._active = True
        self._process = self.env.spawn(
            self._run, start_time, name=f"recurring:{getattr(self.function, '__name__', 'fn')}"
        )
        return self

    def stop(self) -> EventGenerator:
        """Stop the event generator immediately.

        Returns:
            Self for method chaining
        """
        process, self._process = self._process, None
        self._active = False
        if process is not None and process.is_waiting:
            process.interrupt("stopped")
        return self
