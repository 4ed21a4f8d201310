"""Events: the unit of scheduling.

An :class:`Event` starts out *pending*. It becomes *triggered* once somebody decides its outcome
(:meth:`Event.succeed` / :meth:`Event.fail`, or the environment popping a :class:`Timeout`), and it
is *processed* once the environment has taken it off the event queue and notified its waiters. A
pending event may instead be *cancelled*, in which case it never reaches its waiters.

Outcomes are never delivered synchronously: triggering an event only schedules it at the current
instant, so every state change a process can observe happens between two event-processing steps.

Composite events (:class:`AnyOf`, :class:`AllOf`) are events whose outcome is derived from a set of
constituent events.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from enum import Enum
from typing import TYPE_CHECKING, Any

from procsim.exceptions import (
    AlreadyTriggeredError,
    EventCancelledError,
    NegativeDurationError,
)

if TYPE_CHECKING:
    from procsim.environment import Environment
    from procsim.process import Process

Waiter = Callable[["Event"], None]

PENDING = object()
"""Sentinel value of an event whose outcome is not yet known."""


class EventState(Enum):
    """Lifecycle states of an event."""

    PENDING = "pending"
    TRIGGERED = "triggered"
    CANCELLED = "cancelled"


class Event:
    """A single occurrence in virtual time with a success or failure outcome.

    Attributes:
        env (Environment): the environment the event belongs to
        id (int): creation sequence number, unique within the environment

    """

    def __init__(self, env: Environment) -> None:
        """Create a new pending event.

        Args:
            env: the environment the event belongs to
        """
        self.env = env
        self.id: int = next(env._event_ids)
        self._state = EventState.PENDING
        self._ok: bool | None = None
        self._value: Any = PENDING
        self._waiters: list[Waiter] = []
        self._cancel_waiters: list[Waiter] = []
        self._processed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} {self._state.value}>"

    @property
    def state(self) -> EventState:
        """Return the lifecycle state of the event."""
        return self._state

    @property
    def triggered(self) -> bool:
        """Return whether the outcome of the event has been decided."""
        return self._state is EventState.TRIGGERED

    @property
    def processed(self) -> bool:
        """Return whether the environment has delivered the event to its waiters."""
        return self._processed

    @property
    def cancelled(self) -> bool:
        """Return whether the event was cancelled."""
        return self._state is EventState.CANCELLED

    @property
    def ok(self) -> bool:
        """Return whether the event succeeded.

        Raises:
            AttributeError: if the event has not been triggered yet
        """
        if self._state is not EventState.TRIGGERED:
            raise AttributeError(f"{self} has not been triggered yet")
        return bool(self._ok)

    @property
    def value(self) -> Any:
        """Return the outcome of the event: the success value, or the exception it failed with.

        Raises:
            AttributeError: if the event has not been triggered yet
        """
        if self._state is not EventState.TRIGGERED:
            raise AttributeError(f"Value of {self} is not yet available")
        return self._value

    @property
    def waiters(self) -> tuple[Waiter, ...]:
        """Return the waiters currently registered on the event."""
        return tuple(self._waiters)

    def succeed(self, value: Any = None) -> Event:
        """Trigger the event with a success outcome.

        Args:
            value: the value delivered to the waiters

        Returns:
            the event itself, for chaining

        Raises:
            AlreadyTriggeredError: if the event is no longer pending
        """
        self._check_pending()
        self._state = EventState.TRIGGERED
        self._ok = True
        self._value = value
        self.env._schedule(self)
        return self

    def fail(self, exception: BaseException) -> Event:
        """Trigger the event with a failure outcome.

        Args:
            exception: the exception delivered to (and raised inside) waiting processes

        Returns:
            the event itself, for chaining

        Raises:
            TypeError: if exception is not an exception instance
            AlreadyTriggeredError: if the event is no longer pending
        """
        if not isinstance(exception, BaseException):
            raise TypeError(f"{exception!r} is not an exception")
        self._check_pending()
        self._state = EventState.TRIGGERED
        self._ok = False
        self._value = exception
        self.env._schedule(self)
        return self

    def cancel(self) -> None:
        """Cancel a pending event; it will never be delivered to its waiters.

        Composite events waiting on the event are told at once, see :class:`Condition`.

        Raises:
            AlreadyTriggeredError: if the event is no longer pending
        """
        self._check_pending()
        self._state = EventState.CANCELLED
        self._waiters.clear()

        cancel_waiters, self._cancel_waiters = self._cancel_waiters, []
        for waiter in cancel_waiters:
            waiter(self)

    def register_waiter(self, waiter: Waiter) -> None:
        """Register a callable to be notified when the event is processed.

        Waiters are notified in registration order and receive the event as sole argument.

        Args:
            waiter: the callable to notify

        Raises:
            AlreadyTriggeredError: if the event was already processed or cancelled
        """
        if self._processed:
            raise AlreadyTriggeredError(f"{self} has already fired")
        if self._state is EventState.CANCELLED:
            raise AlreadyTriggeredError(f"{self} was cancelled")
        self._waiters.append(waiter)

    def remove_waiter(self, waiter: Waiter) -> bool:
        """Unregister a waiter, returning whether it was registered."""
        try:
            self._waiters.remove(waiter)
        except ValueError:
            return False
        return True

    def _check_pending(self) -> None:
        if self._state is EventState.TRIGGERED:
            raise AlreadyTriggeredError(f"{self} has already been triggered")
        if self._state is EventState.CANCELLED:
            raise AlreadyTriggeredError(f"{self} was cancelled")

    def _fire(self) -> list[Waiter]:
        """Mark the event processed and hand over its waiters."""
        waiters, self._waiters = self._waiters, []
        self._cancel_waiters = []
        self._processed = True
        return waiters

    def __and__(self, other: Event) -> AllOf:
        return AllOf(self.env, [self, other])

    def __or__(self, other: Event) -> AnyOf:
        return AnyOf(self.env, [self, other])


class Timeout(Event):
    """An event that fires after a delay in virtual time.

    A timeout stays pending while it sits in the event queue, so it can still be cancelled; the
    environment triggers it with its value when it is popped.
    """

    def __init__(self, env: Environment, delay: int | float, value: Any = None) -> None:
        """Create and schedule a timeout.

        Args:
            env: the environment the event belongs to
            delay: the delay relative to the current time
            value: the value delivered when the timeout fires

        Raises:
            NegativeDurationError: if delay is negative
        """
        if delay < 0:
            raise NegativeDurationError(f"Negative delay {delay}")
        super().__init__(env)
        self.delay = delay
        self._ok = True
        self._value = value
        env._schedule(self, delay)

    def __repr__(self) -> str:
        return f"<Timeout id={self.id} delay={self.delay} {self._state.value}>"


class Initialize(Event):
    """Starts a process at the instant it was spawned."""

    def __init__(self, env: Environment, process: Process) -> None:
        super().__init__(env)
        self.process = process
        self.register_waiter(process._resume)
        self.succeed()


class ConditionValue:
    """Outcome of a composite event, mapping constituent events to their values.

    Only constituents that were processed successfully when the composite triggered are present,
    in constituent order.
    """

    def __init__(self, events: Iterable[Event] = ()) -> None:
        self.events: list[Event] = list(events)

    def __getitem__(self, event: Event) -> Any:
        if event not in self.events:
            raise KeyError(event)
        return event._value

    def __contains__(self, event: object) -> bool:
        return event in self.events

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ConditionValue):
            return self.events == other.events
        return self.todict() == other

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __repr__(self) -> str:
        return f"<ConditionValue {self.todict()}>"

    def keys(self) -> Iterator[Event]:  # noqa: D102
        return iter(self.events)

    def values(self) -> Iterator[Any]:  # noqa: D102
        return (event._value for event in self.events)

    def items(self) -> Iterator[tuple[Event, Any]]:  # noqa: D102
        return ((event, event._value) for event in self.events)

    def todict(self) -> dict[Event, Any]:
        """Return the outcome as a plain dict."""
        return dict(self.items())


class Condition(Event):
    """An event that triggers once ``evaluate(events, count)`` holds.

    The condition registers itself as a waiter on every constituent. It triggers at most once: after
    that it detaches from the constituents that have not fired yet, and later firings no longer
    affect it (they are still delivered to the constituents' other waiters). A failing constituent
    fails the condition with the same exception, unless the condition already triggered.

    A cancelled constituent never fires. Once so many constituents are cancelled that ``evaluate``
    could no longer hold even if all the others fired, the condition fails with
    :class:`~procsim.exceptions.EventCancelledError`. An ``AllOf`` therefore fails on the first
    cancelled constituent, and an ``AnyOf`` only when every constituent is cancelled.

    Attributes:
        events (tuple[Event, ...]): the constituent events
    """

    def __init__(
        self,
        env: Environment,
        evaluate: Callable[[tuple[Event, ...], int], bool],
        events: Iterable[Event],
    ) -> None:
        """Create a composite event.

        Args:
            env: the environment the event belongs to
            evaluate: predicate over the constituents and the number of them processed so far
            events: the constituent events

        Raises:
            ValueError: if a constituent belongs to another environment
        """
        super().__init__(env)
        self._evaluate = evaluate
        self.events: tuple[Event, ...] = tuple(events)
        self._count = 0
        self._cancelled = 0

        for event in self.events:
            if event.env is not env:
                raise ValueError(
                    "It is not allowed to mix events from different environments"
                )

        if not self.events:
            self.succeed(ConditionValue())
            return

        for event in self.events:
            if event.processed:
                self._check(event)
            elif event.cancelled:
                self._abandon(event)
            else:
                event.register_waiter(self._check)
                event._cancel_waiters.append(self._abandon)
            if self._state is not EventState.PENDING:
                break

    @property
    def remaining(self) -> int:
        """Return the number of constituents that have not been processed yet."""
        return len(self.events) - self._count

    def _check(self, event: Event) -> None:
        if self._state is not EventState.PENDING:
            return

        self._count += 1
        if not event._ok:
            self._detach()
            self.fail(event._value)
        elif self._evaluate(self.events, self._count):
            self._detach()
            self.succeed(
                ConditionValue(e for e in self.events if e.processed and e._ok)
            )

    def _abandon(self, event: Event) -> None:
        if self._state is not EventState.PENDING:
            return

        self._cancelled += 1
        if not self._evaluate(self.events, len(self.events) - self._cancelled):
            self._detach()
            self.fail(
                EventCancelledError(f"{event} was cancelled, {self} can no longer trigger")
            )

    def _detach(self) -> None:
        for event in self.events:
            event.remove_waiter(self._check)
            if self._abandon in event._cancel_waiters:
                event._cancel_waiters.remove(self._abandon)

    @staticmethod
    def all_events(events: tuple[Event, ...], count: int) -> bool:
        """Return True once every constituent has been processed."""
        return len(events) == count

    @staticmethod
    def any_events(events: tuple[Event, ...], count: int) -> bool:
        """Return True once at least one constituent has been processed."""
        return count > 0 or len(events) == 0


class AllOf(Condition):
    """Triggers exactly once, after every constituent has triggered."""

    def __init__(self, env: Environment, events: Iterable[Event]) -> None:
        super().__init__(env, Condition.all_events, events)


class AnyOf(Condition):
    """Triggers when the first constituent to be processed fires."""

    def __init__(self, env: Environment, events: Iterable[Event]) -> None:
        super().__init__(env, Condition.any_events, events)
