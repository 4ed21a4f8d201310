"""Tests for events and composite events."""

from unittest.mock import MagicMock

import pytest

from procsim import (
    AllOf,
    AlreadyTriggeredError,
    AnyOf,
    Environment,
    EventCancelledError,
    NegativeDurationError,
)
from procsim.events import ConditionValue, EventState


class TestEvent:
    def test_lifecycle(self):
        """An event goes from pending to triggered to processed."""
        env = Environment()
        event = env.event()
        assert event.state is EventState.PENDING
        assert not event.triggered
        assert not event.processed

        waiter = MagicMock()
        event.register_waiter(waiter)
        event.succeed("done")

        # the outcome is decided, but only delivered by the environment
        assert event.triggered
        assert event.ok
        assert event.value == "done"
        assert not event.processed
        waiter.assert_not_called()

        assert env.step()
        assert event.processed
        waiter.assert_called_once_with(event)

    def test_ids_are_unique(self):
        """Events are numbered in creation order."""
        env = Environment()
        first, second = env.event(), env.event()
        assert second.id > first.id

    def test_waiters_in_registration_order(self):
        """Waiters are notified in the order they registered."""
        env = Environment()
        event = env.event()
        calls = []
        for i in range(3):
            event.register_waiter(lambda e, i=i: calls.append(i))
        event.succeed()
        env.run()
        assert calls == [0, 1, 2]

    def test_double_trigger(self):
        """An event can be triggered only once."""
        env = Environment()
        event = env.event().succeed()
        with pytest.raises(AlreadyTriggeredError):
            event.succeed()
        with pytest.raises(AlreadyTriggeredError):
            event.fail(ValueError())

    def test_fail(self):
        """A failed event carries its exception."""
        env = Environment()
        event = env.event()
        error = ValueError("boom")
        event.register_waiter(MagicMock())
        event.fail(error)
        assert not event.ok
        assert event.value is error

        with pytest.raises(TypeError):
            env.event().fail("not an exception")

    def test_outcome_before_trigger(self):
        """Outcome accessors refuse pending events."""
        env = Environment()
        event = env.event()
        with pytest.raises(AttributeError):
            _ = event.value
        with pytest.raises(AttributeError):
            _ = event.ok

    def test_register_after_processed(self):
        """Registering on an event that already fired is an error."""
        env = Environment()
        event = env.event().succeed()
        env.run()
        with pytest.raises(AlreadyTriggeredError):
            event.register_waiter(MagicMock())

    def test_remove_waiter(self):
        """A removed waiter is no longer notified."""
        env = Environment()
        event = env.event()
        waiter = MagicMock()
        event.register_waiter(waiter)
        assert event.remove_waiter(waiter)
        assert not event.remove_waiter(waiter)

        event.succeed()
        env.run()
        waiter.assert_not_called()

    def test_cancel(self):
        """A canceled event never reaches its waiters."""
        env = Environment()
        timeout = env.timeout(5)
        waiter = MagicMock()
        timeout.register_waiter(waiter)

        timeout.cancel()
        assert timeout.cancelled
        assert timeout.waiters == ()
        with pytest.raises(AlreadyTriggeredError):
            timeout.register_waiter(waiter)

        env.run()
        waiter.assert_not_called()
        assert env.now == 0

    def test_cancel_triggered(self):
        """A triggered event cannot be canceled."""
        env = Environment()
        event = env.event().succeed()
        with pytest.raises(AlreadyTriggeredError):
            event.cancel()


class TestTimeout:
    def test_fires_after_delay(self):
        """A timeout fires at now + delay with its value."""
        env = Environment(initial_time=2)
        timeout = env.timeout(3, value="late")
        assert timeout.state is EventState.PENDING

        env.run()
        assert env.now == 5
        assert timeout.processed
        assert timeout.value == "late"

    def test_negative_delay(self):
        """Negative delays are rejected."""
        env = Environment()
        with pytest.raises(NegativeDurationError):
            env.timeout(-1)
        # also usable as a ValueError
        with pytest.raises(ValueError):
            env.timeout(-0.5)
        assert len(env.event_list) == 0


class TestCondition:
    @pytest.mark.parametrize("order", [(0, 1), (1, 0)])
    def test_all_of(self, order):
        """AllOf triggers once, after its last constituent, whatever the firing order."""
        env = Environment()
        events = [env.event(), env.event()]
        condition = env.all_of(events)
        waiter = MagicMock()
        condition.register_waiter(waiter)

        first, second = (events[i] for i in order)
        first.succeed("first")
        env.run()
        assert not condition.triggered
        assert condition.remaining == 1

        second.succeed("second")
        env.run()
        waiter.assert_called_once_with(condition)
        assert condition.value == {first: "first", second: "second"}
        assert list(condition.value) == events

    def test_any_of_simultaneous(self):
        """AnyOf triggers on the first constituent; the second still reaches its other waiters."""
        env = Environment()
        first, second = env.event(), env.event()
        other = MagicMock()
        second.register_waiter(other)

        condition = env.any_of([first, second])
        waiter = MagicMock()
        condition.register_waiter(waiter)

        first.succeed(1)
        second.succeed(2)
        env.run()

        waiter.assert_called_once_with(condition)
        other.assert_called_once_with(second)
        assert condition.value == {first: 1}
        assert second not in condition.value

    def test_any_of_timeouts(self):
        """A process waiting on the first of two timeouts resumes at the earlier one."""
        env = Environment()
        log = []

        def proc(env):
            short, long = env.timeout(1, "short"), env.timeout(5, "long")
            result = yield short | long
            log.append((env.now, list(result.values())))

        env.spawn(proc)
        env.run()
        assert log == [(1, ["short"])]
        assert env.now == 5

    def test_failing_constituent(self):
        """A failing constituent fails the composite with the same exception."""
        env = Environment()
        first, second = env.event(), env.event()
        log = []

        def proc(env):
            try:
                yield first & second
            except ValueError as error:
                log.append((env.now, error))

        env.spawn(proc)
        env.run()

        error = ValueError("broken")
        first.fail(error)
        env.run()
        assert log == [(0, error)]

    def test_empty(self):
        """Empty composites succeed immediately with an empty value."""
        env = Environment()
        all_of = env.all_of([])
        any_of = env.any_of([])
        env.run()
        assert all_of.processed
        assert any_of.processed
        assert all_of.value == {}
        assert len(any_of.value) == 0

    def test_already_processed_constituents(self):
        """Constituents that already fired count right away."""
        env = Environment()
        done = env.event().succeed("done")
        env.run()
        pending = env.event()

        condition = env.all_of([done, pending])
        assert condition.remaining == 1
        pending.succeed("later")
        env.run()
        assert condition.value == {done: "done", pending: "later"}

    def test_cancelled_constituent_fails_all_of(self):
        """Cancelling a constituent fails a pending AllOf and wakes its waiter."""
        env = Environment()
        first, second = env.timeout(1), env.timeout(2)
        log = []

        def proc(env):
            try:
                yield env.all_of([first, second])
            except EventCancelledError:
                log.append(env.now)

        env.spawn(proc)
        env.run(until=0.5)
        second.cancel()
        env.run()
        assert log == [0.5]

    def test_cancelled_before_construction(self):
        """An AllOf over an already cancelled event fails right away."""
        env = Environment()
        first, second = env.timeout(1), env.timeout(2)
        second.cancel()
        both = env.all_of([first, second])
        assert both.triggered
        assert not both.ok
        assert isinstance(both.value, EventCancelledError)
        assert first.waiters == ()

    def test_any_of_survives_partial_cancellation(self):
        """AnyOf fails only once every constituent is cancelled."""
        env = Environment()
        first, second = env.timeout(1), env.timeout(2, "second")
        either = env.any_of([first, second])
        first.cancel()
        assert not either.triggered

        env.run()
        assert either.value == {second: "second"}

        third, fourth = env.timeout(1), env.timeout(2)
        neither = env.any_of([third, fourth])
        third.cancel()
        fourth.cancel()
        assert isinstance(neither.value, EventCancelledError)

    def test_mixing_environments(self):
        """Constituents must belong to the environment of the composite."""
        env, other = Environment(), Environment()
        with pytest.raises(ValueError):
            env.all_of([env.event(), other.event()])

    def test_operators(self):
        """``&`` and ``|`` build AllOf and AnyOf."""
        env = Environment()
        first, second = env.event(), env.event()
        assert isinstance(first & second, AllOf)
        assert isinstance(first | second, AnyOf)

    def test_processes_as_constituents(self):
        """Processes stand for their completion events."""
        env = Environment()

        def worker(env, delay):
            yield env.timeout(delay)
            return delay

        workers = [env.spawn(worker, delay) for delay in (3, 1, 2)]
        result = env.run(until=env.all_of(workers))
        assert env.now == 3
        assert list(result.values()) == [3, 1, 2]


def test_condition_value():
    """ConditionValue behaves like a read only mapping."""
    env = Environment()
    first, second = env.event().succeed(1), env.event().succeed(2)
    env.run()

    value = ConditionValue([first, second])
    assert value[first] == 1
    assert first in value
    assert list(value.keys()) == [first, second]
    assert list(value.values()) == [1, 2]
    assert dict(value.items()) == {first: 1, second: 2}
    assert value == ConditionValue([first, second])
    assert value.todict() == {first: 1, second: 2}

    with pytest.raises(KeyError):
        _ = value[env.event()]
