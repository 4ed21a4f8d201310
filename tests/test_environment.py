"""Tests for the Environment: clock, ordering, run control and teardown."""

import warnings

import numpy as np
import pytest

from procsim import (
    Environment,
    ResourceLeakWarning,
    RunState,
    SimulationCorruptedError,
)


def ticker(env, log, period=1):
    """Append the current time to ``log`` every ``period``."""
    while True:
        yield env.timeout(period)
        log.append(env.now)


class TestClock:
    def test_initial_time(self):
        """The clock starts at the initial time."""
        assert Environment().now == 0
        assert Environment(initial_time=10).now == 10
        with pytest.raises(ValueError):
            Environment(initial_time=-1)

    def test_repr(self):
        """The representation shows the clock and run state."""
        env = Environment()
        assert repr(env).startswith("<Environment now=0 state=idle")

    def test_peek_and_step(self):
        """peek reports the next fire time and step processes one event."""
        env = Environment()
        assert env.peek() == float("inf")
        assert not env.step()

        env.timeout(3)
        env.timeout(1)
        assert env.peek() == 1
        assert env.step()
        assert env.now == 1
        assert env.peek() == 3
        assert env.step()
        assert env.now == 3
        assert not env.step()


class TestOrdering:
    @pytest.mark.parametrize("seed", [0, 1, 42, 1234])
    def test_fire_time_then_creation_order(self, seed):
        """Events are delivered by fire time, and in scheduling order on ties."""
        env = Environment()
        rng = np.random.default_rng(seed)
        delays = rng.integers(0, 5, size=50)
        delivered = []

        for index, delay in enumerate(delays):
            timeout = env.timeout(int(delay))
            timeout.register_waiter(lambda e, index=index: delivered.append((env.now, index)))

        env.run()
        expected = sorted(range(len(delays)), key=lambda i: (delays[i], i))
        assert [index for _, index in delivered] == expected
        times = [time for time, _ in delivered]
        assert times == sorted(times)

    def test_same_instant_processes(self):
        """Processes waking at the same instant run in the order they went to sleep."""
        env = Environment()
        log = []

        def proc(env, name, delay):
            yield env.timeout(delay)
            log.append(name)

        for name, delay in [("a", 2), ("b", 1), ("c", 2), ("d", 1)]:
            env.spawn(proc, name, delay)
        env.run()
        assert log == ["b", "d", "a", "c"]


class TestRun:
    def test_run_until_empty(self):
        """Without an end time the run lasts until no events are left."""
        env = Environment()
        env.timeout(7)
        env.run()
        assert env.now == 7
        assert env.run_state is RunState.COMPLETED

    def test_run_until_time(self):
        """Events at the horizon are processed and the clock ends at the horizon."""
        env = Environment()
        log = []
        env.spawn(ticker, log, 2)
        env.run(until=6)
        assert log == [2, 4, 6]
        assert env.now == 6

        env.run(until=7)
        assert log == [2, 4, 6]
        assert env.now == 7

        env.run_for(3)
        assert log == [2, 4, 6, 8, 10]
        assert env.now == 10

    def test_run_until_past(self):
        """An end time before the current time warns and does nothing."""
        env = Environment()
        env.run(until=5)
        with pytest.warns(RuntimeWarning):
            env.run(until=3)
        assert env.now == 5

    def test_run_until_event(self):
        """Running until an event returns its value."""
        env = Environment()
        log = []
        env.spawn(ticker, log)
        assert env.run(until=env.timeout(3, "three")) == "three"
        assert env.now == 3
        assert log == [1, 2]

    def test_run_until_failed_event(self):
        """Running until a failed event returns its exception."""
        env = Environment()
        event = env.event()
        error = ValueError("oops")
        event.fail(error)
        assert env.run(until=event) is error

    def test_run_until_unreachable_event(self):
        """Running until an event that can no longer fire is an error."""
        env = Environment()
        env.timeout(1)
        with pytest.raises(RuntimeError):
            env.run(until=env.event())
        assert env.run_state is RunState.STOPPED_EARLY

    def test_stop(self):
        """stop ends the run after the current step and a new run resumes."""
        env = Environment()
        log = []

        def stopping_ticker(env):
            while True:
                yield env.timeout(1)
                log.append(env.now)
                if env.now == 3:
                    env.stop()

        env.spawn(stopping_ticker)
        env.run(until=10)
        assert env.run_state is RunState.STOPPED_EARLY
        assert env.now == 3
        assert log == [1, 2, 3]

        env.run(until=5)
        assert env.run_state is RunState.COMPLETED
        assert log == [1, 2, 3, 4, 5]

    def test_stop_between_runs(self):
        """A stop requested between runs ends the next run before its first step."""
        env = Environment()
        env.timeout(5)
        env.stop()

        env.run()
        assert env.run_state is RunState.STOPPED_EARLY
        assert env.now == 0
        assert len(env.event_list) == 1

        env.run()
        assert env.run_state is RunState.COMPLETED
        assert env.now == 5


class TestCorruption:
    def test_time_going_backward(self):
        """An entry before the current time aborts the run."""
        env = Environment()
        env.run(until=5)
        env.event_list.add_event(1, env.event())
        with pytest.raises(SimulationCorruptedError):
            env.step()

    def test_event_without_outcome(self):
        """An entry for an event without outcome aborts the run."""
        env = Environment()
        env.event_list.add_event(0, env.event())
        with pytest.raises(SimulationCorruptedError):
            env.run()
        assert env.run_state is RunState.STOPPED_EARLY

    def test_processed_twice(self):
        """An event can only be processed once."""
        env = Environment()
        event = env.event().succeed()
        env.run()
        env.event_list.add_event(env.now, event)
        with pytest.raises(SimulationCorruptedError):
            env.step()


class TestIsolation:
    def test_independent_environments(self):
        """Environments share neither clock nor identifiers."""
        first, second = Environment(), Environment()
        first.timeout(5)
        first.run()

        assert first.now == 5
        assert second.now == 0
        assert first.event().id == second.event().id + 1

    def test_reproducible_rng(self):
        """Equal seeds give equal random streams."""
        first, second = Environment(rng=42), Environment(rng=42)
        assert first.random.random() == second.random.random()
        np.testing.assert_array_equal(first.rng.random(5), second.rng.random(5))

        other = Environment(rng=43)
        assert not np.array_equal(Environment(rng=42).rng.random(5), other.rng.random(5))


class TestTeardown:
    def test_clean(self):
        """A run that returns everything has no diagnostics."""
        env = Environment()
        resource = env.create_resource(1)

        def user(env):
            with resource.acquire() as request:
                yield request
                yield env.timeout(1)

        env.spawn(user)
        env.run()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert env.teardown() == []

    def test_leak(self):
        """Outstanding holders and waiters are reported."""
        env = Environment()
        resource = env.create_resource(1, name="counter")

        def hog(env):
            yield resource.acquire()
            yield env.timeout(100)

        env.spawn(hog)
        env.spawn(hog)
        env.run(until=10)

        with pytest.warns(ResourceLeakWarning, match="counter"):
            diagnostics = env.teardown()
        assert len(diagnostics) == 1
        assert diagnostics[0].resource_id == resource.id
        assert diagnostics[0].usage == 1
        assert diagnostics[0].queued == 1

    def test_context_manager(self):
        """Leaving the context runs the teardown."""
        with pytest.warns(ResourceLeakWarning):
            with Environment() as env:
                env.create_resource(2).acquire()
