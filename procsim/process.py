"""Processes: suspendable units of user logic.

Process logic is a Python generator. Each ``yield`` hands an event back to the environment and
suspends the generator until that event has been processed; the generator is then resumed with the
event's value, or the event's exception is raised at the ``yield``. The generator object is the
resumption handle and :attr:`Process.target` is the current wait set, so a process is plain data
that the environment keeps in its process table while it is alive.
"""

from __future__ import annotations

import logging
from enum import Enum
from inspect import isgenerator
from typing import TYPE_CHECKING, Any

from procsim.events import Event, Initialize
from procsim.exceptions import AlreadyTriggeredError, Interrupt, NotWaitingError

if TYPE_CHECKING:
    from collections.abc import Generator

    from procsim.environment import Environment

_logger = logging.getLogger(__name__)


class ProcessStatus(Enum):
    """Lifecycle states of a process."""

    CREATED = "created"
    RUNNING = "running"
    WAITING = "waiting"
    FINISHED = "finished"
    FAILED = "failed"


class Interruption(Event):
    """Delivers an :class:`~procsim.exceptions.Interrupt` to a waiting process.

    The process is detached from the event it was waiting on as soon as the interruption is
    created, so a late firing of that event can no longer resume it. The interrupt itself is
    delivered at the current instant through the event queue.
    """

    def __init__(self, process: Process, exception: Interrupt) -> None:
        super().__init__(process.env)
        self.process = process

        target = process._target
        if target is not None and not isinstance(target, Interruption):
            target.remove_waiter(process._resume)
            process._target = self

        self.register_waiter(self._deliver)
        self.fail(exception)

    def _deliver(self, event: Event) -> None:
        process = self.process
        if not process.is_alive:
            return

        # queued interrupts reach whatever the process waits on when they fire
        target = process._target
        if target is not None and target is not self:
            target.remove_waiter(process._resume)
        process._resume(self)


class Process:
    """A process driven by a generator.

    Attributes:
        env (Environment): the environment the process runs in
        id (int): unique identifier within the environment
        name (str): human readable name
        completion (Event): triggered with the return value when the process finishes, or with
            the exception when it fails
        started_at: virtual time of the first resumption, None before that
        finished_at: virtual time at which the process finished or failed

    """

    def __init__(
        self, env: Environment, generator: Generator, name: str | None = None
    ) -> None:
        """Create a process and schedule its start at the current instant.

        Args:
            env: the environment the process runs in
            generator: the generator implementing the process logic
            name: optional name, defaults to the generator's name

        Raises:
            TypeError: if generator is not a generator
        """
        if not isgenerator(generator):
            raise TypeError(f"{generator!r} is not a generator")

        self.env = env
        self.id: int = next(env._process_ids)
        self.name: str = name if name is not None else generator.__name__
        self.completion = Event(env)
        self.started_at: int | float | None = None
        self.finished_at: int | float | None = None

        self._generator: Generator | None = generator
        self._status = ProcessStatus.CREATED
        self._passivation: Event | None = None
        self._target: Event | None = None
        self._target = Initialize(env, self)

        env._processes[self.id] = self

    def __repr__(self) -> str:
        return f"<Process id={self.id} name={self.name!r} {self._status.value}>"

    @property
    def status(self) -> ProcessStatus:
        """Return the lifecycle state of the process."""
        return self._status

    @property
    def target(self) -> Event | None:
        """Return the event the process is currently waiting on."""
        return self._target

    @property
    def is_alive(self) -> bool:
        """Return whether the process has neither finished nor failed."""
        return self._status not in (ProcessStatus.FINISHED, ProcessStatus.FAILED)

    @property
    def is_waiting(self) -> bool:
        """Return whether the process is suspended on an event."""
        return self._status is ProcessStatus.WAITING

    @property
    def is_passive(self) -> bool:
        """Return whether the process is suspended on its own passivation event."""
        return (
            self._status is ProcessStatus.WAITING
            and self._passivation is not None
            and self._target is self._passivation
        )

    @property
    def value(self) -> Any:
        """Return the value the process returned.

        Raises:
            AttributeError: if the process has not finished successfully
        """
        if self._status is not ProcessStatus.FINISHED:
            raise AttributeError(f"{self} has not finished")
        return self.completion._value

    @property
    def exception(self) -> BaseException | None:
        """Return the exception the process failed with, if any."""
        if self._status is ProcessStatus.FAILED:
            return self.completion._value
        return None

    def interrupt(self, cause: Any = None) -> Interruption:
        """Interrupt the process while it is waiting.

        The process is resumed at the current instant with an
        :class:`~procsim.exceptions.Interrupt` carrying ``cause``.

        Args:
            cause: arbitrary object describing the reason of the interrupt

        Raises:
            NotWaitingError: if the process is not suspended on an event
        """
        return self._interrupt_with(Interrupt(cause))

    def _interrupt_with(self, exception: Interrupt) -> Interruption:
        if self._status is not ProcessStatus.WAITING:
            raise NotWaitingError(f"{self} is not waiting and cannot be interrupted")
        _logger.debug("%s interrupted at %s: %s", self, self.env.now, exception)
        return Interruption(self, exception)

    def passivate(self) -> Event:
        """Return the event a process yields to become passive until :meth:`activate`."""
        self._passivation = Event(self.env)
        return self._passivation

    def activate(self, value: Any = None) -> None:
        """Wake a passive process at the current instant.

        Args:
            value: the value the process receives from its passivation ``yield``

        Raises:
            NotWaitingError: if the process is not passive
        """
        if not self.is_passive:
            raise NotWaitingError(f"{self} is not passive")
        passivation, self._passivation = self._passivation, None
        passivation.succeed(value)

    def _as_event(self, target: object) -> Event:
        if isinstance(target, Process):
            target = target.completion
        if not isinstance(target, Event):
            raise TypeError(f"Invalid yield value {target!r}")
        if target.env is not self.env:
            raise ValueError(f"{target!r} belongs to another environment")
        return target

    def _resume(self, event: Event) -> None:
        """Resume the generator with the outcome of ``event``.

        Runs the process logic until it yields an event that has not fired yet, returns, or raises.
        """
        env = self.env
        env._active_process = self
        if self.started_at is None:
            self.started_at = env.now
        self._status = ProcessStatus.RUNNING
        self._target = None

        ok, payload = event._ok, event._value
        while True:
            try:
                if ok:
                    yielded = self._generator.send(payload)
                else:
                    yielded = self._generator.throw(payload)
            except StopIteration as stop:
                self._terminate(ProcessStatus.FINISHED, stop.value)
                break
            except Exception as exc:  # noqa: BLE001
                self._terminate(ProcessStatus.FAILED, exc)
                break

            try:
                target = self._as_event(yielded)
                if not target.processed:
                    target.register_waiter(self._resume)
            except (TypeError, ValueError, AlreadyTriggeredError) as exc:
                # reported inside the process logic, at the offending yield
                ok, payload = False, exc
                continue

            if target.processed:
                ok, payload = target._ok, target._value
                continue

            self._target = target
            self._status = ProcessStatus.WAITING
            break

        env._active_process = None

    def _terminate(self, status: ProcessStatus, outcome: Any) -> None:
        self._status = status
        self.finished_at = self.env.now
        self._generator = None
        self._passivation = None
        del self.env._processes[self.id]

        if status is ProcessStatus.FINISHED:
            _logger.debug("%s finished at %s", self, self.env.now)
            self.completion.succeed(outcome)
        else:
            _logger.debug("%s failed at %s: %r", self, self.env.now, outcome)
            self.completion.fail(outcome)
