"""Error kinds raised by the simulation engine.

Contract violations (negative durations, double triggers, interrupting a process that is not
suspended, double releases) are raised synchronously to the caller that made them. Failures inside
process logic never escape :meth:`procsim.Environment.run`; they are delivered through the
completion event of the failing process. Only :class:`SimulationCorruptedError` aborts a run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from procsim.process import Process
    from procsim.resources.base import BaseResource


class SimulationError(Exception):
    """Base class for all errors raised by procsim."""


class NegativeDurationError(SimulationError, ValueError):
    """A timeout or delay was requested with a negative duration."""


class AlreadyTriggeredError(SimulationError, RuntimeError):
    """An event was triggered twice, or a waiter was registered on an event that already fired."""


class NotWaitingError(SimulationError, RuntimeError):
    """A process was interrupted or activated while it was not suspended."""


class DoubleReleaseError(SimulationError, RuntimeError):
    """A resource handle was released more than once."""


class EventCancelledError(SimulationError, RuntimeError):
    """A composite event can no longer trigger because constituents were cancelled."""


class SimulationCorruptedError(SimulationError, RuntimeError):
    """A fatal engine invariant was violated, e.g. virtual time moved backward."""


class ProcessFailure(SimulationError):
    """Generic failure a process may raise to fail itself."""


class Interrupt(SimulationError):
    """Thrown into a waiting process by :meth:`procsim.Process.interrupt`.

    Attributes:
        cause: the object passed by the interrupting party
    """

    def __init__(self, cause: Any = None):
        super().__init__(cause)

    @property
    def cause(self) -> Any:
        """The cause of the interrupt."""
        return self.args[0]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.cause!r})"


class Preemption(Interrupt):
    """Thrown into a resource holder that was bumped by a higher priority request.

    The cause is always a :class:`Preempted` record.
    """


@dataclass(frozen=True)
class Preempted:
    """Cause carried by a :class:`Preemption`.

    Attributes:
        by: the process whose request bumped the holder (None if requested outside a process)
        usage_since: the time at which the bumped holder was granted the resource
        resource: the resource that was lost
        request: the re-queued request; wait on it to re-acquire, or release it to give up
    """

    by: Process | None
    usage_since: int | float
    resource: BaseResource
    request: Any


@dataclass(frozen=True)
class ResourceLeakDiagnostic:
    """Teardown report for a resource that was not left clean.

    Attributes:
        resource_id: unique id of the resource within its environment
        name: human readable name of the resource
        usage: number of outstanding holders (or items in flight) at teardown
        queued: number of requests still waiting at teardown
    """

    resource_id: int
    name: str
    usage: int
    queued: int

    def __str__(self) -> str:
        return (
            f"resource {self.name!r} (id={self.resource_id}) not clean at teardown: "
            f"{self.usage} outstanding, {self.queued} queued"
        )


class ResourceLeakWarning(RuntimeWarning):
    """Warning category used to surface :class:`ResourceLeakDiagnostic` records."""
