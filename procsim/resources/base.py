"""Common machinery for capacity-bounded shared resources."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from procsim.exceptions import ResourceLeakDiagnostic

if TYPE_CHECKING:
    from procsim.environment import Environment

Observer = Callable[["BaseResource"], None]


class BaseResource:
    """Base class for resources and stores.

    A resource registers itself with its environment at creation, which gives it a unique id and
    makes it part of the teardown leak check. Observers subscribed to a resource are called with
    the resource after every change of its usage or waiting queue.

    Attributes:
        env (Environment): the environment the resource belongs to
        id (int): unique identifier within the environment
        name (str): human readable name
        capacity: the maximum usage

    """

    def __init__(
        self, env: Environment, capacity: int | float, name: str | None = None
    ) -> None:
        """Create a resource.

        Args:
            env: the environment the resource belongs to
            capacity: the maximum usage, must be > 0
            name: optional name used in diagnostics

        Raises:
            ValueError: if capacity is not positive
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")

        self.env = env
        self.capacity = capacity
        self.id: int = env._register_resource(self)
        self.name: str = (
            name if name is not None else f"{type(self).__name__.lower()}-{self.id}"
        )
        self._observers: list[Observer] = []

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.name!r} usage={self.usage}/{self.capacity} "
            f"queued={self.queue_length}>"
        )

    @property
    def usage(self) -> int:
        """Return the current usage."""
        raise NotImplementedError

    @property
    def queue_length(self) -> int:
        """Return the number of waiting requests."""
        raise NotImplementedError

    def _outstanding(self) -> int:
        """Return the usage that must be returned before the run is clean."""
        return self.usage

    def subscribe(self, observer: Observer) -> None:
        """Call ``observer(resource)`` after every change of usage or queue."""
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:  # noqa: D102
        self._observers.remove(observer)

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self)

    def diagnose(self) -> ResourceLeakDiagnostic | None:
        """Return a leak diagnostic if the resource is not clean, else None."""
        outstanding, queued = self._outstanding(), self.queue_length
        if outstanding or queued:
            return ResourceLeakDiagnostic(
                resource_id=self.id, name=self.name, usage=outstanding, queued=queued
            )
        return None
