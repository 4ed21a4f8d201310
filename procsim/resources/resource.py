"""Shared pools with a bounded number of concurrent holders.

Three flavours are provided:

- :class:`Resource`: requests are served first come, first served
- :class:`PriorityResource`: requests are served on priority (lower value first), FIFO on ties
- :class:`PreemptiveResource`: like PriorityResource, but a request may bump a holder with a worse
  priority

Acquiring returns a :class:`Request` handle, an event that triggers once the resource is granted.
Every granted request has to be handed back exactly once through :meth:`Resource.release`; the
handle is a context manager that does this on exit::

    with resource.acquire() as request:
        yield request
        yield env.timeout(5)
"""

from __future__ import annotations

import logging
from bisect import insort
from typing import TYPE_CHECKING

from procsim.events import Event, EventState
from procsim.exceptions import (
    AlreadyTriggeredError,
    DoubleReleaseError,
    Preempted,
    Preemption,
)
from procsim.process import ProcessStatus
from procsim.resources.base import BaseResource
from procsim.time import Priority

if TYPE_CHECKING:
    from procsim.environment import Environment
    from procsim.process import Process

_logger = logging.getLogger(__name__)


class Request(Event):
    """Handle for one acquisition of a resource.

    Attributes:
        resource (Resource): the requested resource
        process (Process | None): the process that issued the request
        priority (int): request priority, lower values are served first
        preempt (bool): whether the request may bump a worse holder
        time: virtual time of arrival
        key (tuple): ordering key ``(priority, arrival time, arrival sequence)``
        usage_since: virtual time the request was granted, None while waiting
        released (bool): whether the handle has been handed back

    """

    def __init__(
        self,
        resource: Resource,
        priority: int = Priority.DEFAULT,
        preempt: bool = False,
        *,
        process: Process | None = None,
        key: tuple | None = None,
    ) -> None:
        super().__init__(resource.env)
        self.resource = resource
        self.process = process if process is not None else resource.env.active_process
        self.priority = priority
        self.preempt = preempt
        self.time = resource.env.now
        self.key = key if key is not None else (priority, self.time, self.id)
        self.usage_since: int | float | None = None
        self.granted = False
        self.released = False
        self._successor: Request | None = None

    def __repr__(self) -> str:
        return (
            f"<Request id={self.id} {self.resource.name!r} priority={self.priority} "
            f"{self._state.value}>"
        )

    def __enter__(self) -> Request:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        # a preempted handle passes the release on to its re-queued request
        request = self
        while request.released and request._successor is not None:
            request = request._successor
        if not request.released:
            request.resource.release(request)

    def cancel(self) -> None:
        """Withdraw a request that has not been granted yet.

        Raises:
            AlreadyTriggeredError: if the request was granted; release it instead
        """
        if self.granted:
            raise AlreadyTriggeredError(f"{self} was granted, release it instead")
        self.resource.release(self)


class Resource(BaseResource):
    """A resource with ``capacity`` slots, granted first come, first served.

    Attributes:
        users (list[Request]): requests currently holding the resource
        queue (list[Request]): waiting requests in service order

    """

    def __init__(self, env: Environment, capacity: int = 1, name: str | None = None):
        """Create a resource.

        Args:
            env: the environment the resource belongs to
            capacity: number of concurrent holders
            name: optional name used in diagnostics
        """
        super().__init__(env, capacity, name)
        self.users: list[Request] = []
        self.queue: list[Request] = []

    @property
    def usage(self) -> int:  # noqa: D102
        return len(self.users)

    @property
    def queue_length(self) -> int:  # noqa: D102
        return len(self.queue)

    def acquire(self) -> Request:
        """Request one slot of the resource.

        If a slot is free it is taken immediately and the returned request is already triggered;
        otherwise the request waits in the queue until a slot is released.

        Returns:
            the Request handle to yield on and to release later
        """
        return self._request(Request(self))

    def release(self, request: Request) -> None:
        """Hand a request back.

        A granted request frees its slot, which is passed on to the head of the queue. A request
        that is still waiting is withdrawn from the queue.

        Args:
            request: the handle returned by :meth:`acquire`

        Raises:
            ValueError: if the request belongs to another resource
            DoubleReleaseError: if the request was already released
        """
        if request.resource is not self:
            raise ValueError(f"{request} does not belong to {self}")
        if request.released:
            raise DoubleReleaseError(f"{request} was already released")

        request.released = True
        if request.granted:
            self.users.remove(request)
            _logger.debug("%s released %s at %s", self.name, request, self.env.now)
        else:
            self.queue.remove(request)
            if request._state is EventState.PENDING:
                Event.cancel(request)
            _logger.debug("%s withdrew %s at %s", self.name, request, self.env.now)

        self._grant_waiting()
        self._notify()

    def _request(self, request: Request) -> Request:
        insort(self.queue, request, key=lambda r: r.key)
        self._grant_waiting()
        self._notify()
        return request

    def _grant_waiting(self) -> None:
        while self.queue and len(self.users) < self.capacity:
            request = self.queue.pop(0)
            request.granted = True
            request.usage_since = self.env.now
            self.users.append(request)
            request.succeed(request)
            _logger.debug("%s granted %s at %s", self.name, request, self.env.now)


class PriorityResource(Resource):
    """A resource that serves waiting requests in priority order."""

    def acquire(self, priority: int = Priority.DEFAULT) -> Request:
        """Request one slot of the resource.

        Args:
            priority: lower values are served first; equal priorities are served FIFO

        Returns:
            the Request handle to yield on and to release later
        """
        return self._request(Request(self, priority))


class PreemptiveResource(PriorityResource):
    """A priority resource whose requests may bump holders with a worse priority.

    When a preempting request finds the resource full, the holder with the worst key is bumped if
    the new request's priority is strictly better. The bumped handle counts as released; its
    process is interrupted with a :class:`~procsim.exceptions.Preemption` whose cause is a
    :class:`~procsim.exceptions.Preempted` record. The holder is re-queued with its original key
    as ``cause.request``: the preempted process may yield that request to get the resource back,
    or release it to give up. Leaving the ``with`` block of the original handle releases the
    re-queued request as well.
    """

    def acquire(
        self, priority: int = Priority.DEFAULT, preempt: bool = True
    ) -> Request:
        """Request one slot of the resource.

        Args:
            priority: lower values are served first; equal priorities are served FIFO
            preempt: whether the request may bump a holder with a worse priority

        Returns:
            the Request handle to yield on and to release later
        """
        request = Request(self, priority, preempt)
        if request.preempt and len(self.users) >= self.capacity:
            self._preempt(request)
        return self._request(request)

    def _preempt(self, request: Request) -> None:
        victim = max(self.users, key=lambda r: r.key)
        if victim.priority <= request.priority:
            return
        if victim.process is not None and victim.process is self.env.active_process:
            # a process cannot be interrupted by its own request
            return

        self.users.remove(victim)
        victim.released = True
        _logger.debug(
            "%s: %s preempted by %s at %s", self.name, victim, request, self.env.now
        )

        # only a suspended holder can be told about the loss, and only it gets a re-queued request
        process = victim.process
        if process is not None and process.status is ProcessStatus.WAITING:
            requeued = Request(
                self, victim.priority, victim.preempt, process=process, key=victim.key
            )
            victim._successor = requeued
            insort(self.queue, requeued, key=lambda r: r.key)
            cause = Preempted(
                by=request.process,
                usage_since=victim.usage_since,
                resource=self,
                request=requeued,
            )
            process._interrupt_with(Preemption(cause))
