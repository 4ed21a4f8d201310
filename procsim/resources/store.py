"""Stores: resources that hold items instead of granting slots.

Producers ``put`` items and consumers ``get`` them; both operations are events that trigger once
they could be carried out. A put waits while the store is at capacity and a get waits while there
is no (matching) item. Waiting puts and gets are served in arrival order.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from heapq import heappop, heappush
from typing import TYPE_CHECKING, Any

from procsim.events import Event, EventState
from procsim.resources.base import BaseResource

if TYPE_CHECKING:
    from procsim.environment import Environment


class StorePut(Event):
    """Request to put ``item`` into a store; triggers once the item was added."""

    def __init__(self, store: Store, item: Any) -> None:
        super().__init__(store.env)
        self.store = store
        self.item = item

    def __enter__(self) -> StorePut:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._state is EventState.PENDING:
            self.cancel()

    def cancel(self) -> None:
        """Withdraw the put if it is still waiting."""
        super().cancel()
        self.store._withdraw(self)


class StoreGet(Event):
    """Request to take an item out of a store; triggers with the item."""

    def __init__(self, store: Store, filter: Callable[[Any], bool] | None = None) -> None:  # noqa: A002
        super().__init__(store.env)
        self.store = store
        self.filter = filter

    def __enter__(self) -> StoreGet:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._state is EventState.PENDING:
            self.cancel()

    def cancel(self) -> None:
        """Withdraw the get if it is still waiting."""
        super().cancel()
        self.store._withdraw(self)


class Store(BaseResource):
    """A FIFO store holding up to ``capacity`` items.

    Attributes:
        items (list): the items currently in the store
        put_queue (list[StorePut]): waiting puts
        get_queue (list[StoreGet]): waiting gets

    """

    _gets_block = True

    def __init__(
        self, env: Environment, capacity: int | float = math.inf, name: str | None = None
    ):
        """Create a store.

        Args:
            env: the environment the store belongs to
            capacity: maximum number of items held
            name: optional name used in diagnostics
        """
        super().__init__(env, capacity, name)
        self.items: list[Any] = []
        self.put_queue: list[StorePut] = []
        self.get_queue: list[StoreGet] = []

    @property
    def usage(self) -> int:
        """Return the number of items in the store."""
        return len(self.items)

    @property
    def queue_length(self) -> int:
        """Return the number of waiting puts and gets."""
        return len(self.put_queue) + len(self.get_queue)

    def _outstanding(self) -> int:
        # items left in a store are not held by anybody
        return 0

    def put(self, item: Any) -> StorePut:
        """Put ``item`` into the store, waiting while it is full."""
        event = StorePut(self, item)
        self.put_queue.append(event)
        self._settle()
        return event

    def get(self) -> StoreGet:
        """Take the next item out of the store, waiting while it is empty."""
        event = StoreGet(self)
        self.get_queue.append(event)
        self._settle()
        return event

    def _withdraw(self, event: Event) -> None:
        if isinstance(event, StorePut) and event in self.put_queue:
            self.put_queue.remove(event)
        elif isinstance(event, StoreGet) and event in self.get_queue:
            self.get_queue.remove(event)
        self._settle()

    def _do_put(self, event: StorePut) -> bool:
        if len(self.items) < self.capacity:
            self.items.append(event.item)
            event.succeed()
            return True
        return False

    def _do_get(self, event: StoreGet) -> bool:
        if self.items:
            event.succeed(self.items.pop(0))
            return True
        return False

    def _serve(self, queue: list, action: Callable[[Any], bool], blocking: bool) -> bool:
        progressed = False
        for event in list(queue):
            if action(event):
                queue.remove(event)
                progressed = True
            elif blocking:
                break
        return progressed

    def _settle(self) -> None:
        # a put can unblock a get and vice versa; repeat until neither queue moves
        while True:
            put = self._serve(self.put_queue, self._do_put, blocking=True)
            got = self._serve(self.get_queue, self._do_get, blocking=self._gets_block)
            if not (put or got):
                break
        self._notify()


class FilterStore(Store):
    """A store whose gets take the first item matching a filter.

    A get that has no matching item does not block later gets with other filters.
    """

    _gets_block = False

    def get(self, filter: Callable[[Any], bool] = lambda item: True) -> StoreGet:  # noqa: A002
        """Take the first item for which ``filter(item)`` is true, waiting until there is one."""
        event = StoreGet(self, filter)
        self.get_queue.append(event)
        self._settle()
        return event

    def _do_get(self, event: StoreGet) -> bool:
        for index, item in enumerate(self.items):
            if event.filter(item):
                event.succeed(self.items.pop(index))
                return True
        return False


@dataclass(order=True)
class PriorityItem:
    """Wraps an arbitrary item with an orderable priority for a :class:`PriorityStore`."""

    priority: Any
    item: Any = field(compare=False)


class PriorityStore(Store):
    """A store whose gets return the smallest item first.

    Items must be orderable; wrap unorderable ones in :class:`PriorityItem`.
    """

    def _do_put(self, event: StorePut) -> bool:
        if len(self.items) < self.capacity:
            heappush(self.items, event.item)
            event.succeed()
            return True
        return False

    def _do_get(self, event: StoreGet) -> bool:
        if self.items:
            event.succeed(heappop(self.items))
            return True
        return False
