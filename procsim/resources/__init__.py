"""Shared resources: capacity-bounded pools and item stores."""

from .base import BaseResource
from .resource import PreemptiveResource, PriorityResource, Request, Resource
from .store import (
    FilterStore,
    PriorityItem,
    PriorityStore,
    Store,
    StoreGet,
    StorePut,
)

__all__ = [
    "BaseResource",
    "FilterStore",
    "PreemptiveResource",
    "PriorityItem",
    "PriorityResource",
    "PriorityStore",
    "Request",
    "Resource",
    "Store",
    "StoreGet",
    "StorePut",
]
