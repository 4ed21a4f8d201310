"""Underlying modules for event queueing and time advancement.

This module provides the data structures the environment uses to keep pending events in
chronological order. The EventList class is a priority queue that orders events on fire time and
then on the order in which they were scheduled. Key features:

- Deterministic ``(fire_time, sequence)`` ordering
- Efficient event insertion and removal using a heap queue
- Support for event cancellation without breaking the heap structure
"""

from .events import EventGenerator, EventList, Priority, Schedule

__all__ = ["EventGenerator", "EventList", "Priority", "Schedule"]
