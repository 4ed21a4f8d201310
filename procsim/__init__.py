"""procsim: process-oriented discrete event simulation.

Core Objects: Environment, Process, Event, and the shared resources.
"""

import datetime
import logging

import procsim.resources as resources
import procsim.time as time
from procsim.datacollection import DataCollector
from procsim.environment import Environment, RunState
from procsim.events import AllOf, AnyOf, Condition, ConditionValue, Event, EventState, Timeout
from procsim.exceptions import (
    AlreadyTriggeredError,
    DoubleReleaseError,
    EventCancelledError,
    Interrupt,
    NegativeDurationError,
    NotWaitingError,
    Preempted,
    Preemption,
    ProcessFailure,
    ResourceLeakDiagnostic,
    ResourceLeakWarning,
    SimulationCorruptedError,
    SimulationError,
)
from procsim.process import Process, ProcessStatus
from procsim.resources import (
    FilterStore,
    PreemptiveResource,
    PriorityItem,
    PriorityResource,
    PriorityStore,
    Request,
    Resource,
    Store,
)
from procsim.time import Priority, Schedule

__all__ = [
    "AllOf",
    "AlreadyTriggeredError",
    "AnyOf",
    "Condition",
    "ConditionValue",
    "DataCollector",
    "DoubleReleaseError",
    "Environment",
    "Event",
    "EventCancelledError",
    "EventState",
    "FilterStore",
    "Interrupt",
    "NegativeDurationError",
    "NotWaitingError",
    "Preempted",
    "PreemptiveResource",
    "Preemption",
    "Priority",
    "PriorityItem",
    "PriorityResource",
    "PriorityStore",
    "Process",
    "ProcessFailure",
    "ProcessStatus",
    "Request",
    "Resource",
    "ResourceLeakDiagnostic",
    "ResourceLeakWarning",
    "RunState",
    "Schedule",
    "SimulationCorruptedError",
    "SimulationError",
    "Store",
    "Timeout",
    "resources",
    "time",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())

__title__ = "procsim"
__version__ = "0.1.0.dev0"
__license__ = "Apache 2.0"
_this_year = datetime.datetime.now(tz=datetime.UTC).date().year
__copyright__ = f"Copyright {_this_year} procsim Team"
