"""Collection of simulation results into pandas DataFrames.

The DataCollector gathers three kinds of data:

* resource data: a row ``(time, resource_id, resource, usage, queue_length, capacity)``
  every time a tracked resource changes, recorded through the resource's observer hook
* reporter data: a row per call to :meth:`DataCollector.collect`, with one column per reporter;
  collection can be driven by a :class:`~procsim.time.Schedule`
* process data: outcome of every tracked process, read when the table is built

Everything is exported as analysis-ready ``pandas.DataFrame`` objects after the run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from procsim.environment import Environment
    from procsim.process import Process
    from procsim.resources.base import BaseResource
    from procsim.time import EventGenerator, Schedule


class DataCollector:
    """Class for collecting data generated by a simulation run.

    Attributes:
        env (Environment): the environment to collect from
        reporters (dict[str, Callable]): functions of the environment, one per reporter column
    """

    def __init__(
        self,
        env: Environment,
        reporters: dict[str, Callable[[Environment], Any]] | None = None,
    ) -> None:
        """Instantiate a DataCollector.

        Args:
            env: the environment to collect from
            reporters: mapping of column name to a function taking the environment
        """
        self.env = env
        self.reporters: dict[str, Callable[[Environment], Any]] = dict(reporters or {})

        self._resources: dict[int, BaseResource] = {}
        self._processes: list[Process] = []
        self._resource_rows: list[dict[str, Any]] = []
        self._reporter_rows: list[dict[str, Any]] = []
        self._generator: EventGenerator | None = None

    def track_resource(self, resource: BaseResource) -> DataCollector:
        """Record a row for ``resource`` now and after each of its changes.

        Returns:
            Self for method chaining
        """
        if resource.id not in self._resources:
            self._resources[resource.id] = resource
            resource.subscribe(self._record_resource)
            self._record_resource(resource)
        return self

    def untrack_resource(self, resource: BaseResource) -> None:
        """Stop recording changes of ``resource``."""
        if self._resources.pop(resource.id, None) is not None:
            resource.unsubscribe(self._record_resource)

    def track_processes(self, processes: Iterable[Process]) -> DataCollector:
        """Include ``processes`` in the process table.

        Returns:
            Self for method chaining
        """
        self._processes.extend(processes)
        return self

    def _record_resource(self, resource: BaseResource) -> None:
        self._resource_rows.append(
            {
                "time": self.env.now,
                "resource_id": resource.id,
                "resource": resource.name,
                "usage": resource.usage,
                "queue_length": resource.queue_length,
                "capacity": resource.capacity,
            }
        )

    def collect(self) -> None:
        """Evaluate every reporter and store the results with the current time."""
        row: dict[str, Any] = {"time": self.env.now}
        for name, reporter in self.reporters.items():
            row[name] = reporter(self.env)
        self._reporter_rows.append(row)

    def collect_on(self, schedule: Schedule) -> EventGenerator:
        """Call :meth:`collect` according to ``schedule``.

        Returns:
            the EventGenerator driving the collection
        """
        if self._generator is not None:
            self._generator.stop()
        self._generator = self.env.schedule_recurring(self.collect, schedule)
        return self._generator

    def get_resource_dataframe(self) -> pd.DataFrame:
        """Return the resource change log as a DataFrame."""
        return pd.DataFrame(
            self._resource_rows,
            columns=["time", "resource_id", "resource", "usage", "queue_length", "capacity"],
        )

    def get_reporter_dataframe(self) -> pd.DataFrame:
        """Return the reporter data as a DataFrame indexed by time."""
        df = pd.DataFrame(self._reporter_rows, columns=["time", *self.reporters])
        return df.set_index("time")

    def get_process_dataframe(self) -> pd.DataFrame:
        """Return one row per tracked process with its final state."""
        rows = []
        for process in self._processes:
            rows.append(
                {
                    "id": process.id,
                    "name": process.name,
                    "status": process.status.value,
                    "started_at": process.started_at,
                    "finished_at": process.finished_at,
                    "value": process.completion._value
                    if process.completion.triggered and process.completion._ok
                    else None,
                    "exception": repr(process.exception)
                    if process.exception is not None
                    else None,
                }
            )
        return pd.DataFrame(
            rows,
            columns=["id", "name", "status", "started_at", "finished_at", "value", "exception"],
        )

    def time_weighted_usage(self, resource: BaseResource, until: float | None = None) -> float:
        """Return the time-averaged usage of a tracked resource.

        Args:
            resource: a tracked resource
            until: end of the averaging window, defaults to the current time

        Returns:
            the mean usage between the first record and ``until``, or 0.0 for an empty window

        Raises:
            KeyError: if the resource is not tracked
        """
        if resource.id not in self._resources:
            raise KeyError(f"{resource.name!r} is not tracked")

        end = self.env.now if until is None else until
        rows = [
            row
            for row in self._resource_rows
            if row["resource_id"] == resource.id and row["time"] <= end
        ]
        times = np.array([row["time"] for row in rows] + [end], dtype=float)
        usage = np.array([row["usage"] for row in rows], dtype=float)

        durations = np.diff(times)
        total = times[-1] - times[0]
        if total <= 0:
            return 0.0
        return float(np.sum(usage * durations) / total)
