"""
Carwash
=======

A carwash has a limited number of washing machines and cars arriving at random intervals. A car
that finds every machine busy waits in line; once it gets a machine it is washed and leaves.

The model tracks the machine pool with a DataCollector and samples the length of the line with a
recurring Schedule.
"""

from dataclasses import dataclass

from procsim import DataCollector, Environment, Schedule


@dataclass
class CarwashScenario:
    """Scenario parameters for the carwash model."""

    machines: int = 2
    wash_time: float = 5.0
    t_inter: float = 7.0
    initial_cars: int = 4
    sim_time: float = 100.0
    sample_interval: float = 10.0
    rng: int | None = 42

    def __post_init__(self):
        if self.machines <= 0:
            raise ValueError("machines must be > 0")
        if self.wash_time <= 0 or self.t_inter <= 0:
            raise ValueError("wash_time and t_inter must be > 0")


class Carwash:
    """A carwash with a pool of machines."""

    def __init__(self, env, scenario):
        self.env = env
        self.scenario = scenario
        self.machines = env.create_resource(scenario.machines, name="machines")
        self.washed = 0

    def wash(self):
        """Wash a car, taking a random amount of time around the nominal wash time."""
        yield self.env.timeout(self.env.rng.uniform(0.5, 1.5) * self.scenario.wash_time)
        self.washed += 1


def car(env, carwash):
    """A car requests a machine, is washed, and leaves."""
    with carwash.machines.acquire() as request:
        yield request
        yield env.spawn(carwash.wash())


def arrivals(env, carwash):
    """Create the initial cars and keep creating cars at random intervals."""
    for _ in range(carwash.scenario.initial_cars):
        env.spawn(car, carwash)

    while True:
        yield env.timeout(env.rng.exponential(carwash.scenario.t_inter))
        env.spawn(car, carwash)


def run_carwash(scenario=None):
    """Run the carwash scenario.

    Args:
        scenario: CarwashScenario object, defaults to CarwashScenario()

    Returns:
        dict with the number of washed cars, the machine utilization, and the sampled line
        lengths as a DataFrame
    """
    if scenario is None:
        scenario = CarwashScenario()

    env = Environment(rng=scenario.rng)
    carwash = Carwash(env, scenario)
    collector = DataCollector(
        env, reporters={"waiting": lambda e: carwash.machines.queue_length}
    ).track_resource(carwash.machines)
    collector.collect_on(Schedule(interval=scenario.sample_interval, start=0))

    env.spawn(arrivals, carwash, name="arrivals")
    env.run(until=scenario.sim_time)

    return {
        "washed": carwash.washed,
        "utilization": collector.time_weighted_usage(carwash.machines) / scenario.machines,
        "line": collector.get_reporter_dataframe(),
    }
