"""
Bank with Reneging
==================

Customers arrive at random at a bank with a limited number of counters. Each customer waits in
line for a counter, but only as long as their patience lasts: a customer whose patience runs out
before a counter frees up leaves the bank without being served (reneges).
"""

from dataclasses import dataclass

import pandas as pd

from procsim import DataCollector, Environment


@dataclass
class BankScenario:
    """Scenario parameters for the bank model."""

    n_customers: int = 20
    counters: int = 1
    interval: float = 10.0
    min_patience: float = 1.0
    max_patience: float = 3.0
    time_in_bank: float = 12.0
    rng: int | None = 42

    def __post_init__(self):
        if self.n_customers <= 0:
            raise ValueError("n_customers must be > 0")
        if self.counters <= 0:
            raise ValueError("counters must be > 0")
        if not 0 <= self.min_patience <= self.max_patience:
            raise ValueError("patience bounds must satisfy 0 <= min <= max")


def customer(env, name, counter, scenario, log):
    """A customer arrives, waits at most their patience for a counter, and is served."""
    arrive = env.now
    patience = env.rng.uniform(scenario.min_patience, scenario.max_patience)

    with counter.acquire() as request:
        results = yield request | env.timeout(patience)
        waited = env.now - arrive

        if request in results:
            yield env.timeout(env.rng.exponential(scenario.time_in_bank))
            log.append({"customer": name, "arrival": arrive, "waited": waited, "served": True})
        else:
            log.append({"customer": name, "arrival": arrive, "waited": waited, "served": False})


def source(env, counter, scenario, log):
    """Generate customers at random."""
    for i in range(scenario.n_customers):
        env.spawn(customer, f"Customer{i:02d}", counter, scenario, log, name=f"Customer{i:02d}")
        yield env.timeout(env.rng.exponential(scenario.interval))


def run_bank(scenario=None):
    """Run the bank scenario.

    Args:
        scenario: BankScenario object, defaults to BankScenario()

    Returns:
        tuple of the per-customer DataFrame and the counter's change log DataFrame
    """
    if scenario is None:
        scenario = BankScenario()

    with Environment(rng=scenario.rng) as env:
        counter = env.create_resource(scenario.counters, name="counter")
        collector = DataCollector(env).track_resource(counter)
        log = []

        env.spawn(source, counter, scenario, log, name="source")
        env.run()

    customers = pd.DataFrame(log, columns=["customer", "arrival", "waited", "served"])
    return customers, collector.get_resource_dataframe()
