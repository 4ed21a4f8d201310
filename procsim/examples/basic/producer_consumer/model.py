"""
Producer / Consumer
===================

Producers put messages into a bounded buffer and consumers take them out. A producer blocks
while the buffer is full and a consumer blocks while it is empty. Each producer stops after a
fixed number of messages; consumers then wait on an empty buffer, and the run ends once no
events are left.
"""

from dataclasses import dataclass

from procsim import DataCollector, Environment


@dataclass
class ProducerConsumerScenario:
    """Scenario parameters for the producer / consumer model."""

    producers: int = 2
    consumers: int = 3
    buffer_size: int = 4
    messages_per_producer: int = 10
    produce_time: float = 1.0
    consume_time: float = 3.0
    rng: int | None = 42

    def __post_init__(self):
        if self.producers <= 0 or self.consumers <= 0:
            raise ValueError("producers and consumers must be > 0")
        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")


def producer(env, name, buffer, scenario):
    """Put numbered messages into the buffer."""
    for i in range(scenario.messages_per_producer):
        yield env.timeout(env.rng.exponential(scenario.produce_time))
        yield buffer.put((name, i, env.now))
    return scenario.messages_per_producer


def consumer(env, buffer, scenario, received):
    """Take messages out of the buffer and record how long they spent in it."""
    while True:
        name, i, sent_at = yield buffer.get()
        received.append({"producer": name, "message": i, "latency": env.now - sent_at})
        yield env.timeout(env.rng.exponential(scenario.consume_time))


def run_producer_consumer(scenario=None):
    """Run the producer / consumer scenario.

    Args:
        scenario: ProducerConsumerScenario object, defaults to ProducerConsumerScenario()

    Returns:
        dict with the received messages, the producers' outcomes as a DataFrame and the buffer's
        change log as a DataFrame
    """
    if scenario is None:
        scenario = ProducerConsumerScenario()

    env = Environment(rng=scenario.rng)
    buffer = env.create_store(scenario.buffer_size, name="buffer")
    collector = DataCollector(env).track_resource(buffer)
    received = []

    producers = [
        env.spawn(producer, f"P{i}", buffer, scenario, name=f"P{i}")
        for i in range(scenario.producers)
    ]
    for i in range(scenario.consumers):
        env.spawn(consumer, buffer, scenario, received, name=f"C{i}")
    collector.track_processes(producers)

    env.run(until=env.all_of(producers))
    env.run()

    return {
        "received": received,
        "producers": collector.get_process_dataframe(),
        "buffer": collector.get_resource_dataframe(),
    }
