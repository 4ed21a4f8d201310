"""
Machine Shop
============

A workshop has a number of identical machines producing parts. Machines break down at random and
are then fixed by a single repairman. When no machine needs him, the repairman works on less
important jobs. Machine repairs preempt these jobs: an interrupted job is resumed, for its
remaining duration, as soon as the repairman is free again.

The model exercises interrupts (machine breakdowns) and the preemptive resource (repairman).
"""

from dataclasses import dataclass

from procsim import Environment, Interrupt, Preemption, Priority


@dataclass
class MachineShopScenario:
    """Scenario parameters for the machine shop model."""

    n_machines: int = 10
    pt_mean: float = 10.0
    pt_sigma: float = 2.0
    mttf: float = 300.0
    repair_time: float = 30.0
    job_duration: float = 30.0
    sim_time: float = 4 * 7 * 24 * 60
    rng: int | None = 42

    def __post_init__(self):
        if self.n_machines <= 0:
            raise ValueError("n_machines must be > 0")
        if self.mttf <= 0 or self.repair_time <= 0 or self.job_duration <= 0:
            raise ValueError("mttf, repair_time and job_duration must be > 0")


class Machine:
    """A machine produces parts and may get broken every now and then."""

    def __init__(self, env, name, repairman, scenario):
        self.env = env
        self.name = name
        self.repairman = repairman
        self.scenario = scenario
        self.parts_made = 0
        self.broken = False

        self.process = env.spawn(self.working, name=name)
        env.spawn(self.break_machine, name=f"{name}:failures")

    def time_per_part(self):
        """Return actual processing time for a concrete part."""
        return max(0.1, self.env.rng.normal(self.scenario.pt_mean, self.scenario.pt_sigma))

    def time_to_failure(self):
        """Return time until next failure for a machine."""
        return self.env.rng.exponential(self.scenario.mttf)

    def working(self, env):
        """Produce parts as long as the simulation runs.

        While making a part, the machine may break multiple times. Request a repairman when this
        happens.
        """
        while True:
            done_in = self.time_per_part()
            while done_in:
                start = env.now
                try:
                    yield env.timeout(done_in)
                    done_in = 0
                except Interrupt:
                    self.broken = True
                    done_in -= env.now - start

                    with self.repairman.acquire(priority=Priority.HIGH) as request:
                        yield request
                        yield env.timeout(self.scenario.repair_time)

                    self.broken = False

            self.parts_made += 1

    def break_machine(self, env):
        """Break the machine every now and then."""
        while True:
            yield env.timeout(self.time_to_failure())
            if not self.broken and self.process.is_waiting:
                self.process.interrupt("breakdown")


def other_jobs(env, repairman, scenario, stats):
    """The repairman's other (unimportant) job."""
    while True:
        done_in = scenario.job_duration
        request = repairman.acquire(priority=Priority.LOW, preempt=False)
        while done_in:
            working_since = None
            try:
                yield request
                working_since = env.now
                yield env.timeout(done_in)
                done_in = 0
            except Preemption as preemption:
                stats["preemptions"] += 1
                if working_since is not None:
                    done_in -= env.now - working_since
                request = preemption.cause.request

        repairman.release(request)
        stats["jobs_done"] += 1


def run_machine_shop(scenario=None):
    """Run the machine shop scenario.

    Args:
        scenario: MachineShopScenario object, defaults to MachineShopScenario()

    Returns:
        dict with the parts made per machine, and the number of other jobs done and preempted
    """
    if scenario is None:
        scenario = MachineShopScenario()

    env = Environment(rng=scenario.rng)
    repairman = env.create_resource(1, kind="preemptive", name="repairman")
    machines = [
        Machine(env, f"Machine {i}", repairman, scenario) for i in range(scenario.n_machines)
    ]
    stats = {"jobs_done": 0, "preemptions": 0}
    env.spawn(other_jobs, repairman, scenario, stats, name="other jobs")

    env.run(until=scenario.sim_time)

    return {
        "parts_made": {machine.name: machine.parts_made for machine in machines},
        **stats,
    }
