"""Example scenarios built on procsim."""

from procsim.examples.advanced.machine_shop.model import MachineShopScenario, run_machine_shop
from procsim.examples.basic.bank_renege.model import BankScenario, run_bank
from procsim.examples.basic.carwash.model import CarwashScenario, run_carwash
from procsim.examples.basic.producer_consumer.model import (
    ProducerConsumerScenario,
    run_producer_consumer,
)

__all__ = [
    "BankScenario",
    "CarwashScenario",
    "MachineShopScenario",
    "ProducerConsumerScenario",
    "run_bank",
    "run_carwash",
    "run_machine_shop",
    "run_producer_consumer",
]
