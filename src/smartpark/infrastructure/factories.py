# File: src/smartpark/infrastructure/factories.py
"""
Demo data factory

Populates an empty persistence gateway with one customer, one parking
lot, the two charging modes and one charging station. A store that
already holds users or lots is left untouched.
"""

from decimal import Decimal
import logging

from ..domain.aggregates import AggregateFactory
from ..domain.models import ChargingMode, SimulatedPaymentGateway, User
from .repositories import PersistenceGateway


NORMAL_MODE = ChargingMode("M1", "normal", Decimal('0.25'), Decimal('7'))
FAST_MODE = ChargingMode("M2", "fast", Decimal('0.40'), Decimal('22'))


class SeedDataFactory:
    """Creates the demo data set"""

    def __init__(self, persistence: PersistenceGateway):
        self.persistence = persistence
        self.logger = logging.getLogger(self.__class__.__name__)

    def seed_if_empty(self) -> bool:
        """Returns True when data was written"""
        if not self.persistence.is_empty():
            self.logger.debug("Store already populated, skipping seed")
            return False
        self.seed()
        return True

    def seed(self) -> None:
        self.persistence.save_user(User(
            id="U001",
            name="Junaid",
            email="junaid.aslam@student.univaq.it",
            phone="+393277766533",
            password="pass1",
        ))

        self.persistence.save_lot(AggregateFactory.create_parking_lot(
            id="L001",
            name="Central Lot",
            address="123 Main St",
            slot_specs=[
                ("S001", "A-01", "Standard", Decimal('5.00')),
                ("S002", "A-02", "EV", Decimal('7.50')),
                ("S003", "B-01", "Handicap", Decimal('4.00')),
            ],
        ))

        for mode in (NORMAL_MODE, FAST_MODE):
            self.persistence.save_charging_mode(mode)

        self.persistence.save_station(AggregateFactory.create_charging_station(
            id="ST1",
            name="Central EV Station",
            location="123 Main St",
            slot_modes=[
                ("CS1", "1", [NORMAL_MODE, FAST_MODE]),
                ("CS2", "2", [NORMAL_MODE]),
            ],
        ))

        self.persistence.save_payment_gateway(
            SimulatedPaymentGateway(id="GW1", name="Default Gateway", provider="Simulated")
        )
        self.logger.info("Demo data seeded")
