# File: tests/helpers.py
"""Shared fixtures for the SmartPark test suites."""

from datetime import datetime, timedelta
from typing import Optional
import unittest

from smartpark.application.parking_service import ParkingService
from smartpark.config import BookingPolicies
from smartpark.domain.clock import FixedClock
from smartpark.infrastructure.factories import SeedDataFactory
from smartpark.infrastructure.repositories import (
    InMemoryPersistenceGateway, PersistenceGateway,
)

START = datetime(2024, 5, 1, 9, 0, 0)


class BookingTestBase(unittest.TestCase):
    """
    Seeded store, fixed clock and a ParkingService around them.

    Seed data: user U001, lot L001 with S001 (Standard, 5.00/h),
    S002 (EV, 7.50/h), S003 (Handicap, 4.00/h); station ST1 at
    "123 Main St" with CS1 (normal + fast) and CS2 (normal).
    """

    policies: Optional[BookingPolicies] = None

    def make_persistence(self) -> PersistenceGateway:
        return InMemoryPersistenceGateway()

    def setUp(self):
        self.persistence = self.make_persistence()
        SeedDataFactory(self.persistence).seed()
        self.clock = FixedClock(START)
        self.service = ParkingService(self.persistence, self.policies or BookingPolicies(), self.clock)
        self.reservations = self.service.reservations
        self.charging = self.service.charging

    def window(self, start_offset_minutes: int = 60, duration_minutes: int = 90):
        start = START + timedelta(minutes=start_offset_minutes)
        return start, start + timedelta(minutes=duration_minutes)

    def reserve(self, slot_id: str = "S001", method: Optional[str] = None, **window):
        start, end = self.window(**window)
        return self.reservations.make_reservation("U001", slot_id, start, end, method)

    def slot(self, slot_id: str):
        return self.service.registry.get(slot_id)

    def paid_session(self, slot_id: str = "CS1", mode: str = "fast", kwh: str = "20"):
        """Start a session for U001 and pay for it; returns the payment result"""
        session = self.charging.start_charging("U001").session
        selection = self.charging.select_mode(mode)
        estimate = self.charging.estimate_amount(selection.price_per_kwh, kwh)
        return self.charging.process_payment(
            "Credit Card", estimate.amount.amount, session.id, slot_id, mode, selection.price_per_kwh
        )
