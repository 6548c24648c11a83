# File: src/smartpark/application/engine.py
"""Shared wiring for the reservation and charging engines."""

from typing import Optional
import logging

from ..config import BookingPolicies
from ..domain.clock import Clock, SystemClock
from ..domain.registry import SlotRegistry
from ..domain.strategies import (
    HourlyPricingStrategy, PaymentStrategyRegistry, PricingStrategy,
)
from ..infrastructure.repositories import PersistenceGateway
from .locks import KeyedLockManager


def slot_key(slot_id: Optional[str]) -> Optional[str]:
    return f"slot:{slot_id}" if slot_id else None


def booking_key(booking_id: Optional[str]) -> Optional[str]:
    return f"booking:{booking_id}" if booking_id else None


def user_key(user_id: Optional[str]) -> Optional[str]:
    return f"user:{user_id}" if user_id else None


class BookingEngine:
    """
    Base class holding the collaborators every engine needs.

    Collaborators left as None are built from the persistence gateway
    and the policies.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        policies: Optional[BookingPolicies] = None,
        clock: Optional[Clock] = None,
        registry: Optional[SlotRegistry] = None,
        payments: Optional[PaymentStrategyRegistry] = None,
        pricing: Optional[PricingStrategy] = None,
        locks: Optional[KeyedLockManager] = None
    ):
        self.persistence = persistence
        self.policies = policies or BookingPolicies()
        self.clock = clock or SystemClock()
        self.registry = registry or SlotRegistry(persistence)
        self.payments = payments or PaymentStrategyRegistry.from_policies(
            self.policies, persistence.get_default_payment_gateway
        )
        self.pricing = pricing or HourlyPricingStrategy(self.policies)
        self.locks = locks or KeyedLockManager()
        self.logger = logging.getLogger(self.__class__.__name__)

    def payment_method_names(self):
        return self.payments.method_names()
