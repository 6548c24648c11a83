# File: src/smartpark/application/parking_service.py
"""
SmartPark Application Service

Single entry point for the presentation layer (CLI, API, scheduler).
Wires the engines, the expiration sweeper, commands and reports around
one persistence gateway, one clock and one set of policies.

Responsibilities:
1. Build the collaborators and share them between engines
2. Run the sweep at the top of each interaction cycle (tick)
3. Turn raw request data into validated DTOs
4. Expose consistency checks and reports
"""

from typing import Any, Dict, List, Optional
import logging

from pydantic import ValidationError

from ..config import BookingPolicies
from ..domain.clock import Clock, SystemClock
from ..domain.models import User
from ..domain.registry import SlotRegistry
from ..domain.strategies import PaymentStrategyRegistry
from ..infrastructure.repositories import PersistenceGateway
from .charging_service import ChargingEngine
from .commands import CommandProcessor
from .dtos import FailureCode, ReservationRequestDTO, ReservationResult, SweepReport
from .locks import KeyedLockManager
from .reporting import ReportGenerator
from .reservation_service import ReservationEngine
from .sweeper import ExpirationSweeper


class ParkingService:
    """
    Facade over the booking engines

    Both engines share the same registry, payment strategies and locks,
    so a slot locked by one is seen as taken by the other.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        policies: Optional[BookingPolicies] = None,
        clock: Optional[Clock] = None,
        payments: Optional[PaymentStrategyRegistry] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.persistence = persistence
        self.policies = policies or BookingPolicies()
        self.clock = clock or SystemClock()

        self.registry = SlotRegistry(persistence)
        self.payments = payments or PaymentStrategyRegistry.from_policies(
            self.policies, persistence.get_default_payment_gateway
        )
        self.locks = KeyedLockManager()

        shared = dict(
            policies=self.policies,
            clock=self.clock,
            registry=self.registry,
            payments=self.payments,
            locks=self.locks,
        )
        self.reservations = ReservationEngine(persistence, **shared)
        self.charging = ChargingEngine(persistence, **shared)
        self.sweeper = ExpirationSweeper(persistence, self.reservations, self.charging, self.clock)
        self.commands = CommandProcessor(self)
        self.reports = ReportGenerator(persistence, self.clock)

        self.logger.info("ParkingService initialized")

    # ========================================================================
    # INTERACTION CYCLE
    # ========================================================================

    def tick(self) -> SweepReport:
        """Run the expiration sweep; call before handling each request"""
        return self.sweeper.sweep()

    # ========================================================================
    # USERS
    # ========================================================================

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.persistence.find_user_by_email(email)
        if user is None or not user.check_credentials(email, password):
            self.logger.warning(f"Failed login for {email}")
            return None
        self.logger.info(f"User {user.id} logged in")
        return user

    # ========================================================================
    # RESERVATIONS
    # ========================================================================

    def reserve(self, data: Dict[str, Any]) -> ReservationResult:
        """Validate raw request data and make the reservation"""
        try:
            request = ReservationRequestDTO(**data)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            return ReservationResult.fail(FailureCode.MISSING_FIELD, f"Invalid or missing field(s): {fields}")
        return self.reservations.submit(request)

    def payment_method_names(self) -> List[str]:
        return self.payments.method_names()

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def check_consistency(self) -> List[str]:
        """Slots whose availability disagrees with active bookings (empty when consistent)"""
        problems = self.registry.find_inconsistencies(
            self.persistence.find_all_reservations(),
            self.persistence.find_all_sessions(),
        )
        for problem in problems:
            self.logger.error(f"Inconsistent slot state: {problem}")
        return problems
