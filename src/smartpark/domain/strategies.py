# File: src/smartpark/domain/strategies.py
"""
Strategy Pattern Implementation for the SmartPark booking engine

Each strategy encapsulates one interchangeable algorithm:
1. Payment Strategies - authorization of an amount by payment method
2. Pricing Strategies - reservation cost and charging amount
3. Reward Strategies - loyalty points granted on charging payments

Strategies never touch persistence. The engines pass in whatever
history a strategy needs and record the outcome themselves.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional
import logging

from ..config import BookingPolicies
from .models import (
    Money, TimeRange, PaymentMethod, SimulatedPaymentGateway,
    ChargingSession, Reservation, SessionStatus, ReservationStatus,
    to_decimal,
)


# ============================================================================
# PAYMENT STRATEGIES
# ============================================================================

class PaymentStrategy(ABC):
    """
    Abstract base class for payment authorization.
    A strategy is selected by its display name. The gateway is looked
    up through gateway_provider on every authorization, so a gateway
    disconnected after start-up declines from then on.
    """

    method: PaymentMethod

    def __init__(
        self,
        gateway_provider: Callable[[], SimulatedPaymentGateway],
        decline_all: bool = False
    ):
        self.gateway_provider = gateway_provider
        self.decline_all = decline_all
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def display_name(self) -> str:
        return self.method.value

    def authorize(self, amount: Money) -> bool:
        """Return True when the amount is approved"""
        if not amount.is_positive:
            self.logger.warning(f"Rejected non-positive amount {amount}")
            return False
        if self.decline_all:
            self.logger.info(f"{self.display_name} is configured to decline; refused {amount}")
            return False
        approved = self._authorize(amount)
        self.logger.debug(f"{self.display_name} authorization of {amount}: {approved}")
        return approved

    def current_gateway(self) -> SimulatedPaymentGateway:
        return self.gateway_provider()

    @abstractmethod
    def _authorize(self, amount: Money) -> bool:
        pass

    def __str__(self) -> str:
        return f"{self.display_name} Strategy"


class CreditCardPaymentStrategy(PaymentStrategy):
    """Strategy: card payment settled through the default gateway"""

    method = PaymentMethod.CREDIT_CARD

    def _authorize(self, amount: Money) -> bool:
        return self.current_gateway().process_transaction(amount)


class MobileWalletPaymentStrategy(PaymentStrategy):
    """Strategy: wallet payment settled through the default gateway"""

    method = PaymentMethod.MOBILE_WALLET

    def _authorize(self, amount: Money) -> bool:
        return self.current_gateway().process_transaction(amount)


class PayPalPaymentStrategy(PaymentStrategy):
    """Strategy: PayPal checkout. Declines by default in the demo setup."""

    method = PaymentMethod.PAYPAL

    def _authorize(self, amount: Money) -> bool:
        return self.current_gateway().process_transaction(amount)


STRATEGY_CLASSES = {
    PaymentMethod.CREDIT_CARD: CreditCardPaymentStrategy,
    PaymentMethod.MOBILE_WALLET: MobileWalletPaymentStrategy,
    PaymentMethod.PAYPAL: PayPalPaymentStrategy,
}


class PaymentStrategyRegistry:
    """
    Name -> strategy lookup over the closed set of PaymentMethod values.

    Unknown names fall back to the default strategy when fallback is
    enabled. The fallback is logged at WARNING because it hides typos
    in method names.
    """

    def __init__(
        self,
        strategies: Iterable[PaymentStrategy],
        default_method: Optional[str] = None,
        fallback_to_default: bool = True
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._strategies: Dict[PaymentMethod, PaymentStrategy] = {}
        for strategy in strategies:
            self._strategies[strategy.method] = strategy
        if not self._strategies:
            raise ValueError("At least one payment strategy is required")

        method = PaymentMethod.parse(default_method)
        if method not in self._strategies:
            method = next(iter(self._strategies))
        self._default = self._strategies[method]
        self.fallback_to_default = fallback_to_default

    @classmethod
    def from_policies(
        cls,
        policies: BookingPolicies,
        gateway_provider: Callable[[], SimulatedPaymentGateway]
    ) -> 'PaymentStrategyRegistry':
        declined = {PaymentMethod.parse(name) for name in policies.declined_payment_methods}
        strategies = [
            strategy_class(gateway_provider, decline_all=method in declined)
            for method, strategy_class in STRATEGY_CLASSES.items()
        ]
        return cls(strategies, policies.default_payment_method, policies.fallback_to_default_payment)

    @property
    def default(self) -> PaymentStrategy:
        return self._default

    def resolve(self, name: Optional[str]) -> Optional[PaymentStrategy]:
        """Case-insensitive lookup; None only when the name is unknown and fallback is off"""
        if not name or not name.strip():
            return self._default
        method = PaymentMethod.parse(name)
        strategy = self._strategies.get(method) if method else None
        if strategy is not None:
            return strategy
        if self.fallback_to_default:
            self.logger.warning(
                f"Unknown payment method '{name}', falling back to {self._default.display_name}"
            )
            return self._default
        return None

    def method_names(self) -> List[str]:
        return [strategy.display_name for strategy in self._strategies.values()]


# ============================================================================
# PRICING STRATEGIES
# ============================================================================

class PricingStrategy(ABC):
    """Abstract base class for fee calculation"""

    def __init__(self, policies: Optional[BookingPolicies] = None):
        self.policies = policies or BookingPolicies()
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def reservation_cost(self, rate: Money, window: TimeRange) -> Money:
        pass

    @abstractmethod
    def charging_amount(self, price_per_kwh: Decimal, energy_kwh: Decimal) -> Money:
        pass


class HourlyPricingStrategy(PricingStrategy):
    """
    Strategy: whole billing units, rounded up

    A 90 minute window at 5.00/hour with 60 minute units costs 10.00.
    """

    def reservation_cost(self, rate: Money, window: TimeRange) -> Money:
        units = window.billing_units(self.policies.billing_unit_minutes)
        cost = rate * units
        self.logger.debug(f"{window.duration_minutes()} min -> {units} unit(s) x {rate} = {cost}")
        return cost

    def charging_amount(self, price_per_kwh: Decimal, energy_kwh: Decimal) -> Money:
        return Money(to_decimal(price_per_kwh) * to_decimal(energy_kwh), self.policies.currency)


# ============================================================================
# REWARD STRATEGIES
# ============================================================================

@dataclass(frozen=True)
class RewardOutcome:
    """Value Object: points granted for one charging payment"""
    points: int
    bonus_points: int
    loyal: bool
    message: str


class LoyaltyRewardStrategy:
    """
    Base points for every paid charge, plus a bonus for loyal customers.

    A customer is loyal when completed charging sessions plus confirmed
    reservations reach the policy threshold. Read-only over history.
    """

    def __init__(self, policies: Optional[BookingPolicies] = None):
        self.policies = policies or BookingPolicies()
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def history_count(
        sessions: Iterable[ChargingSession],
        reservations: Iterable[Reservation]
    ) -> int:
        completed = sum(1 for s in sessions if s.status is SessionStatus.COMPLETED)
        confirmed = sum(1 for r in reservations if r.status is ReservationStatus.CONFIRMED)
        return completed + confirmed

    def is_loyal(self, history_count: int) -> bool:
        return history_count >= self.policies.loyal_customer_threshold

    def reward(self, history_count: int) -> RewardOutcome:
        base = self.policies.reward_base_points
        if self.is_loyal(history_count):
            bonus = self.policies.reward_loyal_bonus_points
            points = base + bonus
            message = f"{points} reward points added ({bonus} bonus for loyal customer)."
            return RewardOutcome(points, bonus, True, message)
        return RewardOutcome(base, 0, False, f"{base} reward points added for this charge.")
