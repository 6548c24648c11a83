# File: src/smartpark/application/charging_service.py
"""
Charging Engine

The five steps of a physical charging interaction, each callable on its own:
1. start_charging   - open an Active session for a user (no slot yet)
2. request_slots    - list available charging slots, optionally by location
3. select_mode      - price and speed of a charging mode (read only)
4. process_payment  - authorize, lock the slot, attach slot/mode/price, reward
5. stop_charging    - close the session, derive energy and amount, free the slot

A caller may walk away between any two steps; the state left behind is
incomplete but consistent.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from ..domain.models import (
    BookingKind, ChargingSession, ChargingSlot, Money, Payment, SlotKind,
    SlotUnavailableError, to_decimal,
)
from ..domain.registry import SlotFilter
from ..domain.strategies import LoyaltyRewardStrategy
from .dtos import (
    ChargingPaymentRequestDTO, ChargingPaymentResult, EstimateResult, FailureCode,
    ModeSelectionResult, StartChargingResult, StopChargingResult,
)
from .engine import BookingEngine, booking_key, slot_key

DEFAULT_MODE_TYPES = ["fast", "normal"]


def _parse_amount(value: Any) -> Optional[Decimal]:
    """Decimal for a finite number, None for anything else"""
    try:
        parsed = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    return parsed if parsed.is_finite() else None


class ChargingEngine(BookingEngine):
    """Application service for EV charging sessions"""

    def __init__(self, *args, rewards: Optional[LoyaltyRewardStrategy] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.rewards = rewards or LoyaltyRewardStrategy(self.policies)

    # ========================================================================
    # STEP 1: START
    # ========================================================================

    def start_charging(self, user_id: str) -> StartChargingResult:
        user = self.persistence.find_user_by_id(user_id)
        if user is None:
            return StartChargingResult.fail(FailureCode.USER_NOT_FOUND, f"User not found: {user_id}")

        session = ChargingSession(user_id=user.id, start_time=self.clock.now())
        self.persistence.save_session(session)
        self.logger.info(f"Charging session {session.id} started for user {user.id}")
        return StartChargingResult.ok(f"Charging session started: {session.id}", session=session)

    # ========================================================================
    # STEP 2 / 3: DISCOVERY
    # ========================================================================

    def request_slots(self, location_filter: Optional[str] = None) -> List[ChargingSlot]:
        """Available charging slots at active stations whose location matches"""
        return self.registry.find_available(
            SlotFilter(kind=SlotKind.CHARGING, location=location_filter)
        )

    def charging_mode_types(self) -> List[str]:
        types: List[str] = []
        for mode in self.persistence.find_all_charging_modes():
            if mode.mode_type.lower() not in types:
                types.append(mode.mode_type.lower())
        return types or list(DEFAULT_MODE_TYPES)

    def select_mode(self, mode_type: str) -> ModeSelectionResult:
        """Price and speed of the first active station slot offering the mode"""
        if not mode_type or not mode_type.strip():
            return ModeSelectionResult.fail(FailureCode.MISSING_FIELD, "Charging mode is required.")

        for station in self.persistence.find_all_stations():
            if not station.is_active:
                continue
            found = station.find_mode(mode_type)
            if found is None:
                continue
            slot, mode = found
            return ModeSelectionResult.ok(
                f"{mode.mode_type}: {mode.price_per_kwh}/kWh at {mode.speed_kw} kW",
                mode_type=mode.mode_type,
                price_per_kwh=mode.price_per_kwh,
                speed_kw=mode.speed_kw,
                station_id=station.id,
                slot_id=slot.id,
            )

        return ModeSelectionResult.fail(
            FailureCode.MODE_NOT_AVAILABLE, f"Charging mode not available: {mode_type}"
        )

    def estimate_amount(self, price_per_unit: Any, estimated_kwh: Any) -> EstimateResult:
        price = _parse_amount(price_per_unit)
        if price is None or price < Decimal('0'):
            return EstimateResult.fail(FailureCode.INVALID_AMOUNT, "Price per unit cannot be negative.")
        kwh = _parse_amount(estimated_kwh)
        if kwh is None or kwh < Decimal('0'):
            return EstimateResult.fail(
                FailureCode.INVALID_AMOUNT, f"Estimated energy must be a non-negative number: {estimated_kwh}"
            )
        amount = self.pricing.charging_amount(price, kwh)
        return EstimateResult.ok(f"Estimated amount: {amount}", amount=amount)

    # ========================================================================
    # STEP 4: PAYMENT
    # ========================================================================

    def submit_payment(self, request: ChargingPaymentRequestDTO) -> ChargingPaymentResult:
        return self.process_payment(
            request.method,
            request.amount,
            request.session_id,
            request.slot_id,
            request.mode_type,
            request.price_per_unit,
        )

    def process_payment(
        self,
        method: Optional[str],
        amount: Any,
        session_id: str,
        slot_id: str,
        mode_type: str,
        price_per_unit: Any
    ) -> ChargingPaymentResult:
        """
        Pay for a charge and lock in slot, mode and price.

        Nothing is mutated unless the payment is authorized and the slot
        can be locked.
        """
        amount = _parse_amount(amount)
        if amount is None or amount <= Decimal('0'):
            return ChargingPaymentResult.fail(FailureCode.INVALID_AMOUNT, "Amount must be positive.")
        price = _parse_amount(price_per_unit)
        if price is None or price < Decimal('0'):
            return ChargingPaymentResult.fail(FailureCode.INVALID_AMOUNT, "Price per unit cannot be negative.")

        with self.locks.hold(booking_key(session_id), slot_key(slot_id)):
            session = self.persistence.find_session_by_id(session_id)
            if session is None:
                return ChargingPaymentResult.fail(
                    FailureCode.SESSION_NOT_FOUND, f"Charging session not found: {session_id}"
                )
            if not session.is_active:
                return ChargingPaymentResult.fail(
                    FailureCode.ALREADY_ENDED, "Session already ended or invalid."
                )
            if session.payment_id is not None or session.slot_id:
                return ChargingPaymentResult.fail(
                    FailureCode.ALREADY_PAID,
                    f"Session {session_id} is already paid for slot {session.slot_id}.",
                )

            location = self.registry.locate(slot_id)
            if location is None or not isinstance(location.slot, ChargingSlot):
                return ChargingPaymentResult.fail(FailureCode.SLOT_NOT_FOUND, f"Slot not found: {slot_id}")
            slot = location.slot
            if not slot.is_available or not location.owner.is_active:
                return ChargingPaymentResult.fail(
                    FailureCode.SLOT_UNAVAILABLE, f"Slot is not available: {slot_id}"
                )
            if not slot.supports(mode_type):
                return ChargingPaymentResult.fail(
                    FailureCode.MODE_NOT_AVAILABLE,
                    f"Charging mode {mode_type} is not offered by slot {slot_id}",
                )

            strategy = self.payments.resolve(method)
            if strategy is None:
                return ChargingPaymentResult.fail(
                    FailureCode.UNKNOWN_PAYMENT_METHOD, f"Unknown payment method: {method}"
                )
            charge = Money(amount, self.policies.currency)
            if not strategy.authorize(charge):
                self.logger.warning(f"Charging payment of {charge} declined for session {session_id}")
                return ChargingPaymentResult.fail(FailureCode.PAYMENT_DENIED, "Payment denied by gateway.")

            # Loyalty is judged on history before this payment changes anything
            history = self.rewards.history_count(
                self.persistence.find_sessions_by_user(session.user_id),
                self.persistence.find_reservations_by_user(session.user_id),
            )

            now = self.clock.now()
            try:
                self.registry.lock(slot_id, now)
            except SlotUnavailableError as e:
                return ChargingPaymentResult.fail(FailureCode.SLOT_UNAVAILABLE, str(e))

            payment = Payment.record(
                charge, strategy.display_name, True, now, session.id, BookingKind.CHARGING_SESSION
            )
            session.attach_payment(
                slot_id=slot_id,
                mode_type=mode_type.strip().lower(),
                price_per_unit=price,
                amount=amount,
                payment_id=payment.id,
                default_duration=self.policies.default_charging_duration,
            )
            self.persistence.save_payment(payment)
            self.persistence.save_session(session)

        reward = self.rewards.reward(history)
        self.logger.info(
            f"Session {session_id} paid {charge} by {strategy.display_name} on slot {slot_id}; "
            f"{reward.points} reward points"
        )
        return ChargingPaymentResult.ok(
            "Payment successful.",
            payment=payment,
            session=session,
            receipt=payment.generate_receipt(),
            reward_message=reward.message,
            reward_points=reward.points,
        )

    # ========================================================================
    # STEP 5: STOP
    # ========================================================================

    def stop_charging(self, session_id: str, energy_used_kwh: Any = None) -> StopChargingResult:
        """
        Complete an Active session.

        Energy comes from energy_used_kwh when given, otherwise from the
        elapsed minutes at the policy consumption rate.
        """
        explicit = None
        if energy_used_kwh is not None:
            explicit = _parse_amount(energy_used_kwh)
            if explicit is None or explicit < Decimal('0'):
                return StopChargingResult.fail(FailureCode.INVALID_AMOUNT, "Energy used cannot be negative.")

        session = self.persistence.find_session_by_id(session_id)
        if session is None:
            return StopChargingResult.fail(
                FailureCode.SESSION_NOT_FOUND, f"Charging session not found: {session_id}"
            )

        with self.locks.hold(booking_key(session_id), slot_key(session.slot_id)):
            session = self.persistence.find_session_by_id(session_id)
            if not session.is_active:
                return StopChargingResult.fail(FailureCode.ALREADY_ENDED, "Session already ended or invalid.")
            self._complete(session, self.clock.now(), explicit)

        return StopChargingResult.ok(
            f"Charging stopped. Energy used: {session.energy_used_kwh} kWh",
            session=session,
            end_time=session.end_time,
            energy_used_kwh=session.energy_used_kwh,
            total_amount=session.total_amount,
        )

    def cancel_session(self, session_id: str) -> StopChargingResult:
        """Abandon an Active session; a slot already attached is freed"""
        session = self.persistence.find_session_by_id(session_id)
        if session is None:
            return StopChargingResult.fail(
                FailureCode.SESSION_NOT_FOUND, f"Charging session not found: {session_id}"
            )

        with self.locks.hold(booking_key(session_id), slot_key(session.slot_id)):
            session = self.persistence.find_session_by_id(session_id)
            if not session.is_active:
                return StopChargingResult.fail(FailureCode.ALREADY_ENDED, "Session already ended or invalid.")
            now = self.clock.now()
            session.cancel(now)
            self.persistence.save_session(session)
            self.registry.release(session.slot_id, now)

        self.logger.info(f"Charging session {session_id} cancelled")
        return StopChargingResult.ok("Charging session cancelled.", session=session, end_time=session.end_time)

    def complete_overdue_session(self, session_id: str, now: datetime) -> Tuple[bool, bool]:
        """
        Force-complete a session whose scheduled end is before now.
        Returns (completed, slot_released); a second call is a no-op.
        """
        session = self.persistence.find_session_by_id(session_id)
        if session is None:
            return False, False

        with self.locks.hold(booking_key(session_id), slot_key(session.slot_id)):
            session = self.persistence.find_session_by_id(session_id)
            if not session.is_overdue(now):
                return False, False
            released = self._complete(session, now)
        return True, released

    def _complete(self, session: ChargingSession, now: datetime, energy: Optional[Decimal] = None) -> bool:
        session.complete(now, self.policies.energy_per_minute_kwh, energy)
        self.persistence.save_session(session)
        released = self.registry.release(session.slot_id, now)
        self.logger.info(
            f"Charging session {session.id} completed: {session.energy_used_kwh} kWh, "
            f"amount {session.total_amount}"
        )
        return released

    def sessions_for_user(self, user_id: str) -> List[ChargingSession]:
        return self.persistence.find_sessions_by_user(user_id)
