# File: src/smartpark/application/reservation_service.py
"""
Reservation Engine

Orchestrates parking bookings: slot lookup, availability check, cost
calculation, payment and commit. Every operation returns a result DTO;
only persistence faults are raised.

Reservation lifecycle:
    Pending --(payment + slot lock)--> Confirmed --> Cancelled | Expired
"""

from datetime import datetime
from typing import List, Optional, Tuple

from ..domain.models import (
    BookingKind, ParkingSlot, Payment, PaymentStatus, Reservation,
    ReservationStatus, SlotKind, SlotUnavailableError, TimeRange,
)
from ..domain.registry import SlotFilter
from .dtos import (
    CancellationResult, FailureCode, RefundResult, ReservationRequestDTO,
    ReservationResult,
)
from .engine import BookingEngine, booking_key, slot_key, user_key


class ReservationEngine(BookingEngine):
    """Application service for parking reservations"""

    # ========================================================================
    # QUERIES
    # ========================================================================

    def available_slots(self, slot_type: Optional[str] = None) -> List[ParkingSlot]:
        return self.registry.find_available(SlotFilter(kind=SlotKind.PARKING, slot_type=slot_type))

    def reservations_for_user(self, user_id: str) -> List[Reservation]:
        return self.persistence.find_reservations_by_user(user_id)

    # ========================================================================
    # MAKE RESERVATION
    # ========================================================================

    def submit(self, request: ReservationRequestDTO) -> ReservationResult:
        return self.make_reservation(
            request.user_id,
            request.slot_id,
            request.start_time,
            request.end_time,
            request.payment_method,
        )

    def make_reservation(
        self,
        user_id: str,
        slot_id: str,
        start: datetime,
        end: datetime,
        payment_method: Optional[str] = None
    ) -> ReservationResult:
        """
        Book a parking slot for [start, end).

        Checks run in a fixed order: user, slot, availability, window.
        A declined payment leaves no trace: no reservation, no payment,
        and the slot stays available.
        """
        # Held across the read and the save of the user record
        with self.locks.hold(user_key(user_id), slot_key(slot_id)):
            user = self.persistence.find_user_by_id(user_id)
            if user is None:
                return ReservationResult.fail(FailureCode.USER_NOT_FOUND, f"User not found: {user_id}")

            location = self.registry.locate(slot_id)
            if location is None or not isinstance(location.slot, ParkingSlot):
                return ReservationResult.fail(FailureCode.SLOT_NOT_FOUND, f"Slot not found: {slot_id}")
            slot = location.slot

            if not slot.is_available:
                self.logger.warning(f"Reservation refused, slot {slot_id} is taken")
                return ReservationResult.fail(
                    FailureCode.SLOT_UNAVAILABLE, f"Slot is not available: {slot_id}"
                )

            if end <= start:
                return ReservationResult.fail(
                    FailureCode.INVALID_WINDOW, "End time must be after start time."
                )

            window = TimeRange(start, end)
            cost = self.pricing.reservation_cost(slot.price_per_hour, window)

            strategy = self.payments.resolve(payment_method)
            if strategy is None:
                return ReservationResult.fail(
                    FailureCode.UNKNOWN_PAYMENT_METHOD, f"Unknown payment method: {payment_method}"
                )
            if not strategy.authorize(cost):
                self.logger.warning(
                    f"Payment of {cost} by {strategy.display_name} declined for user {user_id}"
                )
                return ReservationResult.fail(FailureCode.PAYMENT_FAILED, "Payment denied by gateway.")

            now = self.clock.now()
            try:
                self.registry.lock(slot_id, now)
            except SlotUnavailableError as e:
                return ReservationResult.fail(FailureCode.SLOT_UNAVAILABLE, str(e))

            reservation = Reservation(
                user_id=user.id,
                slot_id=slot_id,
                time_range=window,
                total_cost=cost,
                created_at=now,
            )
            payment = Payment.record(
                cost, strategy.display_name, True, now, reservation.id, BookingKind.RESERVATION
            )
            reservation.confirm(payment.id)

            self.persistence.save_payment(payment)
            self.persistence.save_reservation(reservation)
            user.add_reservation(reservation.id)
            self.persistence.save_user(user)

        self.logger.info(
            f"Reservation {reservation.id} confirmed: slot {slot_id}, {window}, {cost}"
        )
        return ReservationResult.ok(
            f"Reservation confirmed. Total cost: {cost}",
            reservation=reservation,
            payment=payment,
        )

    # ========================================================================
    # CANCEL / EXPIRE
    # ========================================================================

    def cancel_reservation(self, reservation_id: str) -> CancellationResult:
        reservation = self.persistence.find_reservation_by_id(reservation_id)
        if reservation is None:
            return CancellationResult.fail(
                FailureCode.RESERVATION_NOT_FOUND, f"Reservation not found: {reservation_id}"
            )

        with self.locks.hold(booking_key(reservation_id), slot_key(reservation.slot_id)):
            # Re-read under the lock; another caller may have closed it meanwhile
            reservation = self.persistence.find_reservation_by_id(reservation_id)

            if reservation.status is ReservationStatus.CANCELLED:
                return CancellationResult.fail(
                    FailureCode.ALREADY_CANCELLED, "Reservation is already cancelled.",
                    reservation=reservation,
                )
            if reservation.status is ReservationStatus.EXPIRED:
                return CancellationResult.fail(
                    FailureCode.RESERVATION_EXPIRED, "Reservation has already expired.",
                    reservation=reservation,
                )

            held_slot = reservation.is_active
            reservation.cancel(self.clock.now())
            self.persistence.save_reservation(reservation)
            released = self.registry.release(reservation.slot_id, reservation.closed_at) if held_slot else False

        self.logger.info(f"Reservation {reservation_id} cancelled")
        return CancellationResult.ok(
            "Reservation cancelled.", reservation=reservation, slot_released=released
        )

    def expire_reservation(self, reservation_id: str, now: datetime) -> Tuple[bool, bool]:
        """
        Force-end a confirmed reservation whose window closed before now.
        Returns (expired, slot_released); a second call is a no-op.
        """
        reservation = self.persistence.find_reservation_by_id(reservation_id)
        if reservation is None:
            return False, False

        with self.locks.hold(booking_key(reservation_id), slot_key(reservation.slot_id)):
            reservation = self.persistence.find_reservation_by_id(reservation_id)
            if not reservation.is_overdue(now):
                return False, False
            reservation.expire(now)
            self.persistence.save_reservation(reservation)
            released = self.registry.release(reservation.slot_id, now)

        self.logger.info(f"Reservation {reservation_id} expired at {now:%Y-%m-%d %H:%M}")
        return True, released

    # ========================================================================
    # REFUNDS
    # ========================================================================

    def refund_payment(self, payment_id: str) -> RefundResult:
        with self.locks.hold(booking_key(payment_id)):
            payment = self.persistence.find_payment_by_id(payment_id)
            if payment is None:
                return RefundResult.fail(FailureCode.PAYMENT_NOT_FOUND, f"Payment not found: {payment_id}")
            if payment.status is PaymentStatus.REFUNDED:
                return RefundResult.fail(
                    FailureCode.ALREADY_REFUNDED, "Payment is already refunded.", payment=payment
                )
            if payment.status is not PaymentStatus.SUCCESS:
                return RefundResult.fail(
                    FailureCode.PAYMENT_FAILED,
                    "Only successful payments can be refunded.",
                    payment=payment,
                )
            payment.refund()
            self.persistence.save_payment(payment)

        self.logger.info(f"Payment {payment_id} refunded ({payment.amount})")
        return RefundResult.ok("Payment refunded.", payment=payment)
