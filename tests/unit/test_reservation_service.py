#!/usr/bin/env python3
"""Reservation engine unit tests."""

import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

from smartpark.application.dtos import ErrorKind, FailureCode, ReservationRequestDTO
from smartpark.application.reservation_service import ReservationEngine
from smartpark.config import BookingPolicies
from smartpark.domain.models import PaymentStatus, ReservationStatus
from smartpark.infrastructure.repositories import PersistenceError, PersistenceGateway

from tests.helpers import START, BookingTestBase


class TestMakeReservation(BookingTestBase):

    def test_successful_reservation(self):
        result = self.reserve("S001")

        self.assertTrue(result.success)
        self.assertIsNone(result.code)
        reservation, payment = result.reservation, result.payment
        self.assertIs(reservation.status, ReservationStatus.CONFIRMED)
        self.assertEqual(reservation.total_cost.amount, Decimal('10.00'))
        self.assertEqual(reservation.payment_id, payment.id)
        self.assertEqual(payment.booking_id, reservation.id)
        self.assertEqual(payment.method, "Credit Card")
        self.assertIs(payment.status, PaymentStatus.SUCCESS)
        self.assertTrue(reservation.id.startswith("RES-"))

        self.assertFalse(self.slot("S001").is_available)
        self.assertEqual(self.persistence.find_reservation_by_id(reservation.id).status, ReservationStatus.CONFIRMED)
        self.assertEqual(len(self.persistence.find_all_payments()), 1)
        self.assertIn(reservation.id, self.persistence.find_user_by_id("U001").reservation_ids)

    def test_unknown_user(self):
        start, end = self.window()
        result = self.reservations.make_reservation("U404", "S001", start, end)
        self.assertEqual(result.code, FailureCode.USER_NOT_FOUND)
        self.assertIs(result.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(result.message, "User not found: U404")

    def test_unknown_slot(self):
        result = self.reserve("S999")
        self.assertEqual(result.code, FailureCode.SLOT_NOT_FOUND)
        self.assertEqual(result.message, "Slot not found: S999")

    def test_charging_slot_is_not_reservable(self):
        self.assertEqual(self.reserve("CS1").code, FailureCode.SLOT_NOT_FOUND)

    def test_slot_checked_before_window(self):
        self.reserve("S001")
        result = self.reserve("S001", duration_minutes=-30)
        self.assertEqual(result.code, FailureCode.SLOT_UNAVAILABLE)
        self.assertIs(result.kind, ErrorKind.CONFLICT)

    def test_invalid_window(self):
        for duration in (0, -30):
            result = self.reserve("S001", duration_minutes=duration)
            self.assertEqual(result.code, FailureCode.INVALID_WINDOW)
            self.assertIs(result.kind, ErrorKind.INVALID_INPUT)
        self.assertTrue(self.slot("S001").is_available)

    def test_declined_payment_leaves_no_trace(self):
        result = self.reserve("S001", method="PayPal")

        self.assertFalse(result.success)
        self.assertEqual(result.code, FailureCode.PAYMENT_FAILED)
        self.assertIs(result.kind, ErrorKind.PAYMENT_REJECTED)
        self.assertEqual(result.message, "Payment denied by gateway.")
        self.assertTrue(self.slot("S001").is_available)
        self.assertEqual(self.persistence.find_all_reservations(), [])
        self.assertEqual(self.persistence.find_all_payments(), [])
        self.assertEqual(self.persistence.find_user_by_id("U001").reservation_ids, [])

    def test_unknown_method_falls_back_to_default(self):
        result = self.reserve("S002", method="Cash")
        self.assertTrue(result.success)
        self.assertEqual(result.payment.method, "Credit Card")
        self.assertEqual(result.reservation.total_cost.amount, Decimal('15.00'))

    def test_submit_request_dto(self):
        start, end = self.window(duration_minutes=60)
        request = ReservationRequestDTO(
            user_id=" U001 ", slot_id="S003", start_time=start, end_time=end, payment_method=" "
        )
        result = self.reservations.submit(request)
        self.assertTrue(result.success)
        self.assertEqual(result.reservation.total_cost.amount, Decimal('4.00'))

    def test_available_slots(self):
        self.reserve("S001")
        self.assertEqual([s.id for s in self.reservations.available_slots()], ["S002", "S003"])
        self.assertEqual([s.id for s in self.reservations.available_slots("handicap")], ["S003"])

    def test_persistence_fault_propagates(self):
        persistence = Mock(spec=PersistenceGateway)
        persistence.find_user_by_id.side_effect = PersistenceError("database is locked")
        engine = ReservationEngine(persistence, BookingPolicies(), self.clock)
        with self.assertRaises(PersistenceError):
            engine.make_reservation("U001", "S001", START, START + timedelta(hours=1))


class TestNoFallbackPolicy(BookingTestBase):

    policies = BookingPolicies(fallback_to_default_payment=False)

    def test_unknown_method_rejected(self):
        result = self.reserve("S001", method="Cash")
        self.assertEqual(result.code, FailureCode.UNKNOWN_PAYMENT_METHOD)
        self.assertTrue(self.slot("S001").is_available)


class TestCancelReservation(BookingTestBase):

    def test_cancel_twice(self):
        reservation = self.reserve("S001").reservation

        first = self.reservations.cancel_reservation(reservation.id)
        self.assertTrue(first.success)
        self.assertTrue(first.slot_released)
        self.assertIs(first.reservation.status, ReservationStatus.CANCELLED)
        self.assertTrue(self.slot("S001").is_available)

        second = self.reservations.cancel_reservation(reservation.id)
        self.assertEqual(second.code, FailureCode.ALREADY_CANCELLED)
        self.assertEqual(second.message, "Reservation is already cancelled.")
        self.assertTrue(self.slot("S001").is_available)

    def test_cancel_unknown(self):
        result = self.reservations.cancel_reservation("RES-00000000")
        self.assertEqual(result.code, FailureCode.RESERVATION_NOT_FOUND)
        self.assertEqual(result.message, "Reservation not found: RES-00000000")

    def test_cancel_expired(self):
        reservation = self.reserve("S001").reservation
        self.clock.set(reservation.end_time + timedelta(minutes=1))
        self.service.tick()

        result = self.reservations.cancel_reservation(reservation.id)
        self.assertEqual(result.code, FailureCode.RESERVATION_EXPIRED)
        self.assertIs(result.kind, ErrorKind.CONFLICT)

    def test_cancelled_slot_can_be_booked_again(self):
        reservation = self.reserve("S001").reservation
        self.reservations.cancel_reservation(reservation.id)
        self.assertTrue(self.reserve("S001").success)


class TestRefunds(BookingTestBase):

    def test_refund(self):
        payment = self.reserve("S001").payment
        result = self.reservations.refund_payment(payment.id)
        self.assertTrue(result.success)
        self.assertIs(self.persistence.find_payment_by_id(payment.id).status, PaymentStatus.REFUNDED)

        again = self.reservations.refund_payment(payment.id)
        self.assertEqual(again.code, FailureCode.ALREADY_REFUNDED)

    def test_refund_unknown(self):
        self.assertEqual(self.reservations.refund_payment("PAY-X").code, FailureCode.PAYMENT_NOT_FOUND)


if __name__ == '__main__':
    unittest.main()
