#!/usr/bin/env python3
"""Charging engine unit tests: the five-step charging flow."""

import unittest
from datetime import timedelta
from decimal import Decimal

from smartpark.application.dtos import ChargingPaymentRequestDTO, ErrorKind, FailureCode
from smartpark.config import BookingPolicies
from smartpark.domain.models import BookingKind, PaymentStatus, SessionStatus

from tests.helpers import START, BookingTestBase


class TestStartAndDiscovery(BookingTestBase):

    def test_start_charging(self):
        result = self.charging.start_charging("U001")
        self.assertTrue(result.success)
        session = result.session
        self.assertIs(session.status, SessionStatus.ACTIVE)
        self.assertEqual(session.start_time, START)
        self.assertIsNone(session.slot_id)
        self.assertIsNone(session.scheduled_end_time)
        self.assertEqual(self.persistence.find_session_by_id(session.id).user_id, "U001")

    def test_start_charging_unknown_user(self):
        result = self.charging.start_charging("U404")
        self.assertEqual(result.code, FailureCode.USER_NOT_FOUND)
        self.assertEqual(self.persistence.find_all_sessions(), [])

    def test_request_slots_by_location(self):
        self.assertEqual([s.id for s in self.charging.request_slots()], ["CS1", "CS2"])
        self.assertEqual([s.id for s in self.charging.request_slots("main st")], ["CS1", "CS2"])
        self.assertEqual(self.charging.request_slots("Elm Street"), [])

    def test_mode_types(self):
        self.assertEqual(self.charging.charging_mode_types(), ["normal", "fast"])

    def test_select_mode(self):
        result = self.charging.select_mode("FAST")
        self.assertTrue(result.success)
        self.assertEqual(result.price_per_kwh, Decimal('0.40'))
        self.assertEqual(result.speed_kw, Decimal('22'))
        self.assertEqual((result.station_id, result.slot_id), ("ST1", "CS1"))

    def test_select_unknown_mode(self):
        result = self.charging.select_mode("turbo")
        self.assertEqual(result.code, FailureCode.MODE_NOT_AVAILABLE)
        self.assertEqual(result.message, "Charging mode not available: turbo")
        self.assertEqual(self.charging.select_mode("  ").code, FailureCode.MISSING_FIELD)

    def test_select_mode_skips_inactive_station(self):
        station = self.persistence.find_station_by_id("ST1")
        station.set_out_of_service()
        self.persistence.save_station(station)
        self.assertEqual(self.charging.select_mode("normal").code, FailureCode.MODE_NOT_AVAILABLE)

    def test_estimate_amount(self):
        estimate = self.charging.estimate_amount("0.40", 20)
        self.assertTrue(estimate.success)
        self.assertEqual(estimate.amount.amount, Decimal('8.00'))
        self.assertEqual(estimate.message, "Estimated amount: $8.00")

    def test_estimate_rejects_bad_energy(self):
        for kwh in ("abc", "-3", None, "nan"):
            estimate = self.charging.estimate_amount("0.40", kwh)
            self.assertEqual(estimate.code, FailureCode.INVALID_AMOUNT, kwh)
            self.assertIsNone(estimate.amount)
        self.assertEqual(self.charging.estimate_amount("-0.40", 20).code, FailureCode.INVALID_AMOUNT)


class TestProcessPayment(BookingTestBase):

    def setUp(self):
        super().setUp()
        self.session = self.charging.start_charging("U001").session

    def pay(self, method="Credit Card", amount="8.00", slot_id="CS1", mode="fast", price="0.40", session_id=None):
        return self.charging.process_payment(
            method, amount, session_id or self.session.id, slot_id, mode, price
        )

    def test_successful_payment(self):
        result = self.pay()

        self.assertTrue(result.success)
        session, payment = result.session, result.payment
        self.assertEqual(session.slot_id, "CS1")
        self.assertEqual(session.mode_type, "fast")
        self.assertEqual(session.price_per_unit, Decimal('0.40'))
        self.assertEqual(session.total_amount, Decimal('8.00'))
        self.assertEqual(session.payment_id, payment.id)
        self.assertEqual(session.scheduled_end_time, START + timedelta(hours=2))
        self.assertIs(payment.booking_kind, BookingKind.CHARGING_SESSION)
        self.assertEqual(payment.booking_id, session.id)
        self.assertEqual(payment.amount.amount, Decimal('8.00'))

        self.assertTrue(result.receipt.startswith(f"Receipt --- PaymentId: {payment.id} | Amount: $8.00"))
        self.assertIn("Status: Success", result.receipt)
        self.assertEqual(result.reward_points, 10)
        self.assertEqual(result.reward_message, "10 reward points added for this charge.")

        self.assertFalse(self.slot("CS1").is_available)
        self.assertEqual(self.persistence.find_session_by_id(self.session.id).slot_id, "CS1")

    def test_declined_payment_changes_nothing(self):
        result = self.pay(method="PayPal")

        self.assertEqual(result.code, FailureCode.PAYMENT_DENIED)
        self.assertIs(result.kind, ErrorKind.PAYMENT_REJECTED)
        self.assertTrue(self.slot("CS1").is_available)
        self.assertEqual(self.persistence.find_all_payments(), [])
        stored = self.persistence.find_session_by_id(self.session.id)
        self.assertIsNone(stored.slot_id)
        self.assertIsNone(stored.scheduled_end_time)

    def test_invalid_amount(self):
        for amount in ("0", "-3", "abc", None):
            self.assertEqual(self.pay(amount=amount).code, FailureCode.INVALID_AMOUNT, amount)
        self.assertEqual(self.pay(price="-0.1").code, FailureCode.INVALID_AMOUNT)

    def test_unknown_session(self):
        self.assertEqual(self.pay(session_id="CHG-NOPE").code, FailureCode.SESSION_NOT_FOUND)

    def test_ended_session(self):
        self.charging.cancel_session(self.session.id)
        result = self.pay()
        self.assertEqual(result.code, FailureCode.ALREADY_ENDED)
        self.assertEqual(result.message, "Session already ended or invalid.")

    def test_unknown_or_parking_slot(self):
        self.assertEqual(self.pay(slot_id="CS9").code, FailureCode.SLOT_NOT_FOUND)
        self.assertEqual(self.pay(slot_id="S001").code, FailureCode.SLOT_NOT_FOUND)

    def test_slot_without_mode(self):
        result = self.pay(slot_id="CS2")
        self.assertEqual(result.code, FailureCode.MODE_NOT_AVAILABLE)
        self.assertTrue(self.slot("CS2").is_available)

    def test_slot_taken(self):
        self.assertTrue(self.paid_session().success)
        result = self.pay()
        self.assertEqual(result.code, FailureCode.SLOT_UNAVAILABLE)

    def test_out_of_service_station(self):
        station = self.persistence.find_station_by_id("ST1")
        station.set_out_of_service()
        self.persistence.save_station(station)
        self.assertEqual(self.pay().code, FailureCode.SLOT_UNAVAILABLE)

    def test_second_payment_on_same_session(self):
        self.assertTrue(self.pay().success)
        result = self.pay(slot_id="CS2", mode="normal", price="0.25", amount="5")

        self.assertEqual(result.code, FailureCode.ALREADY_PAID)
        self.assertIs(result.kind, ErrorKind.CONFLICT)
        self.assertFalse(self.slot("CS1").is_available)
        self.assertTrue(self.slot("CS2").is_available)
        self.assertEqual(len(self.persistence.find_all_payments()), 1)
        self.assertEqual(self.persistence.find_session_by_id(self.session.id).slot_id, "CS1")

        self.assertTrue(self.charging.stop_charging(self.session.id).success)
        self.assertTrue(self.slot("CS1").is_available)
        self.assertEqual(self.service.check_consistency(), [])

    def test_submit_payment_dto(self):
        request = ChargingPaymentRequestDTO(
            method="mobile wallet",
            amount=Decimal('2.50'),
            session_id=self.session.id,
            slot_id="CS2",
            mode_type="normal",
            price_per_unit=Decimal('0.25'),
        )
        result = self.charging.submit_payment(request)
        self.assertTrue(result.success)
        self.assertEqual(result.payment.method, "Mobile Wallet")

    def test_loyal_customer_bonus(self):
        self.reserve("S001")
        self.reserve("S002")
        result = self.pay()
        self.assertEqual(result.reward_points, 15)
        self.assertEqual(result.reward_message, "15 reward points added (5 bonus for loyal customer).")


class TestStopCharging(BookingTestBase):

    def test_stop_with_explicit_energy(self):
        session = self.paid_session().session
        self.clock.advance(minutes=40)

        result = self.charging.stop_charging(session.id, "12.5")
        self.assertTrue(result.success)
        self.assertEqual(result.energy_used_kwh, Decimal('12.50'))
        self.assertEqual(result.total_amount, Decimal('8.00'))
        self.assertEqual(result.end_time, START + timedelta(minutes=40))
        self.assertTrue(self.slot("CS1").is_available)
        self.assertIs(self.persistence.find_session_by_id(session.id).status, SessionStatus.COMPLETED)

    def test_stop_derives_energy_from_elapsed_time(self):
        session = self.paid_session().session
        self.clock.advance(minutes=30)
        result = self.charging.stop_charging(session.id)
        self.assertEqual(result.energy_used_kwh, Decimal('15.00'))

    def test_stop_unpaid_session(self):
        session = self.charging.start_charging("U001").session
        self.clock.advance(minutes=10)
        result = self.charging.stop_charging(session.id)
        self.assertTrue(result.success)
        self.assertEqual(result.energy_used_kwh, Decimal('5.00'))
        self.assertEqual(result.total_amount, Decimal('0.00'))

    def test_stop_twice(self):
        session = self.paid_session().session
        self.assertTrue(self.charging.stop_charging(session.id).success)
        again = self.charging.stop_charging(session.id)
        self.assertEqual(again.code, FailureCode.ALREADY_ENDED)
        self.assertIs(again.kind, ErrorKind.CONFLICT)

    def test_stop_errors(self):
        self.assertEqual(self.charging.stop_charging("CHG-NOPE").code, FailureCode.SESSION_NOT_FOUND)
        session = self.paid_session().session
        self.assertEqual(self.charging.stop_charging(session.id, "-1").code, FailureCode.INVALID_AMOUNT)
        self.assertFalse(self.slot("CS1").is_available)

    def test_cancel_session_frees_slot(self):
        session = self.paid_session().session
        result = self.charging.cancel_session(session.id)
        self.assertTrue(result.success)
        self.assertIs(result.session.status, SessionStatus.CANCELLED)
        self.assertTrue(self.slot("CS1").is_available)
        self.assertEqual(self.charging.cancel_session(session.id).code, FailureCode.ALREADY_ENDED)

    def test_completed_payment_is_kept(self):
        payment = self.paid_session().payment
        self.charging.stop_charging(payment.booking_id)
        self.assertIs(self.persistence.find_payment_by_id(payment.id).status, PaymentStatus.SUCCESS)


class TestShortDefaultDuration(BookingTestBase):

    policies = BookingPolicies(default_charging_duration=timedelta(minutes=30))

    def test_scheduled_end_follows_policy(self):
        session = self.paid_session().session
        self.assertEqual(session.scheduled_end_time, START + timedelta(minutes=30))


if __name__ == '__main__':
    unittest.main()
