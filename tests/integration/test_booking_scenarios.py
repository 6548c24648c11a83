#!/usr/bin/env python3
"""
End-to-end booking scenarios

Each scenario runs twice: against the in-memory gateway and against the
SQLAlchemy gateway on an in-memory sqlite database.
"""

import threading
import time
import unittest
from datetime import timedelta
from decimal import Decimal

from smartpark.application.dtos import FailureCode
from smartpark.domain.models import ReservationStatus, SessionStatus
from smartpark.infrastructure.repositories import (
    InMemoryPersistenceGateway, SQLAlchemyPersistenceGateway,
)

from tests.helpers import START, BookingTestBase


class BookingScenarios:
    """Mixin holding the scenarios; combined with BookingTestBase below"""

    def test_reserve_standard_slot_for_ninety_minutes(self):
        result = self.reserve("S001", start_offset_minutes=0, duration_minutes=90)

        self.assertTrue(result.success)
        self.assertEqual(result.reservation.total_cost.amount, Decimal('10.00'))
        self.assertEqual(result.message, "Reservation confirmed. Total cost: $10.00")
        self.assertFalse(self.slot("S001").is_available)
        self.assertEqual(len(self.persistence.find_all_payments()), 1)

    def test_declined_paypal_reservation(self):
        result = self.reserve("S002", method="PayPal")

        self.assertEqual(result.code, FailureCode.PAYMENT_FAILED)
        self.assertTrue(self.slot("S002").is_available)
        self.assertEqual(self.persistence.find_all_reservations(), [])
        self.assertEqual(self.persistence.find_all_payments(), [])

    def test_double_booking_is_refused(self):
        self.assertTrue(self.reserve("S003").success)
        second = self.reserve("S003", start_offset_minutes=300)
        self.assertEqual(second.code, FailureCode.SLOT_UNAVAILABLE)
        self.assertEqual(len(self.persistence.find_all_reservations()), 1)

    def test_full_charging_flow(self):
        session = self.charging.start_charging("U001").session
        self.assertEqual([s.id for s in self.charging.request_slots("123 Main")], ["CS1", "CS2"])

        selection = self.charging.select_mode("fast")
        estimate = self.charging.estimate_amount(selection.price_per_kwh, 20)
        self.assertEqual(estimate.amount.amount, Decimal('8.00'))

        paid = self.charging.process_payment("Credit Card", estimate.amount.amount, session.id, "CS1", "fast", "0.40")
        self.assertTrue(paid.success)
        self.assertEqual([s.id for s in self.charging.request_slots()], ["CS2"])

        self.clock.advance(minutes=45)
        stopped = self.charging.stop_charging(session.id)
        self.assertEqual(stopped.energy_used_kwh, Decimal('22.50'))
        self.assertEqual(stopped.total_amount, Decimal('8.00'))
        self.assertEqual([s.id for s in self.charging.request_slots()], ["CS1", "CS2"])

    def test_sweep_reclaims_overdue_session(self):
        session = self.paid_session().session
        self.clock.set(START + timedelta(hours=2, minutes=10))

        report = self.service.tick()
        self.assertEqual(report.released, 1)
        stored = self.persistence.find_session_by_id(session.id)
        self.assertIs(stored.status, SessionStatus.COMPLETED)
        self.assertEqual(stored.energy_used_kwh, Decimal('65.00'))
        self.assertEqual(self.service.tick().released, 0)

    def test_sweep_expires_reservation(self):
        reservation = self.reserve("S001").reservation
        self.clock.set(reservation.end_time + timedelta(seconds=1))
        self.assertEqual(self.service.tick().expired_reservation_ids, [reservation.id])
        self.assertIs(
            self.persistence.find_reservation_by_id(reservation.id).status, ReservationStatus.EXPIRED
        )
        self.assertTrue(self.reserve("S001", start_offset_minutes=600).success)

    def test_loyalty_depends_on_history(self):
        self.reserve("S001")
        first = self.paid_session("CS1")
        self.assertEqual(first.reward_points, 10)

        self.reserve("S002")
        second = self.paid_session("CS2", mode="normal", kwh="4")
        self.assertEqual(second.reward_points, 15)

    def test_disconnected_gateway_declines_new_payments(self):
        gateway = self.persistence.get_default_payment_gateway()
        gateway.disconnect()
        self.persistence.save_payment_gateway(gateway)

        result = self.reserve("S001")
        self.assertEqual(result.code, FailureCode.PAYMENT_FAILED)
        self.assertTrue(self.slot("S001").is_available)
        self.assertEqual(self.persistence.find_all_payments(), [])

        session = self.charging.start_charging("U001").session
        paid = self.charging.process_payment("Credit Card", "8.00", session.id, "CS1", "fast", "0.40")
        self.assertEqual(paid.code, FailureCode.PAYMENT_DENIED)
        self.assertTrue(self.slot("CS1").is_available)

        gateway.connect()
        self.persistence.save_payment_gateway(gateway)
        self.assertTrue(self.reserve("S001").success)

    def test_cancel_then_rebook(self):
        reservation = self.reserve("S001").reservation
        self.assertTrue(self.reservations.cancel_reservation(reservation.id).success)
        self.assertEqual(
            self.reservations.cancel_reservation(reservation.id).code, FailureCode.ALREADY_CANCELLED
        )
        self.assertTrue(self.reserve("S001").success)
        self.assertEqual(self.service.check_consistency(), [])


class ConcurrencyScenarios:
    """Racing callers on one slot; exactly one may win"""

    def test_concurrent_reservations_for_one_slot(self):
        results = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            results.append(self.reserve("S002"))

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [r for r in results if r.success]
        self.assertEqual(len(winners), 1)
        self.assertTrue(all(r.code is FailureCode.SLOT_UNAVAILABLE for r in results if not r.success))
        self.assertEqual(len(self.persistence.find_all_reservations()), 1)
        self.assertEqual(len(self.persistence.find_all_payments()), 1)

    def test_concurrent_payments_for_one_charging_slot(self):
        sessions = [self.charging.start_charging("U001").session for _ in range(6)]
        results = []
        barrier = threading.Barrier(len(sessions))

        def attempt(session_id):
            barrier.wait()
            results.append(
                self.charging.process_payment("Credit Card", "8.00", session_id, "CS1", "fast", "0.40")
            )

        threads = [threading.Thread(target=attempt, args=(s.id,)) for s in sessions]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sum(1 for r in results if r.success), 1)
        self.assertEqual(len(self.persistence.find_all_payments()), 1)


class SlowUserLookupGateway(InMemoryPersistenceGateway):
    """In-memory store whose user lookups take a while"""

    def find_user_by_id(self, user_id):
        user = super().find_user_by_id(user_id)
        time.sleep(0.05)
        return user


class TestConcurrentReservationsForOneUser(BookingTestBase):

    def make_persistence(self):
        return SlowUserLookupGateway()

    def test_both_reservations_are_kept_on_the_user(self):
        results = []
        barrier = threading.Barrier(2)

        def attempt(slot_id):
            barrier.wait()
            results.append(self.reserve(slot_id))

        threads = [threading.Thread(target=attempt, args=(s,)) for s in ("S001", "S002")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 2)
        self.assertTrue(all(r.success for r in results))
        user = self.persistence.find_user_by_id("U001")
        self.assertEqual(
            sorted(user.reservation_ids), sorted(r.reservation.id for r in results)
        )


class TestInMemoryScenarios(BookingScenarios, ConcurrencyScenarios, BookingTestBase):
    pass


class TestSQLAlchemyScenarios(BookingScenarios, BookingTestBase):

    def make_persistence(self):
        return SQLAlchemyPersistenceGateway("sqlite://")

    def tearDown(self):
        self.persistence.dispose()


if __name__ == '__main__':
    unittest.main()
