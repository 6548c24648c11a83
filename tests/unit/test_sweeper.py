#!/usr/bin/env python3
"""Expiration sweeper unit tests."""

import unittest
from datetime import timedelta
from decimal import Decimal

from smartpark.domain.models import ReservationStatus, SessionStatus

from tests.helpers import START, BookingTestBase


class TestSessionSweep(BookingTestBase):

    def test_overdue_session_is_completed(self):
        session = self.paid_session().session
        self.clock.set(START + timedelta(hours=2, minutes=10))

        report = self.service.tick()

        self.assertEqual(report.completed_session_ids, [session.id])
        self.assertEqual(report.released, 1)
        stored = self.persistence.find_session_by_id(session.id)
        self.assertIs(stored.status, SessionStatus.COMPLETED)
        self.assertEqual(stored.end_time, START + timedelta(hours=2, minutes=10))
        self.assertEqual(stored.energy_used_kwh, Decimal('65.00'))
        self.assertEqual(stored.total_amount, Decimal('8.00'))
        self.assertTrue(self.slot("CS1").is_available)

    def test_second_sweep_is_a_no_op(self):
        self.paid_session()
        self.clock.set(START + timedelta(hours=3))
        self.assertEqual(self.service.tick().released, 1)

        report = self.service.tick()
        self.assertEqual(report.released, 0)
        self.assertFalse(report.terminated)

    def test_scheduled_end_boundary(self):
        session = self.paid_session().session
        self.clock.set(session.scheduled_end_time)
        self.assertFalse(self.service.tick().terminated)
        self.clock.advance(seconds=1)
        self.assertEqual(self.service.tick().completed_session_ids, [session.id])

    def test_unpaid_session_is_never_swept(self):
        session = self.charging.start_charging("U001").session
        self.clock.set(START + timedelta(days=3))
        self.assertFalse(self.service.tick().terminated)
        self.assertIs(self.persistence.find_session_by_id(session.id).status, SessionStatus.ACTIVE)

    def test_stopped_session_is_not_swept(self):
        session = self.paid_session().session
        self.charging.stop_charging(session.id, "4")
        self.clock.set(START + timedelta(hours=5))
        self.assertFalse(self.service.tick().terminated)


class TestReservationSweep(BookingTestBase):

    def test_window_end_boundary(self):
        reservation = self.reserve("S001").reservation

        self.clock.set(reservation.end_time)
        self.assertFalse(self.service.tick().terminated)
        self.assertFalse(self.slot("S001").is_available)

        self.clock.advance(minutes=1)
        report = self.service.tick()
        self.assertEqual(report.expired_reservation_ids, [reservation.id])
        self.assertEqual(report.released, 1)
        self.assertTrue(self.slot("S001").is_available)
        stored = self.persistence.find_reservation_by_id(reservation.id)
        self.assertIs(stored.status, ReservationStatus.EXPIRED)
        self.assertEqual(stored.closed_at, reservation.end_time + timedelta(minutes=1))

    def test_cancelled_reservation_is_ignored(self):
        reservation = self.reserve("S001").reservation
        self.reservations.cancel_reservation(reservation.id)
        self.clock.set(reservation.end_time + timedelta(hours=1))
        self.assertFalse(self.service.tick().terminated)

    def test_sweep_handles_both_kinds(self):
        reservation = self.reserve("S002", start_offset_minutes=0, duration_minutes=30).reservation
        session = self.paid_session().session
        self.clock.set(START + timedelta(hours=4))

        report = self.service.sweeper.sweep()
        self.assertEqual(report.completed_session_ids, [session.id])
        self.assertEqual(report.expired_reservation_ids, [reservation.id])
        self.assertEqual(report.released, 2)
        self.assertEqual(report.swept_at, START + timedelta(hours=4))

    def test_explicit_sweep_time(self):
        reservation = self.reserve("S001").reservation
        report = self.service.sweeper.sweep(reservation.end_time + timedelta(minutes=5))
        self.assertEqual(report.expired_reservation_ids, [reservation.id])


if __name__ == '__main__':
    unittest.main()
