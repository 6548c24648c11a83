# File: src/smartpark/application/sweeper.py
"""
Expiration Sweeper

Reclaims slots held by bookings whose time has run out:
- Active charging sessions with a scheduled end before now are completed
- Confirmed reservations whose window ended before now are expired

The sweep does not schedule itself; callers run it at the top of each
interaction cycle. Bookings without a scheduled end are never touched,
and running the sweep twice in a row releases nothing the second time.
"""

from datetime import datetime
from typing import Optional
import logging

from ..domain.clock import Clock, SystemClock
from ..infrastructure.repositories import PersistenceGateway
from .charging_service import ChargingEngine
from .dtos import SweepReport
from .reservation_service import ReservationEngine


class ExpirationSweeper:
    """Periodic reconciliation of overdue bookings"""

    def __init__(
        self,
        persistence: PersistenceGateway,
        reservations: ReservationEngine,
        charging: ChargingEngine,
        clock: Optional[Clock] = None
    ):
        self.persistence = persistence
        self.reservations = reservations
        self.charging = charging
        self.clock = clock or SystemClock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.clock.now()
        report = SweepReport(swept_at=now)

        for session in self.persistence.find_all_sessions():
            if not session.is_overdue(now):
                continue
            completed, released = self.charging.complete_overdue_session(session.id, now)
            if completed:
                report.completed_session_ids.append(session.id)
            if released:
                report.released += 1

        for reservation in self.persistence.find_all_reservations():
            if not reservation.is_overdue(now):
                continue
            expired, released = self.reservations.expire_reservation(reservation.id, now)
            if expired:
                report.expired_reservation_ids.append(reservation.id)
            if released:
                report.released += 1

        if report.terminated:
            self.logger.info(
                f"Sweep at {now:%Y-%m-%d %H:%M}: {len(report.completed_session_ids)} session(s) "
                f"completed, {len(report.expired_reservation_ids)} reservation(s) expired, "
                f"{report.released} slot(s) released"
            )
        else:
            self.logger.debug(f"Sweep at {now:%Y-%m-%d %H:%M}: nothing overdue")
        return report
