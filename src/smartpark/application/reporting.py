# File: src/smartpark/application/reporting.py
"""Plain-text summary of everything the persistence gateway holds."""

from pathlib import Path
from typing import List, Optional, Union
import logging

from ..domain.clock import Clock, SystemClock
from ..domain.models import PaymentStatus, ReservationStatus, SessionStatus
from ..infrastructure.repositories import PersistenceGateway


class ReportGenerator:
    """Renders users, lots, stations, bookings and payments as text"""

    def __init__(self, persistence: PersistenceGateway, clock: Optional[Clock] = None):
        self.persistence = persistence
        self.clock = clock or SystemClock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def summary(self) -> str:
        users = self.persistence.find_all_users()
        lots = self.persistence.find_all_lots()
        stations = self.persistence.find_all_stations()
        reservations = self.persistence.find_all_reservations()
        sessions = self.persistence.find_all_sessions()
        payments = self.persistence.find_all_payments()

        lines: List[str] = [
            f"SmartPark Summary Report - {self.clock.now():%Y-%m-%d %H:%M:%S}",
            "=" * 60,
            "",
            f"Users: {len(users)}",
        ]
        lines += [f"  {u.id} {u.name} <{u.email}> reservations: {len(u.reservation_ids)}" for u in users]

        lines += ["", f"Parking lots: {len(lots)}"]
        for lot in lots:
            lines.append(f"  {lot}")
            lines += [f"    {slot}" for slot in lot.slots]

        lines += ["", f"Charging stations: {len(stations)}"]
        for station in stations:
            lines.append(f"  {station}")
            lines += [f"    {slot}" for slot in station.slots]

        lines += ["", f"Reservations: {len(reservations)}"]
        for status in ReservationStatus:
            count = sum(1 for r in reservations if r.status is status)
            lines.append(f"  {status.value}: {count}")

        lines += ["", f"Charging sessions: {len(sessions)}"]
        for status in SessionStatus:
            count = sum(1 for s in sessions if s.status is status)
            lines.append(f"  {status.value}: {count}")
        energy = sum((s.energy_used_kwh or 0) for s in sessions)
        lines.append(f"  Energy delivered: {energy} kWh")

        collected = sum(p.amount.amount for p in payments if p.status is PaymentStatus.SUCCESS)
        refunded = sum(p.amount.amount for p in payments if p.status is PaymentStatus.REFUNDED)
        lines += [
            "",
            f"Payments: {len(payments)}",
            f"  Collected: ${collected:.2f}",
            f"  Refunded: ${refunded:.2f}",
        ]
        return "\n".join(lines) + "\n"

    def write_summary(self, directory: Union[str, Path] = "reports") -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"summary_{self.clock.now():%Y%m%d_%H%M%S}.txt"
        path.write_text(self.summary(), encoding="utf-8")
        self.logger.info(f"Summary report written to {path}")
        return path
