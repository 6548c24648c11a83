# File: src/smartpark/domain/registry.py
"""
Slot Registry

Indexes every slot across lots and stations by id. The registry keeps no
state of its own: each call reads the owners from the persistence gateway
and each change is saved through the owning aggregate, so later lookups
see it immediately.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional
import logging

from .aggregates import ChargingStation, ParkingLot, SlotOwner
from .models import (
    ChargingSession, ChargingSlot, ChargingSlotStatus, ParkingSlot, Reservation, Slot, SlotKind,
    SlotUnavailableError,
)

if TYPE_CHECKING:
    from ..infrastructure.repositories import PersistenceGateway


@dataclass(frozen=True)
class SlotFilter:
    """Optional criteria for find_available; empty fields match everything"""
    kind: Optional[SlotKind] = None
    slot_type: Optional[str] = None
    location: Optional[str] = None
    mode_type: Optional[str] = None

    def matches(self, owner: SlotOwner, slot: Slot) -> bool:
        if self.kind is not None and slot.kind is not self.kind:
            return False
        if self.slot_type:
            if not isinstance(slot, ParkingSlot):
                return False
            if slot.slot_type.lower() != self.slot_type.strip().lower():
                return False
        if self.location and self.location.strip():
            if not isinstance(owner, ChargingStation) or not owner.matches_location(self.location):
                return False
        if self.mode_type:
            if not isinstance(slot, ChargingSlot) or not slot.supports(self.mode_type):
                return False
        return True


@dataclass
class SlotLocation:
    """A slot together with the aggregate that owns it"""
    slot: Slot
    owner: SlotOwner


class SlotRegistry:
    """Id-keyed view over all slots owned by lots and stations"""

    def __init__(self, persistence: 'PersistenceGateway'):
        self.persistence = persistence
        self.logger = logging.getLogger(self.__class__.__name__)

    def _owners(self) -> Iterator[SlotOwner]:
        yield from self.persistence.find_all_lots()
        yield from self.persistence.find_all_stations()

    def _save(self, owner: SlotOwner) -> None:
        if isinstance(owner, ParkingLot):
            self.persistence.save_lot(owner)
        else:
            self.persistence.save_station(owner)
        owner.clear_events()

    def find_available(self, slot_filter: Optional[SlotFilter] = None) -> List[Slot]:
        """Available slots in registry order (lots first, then stations)"""
        slot_filter = slot_filter or SlotFilter()
        return [
            slot
            for owner in self._owners()
            for slot in owner.available_slots()
            if slot_filter.matches(owner, slot)
        ]

    def locate(self, slot_id: str) -> Optional[SlotLocation]:
        for owner in self._owners():
            slot = owner.get_slot(slot_id)
            if slot is not None:
                return SlotLocation(slot, owner)
        return None

    def get(self, slot_id: str) -> Optional[Slot]:
        location = self.locate(slot_id)
        return location.slot if location else None

    def lock(self, slot_id: str, now: Optional[datetime] = None) -> Slot:
        """Mark a slot occupied and persist its owner"""
        location = self.locate(slot_id)
        if location is None:
            raise SlotUnavailableError(slot_id, "Slot not found")
        slot = location.owner.lock_slot(slot_id, now)
        self._save(location.owner)
        return slot

    def release(self, slot_id: Optional[str], now: Optional[datetime] = None) -> bool:
        """Make a slot available. Unknown or already free slots are a no-op."""
        if not slot_id:
            return False
        location = self.locate(slot_id)
        if location is None:
            self.logger.debug(f"Release of unknown slot {slot_id} ignored")
            return False
        changed = location.owner.release_slot(slot_id, now)
        if changed:
            self._save(location.owner)
        return changed

    def find_inconsistencies(
        self,
        reservations: Iterable[Reservation],
        sessions: Iterable[ChargingSession]
    ) -> List[str]:
        """
        Slots whose availability disagrees with active bookings.
        Faulty charging slots are not reported as occupied without a booking.
        """
        booked = {r.slot_id for r in reservations if r.is_active}
        booked.update(s.slot_id for s in sessions if s.is_active and s.slot_id)

        problems = []
        for owner in self._owners():
            for slot in owner.slots:
                if slot.id in booked and slot.is_available:
                    problems.append(f"{slot.id} is available but has an active booking")
                elif slot.id not in booked and not slot.is_available:
                    if isinstance(slot, ChargingSlot) and slot.status is ChargingSlotStatus.FAULTY:
                        continue
                    problems.append(f"{slot.id} is occupied without an active booking")
        return problems
