# File: src/smartpark/domain/aggregates.py
"""
Aggregate Roots for the SmartPark booking engine
Following Domain-Driven Design (DDD) Aggregate Pattern

Aggregates:
1. ParkingLot - owns its parking slots
2. ChargingStation - owns its charging slots

Key Concepts:
- Slots are held in an id-keyed map inside their owner; nothing outside
  the aggregate keeps its own copy of a slot
- Slot state changes go through the root (lock_slot / release_slot)
- Domain events are raised for every availability change
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from .models import (
    Entity, Slot, ParkingSlot, ChargingSlot, ChargingMode,
    Money, StationStatus, SlotUnavailableError,
    DomainEvent, SlotLockedEvent, SlotReleasedEvent,
)


# ============================================================================
# BASE AGGREGATE ROOT
# ============================================================================

class AggregateRoot(Entity):
    """
    Base class for all aggregate roots
    Provides domain event collection and versioning
    """

    def __init__(self, id: Optional[str] = None):
        super().__init__(id)
        self._version: int = 1
        self._changes: List[DomainEvent] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def version(self) -> int:
        return self._version

    def _increment_version(self) -> None:
        self._version += 1

    def _add_domain_event(self, event: DomainEvent) -> None:
        self._changes.append(event)
        self._logger.debug(f"Added domain event: {event.__class__.__name__}")

    def clear_events(self) -> List[DomainEvent]:
        """Clear and return all domain events"""
        events = self._changes.copy()
        self._changes.clear()
        return events

    @property
    def has_changes(self) -> bool:
        return len(self._changes) > 0


class SlotOwner(AggregateRoot):
    """
    Aggregate root that exclusively owns a set of slots.
    Destroying the owner destroys its slots.
    """

    slot_class = Slot

    def __init__(self, name: str, id: Optional[str] = None):
        super().__init__(id)
        if not name or not name.strip():
            raise ValueError(f"{self.__class__.__name__} name cannot be blank")
        self.name = name.strip()
        self._slots: Dict[str, Slot] = {}

    @property
    def slots(self) -> List[Slot]:
        """Slots in registration order"""
        return list(self._slots.values())

    @property
    def slot_ids(self) -> List[str]:
        return list(self._slots.keys())

    def add_slot(self, slot: Slot) -> Slot:
        if not isinstance(slot, self.slot_class):
            raise TypeError(f"{self.__class__.__name__} only accepts {self.slot_class.__name__}")
        if slot.id in self._slots:
            raise ValueError(f"Slot {slot.id} already exists in {self.id}")
        self._slots[slot.id] = slot
        self._increment_version()
        return slot

    def remove_slot(self, slot_id: str) -> None:
        slot = self._slots.get(slot_id)
        if slot is None:
            raise ValueError(f"Slot {slot_id} not found in {self.id}")
        if not slot.is_available:
            raise ValueError(f"Cannot remove slot {slot_id} while it is in use")
        del self._slots[slot_id]
        self._increment_version()

    def get_slot(self, slot_id: str) -> Optional[Slot]:
        return self._slots.get(slot_id)

    def lock_slot(self, slot_id: str, now: Optional[datetime] = None) -> Slot:
        """Mark a slot occupied; raises SlotUnavailableError if absent or taken"""
        slot = self._slots.get(slot_id)
        if slot is None:
            raise SlotUnavailableError(slot_id, "Slot not found")
        slot.lock()
        self._increment_version()
        self._add_domain_event(SlotLockedEvent(self.id, slot_id, now))
        self._logger.info(f"Slot {slot_id} locked in {self.id}")
        return slot

    def release_slot(self, slot_id: str, now: Optional[datetime] = None) -> bool:
        """Make a slot bookable again. Releasing a free slot is a no-op."""
        slot = self._slots.get(slot_id)
        if slot is None:
            return False
        changed = slot.release()
        if changed:
            self._increment_version()
            self._add_domain_event(SlotReleasedEvent(self.id, slot_id, now))
            self._logger.info(f"Slot {slot_id} released in {self.id}")
        return changed

    def available_slots(self) -> List[Slot]:
        return [slot for slot in self._slots.values() if slot.is_available]

    def total_slots(self) -> int:
        return len(self._slots)


# ============================================================================
# PARKING LOT AGGREGATE
# ============================================================================

class ParkingLot(SlotOwner):
    """Aggregate Root: A parking site and its slots"""

    id_prefix = "L"
    slot_class = ParkingSlot

    def __init__(self, name: str, address: str, id: Optional[str] = None):
        super().__init__(name, id)
        self.address = address

    def available_slots_by_type(self, slot_type: Optional[str] = None) -> List[ParkingSlot]:
        slots = self.available_slots()
        if not slot_type:
            return slots
        key = slot_type.strip().lower()
        return [slot for slot in slots if slot.slot_type.lower() == key]

    def get_occupancy_rate(self) -> float:
        if not self._slots:
            return 0.0
        occupied = self.total_slots() - len(self.available_slots())
        return occupied / self.total_slots()

    def __str__(self) -> str:
        return f"{self.id} {self.name} ({self.address}) - {len(self.available_slots())}/{self.total_slots()} free"


# ============================================================================
# CHARGING STATION AGGREGATE
# ============================================================================

class ChargingStation(SlotOwner):
    """Aggregate Root: A charging site and its charging slots"""

    id_prefix = "ST"
    slot_class = ChargingSlot

    def __init__(
        self,
        name: str,
        location: str,
        status: StationStatus = StationStatus.ACTIVE,
        id: Optional[str] = None
    ):
        super().__init__(name, id)
        self.location = location
        self.status = status

    @property
    def is_active(self) -> bool:
        return self.status is StationStatus.ACTIVE

    def set_out_of_service(self, enabled: bool = True) -> None:
        self.status = StationStatus.OUT_OF_SERVICE if enabled else StationStatus.ACTIVE
        self._increment_version()
        self._logger.info(f"Station {self.id} is now {self.status.value}")

    def matches_location(self, location_filter: Optional[str]) -> bool:
        """Case-insensitive substring match; a blank filter matches every station"""
        if not location_filter or not location_filter.strip():
            return True
        return location_filter.strip().lower() in self.location.lower()

    def available_slots(self) -> List[Slot]:
        # An inactive station offers nothing
        if not self.is_active:
            return []
        return super().available_slots()

    def find_mode(self, mode_type: str) -> Optional[Tuple[ChargingSlot, ChargingMode]]:
        """First slot offering the mode, with the mode itself"""
        for slot in self._slots.values():
            mode = slot.find_mode(mode_type)
            if mode is not None:
                return slot, mode
        return None

    def __str__(self) -> str:
        return f"{self.id} {self.name} ({self.location}) [{self.status.value}]"


# ============================================================================
# AGGREGATE FACTORY
# ============================================================================

class AggregateFactory:
    """Factory for creating aggregates with proper initialization"""

    @staticmethod
    def create_parking_lot(
        name: str,
        address: str,
        slot_specs: Iterable[Tuple[str, str, Decimal]] = (),
        currency: str = "USD",
        id: Optional[str] = None
    ) -> ParkingLot:
        """
        Create a lot with slots described as (label, slot_type, price_per_hour)
        or (slot_id, label, slot_type, price_per_hour) tuples.
        """
        lot = ParkingLot(name=name, address=address, id=id)
        for spec in slot_specs:
            slot_id = None
            if len(spec) == 4:
                slot_id, spec = spec[0], spec[1:]
            label, slot_type, price = spec
            lot.add_slot(ParkingSlot(
                label=label,
                slot_type=slot_type,
                price_per_hour=Money(price, currency),
                id=slot_id
            ))
        return lot

    @staticmethod
    def create_charging_station(
        name: str,
        location: str,
        slot_modes: Iterable[Tuple[str, str, List[ChargingMode]]] = (),
        id: Optional[str] = None
    ) -> ChargingStation:
        """Create a station with slots described as (slot_id, label, modes) tuples"""
        station = ChargingStation(name=name, location=location, id=id)
        for slot_id, label, modes in slot_modes:
            station.add_slot(ChargingSlot(label=label, supported_modes=modes, id=slot_id))
        return station
