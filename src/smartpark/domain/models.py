# File: src/smartpark/domain/models.py
"""
Domain Models for the SmartPark booking engine
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Value Objects: Money, TimeRange, ChargingMode
2. Enums: lifecycle states and payment method names
3. Entities: User, slots, Reservation, ChargingSession, Payment, payment gateway
4. Domain Events: slot lock/release notifications collected by aggregates
5. Domain Exceptions

Every lifecycle transition takes the current time as an argument; nothing in
this module reads the wall clock except default event timestamps.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional
import hmac
import math
import uuid


CENT = Decimal('0.01')


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats and strings to Decimal without float artefacts"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def new_id(prefix: str) -> str:
    """Short prefixed identifier, e.g. RES-1A2B3C4D"""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


# ============================================================================
# DOMAIN EXCEPTIONS
# ============================================================================

class SmartParkError(Exception):
    """Base class for SmartPark errors"""
    pass


class SlotUnavailableError(SmartParkError):
    """Raised when a slot cannot be locked"""

    def __init__(self, slot_id: str, reason: str = "Slot is not available"):
        super().__init__(f"{reason}: {slot_id}")
        self.slot_id = slot_id
        self.reason = reason


class InvalidTransitionError(SmartParkError, ValueError):
    """Raised when a lifecycle transition is not allowed from the current state"""
    pass


# ============================================================================
# DOMAIN PRIMITIVES / VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Money:
    """
    Value Object: Monetary amount with currency
    Amounts are kept to two decimal places
    """
    amount: Decimal
    currency: str = "USD"

    def __post_init__(self):
        object.__setattr__(self, 'amount', round_money(self.amount))

        if self.amount < Decimal('0'):
            raise ValueError("Money amount cannot be negative")

        if len(self.currency) != 3:
            raise ValueError(f"Currency must be 3-letter code: {self.currency}")

    def __mul__(self, multiplier: Any) -> 'Money':
        """Multiply money by a non-negative number"""
        multiplier = to_decimal(multiplier)
        if multiplier < Decimal('0'):
            raise ValueError("Multiplier cannot be negative")
        return Money(self.amount * multiplier, self.currency)

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def format(self) -> str:
        """Format money for display"""
        return f"${self.amount:.2f}"

    def __str__(self) -> str:
        return self.format()

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": str(self.amount), "currency": self.currency}


@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: Booking window
    The end must be strictly after the start
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def duration_minutes(self) -> int:
        """Whole minutes in the window (partial minutes are dropped)"""
        return int(self.duration.total_seconds() // 60)

    def billing_units(self, unit_minutes: int) -> int:
        """Number of billing units, rounded up, never less than one"""
        return max(1, math.ceil(self.duration_minutes() / unit_minutes))

    def ended_before(self, moment: datetime) -> bool:
        return self.end_time < moment

    def __str__(self) -> str:
        return f"{self.start_time:%Y-%m-%d %H:%M} - {self.end_time:%Y-%m-%d %H:%M}"


@dataclass(frozen=True)
class ChargingMode:
    """Value Object: A charging mode offered by charging slots (e.g. normal, fast)"""
    mode_id: str
    mode_type: str
    price_per_kwh: Decimal
    speed_kw: Decimal

    def __post_init__(self):
        if not self.mode_type or not self.mode_type.strip():
            raise ValueError("Charging mode type cannot be blank")
        object.__setattr__(self, 'price_per_kwh', to_decimal(self.price_per_kwh))
        object.__setattr__(self, 'speed_kw', to_decimal(self.speed_kw))
        if self.price_per_kwh <= Decimal('0'):
            raise ValueError("Price per kWh must be positive")

    def matches(self, mode_type: str) -> bool:
        return self.mode_type.strip().lower() == (mode_type or "").strip().lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode_id": self.mode_id,
            "mode_type": self.mode_type,
            "price_per_kwh": str(self.price_per_kwh),
            "speed_kw": str(self.speed_kw),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChargingMode':
        return cls(
            mode_id=data["mode_id"],
            mode_type=data["mode_type"],
            price_per_kwh=to_decimal(data["price_per_kwh"]),
            speed_kw=to_decimal(data["speed_kw"]),
        )


# ============================================================================
# ENUMS
# ============================================================================

class SlotKind(Enum):
    PARKING = "parking"
    CHARGING = "charging"


class ChargingSlotStatus(Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    FAULTY = "faulty"


class StationStatus(Enum):
    ACTIVE = "active"
    OUT_OF_SERVICE = "out_of_service"


class ReservationStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in (ReservationStatus.CANCELLED, ReservationStatus.EXPIRED)


class SessionStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class PaymentStatus(Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class PaymentMethod(Enum):
    """Closed set of payment methods accepted by the engines"""
    CREDIT_CARD = "Credit Card"
    MOBILE_WALLET = "Mobile Wallet"
    PAYPAL = "PayPal"

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional['PaymentMethod']:
        """Case-insensitive lookup by display name or member name; None when unknown"""
        if not name:
            return None
        key = name.strip().lower()
        for method in cls:
            if key in (method.value.lower(), method.name.lower()):
                return method
        return None


class BookingKind(Enum):
    RESERVATION = "reservation"
    CHARGING_SESSION = "charging_session"


# ============================================================================
# BASE ENTITY
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    id_prefix = "ID"

    def __init__(self, id: Optional[str] = None):
        self._id = id or new_id(self.id_prefix)

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


# ============================================================================
# USERS
# ============================================================================

class User(Entity):
    """Entity: A registered customer"""

    id_prefix = "U"

    def __init__(
        self,
        name: str,
        email: str,
        password: str,
        phone: str = "",
        reservation_ids: Optional[List[str]] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        if not name or not name.strip():
            raise ValueError("User name cannot be blank")
        if not email or "@" not in email:
            raise ValueError(f"Invalid email address: {email}")
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone
        self.password = password
        self.reservation_ids: List[str] = list(reservation_ids or [])

    def check_credentials(self, email: str, password: str) -> bool:
        """Simple credential check; email is compared case-insensitively"""
        if (email or "").strip().lower() != self.email.lower():
            return False
        return hmac.compare_digest((password or "").encode(), self.password.encode())

    def add_reservation(self, reservation_id: str) -> None:
        if reservation_id not in self.reservation_ids:
            self.reservation_ids.append(reservation_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "reservation_ids": list(self.reservation_ids),
        }


# ============================================================================
# SLOTS
# ============================================================================

class Slot(Entity, ABC):
    """
    Base class for bookable units.
    A slot is owned by exactly one lot or station.
    """

    kind: SlotKind

    def __init__(self, label: str, id: Optional[str] = None):
        super().__init__(id)
        self.label = label

    @property
    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def lock(self) -> None:
        """Mark the slot occupied; raises SlotUnavailableError if it cannot be taken"""
        pass

    @abstractmethod
    def release(self) -> bool:
        """Make the slot bookable again. Returns True if the state changed."""
        pass


class ParkingSlot(Slot):
    """Entity: A parking space billed per hour"""

    kind = SlotKind.PARKING
    id_prefix = "S"

    def __init__(
        self,
        label: str,
        slot_type: str,
        price_per_hour: Money,
        available: bool = True,
        id: Optional[str] = None
    ):
        super().__init__(label, id)
        self.slot_type = slot_type
        self.price_per_hour = price_per_hour
        self.available = available

    @property
    def is_available(self) -> bool:
        return self.available

    def lock(self) -> None:
        if not self.available:
            raise SlotUnavailableError(self.id)
        self.available = False

    def release(self) -> bool:
        if self.available:
            return False
        self.available = True
        return True

    def __str__(self) -> str:
        state = "available" if self.available else "occupied"
        return f"{self.id} [{self.label}] {self.slot_type} {self.price_per_hour}/h ({state})"


class ChargingSlot(Slot):
    """Entity: A charging point supporting one or more charging modes"""

    kind = SlotKind.CHARGING
    id_prefix = "CS"

    def __init__(
        self,
        label: str,
        supported_modes: Optional[List[ChargingMode]] = None,
        status: ChargingSlotStatus = ChargingSlotStatus.AVAILABLE,
        id: Optional[str] = None
    ):
        super().__init__(label, id)
        self.supported_modes: List[ChargingMode] = list(supported_modes or [])
        self.status = status

    @property
    def is_available(self) -> bool:
        return self.status is ChargingSlotStatus.AVAILABLE

    def supports(self, mode_type: str) -> bool:
        return self.find_mode(mode_type) is not None

    def find_mode(self, mode_type: str) -> Optional[ChargingMode]:
        for mode in self.supported_modes:
            if mode.matches(mode_type):
                return mode
        return None

    def lock(self) -> None:
        if not self.is_available:
            raise SlotUnavailableError(self.id, f"Charging slot is {self.status.value}")
        self.status = ChargingSlotStatus.OCCUPIED

    def release(self) -> bool:
        # A faulty slot stays out of service until maintenance resets it
        if self.status in (ChargingSlotStatus.AVAILABLE, ChargingSlotStatus.FAULTY):
            return False
        self.status = ChargingSlotStatus.AVAILABLE
        return True

    def mark_faulty(self) -> None:
        self.status = ChargingSlotStatus.FAULTY

    def __str__(self) -> str:
        modes = ", ".join(m.mode_type for m in self.supported_modes) or "none"
        return f"{self.id} [{self.label}] modes: {modes} ({self.status.value})"


# ============================================================================
# BOOKINGS
# ============================================================================

class Reservation(Entity):
    """
    Entity: A claim on a parking slot for a time window

    Pending -> Confirmed -> Cancelled | Expired
    """

    id_prefix = "RES"

    def __init__(
        self,
        user_id: str,
        slot_id: str,
        time_range: TimeRange,
        total_cost: Money,
        status: ReservationStatus = ReservationStatus.PENDING,
        payment_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        closed_at: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.user_id = user_id
        self.slot_id = slot_id
        self.time_range = time_range
        self.total_cost = total_cost
        self.status = status
        self.payment_id = payment_id
        self.created_at = created_at
        self.closed_at = closed_at

    @property
    def start_time(self) -> datetime:
        return self.time_range.start_time

    @property
    def end_time(self) -> datetime:
        return self.time_range.end_time

    @property
    def is_active(self) -> bool:
        return self.status is ReservationStatus.CONFIRMED

    def confirm(self, payment_id: str) -> None:
        if self.status is not ReservationStatus.PENDING:
            raise InvalidTransitionError(f"Cannot confirm a {self.status.value} reservation")
        self.payment_id = payment_id
        self.status = ReservationStatus.CONFIRMED

    def cancel(self, now: datetime) -> None:
        if self.status.is_terminal:
            raise InvalidTransitionError(f"Cannot cancel a {self.status.value} reservation")
        self.status = ReservationStatus.CANCELLED
        self.closed_at = now

    def expire(self, now: datetime) -> None:
        if not self.is_active:
            raise InvalidTransitionError(f"Cannot expire a {self.status.value} reservation")
        self.status = ReservationStatus.EXPIRED
        self.closed_at = now

    def is_overdue(self, now: datetime) -> bool:
        return self.is_active and self.time_range.ended_before(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "slot_id": self.slot_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status.value,
            "total_cost": str(self.total_cost.amount),
            "payment_id": self.payment_id,
        }


class ChargingSession(Entity):
    """
    Entity: A charging claim billed by energy

    The session is opened before a slot is chosen; slot, mode and price
    are attached when the charge is paid. Energy and the final amount
    are computed once, when the session ends.
    """

    id_prefix = "CHG"

    def __init__(
        self,
        user_id: str,
        start_time: datetime,
        slot_id: Optional[str] = None,
        mode_type: Optional[str] = None,
        price_per_unit: Decimal = Decimal('0'),
        end_time: Optional[datetime] = None,
        scheduled_end_time: Optional[datetime] = None,
        energy_used_kwh: Optional[Decimal] = None,
        total_amount: Decimal = Decimal('0'),
        status: SessionStatus = SessionStatus.ACTIVE,
        payment_id: Optional[str] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.user_id = user_id
        self.start_time = start_time
        self.slot_id = slot_id
        self.mode_type = mode_type
        self.price_per_unit = to_decimal(price_per_unit)
        self.end_time = end_time
        self.scheduled_end_time = scheduled_end_time
        self.energy_used_kwh = None if energy_used_kwh is None else to_decimal(energy_used_kwh)
        self.total_amount = to_decimal(total_amount)
        self.status = status
        self.payment_id = payment_id

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def attach_payment(
        self,
        slot_id: str,
        mode_type: str,
        price_per_unit: Decimal,
        amount: Decimal,
        payment_id: str,
        default_duration: timedelta
    ) -> None:
        """Lock in slot, mode and price after a successful payment"""
        if not self.is_active:
            raise InvalidTransitionError(f"Cannot pay for a {self.status.value} session")
        if self.payment_id is not None:
            raise InvalidTransitionError(f"Session {self.id} is already paid")
        self.slot_id = slot_id
        self.mode_type = mode_type
        self.price_per_unit = to_decimal(price_per_unit)
        self.total_amount = round_money(amount)
        self.payment_id = payment_id
        if self.scheduled_end_time is None:
            self.scheduled_end_time = self.start_time + default_duration

    def elapsed_minutes(self, now: datetime) -> int:
        return max(0, int((now - self.start_time).total_seconds() // 60))

    def complete(
        self,
        now: datetime,
        energy_per_minute_kwh: Decimal,
        energy_used_kwh: Optional[Decimal] = None
    ) -> None:
        """
        End the session.

        Explicit consumption wins over derived consumption; energy already on
        record is never recomputed, and the amount is only derived when it is
        still zero.
        """
        if not self.is_active:
            raise InvalidTransitionError(f"Cannot stop a {self.status.value} session")
        self.end_time = now
        if energy_used_kwh is not None:
            self.energy_used_kwh = round_money(energy_used_kwh)
        elif self.energy_used_kwh is None:
            derived = self.elapsed_minutes(now) * to_decimal(energy_per_minute_kwh)
            self.energy_used_kwh = round_money(derived)
        if self.total_amount == Decimal('0'):
            self.total_amount = round_money(self.price_per_unit * self.energy_used_kwh)
        self.status = SessionStatus.COMPLETED

    def cancel(self, now: datetime) -> None:
        if not self.is_active:
            raise InvalidTransitionError(f"Cannot cancel a {self.status.value} session")
        self.end_time = now
        self.status = SessionStatus.CANCELLED

    def is_overdue(self, now: datetime) -> bool:
        return (
            self.is_active
            and self.scheduled_end_time is not None
            and self.scheduled_end_time < now
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "slot_id": self.slot_id,
            "mode_type": self.mode_type,
            "price_per_unit": str(self.price_per_unit),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "scheduled_end_time": (
                self.scheduled_end_time.isoformat() if self.scheduled_end_time else None
            ),
            "energy_used_kwh": (
                str(self.energy_used_kwh) if self.energy_used_kwh is not None else None
            ),
            "total_amount": str(self.total_amount),
            "status": self.status.value,
        }


# ============================================================================
# PAYMENTS
# ============================================================================

class Payment(Entity):
    """
    Entity: The settlement of a booking attempt

    Immutable once recorded, except for Success -> Refunded.
    """

    id_prefix = "PAY"

    def __init__(
        self,
        amount: Money,
        method: str,
        status: PaymentStatus,
        timestamp: datetime,
        booking_id: Optional[str] = None,
        booking_kind: Optional[BookingKind] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.amount = amount
        self.method = method
        self.status = status
        self.timestamp = timestamp
        self.booking_id = booking_id
        self.booking_kind = booking_kind

    @classmethod
    def record(
        cls,
        amount: Money,
        method: str,
        succeeded: bool,
        now: datetime,
        booking_id: Optional[str] = None,
        booking_kind: Optional[BookingKind] = None
    ) -> 'Payment':
        status = PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED
        return cls(amount, method, status, now, booking_id, booking_kind)

    @property
    def succeeded(self) -> bool:
        return self.status is PaymentStatus.SUCCESS

    def refund(self) -> None:
        if self.status is not PaymentStatus.SUCCESS:
            raise InvalidTransitionError(f"Cannot refund a {self.status.value} payment")
        self.status = PaymentStatus.REFUNDED

    def generate_receipt(self) -> str:
        return (
            f"Receipt --- PaymentId: {self.id} | Amount: {self.amount} | "
            f"Method: {self.method} | Time: {self.timestamp:%Y-%m-%d %H:%M:%S} | "
            f"Status: {self.status.value}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": str(self.amount.amount),
            "currency": self.amount.currency,
            "method": self.method,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "booking_id": self.booking_id,
            "booking_kind": self.booking_kind.value if self.booking_kind else None,
        }


class SimulatedPaymentGateway(Entity):
    """
    Entity: Pass/fail transaction authority used by payment strategies.
    No network calls; an inactive gateway declines everything.
    """

    id_prefix = "GW"

    def __init__(
        self,
        name: str = "Default Gateway",
        provider: str = "Simulated",
        status: str = "Active",
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.name = name
        self.provider = provider
        self.status = status

    @property
    def is_active(self) -> bool:
        return self.status == "Active"

    def connect(self) -> None:
        self.status = "Active"

    def disconnect(self) -> None:
        self.status = "Inactive"

    def process_transaction(self, amount: Money) -> bool:
        return self.is_active and amount.is_positive


# ============================================================================
# DOMAIN EVENTS
# ============================================================================

class DomainEvent(ABC):
    """
    Base class for all domain events
    Events represent something that happened in the domain
    """

    def __init__(self, timestamp: Optional[datetime] = None):
        self.event_id = str(uuid.uuid4())
        self.timestamp = timestamp or datetime.now()

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        pass

    def __str__(self) -> str:
        return f"{self.__class__.__name__} at {self.timestamp}"


class SlotLockedEvent(DomainEvent):
    """Event raised when a slot becomes occupied"""

    def __init__(self, owner_id: str, slot_id: str, timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.owner_id = owner_id
        self.slot_id = slot_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": "slot.locked",
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "data": {"owner_id": self.owner_id, "slot_id": self.slot_id},
        }


class SlotReleasedEvent(DomainEvent):
    """Event raised when a slot becomes bookable again"""

    def __init__(self, owner_id: str, slot_id: str, timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.owner_id = owner_id
        self.slot_id = slot_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": "slot.released",
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "data": {"owner_id": self.owner_id, "slot_id": self.slot_id},
        }
