# File: src/smartpark/application/dtos.py
"""
Data Transfer Objects (DTOs) for the SmartPark booking engine

This module defines:
1. Failure taxonomy - FailureCode values grouped into ErrorKind
2. Input DTOs - validated booking requests (and a builder for them)
3. Result DTOs - one success/failure result type per engine operation

Expected business outcomes (not found, bad input, conflicts, declined
payments) are reported through result objects. Only persistence faults
travel as exceptions.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.models import ChargingSession, Money, Payment, Reservation


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO carrying the shared pydantic configuration"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


# ============================================================================
# FAILURE TAXONOMY
# ============================================================================

class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"
    PAYMENT_REJECTED = "payment_rejected"


class FailureCode(str, Enum):
    """Reason codes carried by failed results"""
    USER_NOT_FOUND = "user_not_found"
    SLOT_NOT_FOUND = "slot_not_found"
    RESERVATION_NOT_FOUND = "reservation_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"
    MODE_NOT_AVAILABLE = "mode_not_available"

    INVALID_WINDOW = "invalid_window"
    INVALID_AMOUNT = "invalid_amount"
    MISSING_FIELD = "missing_field"
    UNKNOWN_PAYMENT_METHOD = "unknown_payment_method"

    SLOT_UNAVAILABLE = "slot_unavailable"
    ALREADY_CANCELLED = "already_cancelled"
    RESERVATION_EXPIRED = "reservation_expired"
    ALREADY_ENDED = "already_ended"
    ALREADY_PAID = "already_paid"
    ALREADY_REFUNDED = "already_refunded"

    PAYMENT_FAILED = "payment_failed"
    PAYMENT_DENIED = "payment_denied"

    @property
    def kind(self) -> ErrorKind:
        return _FAILURE_KINDS[self]


_FAILURE_KINDS = {
    FailureCode.USER_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureCode.SLOT_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureCode.RESERVATION_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureCode.SESSION_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureCode.PAYMENT_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureCode.MODE_NOT_AVAILABLE: ErrorKind.NOT_FOUND,
    FailureCode.INVALID_WINDOW: ErrorKind.INVALID_INPUT,
    FailureCode.INVALID_AMOUNT: ErrorKind.INVALID_INPUT,
    FailureCode.MISSING_FIELD: ErrorKind.INVALID_INPUT,
    FailureCode.UNKNOWN_PAYMENT_METHOD: ErrorKind.INVALID_INPUT,
    FailureCode.SLOT_UNAVAILABLE: ErrorKind.CONFLICT,
    FailureCode.ALREADY_CANCELLED: ErrorKind.CONFLICT,
    FailureCode.RESERVATION_EXPIRED: ErrorKind.CONFLICT,
    FailureCode.ALREADY_ENDED: ErrorKind.CONFLICT,
    FailureCode.ALREADY_PAID: ErrorKind.CONFLICT,
    FailureCode.ALREADY_REFUNDED: ErrorKind.CONFLICT,
    FailureCode.PAYMENT_FAILED: ErrorKind.PAYMENT_REJECTED,
    FailureCode.PAYMENT_DENIED: ErrorKind.PAYMENT_REJECTED,
}


# ============================================================================
# INPUT DTOs
# ============================================================================

class ReservationRequestDTO(BaseDTO):
    """Input DTO for a parking reservation"""
    user_id: str = Field(..., description="Customer making the booking")
    slot_id: str = Field(..., description="Parking slot to reserve")
    start_time: datetime
    end_time: datetime
    payment_method: Optional[str] = Field(default=None, description="Blank means the default method")

    @field_validator('user_id', 'slot_id')
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator('payment_method')
    @classmethod
    def normalize_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class ReservationRequestBuilder:
    """
    Step-by-step construction of a ReservationRequestDTO.
    build() raises ValueError naming the first missing field.
    """

    def __init__(self, default_payment_method: str = "Credit Card"):
        self._data: Dict[str, Any] = {}
        self._default_payment_method = default_payment_method

    def user(self, user_id: str) -> 'ReservationRequestBuilder':
        self._data["user_id"] = user_id
        return self

    def slot(self, slot_id: str) -> 'ReservationRequestBuilder':
        self._data["slot_id"] = slot_id
        return self

    def window(self, start_time: datetime, end_time: datetime) -> 'ReservationRequestBuilder':
        self._data["start_time"] = start_time
        self._data["end_time"] = end_time
        return self

    def payment_method(self, name: Optional[str]) -> 'ReservationRequestBuilder':
        self._data["payment_method"] = name
        return self

    def build(self) -> ReservationRequestDTO:
        for required in ("user_id", "slot_id", "start_time", "end_time"):
            value = self._data.get(required)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValueError(f"{required} is required")
        data = dict(self._data)
        if not (data.get("payment_method") or "").strip():
            data["payment_method"] = self._default_payment_method
        return ReservationRequestDTO(**data)


class ChargingPaymentRequestDTO(BaseDTO):
    """Input DTO for paying a charging session"""
    method: Optional[str] = None
    amount: Decimal
    session_id: str
    slot_id: str
    mode_type: str
    price_per_unit: Decimal

    @field_validator('session_id', 'slot_id', 'mode_type')
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


# ============================================================================
# RESULT DTOs
# ============================================================================

class OperationResult(BaseDTO):
    """Tagged success/failure outcome of one engine operation"""
    success: bool
    code: Optional[FailureCode] = None
    message: str = ""

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.code.kind if self.code else None

    @classmethod
    def ok(cls, message: str = "", **payload):
        return cls(success=True, message=message, **payload)

    @classmethod
    def fail(cls, code: FailureCode, message: str, **payload):
        return cls(success=False, code=code, message=message, **payload)

    def __bool__(self) -> bool:
        return self.success


class ReservationResult(OperationResult):
    reservation: Optional[Reservation] = None
    payment: Optional[Payment] = None


class CancellationResult(OperationResult):
    reservation: Optional[Reservation] = None
    slot_released: bool = False


class RefundResult(OperationResult):
    payment: Optional[Payment] = None


class StartChargingResult(OperationResult):
    session: Optional[ChargingSession] = None


class ModeSelectionResult(OperationResult):
    mode_type: Optional[str] = None
    price_per_kwh: Optional[Decimal] = None
    speed_kw: Optional[Decimal] = None
    station_id: Optional[str] = None
    slot_id: Optional[str] = None


class EstimateResult(OperationResult):
    amount: Optional[Money] = None


class ChargingPaymentResult(OperationResult):
    payment: Optional[Payment] = None
    session: Optional[ChargingSession] = None
    receipt: Optional[str] = None
    reward_message: Optional[str] = None
    reward_points: int = 0


class StopChargingResult(OperationResult):
    session: Optional[ChargingSession] = None
    end_time: Optional[datetime] = None
    energy_used_kwh: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None


class SweepReport(BaseDTO):
    """Outcome of one expiration sweep"""
    swept_at: datetime
    released: int = 0
    expired_reservation_ids: List[str] = Field(default_factory=list)
    completed_session_ids: List[str] = Field(default_factory=list)

    @property
    def terminated(self) -> int:
        return len(self.expired_reservation_ids) + len(self.completed_session_ids)
