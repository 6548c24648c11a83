# File: src/smartpark/application/commands.py
"""
Command Pattern Implementation for the SmartPark booking engine

Booking operations wrapped as first-class objects that can be validated,
executed, undone and kept in a history.

Command Types:
1. MakeReservationCommand - book a parking slot (undo = cancel)
2. CancelReservationCommand - cancel a booking
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
import logging
import uuid

from .dtos import FailureCode, OperationResult, ReservationRequestDTO

if TYPE_CHECKING:
    from .parking_service import ParkingService


# ============================================================================
# COMMAND RESULTS
# ============================================================================

@dataclass
class CommandResult:
    """Outcome of executing or undoing a command"""
    success: bool
    command_id: str
    command_type: str
    executed_at: datetime
    data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    code: Optional[FailureCode] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "command_id": self.command_id,
            "command_type": self.command_type,
            "executed_at": self.executed_at.isoformat(),
            "data": self.data,
            "error_message": self.error_message,
            "code": self.code.value if self.code else None,
            "metadata": self.metadata,
        }


# ============================================================================
# COMMAND INTERFACES AND BASE CLASSES
# ============================================================================

class Command(ABC):
    """
    Abstract base class for all commands

    A command represents an intent to change the system state.
    """

    def __init__(self, executed_by: Optional[str] = None, command_id: Optional[str] = None):
        self.command_id = command_id or str(uuid.uuid4())
        self.executed_at: Optional[datetime] = None
        self.executed_by = executed_by or "system"
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def execute(self, service: 'ParkingService') -> CommandResult:
        pass

    @abstractmethod
    def validate(self) -> Tuple[bool, List[str]]:
        """Returns: (is_valid, error_messages)"""
        pass

    def can_undo(self) -> bool:
        return False

    def undo(self, service: 'ParkingService') -> CommandResult:
        return self._result(
            service, False, error_message=f"{self.__class__.__name__} does not support undo"
        )

    def get_description(self) -> str:
        return self.__class__.__name__.replace("Command", "")

    def _result(
        self,
        service: 'ParkingService',
        success: bool,
        outcome: Optional[OperationResult] = None,
        data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        code: Optional[FailureCode] = None
    ) -> CommandResult:
        if outcome is not None:
            error_message = error_message or (None if outcome.success else outcome.message)
            code = code or outcome.code
        return CommandResult(
            success=success,
            command_id=self.command_id,
            command_type=self.__class__.__name__,
            executed_at=self.executed_at or service.clock.now(),
            data=data,
            error_message=error_message,
            code=code,
            metadata={"executed_by": self.executed_by},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command_id": self.command_id,
            "command_type": self.__class__.__name__,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "executed_by": self.executed_by,
        }


# ============================================================================
# RESERVATION COMMANDS
# ============================================================================

class MakeReservationCommand(Command):
    """
    Command: Make a parking reservation
    Can be undone by cancelling the reservation it created
    """

    def __init__(self, request: ReservationRequestDTO, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.request = request
        self.reservation_id: Optional[str] = None

    def validate(self) -> Tuple[bool, List[str]]:
        errors = []
        if self.request.end_time <= self.request.start_time:
            errors.append("End time must be after start time.")
        return len(errors) == 0, errors

    def execute(self, service: 'ParkingService') -> CommandResult:
        self.logger.info(f"Executing MakeReservationCommand for slot {self.request.slot_id}")
        is_valid, errors = self.validate()
        if not is_valid:
            return self._result(
                service, False, error_message="; ".join(errors), code=FailureCode.INVALID_WINDOW
            )

        outcome = service.reservations.submit(self.request)
        self.executed_at = service.clock.now()
        if not outcome.success:
            return self._result(service, False, outcome)

        self.reservation_id = outcome.reservation.id
        return self._result(service, True, outcome, data={
            "reservation": outcome.reservation.to_dict(),
            "payment": outcome.payment.to_dict(),
        })

    def can_undo(self) -> bool:
        return self.reservation_id is not None

    def undo(self, service: 'ParkingService') -> CommandResult:
        if not self.can_undo():
            return super().undo(service)
        outcome = service.reservations.cancel_reservation(self.reservation_id)
        data = {"reservation_id": self.reservation_id}
        return self._result(service, outcome.success, outcome, data=data)

    def get_description(self) -> str:
        return f"Reserve {self.request.slot_id} for {self.request.user_id}"


class CancelReservationCommand(Command):
    """Command: Cancel a parking reservation"""

    def __init__(self, reservation_id: str, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.reservation_id = reservation_id

    def validate(self) -> Tuple[bool, List[str]]:
        if not self.reservation_id or not self.reservation_id.strip():
            return False, ["Reservation id is required."]
        return True, []

    def execute(self, service: 'ParkingService') -> CommandResult:
        self.logger.info(f"Executing CancelReservationCommand for {self.reservation_id}")
        is_valid, errors = self.validate()
        if not is_valid:
            return self._result(
                service, False, error_message="; ".join(errors), code=FailureCode.MISSING_FIELD
            )

        outcome = service.reservations.cancel_reservation(self.reservation_id)
        self.executed_at = service.clock.now()
        data = {"reservation_id": self.reservation_id, "slot_released": outcome.slot_released}
        return self._result(service, outcome.success, outcome, data=data)

    def get_description(self) -> str:
        return f"Cancel {self.reservation_id}"


# ============================================================================
# COMMAND PROCESSOR
# ============================================================================

class CommandProcessor:
    """Executes commands and keeps the history needed for undo"""

    def __init__(self, service: 'ParkingService', max_history_size: int = 1000):
        self.service = service
        self.logger = logging.getLogger(self.__class__.__name__)
        self.command_history: List[Command] = []
        self.max_history_size = max_history_size

    def process(self, command: Command) -> CommandResult:
        self.logger.info(f"Processing command: {command.get_description()}")
        result = command.execute(self.service)
        if result.success:
            self.command_history.append(command)
            if len(self.command_history) > self.max_history_size:
                self.command_history.pop(0)
        else:
            self.logger.warning(f"Command {command.command_id} failed: {result.error_message}")
        return result

    def undo_last(self) -> Optional[CommandResult]:
        """Undo the most recent undoable command; None when there is nothing to undo"""
        for index in range(len(self.command_history) - 1, -1, -1):
            command = self.command_history[index]
            if command.can_undo():
                del self.command_history[index]
                self.logger.info(f"Undoing command: {command.get_description()}")
                return command.undo(self.service)
        return None

    def get_history(self) -> List[Dict[str, Any]]:
        return [command.to_dict() for command in self.command_history]
