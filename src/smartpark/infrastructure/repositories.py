# File: src/smartpark/infrastructure/repositories.py
"""
Persistence Gateway for the SmartPark booking engine

The engines read and write users, lots, stations, reservations, charging
sessions and payments only through the PersistenceGateway contract:
- find_* operations return None / [] when nothing matches
- save_* operations upsert by identity
- every implementation hands out independent copies, so a change made
  by a caller is visible to others only after it has been saved

Storage Implementations:
- InMemoryPersistenceGateway - for tests and the demo
- SQLAlchemyPersistenceGateway - for relational databases (sqlite by default)

Storage failures surface as PersistenceError and are never masked.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from typing import Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar
import copy
import logging

from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean, DateTime, DECIMAL, JSON,
    func, select, delete,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..domain.aggregates import ChargingStation, ParkingLot
from ..domain.models import (
    SmartParkError, User, ParkingSlot, ChargingSlot, ChargingMode, Reservation,
    ChargingSession, Payment, SimulatedPaymentGateway, Money, TimeRange,
    ReservationStatus, SessionStatus, PaymentStatus, ChargingSlotStatus,
    StationStatus, BookingKind,
)

T = TypeVar('T')


class PersistenceError(SmartParkError):
    """The underlying store is unavailable or corrupt"""
    pass


# ============================================================================
# GATEWAY CONTRACT
# ============================================================================

class PersistenceGateway(ABC):
    """Durable store consumed by the engines"""

    # Users
    @abstractmethod
    def find_user_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def find_all_users(self) -> List[User]:
        pass

    @abstractmethod
    def save_user(self, user: User) -> None:
        pass

    # Lots (own parking slots)
    @abstractmethod
    def find_all_lots(self) -> List[ParkingLot]:
        pass

    @abstractmethod
    def find_lot_by_id(self, lot_id: str) -> Optional[ParkingLot]:
        pass

    @abstractmethod
    def save_lot(self, lot: ParkingLot) -> None:
        pass

    # Reservations
    @abstractmethod
    def find_reservation_by_id(self, reservation_id: str) -> Optional[Reservation]:
        pass

    @abstractmethod
    def find_all_reservations(self) -> List[Reservation]:
        pass

    @abstractmethod
    def find_reservations_by_user(self, user_id: str) -> List[Reservation]:
        pass

    @abstractmethod
    def save_reservation(self, reservation: Reservation) -> None:
        pass

    # Payments
    @abstractmethod
    def find_payment_by_id(self, payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    def find_all_payments(self) -> List[Payment]:
        pass

    @abstractmethod
    def save_payment(self, payment: Payment) -> None:
        pass

    # Charging modes
    @abstractmethod
    def find_all_charging_modes(self) -> List[ChargingMode]:
        pass

    @abstractmethod
    def save_charging_mode(self, mode: ChargingMode) -> None:
        pass

    # Stations (own charging slots)
    @abstractmethod
    def find_all_stations(self) -> List[ChargingStation]:
        pass

    @abstractmethod
    def find_station_by_id(self, station_id: str) -> Optional[ChargingStation]:
        pass

    @abstractmethod
    def save_station(self, station: ChargingStation) -> None:
        pass

    # Charging sessions
    @abstractmethod
    def find_session_by_id(self, session_id: str) -> Optional[ChargingSession]:
        pass

    @abstractmethod
    def find_all_sessions(self) -> List[ChargingSession]:
        pass

    @abstractmethod
    def find_sessions_by_user(self, user_id: str) -> List[ChargingSession]:
        pass

    @abstractmethod
    def save_session(self, session: ChargingSession) -> None:
        pass

    # Payment gateway
    @abstractmethod
    def get_default_payment_gateway(self) -> SimulatedPaymentGateway:
        pass

    @abstractmethod
    def save_payment_gateway(self, gateway: SimulatedPaymentGateway) -> None:
        pass

    def is_empty(self) -> bool:
        return not self.find_all_users() and not self.find_all_lots()


# ============================================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================================

class InMemoryRepository(Generic[T]):
    """Insertion-ordered store of deep copies keyed by entity id"""

    def __init__(self, key: Callable[[T], str] = lambda entity: entity.id):
        self._storage: Dict[str, T] = {}
        self._key = key
        self._logger = logging.getLogger(self.__class__.__name__)

    def save(self, entity: T) -> None:
        entity_id = self._key(entity)
        self._storage[entity_id] = copy.deepcopy(entity)
        self._logger.debug(f"Saved {type(entity).__name__} {entity_id}")

    def get(self, entity_id: str) -> Optional[T]:
        entity = self._storage.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    def get_all(self) -> List[T]:
        return [copy.deepcopy(entity) for entity in self._storage.values()]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [copy.deepcopy(e) for e in self._storage.values() if predicate(e)]

    def count(self) -> int:
        return len(self._storage)

    def clear(self):
        """Clear all data (for testing)"""
        self._storage.clear()


class InMemoryPersistenceGateway(PersistenceGateway):
    """Gateway backed by process memory"""

    def __init__(self):
        self.users: InMemoryRepository[User] = InMemoryRepository()
        self.lots: InMemoryRepository[ParkingLot] = InMemoryRepository()
        self.stations: InMemoryRepository[ChargingStation] = InMemoryRepository()
        self.modes: InMemoryRepository[ChargingMode] = InMemoryRepository(lambda m: m.mode_id)
        self.reservations: InMemoryRepository[Reservation] = InMemoryRepository()
        self.sessions: InMemoryRepository[ChargingSession] = InMemoryRepository()
        self.payments: InMemoryRepository[Payment] = InMemoryRepository()
        self.gateways: InMemoryRepository[SimulatedPaymentGateway] = InMemoryRepository()

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        key = (email or "").strip().lower()
        matches = self.users.find(lambda u: u.email.lower() == key)
        return matches[0] if matches else None

    def find_all_users(self) -> List[User]:
        return self.users.get_all()

    def save_user(self, user: User) -> None:
        self.users.save(user)

    def find_all_lots(self) -> List[ParkingLot]:
        return self.lots.get_all()

    def find_lot_by_id(self, lot_id: str) -> Optional[ParkingLot]:
        return self.lots.get(lot_id)

    def save_lot(self, lot: ParkingLot) -> None:
        self.lots.save(lot)

    def find_reservation_by_id(self, reservation_id: str) -> Optional[Reservation]:
        return self.reservations.get(reservation_id)

    def find_all_reservations(self) -> List[Reservation]:
        return self.reservations.get_all()

    def find_reservations_by_user(self, user_id: str) -> List[Reservation]:
        return self.reservations.find(lambda r: r.user_id == user_id)

    def save_reservation(self, reservation: Reservation) -> None:
        self.reservations.save(reservation)

    def find_payment_by_id(self, payment_id: str) -> Optional[Payment]:
        return self.payments.get(payment_id)

    def find_all_payments(self) -> List[Payment]:
        return self.payments.get_all()

    def save_payment(self, payment: Payment) -> None:
        self.payments.save(payment)

    def find_all_charging_modes(self) -> List[ChargingMode]:
        return self.modes.get_all()

    def save_charging_mode(self, mode: ChargingMode) -> None:
        self.modes.save(mode)

    def find_all_stations(self) -> List[ChargingStation]:
        return self.stations.get_all()

    def find_station_by_id(self, station_id: str) -> Optional[ChargingStation]:
        return self.stations.get(station_id)

    def save_station(self, station: ChargingStation) -> None:
        self.stations.save(station)

    def find_session_by_id(self, session_id: str) -> Optional[ChargingSession]:
        return self.sessions.get(session_id)

    def find_all_sessions(self) -> List[ChargingSession]:
        return self.sessions.get_all()

    def find_sessions_by_user(self, user_id: str) -> List[ChargingSession]:
        return self.sessions.find(lambda s: s.user_id == user_id)

    def save_session(self, session: ChargingSession) -> None:
        self.sessions.save(session)

    def get_default_payment_gateway(self) -> SimulatedPaymentGateway:
        gateways = self.gateways.get_all()
        if gateways:
            return gateways[0]
        gateway = SimulatedPaymentGateway()
        self.gateways.save(gateway)
        return gateway

    def save_payment_gateway(self, gateway: SimulatedPaymentGateway) -> None:
        self.gateways.save(gateway)


# ============================================================================
# SQLALCHEMY MODELS
# ============================================================================

Base = declarative_base()


class UserModel(Base):
    """SQLAlchemy model for User"""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False, index=True, unique=True)
    phone = Column(String(30))
    password = Column(String(128), nullable=False)
    reservation_ids = Column(JSON, default=list)


class ParkingLotModel(Base):
    """SQLAlchemy model for ParkingLot"""
    __tablename__ = 'parking_lots'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    address = Column(String(200))
    version = Column(Integer, default=1)


class ParkingSlotModel(Base):
    """SQLAlchemy model for ParkingSlot"""
    __tablename__ = 'parking_slots'

    id = Column(String(36), primary_key=True)
    lot_id = Column(String(36), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    label = Column(String(20), nullable=False)
    slot_type = Column(String(30), nullable=False)
    price_per_hour = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), default='USD')
    available = Column(Boolean, default=True)


class ChargingStationModel(Base):
    """SQLAlchemy model for ChargingStation"""
    __tablename__ = 'charging_stations'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    location = Column(String(200))
    status = Column(String(20), nullable=False)
    version = Column(Integer, default=1)


class ChargingSlotModel(Base):
    """SQLAlchemy model for ChargingSlot; supported modes are embedded as JSON"""
    __tablename__ = 'charging_slots'

    id = Column(String(36), primary_key=True)
    station_id = Column(String(36), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    label = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    modes = Column(JSON, default=list)


class ChargingModeModel(Base):
    """SQLAlchemy model for ChargingMode"""
    __tablename__ = 'charging_modes'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    mode_type = Column(String(20), nullable=False)
    price_per_kwh = Column(DECIMAL(10, 2), nullable=False)
    speed_kw = Column(DECIMAL(10, 2), nullable=False)


class ReservationModel(Base):
    """SQLAlchemy model for Reservation"""
    __tablename__ = 'reservations'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    slot_id = Column(String(36), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False)
    total_cost = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), default='USD')
    payment_id = Column(String(36))
    created_at = Column(DateTime)
    closed_at = Column(DateTime)


class ChargingSessionModel(Base):
    """SQLAlchemy model for ChargingSession"""
    __tablename__ = 'charging_sessions'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    slot_id = Column(String(36))
    mode_type = Column(String(20))
    price_per_unit = Column(DECIMAL(10, 2), default=0)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    scheduled_end_time = Column(DateTime)
    energy_used_kwh = Column(DECIMAL(10, 2))
    total_amount = Column(DECIMAL(10, 2), default=0)
    status = Column(String(20), nullable=False)
    payment_id = Column(String(36))


class PaymentModel(Base):
    """SQLAlchemy model for Payment"""
    __tablename__ = 'payments'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), default='USD')
    method = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    booking_id = Column(String(36), index=True)
    booking_kind = Column(String(20))


class PaymentGatewayModel(Base):
    """SQLAlchemy model for the simulated payment gateway"""
    __tablename__ = 'payment_gateways'

    id = Column(String(36), primary_key=True)
    seq = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    provider = Column(String(100))
    status = Column(String(20), nullable=False)


# ============================================================================
# MAPPER
# ============================================================================

def _decimal(value) -> Decimal:
    return Decimal('0') if value is None else Decimal(str(value))


class Mapper:
    """Maps between domain models and ORM models"""

    @staticmethod
    def user_to_orm(user: User) -> UserModel:
        return UserModel(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            password=user.password,
            reservation_ids=list(user.reservation_ids),
        )

    @staticmethod
    def user_to_domain(model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            email=model.email,
            phone=model.phone or "",
            password=model.password,
            reservation_ids=list(model.reservation_ids or []),
        )

    @staticmethod
    def parking_slot_to_orm(slot: ParkingSlot, lot_id: str, position: int) -> ParkingSlotModel:
        return ParkingSlotModel(
            id=slot.id,
            lot_id=lot_id,
            position=position,
            label=slot.label,
            slot_type=slot.slot_type,
            price_per_hour=slot.price_per_hour.amount,
            currency=slot.price_per_hour.currency,
            available=slot.available,
        )

    @staticmethod
    def parking_slot_to_domain(model: ParkingSlotModel) -> ParkingSlot:
        return ParkingSlot(
            id=model.id,
            label=model.label,
            slot_type=model.slot_type,
            price_per_hour=Money(_decimal(model.price_per_hour), model.currency or 'USD'),
            available=bool(model.available),
        )

    @staticmethod
    def lot_to_domain(model: ParkingLotModel, slots: List[ParkingSlotModel]) -> ParkingLot:
        lot = ParkingLot(id=model.id, name=model.name, address=model.address or "")
        for slot_model in slots:
            lot.add_slot(Mapper.parking_slot_to_domain(slot_model))
        lot._version = model.version or 1
        return lot

    @staticmethod
    def charging_slot_to_orm(slot: ChargingSlot, station_id: str, position: int) -> ChargingSlotModel:
        return ChargingSlotModel(
            id=slot.id,
            station_id=station_id,
            position=position,
            label=slot.label,
            status=slot.status.value,
            modes=[mode.to_dict() for mode in slot.supported_modes],
        )

    @staticmethod
    def charging_slot_to_domain(model: ChargingSlotModel) -> ChargingSlot:
        return ChargingSlot(
            id=model.id,
            label=model.label,
            supported_modes=[ChargingMode.from_dict(m) for m in (model.modes or [])],
            status=ChargingSlotStatus(model.status),
        )

    @staticmethod
    def station_to_domain(model: ChargingStationModel, slots: List[ChargingSlotModel]) -> ChargingStation:
        station = ChargingStation(
            id=model.id,
            name=model.name,
            location=model.location or "",
            status=StationStatus(model.status),
        )
        for slot_model in slots:
            station.add_slot(Mapper.charging_slot_to_domain(slot_model))
        station._version = model.version or 1
        return station

    @staticmethod
    def mode_to_orm(mode: ChargingMode) -> ChargingModeModel:
        return ChargingModeModel(
            id=mode.mode_id,
            mode_type=mode.mode_type,
            price_per_kwh=mode.price_per_kwh,
            speed_kw=mode.speed_kw,
        )

    @staticmethod
    def mode_to_domain(model: ChargingModeModel) -> ChargingMode:
        return ChargingMode(
            mode_id=model.id,
            mode_type=model.mode_type,
            price_per_kwh=_decimal(model.price_per_kwh),
            speed_kw=_decimal(model.speed_kw),
        )

    @staticmethod
    def reservation_to_orm(reservation: Reservation) -> ReservationModel:
        return ReservationModel(
            id=reservation.id,
            user_id=reservation.user_id,
            slot_id=reservation.slot_id,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            status=reservation.status.value,
            total_cost=reservation.total_cost.amount,
            currency=reservation.total_cost.currency,
            payment_id=reservation.payment_id,
            created_at=reservation.created_at,
            closed_at=reservation.closed_at,
        )

    @staticmethod
    def reservation_to_domain(model: ReservationModel) -> Reservation:
        return Reservation(
            id=model.id,
            user_id=model.user_id,
            slot_id=model.slot_id,
            time_range=TimeRange(model.start_time, model.end_time),
            total_cost=Money(_decimal(model.total_cost), model.currency or 'USD'),
            status=ReservationStatus(model.status),
            payment_id=model.payment_id,
            created_at=model.created_at,
            closed_at=model.closed_at,
        )

    @staticmethod
    def session_to_orm(session: ChargingSession) -> ChargingSessionModel:
        return ChargingSessionModel(
            id=session.id,
            user_id=session.user_id,
            slot_id=session.slot_id,
            mode_type=session.mode_type,
            price_per_unit=session.price_per_unit,
            start_time=session.start_time,
            end_time=session.end_time,
            scheduled_end_time=session.scheduled_end_time,
            energy_used_kwh=session.energy_used_kwh,
            total_amount=session.total_amount,
            status=session.status.value,
            payment_id=session.payment_id,
        )

    @staticmethod
    def session_to_domain(model: ChargingSessionModel) -> ChargingSession:
        return ChargingSession(
            id=model.id,
            user_id=model.user_id,
            start_time=model.start_time,
            slot_id=model.slot_id,
            mode_type=model.mode_type,
            price_per_unit=_decimal(model.price_per_unit),
            end_time=model.end_time,
            scheduled_end_time=model.scheduled_end_time,
            energy_used_kwh=(
                None if model.energy_used_kwh is None else _decimal(model.energy_used_kwh)
            ),
            total_amount=_decimal(model.total_amount),
            status=SessionStatus(model.status),
            payment_id=model.payment_id,
        )

    @staticmethod
    def payment_to_orm(payment: Payment) -> PaymentModel:
        return PaymentModel(
            id=payment.id,
            amount=payment.amount.amount,
            currency=payment.amount.currency,
            method=payment.method,
            status=payment.status.value,
            timestamp=payment.timestamp,
            booking_id=payment.booking_id,
            booking_kind=payment.booking_kind.value if payment.booking_kind else None,
        )

    @staticmethod
    def payment_to_domain(model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            amount=Money(_decimal(model.amount), model.currency or 'USD'),
            method=model.method,
            status=PaymentStatus(model.status),
            timestamp=model.timestamp,
            booking_id=model.booking_id,
            booking_kind=BookingKind(model.booking_kind) if model.booking_kind else None,
        )

    @staticmethod
    def gateway_to_orm(gateway: SimulatedPaymentGateway) -> PaymentGatewayModel:
        return PaymentGatewayModel(
            id=gateway.id,
            name=gateway.name,
            provider=gateway.provider,
            status=gateway.status,
        )

    @staticmethod
    def gateway_to_domain(model: PaymentGatewayModel) -> SimulatedPaymentGateway:
        return SimulatedPaymentGateway(
            id=model.id,
            name=model.name,
            provider=model.provider or "",
            status=model.status,
        )


# ============================================================================
# SQLALCHEMY IMPLEMENTATION
# ============================================================================

class SQLAlchemyPersistenceGateway(PersistenceGateway):
    """
    Gateway backed by a relational database.

    Every call runs in its own short session; SQLAlchemyError is logged,
    rolled back and re-raised as PersistenceError.
    """

    def __init__(self, database_url: str = "sqlite:///:memory:", echo: bool = False):
        self.database_url = database_url
        self._logger = logging.getLogger(self.__class__.__name__)

        engine_kwargs = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
                engine_kwargs["poolclass"] = StaticPool

        try:
            self.engine = create_engine(database_url, **engine_kwargs)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            self._logger.error(f"Could not open database {database_url}: {e}")
            raise PersistenceError(f"Could not open database: {e}") from e

        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    @contextmanager
    def _session_scope(self, write: bool = False) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            if write:
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self._logger.error(f"Database error: {e}")
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _upsert(self, session: Session, row) -> None:
        """Merge a row by primary key, keeping its original insertion order"""
        model_class = type(row)
        existing = session.get(model_class, row.id)
        if existing is not None:
            row.seq = existing.seq
        else:
            current = session.execute(select(func.max(model_class.seq))).scalar()
            row.seq = (current or 0) + 1
        session.merge(row)

    def _all(self, model_class: Type, mapper: Callable, **criteria) -> List:
        with self._session_scope() as session:
            stmt = select(model_class).filter_by(**criteria).order_by(model_class.seq)
            return [mapper(row) for row in session.execute(stmt).scalars()]

    def _get(self, model_class: Type, mapper: Callable, entity_id: str):
        if not entity_id:
            return None
        with self._session_scope() as session:
            row = session.get(model_class, entity_id)
            return mapper(row) if row is not None else None

    def _save(self, row) -> None:
        with self._session_scope(write=True) as session:
            self._upsert(session, row)
        self._logger.debug(f"Saved {type(row).__name__} {row.id}")

    # Users

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        return self._get(UserModel, Mapper.user_to_domain, user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        key = (email or "").strip().lower()
        with self._session_scope() as session:
            stmt = select(UserModel).where(func.lower(UserModel.email) == key)
            row = session.execute(stmt).scalars().first()
            return Mapper.user_to_domain(row) if row is not None else None

    def find_all_users(self) -> List[User]:
        return self._all(UserModel, Mapper.user_to_domain)

    def save_user(self, user: User) -> None:
        self._save(Mapper.user_to_orm(user))

    # Lots

    def _load_lot(self, session: Session, row: ParkingLotModel) -> ParkingLot:
        slots = session.execute(
            select(ParkingSlotModel)
            .where(ParkingSlotModel.lot_id == row.id)
            .order_by(ParkingSlotModel.position)
        ).scalars().all()
        return Mapper.lot_to_domain(row, slots)

    def find_all_lots(self) -> List[ParkingLot]:
        with self._session_scope() as session:
            rows = session.execute(select(ParkingLotModel).order_by(ParkingLotModel.seq)).scalars()
            return [self._load_lot(session, row) for row in rows.all()]

    def find_lot_by_id(self, lot_id: str) -> Optional[ParkingLot]:
        with self._session_scope() as session:
            row = session.get(ParkingLotModel, lot_id)
            return self._load_lot(session, row) if row is not None else None

    def save_lot(self, lot: ParkingLot) -> None:
        with self._session_scope(write=True) as session:
            self._upsert(session, ParkingLotModel(
                id=lot.id, name=lot.name, address=lot.address, version=lot.version
            ))
            # Slots removed from the aggregate are removed from the table
            session.execute(
                delete(ParkingSlotModel)
                .where(ParkingSlotModel.lot_id == lot.id)
                .where(ParkingSlotModel.id.not_in(lot.slot_ids))
            )
            for position, slot in enumerate(lot.slots):
                session.merge(Mapper.parking_slot_to_orm(slot, lot.id, position))
        self._logger.debug(f"Saved lot {lot.id} with {lot.total_slots()} slot(s)")

    # Stations

    def _load_station(self, session: Session, row: ChargingStationModel) -> ChargingStation:
        slots = session.execute(
            select(ChargingSlotModel)
            .where(ChargingSlotModel.station_id == row.id)
            .order_by(ChargingSlotModel.position)
        ).scalars().all()
        return Mapper.station_to_domain(row, slots)

    def find_all_stations(self) -> List[ChargingStation]:
        with self._session_scope() as session:
            rows = session.execute(
                select(ChargingStationModel).order_by(ChargingStationModel.seq)
            ).scalars()
            return [self._load_station(session, row) for row in rows.all()]

    def find_station_by_id(self, station_id: str) -> Optional[ChargingStation]:
        with self._session_scope() as session:
            row = session.get(ChargingStationModel, station_id)
            return self._load_station(session, row) if row is not None else None

    def save_station(self, station: ChargingStation) -> None:
        with self._session_scope(write=True) as session:
            self._upsert(session, ChargingStationModel(
                id=station.id,
                name=station.name,
                location=station.location,
                status=station.status.value,
                version=station.version,
            ))
            session.execute(
                delete(ChargingSlotModel)
                .where(ChargingSlotModel.station_id == station.id)
                .where(ChargingSlotModel.id.not_in(station.slot_ids))
            )
            for position, slot in enumerate(station.slots):
                session.merge(Mapper.charging_slot_to_orm(slot, station.id, position))
        self._logger.debug(f"Saved station {station.id} with {station.total_slots()} slot(s)")

    # Charging modes

    def find_all_charging_modes(self) -> List[ChargingMode]:
        return self._all(ChargingModeModel, Mapper.mode_to_domain)

    def save_charging_mode(self, mode: ChargingMode) -> None:
        self._save(Mapper.mode_to_orm(mode))

    # Reservations

    def find_reservation_by_id(self, reservation_id: str) -> Optional[Reservation]:
        return self._get(ReservationModel, Mapper.reservation_to_domain, reservation_id)

    def find_all_reservations(self) -> List[Reservation]:
        return self._all(ReservationModel, Mapper.reservation_to_domain)

    def find_reservations_by_user(self, user_id: str) -> List[Reservation]:
        return self._all(ReservationModel, Mapper.reservation_to_domain, user_id=user_id)

    def save_reservation(self, reservation: Reservation) -> None:
        self._save(Mapper.reservation_to_orm(reservation))

    # Payments

    def find_payment_by_id(self, payment_id: str) -> Optional[Payment]:
        return self._get(PaymentModel, Mapper.payment_to_domain, payment_id)

    def find_all_payments(self) -> List[Payment]:
        return self._all(PaymentModel, Mapper.payment_to_domain)

    def save_payment(self, payment: Payment) -> None:
        self._save(Mapper.payment_to_orm(payment))

    # Charging sessions

    def find_session_by_id(self, session_id: str) -> Optional[ChargingSession]:
        return self._get(ChargingSessionModel, Mapper.session_to_domain, session_id)

    def find_all_sessions(self) -> List[ChargingSession]:
        return self._all(ChargingSessionModel, Mapper.session_to_domain)

    def find_sessions_by_user(self, user_id: str) -> List[ChargingSession]:
        return self._all(ChargingSessionModel, Mapper.session_to_domain, user_id=user_id)

    def save_session(self, session: ChargingSession) -> None:
        self._save(Mapper.session_to_orm(session))

    # Payment gateway

    def get_default_payment_gateway(self) -> SimulatedPaymentGateway:
        gateways = self._all(PaymentGatewayModel, Mapper.gateway_to_domain)
        if gateways:
            return gateways[0]
        gateway = SimulatedPaymentGateway()
        self.save_payment_gateway(gateway)
        return gateway

    def save_payment_gateway(self, gateway: SimulatedPaymentGateway) -> None:
        self._save(Mapper.gateway_to_orm(gateway))

    def dispose(self) -> None:
        self.engine.dispose()


# ============================================================================
# REPOSITORY FACTORY
# ============================================================================

class RepositoryFactory:
    """Factory for creating persistence gateways"""

    @staticmethod
    def create_in_memory_gateway() -> InMemoryPersistenceGateway:
        return InMemoryPersistenceGateway()

    @staticmethod
    def create_sqlalchemy_gateway(database_url: str, echo: bool = False) -> SQLAlchemyPersistenceGateway:
        return SQLAlchemyPersistenceGateway(database_url, echo=echo)

    @classmethod
    def create(cls, database_url: Optional[str] = None) -> PersistenceGateway:
        """In-memory when no URL (or 'memory://') is given, SQLAlchemy otherwise"""
        if not database_url or database_url == "memory://":
            return cls.create_in_memory_gateway()
        return cls.create_sqlalchemy_gateway(database_url)
