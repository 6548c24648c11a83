# File: src/smartpark/main.py
"""
Command-line entry point for SmartPark

Every command except `seed` starts with an expiration sweep, so overdue
bookings are reclaimed before the request is handled.

Examples:
    smartpark seed
    smartpark slots --type standard
    smartpark reserve --user U001 --slot S001 --start 2024-05-01T09:00 --end 2024-05-01T10:30
    smartpark charge-start --user U001
    smartpark charge-pay --session CHG-1A2B3C4D --slot CS1 --mode fast --kwh 20
    smartpark charge-stop --session CHG-1A2B3C4D
"""

from datetime import datetime
from typing import List, Optional
import argparse
import logging
import sys

from .application.dtos import OperationResult
from .application.parking_service import ParkingService
from .config import Settings
from .domain.models import ChargingSlot
from .infrastructure.factories import SeedDataFactory
from .infrastructure.repositories import (
    PersistenceError, RepositoryFactory, SQLAlchemyPersistenceGateway,
)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Setup application logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )
    return logging.getLogger("smartpark")


def _datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date/time (use ISO format): {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="smartpark", description="SmartPark parking and charging bookings")
    parser.add_argument("--db", dest="database_url", help="SQLAlchemy database URL (memory:// for in-memory)")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Load demo data into an empty store")

    login = sub.add_parser("login", help="Check user credentials")
    login.add_argument("--email", required=True)
    login.add_argument("--password", required=True)

    slots = sub.add_parser("slots", help="List available slots")
    slots.add_argument("--type", dest="slot_type", help="Parking slot type")
    slots.add_argument("--charging", action="store_true", help="List charging slots instead")
    slots.add_argument("--location", help="Station location filter (charging only)")

    sub.add_parser("methods", help="List payment methods")
    sub.add_parser("modes", help="List charging mode types")

    reserve = sub.add_parser("reserve", help="Reserve a parking slot")
    reserve.add_argument("--user", required=True)
    reserve.add_argument("--slot", required=True)
    reserve.add_argument("--start", required=True, type=_datetime)
    reserve.add_argument("--end", required=True, type=_datetime)
    reserve.add_argument("--method", default=None, help="Payment method name")

    cancel = sub.add_parser("cancel", help="Cancel a reservation")
    cancel.add_argument("reservation_id")

    refund = sub.add_parser("refund", help="Refund a payment")
    refund.add_argument("payment_id")

    start = sub.add_parser("charge-start", help="Open a charging session")
    start.add_argument("--user", required=True)

    pay = sub.add_parser("charge-pay", help="Pay for a charging session")
    pay.add_argument("--session", required=True)
    pay.add_argument("--slot", required=True)
    pay.add_argument("--mode", required=True)
    pay.add_argument("--kwh", required=True, help="Estimated energy in kWh")
    pay.add_argument("--method", default=None)

    stop = sub.add_parser("charge-stop", help="Stop a charging session")
    stop.add_argument("--session", required=True)
    stop.add_argument("--energy", default=None, help="Measured energy in kWh")

    sub.add_parser("sweep", help="Reclaim overdue bookings")
    sub.add_parser("check", help="Report slots out of step with their bookings")

    report = sub.add_parser("report", help="Print the summary report")
    report.add_argument("--write", metavar="DIR", help="Also save the report under DIR")
    return parser


def _print_result(result: OperationResult, *details: str) -> int:
    if result.success:
        print(result.message)
        for detail in details:
            if detail:
                print(detail)
        return 0
    print(f"Failed ({result.code.name}): {result.message}")
    return 1


def run(args: argparse.Namespace, service: ParkingService) -> int:
    command = args.command

    if command == "login":
        user = service.authenticate(args.email, args.password)
        print(f"Welcome, {user.name} ({user.id})" if user else "Invalid email or password.")
        return 0 if user else 1

    if command == "slots":
        if args.charging:
            slots = service.charging.request_slots(args.location)
        else:
            slots = service.reservations.available_slots(args.slot_type)
        for slot in slots:
            print(slot)
        if not slots:
            print("No available slots.")
        return 0

    if command == "methods":
        print("\n".join(service.payment_method_names()))
        return 0

    if command == "modes":
        for mode_type in service.charging.charging_mode_types():
            selection = service.charging.select_mode(mode_type)
            print(selection.message if selection.success else f"{mode_type}: not available")
        return 0

    if command == "reserve":
        result = service.reserve({
            "user_id": args.user,
            "slot_id": args.slot,
            "start_time": args.start,
            "end_time": args.end,
            "payment_method": args.method,
        })
        detail = f"Reservation ID: {result.reservation.id}" if result.success else None
        return _print_result(result, detail, result.payment.generate_receipt() if result.payment else None)

    if command == "cancel":
        return _print_result(service.reservations.cancel_reservation(args.reservation_id))

    if command == "refund":
        return _print_result(service.reservations.refund_payment(args.payment_id))

    if command == "charge-start":
        result = service.charging.start_charging(args.user)
        return _print_result(result)

    if command == "charge-pay":
        selection = service.charging.select_mode(args.mode)
        if not selection.success:
            return _print_result(selection)
        slot = service.registry.get(args.slot)
        mode = slot.find_mode(args.mode) if isinstance(slot, ChargingSlot) else None
        price = mode.price_per_kwh if mode else selection.price_per_kwh
        estimate = service.charging.estimate_amount(price, args.kwh)
        if not estimate.success:
            return _print_result(estimate)
        print(estimate.message)
        result = service.charging.process_payment(
            args.method, estimate.amount.amount, args.session, args.slot, args.mode, price
        )
        return _print_result(result, result.receipt, result.reward_message)

    if command == "charge-stop":
        result = service.charging.stop_charging(args.session, args.energy)
        detail = f"Total amount: ${result.total_amount:.2f}" if result.success else None
        return _print_result(result, detail)

    if command == "sweep":
        report = service.tick()
        print(f"Released {report.released} slot(s).")
        return 0

    if command == "check":
        problems = service.check_consistency()
        print("\n".join(problems) if problems else "All slots consistent.")
        return 1 if problems else 0

    if command == "report":
        print(service.reports.summary())
        if args.write:
            print(f"Saved to {service.reports.write_summary(args.write)}")
        return 0

    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application"""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    logger = setup_logging(args.log_level or settings.log_level)

    persistence = None
    try:
        persistence = RepositoryFactory.create(args.database_url or settings.database_url)
        if args.command == "seed":
            seeded = SeedDataFactory(persistence).seed_if_empty()
            print("Demo data loaded." if seeded else "Store already has data; nothing to do.")
            return 0

        service = ParkingService(persistence, settings.policies)
        if args.command != "sweep":
            service.tick()
        return run(args, service)
    except PersistenceError as e:
        logger.error(f"Storage failure: {e}")
        print(f"Fatal error: {e}")
        return 2
    finally:
        if isinstance(persistence, SQLAlchemyPersistenceGateway):
            persistence.dispose()


if __name__ == "__main__":
    sys.exit(main())
