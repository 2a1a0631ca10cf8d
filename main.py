"""
CLI оператора для расчета слотов и записи

Использование:
    python main.py slots <master_id> <YYYY-MM-DD> <duration|s:1,2>
    python main.py month <master_id> <YYYY-MM> <duration|s:1,2>
    python main.py book <master_id> <start ISO UTC> <duration|s:1,2> <name> <phone> [email]
    python main.py hold <master_id> <start ISO UTC> <end ISO UTC> <session_id>
    python main.py appointments <master_id> <YYYY-MM-DD>
    python main.py status <appointment_id> <CONFIRMED|DONE|CANCELED>
    python main.py schedule <master_id>

Длительность: число минут или список услуг "s:3,5".
Вывод - JSON, моменты времени в UTC ISO-8601.
Коды выхода: 0 - успех, 1 - ошибка, 2 - слот занят.
"""

import asyncio
import json
import logging
import sys

from config import DATABASE_PATH, DAY_NAMES_SHORT, LOG_LEVEL, ORG_TZ
from database.models import AppointmentStatus, ClientInfo
from database.queries import Database
from database.repositories import AppointmentRepository, MasterRepository
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from utils.datetime_utils import day_range, format_minutes, parse_date, parse_utc_iso, to_utc_iso
from utils.errors import BookingError, SlotTakenError, ValidationError


def print_usage():
    print(__doc__)
    sys.exit(1)


def parse_duration_arg(raw: str) -> dict:
    """'45' -> {'duration_min': 45}; 's:1,2' -> {'service_ids': [1, 2]}"""
    try:
        if raw.startswith("s:"):
            ids = [int(x) for x in raw[2:].split(",") if x.strip()]
            return {"service_ids": ids}
        return {"duration_min": int(raw)}
    except ValueError:
        raise ValidationError(f"Invalid duration: {raw!r}")


def emit(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


async def run(args) -> int:
    command = args[0].lower()

    async with Database(DATABASE_PATH) as db:
        if command == "slots" and len(args) == 4:
            availability = AvailabilityService(db)
            slots = await availability.get_free_slots(
                args[2], int(args[1]), **parse_duration_arg(args[3])
            )
            emit({"tz": ORG_TZ, "date": args[2], "slots": [s.to_dict() for s in slots]})

        elif command == "month" and len(args) == 4:
            availability = AvailabilityService(db)
            days = await availability.get_month_availability(
                args[2], int(args[1]), **parse_duration_arg(args[3])
            )
            emit({"tz": ORG_TZ, "month": args[2], "days": days})

        elif command == "book" and len(args) in (6, 7):
            booking = BookingService(db)
            client = ClientInfo(
                name=args[4], phone=args[5], email=args[6] if len(args) == 7 else None
            )
            result = await booking.create_booking(
                int(args[1]), parse_utc_iso(args[2]), client, **parse_duration_arg(args[3])
            )
            emit(result.to_dict())

        elif command == "hold" and len(args) == 5:
            booking = BookingService(db)
            hold = await booking.reserve_slot(
                int(args[1]), parse_utc_iso(args[2]), parse_utc_iso(args[3]), args[4]
            )
            emit(hold.to_dict())

        elif command == "appointments" and len(args) == 3:
            day = parse_date(args[2])
            start, end = day_range(day)
            appointments = await AppointmentRepository(db).find_blocking_in_range(
                int(args[1]), start, end
            )
            emit({
                "date": day.isoformat(),
                "dayStartUtc": to_utc_iso(start),
                "dayEndUtc": to_utc_iso(end),
                "appointments": [
                    {
                        "id": a.id,
                        "status": a.status.value,
                        "startAt": to_utc_iso(a.start_at),
                        "endAt": to_utc_iso(a.end_at),
                        "serviceId": a.service_id,
                    }
                    for a in appointments
                ],
            })

        elif command == "status" and len(args) == 3:
            booking = BookingService(db)
            try:
                new_status = AppointmentStatus(args[2].upper())
            except ValueError:
                raise ValidationError(f"Unknown status: {args[2]!r}")
            appointment = await booking.change_status(int(args[1]), new_status)
            emit({"appointmentId": appointment.id, "status": appointment.status.value})

        elif command == "schedule" and len(args) == 2:
            week = await MasterRepository(db).get_week(int(args[1]))
            emit({
                "tz": ORG_TZ,
                "week": [
                    {
                        "weekday": h.weekday,
                        "day": DAY_NAMES_SHORT[h.weekday],
                        "closed": h.is_closed,
                        "hours": None if h.is_closed else
                        f"{format_minutes(h.start_minutes)}-{format_minutes(h.end_minutes)}",
                    }
                    for h in week
                ],
            })

        else:
            print_usage()
    return 0


def main() -> int:
    logging.basicConfig(
        level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    if len(sys.argv) < 2:
        print_usage()
    try:
        return asyncio.run(run(sys.argv[1:]))
    except SlotTakenError as e:
        emit(e.to_dict())
        return 2
    except BookingError as e:
        emit(e.to_dict())
        return 1
    except ValueError as e:
        emit({"error": "VALIDATION_ERROR", "message": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
