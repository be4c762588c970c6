from datetime import date, timedelta

from sqlalchemy import select

from src.application.event_service import EventService
from src.infrastructure.db.models import Base, Event
from src.infrastructure.db.session import SessionLocal, database


HALLS = [
    {"hall_id": "hallA", "name": "Hall A", "capacity": 48, "hall_type": "standard"},
    {"hall_id": "hallB", "name": "Hall B", "capacity": 60, "hall_type": "standard"},
    {"hall_id": "vipHall", "name": "VIP Lounge", "capacity": 48, "hall_type": "vip"},
    {"hall_id": "vipArena", "name": "VIP Arena", "capacity": 22, "hall_type": "vip"},
]


def _day(days_from_now: int) -> date:
    return date.today() + timedelta(days=days_from_now)


def seed_halls(service: EventService) -> None:
    for item in HALLS:
        hall = service.halls.get_by_id(item["hall_id"])
        if hall:
            continue
        service.create_hall(
            name=item["name"],
            capacity=item["capacity"],
            hall_type=item["hall_type"],
            hall_id=item["hall_id"],
        )


def seed_events(service: EventService) -> None:
    event_defs = [
        {
            "title": "The Last Projectionist",
            "event_type": "movie",
            "category": "drama",
            "event_date": _day(3),
            "event_time": "19:30",
            "hall_id": "hallA",
            "duration": "2h 05m",
            "pricing": {"standardSingle": {"price": 2500}},
        },
        {
            "title": "Derby Night Live",
            "event_type": "match",
            "category": "football",
            "event_date": _day(5),
            "event_time": "20:00",
            "hall_id": "hallB",
            "pricing": {"standardMatchSeats": {"price": 2000}},
        },
        {
            "title": "Premiere: Northern Lights",
            "event_type": "movie",
            "category": "premiere",
            "event_date": _day(7),
            "event_time": "18:00",
            "hall_id": "vipHall",
            "duration": "1h 52m",
            "pricing": {
                "vipSingle": {"price": 8000},
                "vipCouple": {"price": 15000},
                "vipFamily": {"price": 7000},
            },
        },
        {
            "title": "Cup Final Screening",
            "event_type": "match",
            "category": "football",
            "event_date": _day(10),
            "event_time": "17:00",
            "hall_id": "vipArena",
            "pricing": {
                "vipSofaSeats": {"price": 12000},
                "vipRegularSeats": {"price": 6000},
            },
        },
    ]

    for item in event_defs:
        existing = service.db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if existing:
            continue
        service.create_event(**item)


def main() -> None:
    Base.metadata.create_all(bind=database.engine)
    db = SessionLocal()
    try:
        service = EventService(db)
        seed_halls(service)
        seed_events(service)
        db.commit()
        print("Seed complete: 4 halls and 4 events added.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    main()
