# src/infrastructure/repositories/event_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from src.infrastructure.db.models import Booking, Event, EventSeat, SEAT_BOOKED
from src.domain.state_machine import BookingStatus


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> Event | None:
        stmt = select(Event).where(Event.id == event_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_events(self, status: str | None = None) -> list[Event]:
        stmt = select(Event).order_by(Event.event_date, Event.event_time)
        if status:
            stmt = stmt.where(Event.status == status)
        return list(self.db.execute(stmt).scalars().all())

    def add(self, event: Event) -> Event:
        self.db.add(event)
        self.db.flush()
        return event

    def delete(self, event: Event) -> None:
        self.db.delete(event)
        self.db.flush()

    def sales_summary(self) -> list[dict]:
        """Confirmed bookings, revenue and seats sold per event."""

        booked = (
            select(EventSeat.event_id, func.count(EventSeat.id).label("seats_sold"))
            .where(EventSeat.state == SEAT_BOOKED)
            .group_by(EventSeat.event_id)
            .subquery()
        )
        confirmed = (
            select(
                Booking.event_id,
                func.count(Booking.id).label("confirmed_bookings"),
                func.coalesce(func.sum(Booking.total_amount), 0).label("revenue"),
            )
            .where(Booking.status == BookingStatus.CONFIRMED)
            .group_by(Booking.event_id)
            .subquery()
        )
        stmt = (
            select(
                Event.id,
                Event.title,
                Event.total_seats,
                func.coalesce(booked.c.seats_sold, 0),
                func.coalesce(confirmed.c.confirmed_bookings, 0),
                func.coalesce(confirmed.c.revenue, 0),
            )
            .outerjoin(booked, booked.c.event_id == Event.id)
            .outerjoin(confirmed, confirmed.c.event_id == Event.id)
            .order_by(Event.event_date)
        )
        return [
            {
                "event_id": row[0],
                "title": row[1],
                "total_seats": row[2],
                "seats_sold": int(row[3]),
                "confirmed_bookings": int(row[4]),
                "revenue": int(row[5]),
            }
            for row in self.db.execute(stmt).all()
        ]
