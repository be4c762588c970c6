import logging
from datetime import date

from sqlalchemy.orm import Session

from src.domain.exceptions import (
    NotFoundError,
    ResourceInUseError,
    UnknownSeatError,
    ValidationFailedError,
)
from src.domain.seat_catalog import (
    HallType,
    Seat,
    generate_seats,
    get_layout,
    seat_universe,
    validate_pricing,
)
from src.infrastructure.db.models import Event, Hall
from src.infrastructure.repositories.availability_repository import AvailabilityRepository
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.event_repository import EventRepository
from src.infrastructure.repositories.hall_repository import HallRepository


logger = logging.getLogger(__name__)

EVENT_STATUSES = {"active", "draft", "cancelled"}


class EventService:
    """Admin-side management of halls, events and their seat maps."""

    def __init__(self, db: Session):
        self.db = db
        self.halls = HallRepository(db)
        self.events = EventRepository(db)
        self.availability = AvailabilityRepository(db)
        self.bookings = BookingRepository(db)

    # -----------------------------
    # Halls
    # -----------------------------
    def get_hall(self, hall_id: str) -> Hall:
        hall = self.halls.get_by_id(hall_id)
        if not hall:
            raise NotFoundError("Hall not found")
        return hall

    def create_hall(
        self,
        name: str,
        capacity: int,
        hall_type: str,
        hall_id: str | None = None,
    ) -> Hall:
        self._check_hall_type(hall_type)
        if hall_id and self.halls.get_by_id(hall_id):
            raise ResourceInUseError(f"Hall {hall_id} already exists")
        return self.halls.create_hall(
            name=name,
            capacity=capacity,
            hall_type=hall_type,
            hall_id=hall_id,
        )

    def update_hall(
        self,
        hall_id: str,
        name: str,
        capacity: int,
        hall_type: str,
    ) -> Hall:
        self._check_hall_type(hall_type)
        hall = self.get_hall(hall_id)
        reshaped = capacity != hall.capacity or hall_type != hall.type
        if reshaped and self.halls.is_in_use(hall_id):
            raise ResourceInUseError(
                "Hall capacity and type cannot change while events use it"
            )
        hall.name = name
        hall.capacity = capacity
        hall.type = hall_type
        self.db.flush()
        return hall

    def delete_hall(self, hall_id: str) -> None:
        hall = self.get_hall(hall_id)
        if self.halls.is_in_use(hall_id):
            raise ResourceInUseError("Hall is used by events")
        self.halls.delete(hall)

    @staticmethod
    def _check_hall_type(hall_type: str) -> None:
        try:
            HallType(hall_type)
        except ValueError as exc:
            raise ValidationFailedError(
                f"Hall type must be one of: {', '.join(t.value for t in HallType)}"
            ) from exc

    # -----------------------------
    # Events
    # -----------------------------
    def get_event(self, event_id: str) -> Event:
        event = self.events.get_by_id(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def create_event(
        self,
        title: str,
        event_type: str,
        category: str,
        event_date: date,
        event_time: str,
        hall_id: str,
        pricing: dict,
        total_seats: int | None = None,
        status: str = "active",
        description: str | None = None,
        duration: str | None = None,
        image_url: str | None = None,
    ) -> Event:
        hall = self.halls.get_by_id(hall_id)
        if not hall:
            raise ValidationFailedError(f"Hall {hall_id} does not exist")
        self._check_status(status)

        layout = get_layout(hall.type, event_type)
        normalized = validate_pricing(layout, pricing, hall.capacity)
        if total_seats is not None and total_seats != hall.capacity:
            raise ValidationFailedError(
                f"total_seats must equal the hall capacity ({hall.capacity})"
            )

        event = Event(
            title=title,
            event_type=event_type,
            category=category,
            event_date=event_date,
            event_time=event_time,
            hall_id=hall.id,
            total_seats=hall.capacity,
            pricing=normalized,
            status=status,
            description=description,
            duration=duration,
            image_url=image_url,
        )
        self.events.add(event)
        logger.info("Event created event_id=%s hall=%s type=%s", event.id, hall.id, event_type)
        return event

    def update_event(self, event_id: str, changes: dict) -> Event:
        event = self.availability.lock_event(event_id)

        if "status" in changes:
            self._check_status(changes["status"])

        hall_id = changes.get("hall_id", event.hall_id)
        event_type = changes.get("event_type", event.event_type)
        reshaped = hall_id != event.hall_id or event_type != event.event_type
        if reshaped and (
            self.availability.booked_seat_ids(event.id)
            or self.availability.held_seat_ids(event.id)
        ):
            raise ResourceInUseError(
                "Hall and event type cannot change once seats are taken"
            )

        if reshaped or "pricing" in changes:
            hall = self.halls.get_by_id(hall_id)
            if not hall:
                raise ValidationFailedError(f"Hall {hall_id} does not exist")
            layout = get_layout(hall.type, event_type)
            changes["pricing"] = validate_pricing(
                layout,
                changes.get("pricing", event.pricing),
                hall.capacity,
            )
            changes["total_seats"] = hall.capacity

        for field, value in changes.items():
            setattr(event, field, value)
        self.db.flush()
        return event

    def delete_event(self, event_id: str) -> None:
        event = self.get_event(event_id)
        if self.bookings.has_bookings_for_event(event_id):
            raise ResourceInUseError(
                "Event has bookings; set its status to cancelled instead"
            )
        self.events.delete(event)

    @staticmethod
    def _check_status(status: str) -> None:
        if status not in EVENT_STATUSES:
            raise ValidationFailedError(
                f"Event status must be one of: {', '.join(sorted(EVENT_STATUSES))}"
            )

    # -----------------------------
    # Seats
    # -----------------------------
    def seat_map(self, event_id: str) -> tuple[Event, list[Seat]]:
        event = self.get_event(event_id)
        hall = event.hall
        layout = get_layout(hall.type, event.event_type)
        seats = generate_seats(
            hall.id,
            layout,
            event.pricing,
            hall.capacity,
            booked=self.availability.booked_seat_ids(event.id),
            held=self.availability.held_seat_ids(event.id),
        )
        return event, seats

    def booked_seats(self, event_id: str) -> list[str]:
        return self.availability.booked_seat_ids(event_id)

    def commit_seats(self, event_id: str, seat_ids: list[str]) -> list[str]:
        """Admin commit for offline sales; bypasses the payment flow."""

        event = self.availability.lock_event(event_id)
        hall = event.hall
        layout = get_layout(hall.type, event.event_type)
        universe = seat_universe(hall.id, layout, hall.capacity)
        unknown = [seat_id for seat_id in seat_ids if seat_id not in universe]
        if unknown:
            raise UnknownSeatError(unknown)

        added = self.availability.commit(event.id, seat_ids)
        logger.info("Admin committed seats event_id=%s seats=%s", event.id, added)
        return added
