# src/infrastructure/repositories/availability_repository.py

import logging
from typing import Sequence

from sqlalchemy.orm import Session
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from src.infrastructure.db.models import Event, EventSeat, SEAT_BOOKED, SEAT_HELD
from src.domain.exceptions import NotFoundError, SeatUnavailableError


logger = logging.getLogger(__name__)


class AvailabilityRepository:
    """Per-event record of taken seats (held or booked)."""

    def __init__(self, db: Session):
        self.db = db

    def lock_event(self, event_id: str) -> Event:
        """
        SELECT ... FOR UPDATE
        Serializes every seat check+write for one event.
        """

        stmt = (
            select(Event)
            .where(Event.id == event_id)
            .with_for_update()
        )

        event = self.db.execute(stmt).scalar_one_or_none()

        if not event:
            raise NotFoundError("Event not found")

        return event

    def _taken(self, event_id: str, seat_ids: Sequence[str]) -> list[EventSeat]:
        if not seat_ids:
            return []
        stmt = (
            select(EventSeat)
            .where(EventSeat.event_id == event_id)
            .where(EventSeat.seat_id.in_(list(seat_ids)))
        )
        return list(self.db.execute(stmt).scalars().all())

    def is_available(self, event_id: str, seat_ids: Sequence[str]) -> bool:
        return not self._taken(event_id, seat_ids)

    def booked_seat_ids(self, event_id: str) -> list[str]:
        stmt = (
            select(EventSeat.seat_id)
            .where(EventSeat.event_id == event_id)
            .where(EventSeat.state == SEAT_BOOKED)
            .order_by(EventSeat.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def held_seat_ids(self, event_id: str) -> list[str]:
        stmt = (
            select(EventSeat.seat_id)
            .where(EventSeat.event_id == event_id)
            .where(EventSeat.state == SEAT_HELD)
        )
        return list(self.db.execute(stmt).scalars().all())

    def hold(
        self,
        event_id: str,
        seat_ids: Sequence[str],
        booking_id: str,
    ) -> None:
        """Reserve seats for a pending booking, all or nothing."""

        taken = self._taken(event_id, seat_ids)
        if taken:
            raise SeatUnavailableError(sorted(row.seat_id for row in taken))

        for seat_id in seat_ids:
            self.db.add(
                EventSeat(
                    event_id=event_id,
                    seat_id=seat_id,
                    state=SEAT_HELD,
                    booking_id=booking_id,
                )
            )
        self._flush_or_conflict(seat_ids)

    def commit(
        self,
        event_id: str,
        seat_ids: Sequence[str],
        booking_id: str | None = None,
    ) -> list[str]:
        """
        Add seats to the booked set (set union).

        Holds owned by `booking_id` are promoted; seats already booked
        for the same owner are left alone. A seat held or booked by
        anyone else raises SeatUnavailableError and nothing is written.
        Returns the ids that were newly booked.
        """

        existing = {row.seat_id: row for row in self._taken(event_id, seat_ids)}

        conflicts = []
        for seat_id, row in existing.items():
            if row.booking_id == booking_id:
                continue
            if booking_id is None and row.state == SEAT_BOOKED:
                # admin re-commit of an already booked seat
                continue
            conflicts.append(seat_id)
        if conflicts:
            raise SeatUnavailableError(sorted(conflicts))

        added = []
        for seat_id in dict.fromkeys(seat_ids):
            row = existing.get(seat_id)
            if row is None:
                self.db.add(
                    EventSeat(
                        event_id=event_id,
                        seat_id=seat_id,
                        state=SEAT_BOOKED,
                        booking_id=booking_id,
                    )
                )
                added.append(seat_id)
            elif row.state == SEAT_HELD:
                row.state = SEAT_BOOKED
                added.append(seat_id)

        self._flush_or_conflict(seat_ids)
        return added

    def release(self, booking_id: str) -> int:
        """Drop the holds of a booking. Booked seats are never released."""

        stmt = (
            delete(EventSeat)
            .where(EventSeat.booking_id == booking_id)
            .where(EventSeat.state == SEAT_HELD)
        )
        result = self.db.execute(stmt)
        return result.rowcount or 0

    def _flush_or_conflict(self, seat_ids: Sequence[str]) -> None:
        try:
            self.db.flush()
        except IntegrityError as exc:
            # lost a race on uq_event_seat; the caller's transaction is
            # rolled back by the request handler
            logger.warning("Seat unique constraint violated seats=%s", list(seat_ids))
            raise SeatUnavailableError(list(seat_ids)) from exc
