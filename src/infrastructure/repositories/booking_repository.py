# src/infrastructure/repositories/booking_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import or_, select

from src.infrastructure.db.models import Booking, Counter
from src.domain.exceptions import IdempotencyConflictError
from src.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
        for_update: bool = False,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_reference(
        self,
        reference: str,
        for_update: bool = False,
    ) -> Booking | None:
        """Look a booking up by merchant or gateway reference."""

        stmt = select(Booking).where(
            or_(
                Booking.payment_reference == reference,
                Booking.transaction_reference == reference,
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def list_bookings(
        self,
        customer_email: str | None = None,
        status: BookingStatus | None = None,
        event_id: str | None = None,
    ) -> list[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.desc())
        if customer_email:
            stmt = stmt.where(Booking.customer_email == customer_email)
        if status:
            stmt = stmt.where(Booking.status == status)
        if event_id:
            stmt = stmt.where(Booking.event_id == event_id)
        return list(self.db.execute(stmt).scalars().all())

    def list_stale_pending(self, created_before: datetime) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.status == BookingStatus.PENDING)
            .where(Booking.created_at <= created_before)
            .order_by(Booking.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def has_bookings_for_event(self, event_id: str) -> bool:
        stmt = select(Booking.id).where(Booking.event_id == event_id).limit(1)
        return self.db.execute(stmt).first() is not None

    def next_booking_code(self, prefix: str = "BK") -> str:
        counter = self.db.execute(
            select(Counter).where(Counter.name == "booking").with_for_update()
        ).scalar_one_or_none()
        if counter is None:
            counter = Counter(name="booking", seq=0)
            self.db.add(counter)
        counter.seq += 1
        return f"{prefix}{counter.seq}"

    def create_booking(self, **fields) -> Booking:

        reference = fields["payment_reference"]
        existing = self.get_by_reference(reference)

        if existing:
            raise IdempotencyConflictError(
                f"Payment reference {reference} is already in use"
            )

        booking = Booking(
            booking_code=self.next_booking_code(),
            status=BookingStatus.PENDING,
            **fields,
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status
