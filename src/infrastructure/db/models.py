# src/infrastructure/db/models.py

from sqlalchemy import (
    JSON,
    Boolean,
    String,
    Integer,
    Date,
    DateTime,
    Enum,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import date, datetime
from uuid import uuid4

from src.infrastructure.db.session import Base
from src.domain.state_machine import BookingStatus


SEAT_HELD = "HELD"
SEAT_BOOKED = "BOOKED"


class Hall(Base):
    __tablename__ = "halls"

    # Halls keep human ids ("hallA"); seat ids are derived from them.
    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_hall_capacity_positive"),
        CheckConstraint("type IN ('vip', 'standard')", name="ck_hall_type"),
    )


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    event_type: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[str | None] = mapped_column(String(32), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    event_time: Mapped[str] = mapped_column(String(8), nullable=False)
    hall_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("halls.id"),
        nullable=False,
    )
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    pricing: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    hall: Mapped[Hall] = relationship()
    seats: Mapped[list["EventSeat"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventSeat.created_at",
    )

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="ck_event_total_seats_positive"),
        CheckConstraint(
            "status IN ('active', 'draft', 'cancelled')",
            name="ck_event_status",
        ),
    )


class EventSeat(Base):
    """
    One taken seat of an event: held by a pending booking or booked.

    The unique (event_id, seat_id) pair is what makes two bookings
    for the same seat impossible at the storage level.
    """

    __tablename__ = "event_seats"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    seat_id: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=SEAT_HELD)
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    event: Mapped[Event] = relationship(back_populates="seats")

    __table_args__ = (
        UniqueConstraint("event_id", "seat_id", name="uq_event_seat"),
        CheckConstraint("state IN ('HELD', 'BOOKED')", name="ck_event_seat_state"),
    )


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions.
    DB stores current state safely.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    booking_code: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(254), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=False,
    )
    seats: Mapped[list] = mapped_column(JSON, nullable=False)
    seat_type: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    processing_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="NGN")
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    checkout_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    gateway_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    amount_paid: Mapped[int | None] = mapped_column(Integer, nullable=True)
    needs_refund: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    receipt_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    event: Mapped[Event] = relationship()

    __table_args__ = (
        UniqueConstraint("booking_code", name="uq_booking_code"),
        UniqueConstraint("payment_reference", name="uq_booking_payment_reference"),
        UniqueConstraint("transaction_reference", name="uq_booking_transaction_reference"),
        CheckConstraint("amount >= 0", name="ck_booking_amount_nonnegative"),
        CheckConstraint("processing_fee >= 0", name="ck_booking_fee_nonnegative"),
        CheckConstraint(
            "total_amount = amount + processing_fee",
            name="ck_booking_total_amount",
        ),
    )


class PaymentWebhookEvent(Base):
    """Processed-payment marker; one row per gateway transaction."""

    __tablename__ = "payment_webhook_events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    transaction_reference: Mapped[str] = mapped_column(String(128), nullable=False)
    booking_id: Mapped[str] = mapped_column(String(36), nullable=False)
    payload_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PROCESSED")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "provider",
            "transaction_reference",
            name="uq_webhook_provider_transaction_reference",
        ),
    )


class Counter(Base):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
