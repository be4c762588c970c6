from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.state_machine import BookingStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------
# Halls
# -----------------------------
class HallCreate(CamelModel):
    id: str | None = Field(default=None, max_length=64)
    name: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    type: str


class HallUpdate(CamelModel):
    name: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    type: str


class HallResponse(CamelModel):
    id: str
    name: str
    capacity: int
    type: str


# -----------------------------
# Events
# -----------------------------
class PricingTier(CamelModel):
    price: int | None = None
    count: int | None = None


class EventCreate(CamelModel):
    title: str = Field(min_length=1)
    event_type: str = Field(alias="type")
    category: str = "general"
    event_date: date = Field(alias="date")
    event_time: str = Field(alias="time", max_length=8)
    hall_id: str = Field(alias="hall")
    total_seats: int | None = None
    pricing: dict[str, PricingTier]
    status: str = "active"
    description: str | None = None
    duration: str | None = None
    image_url: str | None = None


class EventUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1)
    event_type: str | None = Field(default=None, alias="type")
    category: str | None = None
    event_date: date | None = Field(default=None, alias="date")
    event_time: str | None = Field(default=None, alias="time", max_length=8)
    hall_id: str | None = Field(default=None, alias="hall")
    pricing: dict[str, PricingTier] | None = None
    status: str | None = None
    description: str | None = None
    duration: str | None = None
    image_url: str | None = None


class EventResponse(CamelModel):
    id: str
    title: str
    event_type: str = Field(alias="type")
    category: str
    event_date: date = Field(alias="date")
    event_time: str = Field(alias="time")
    hall_id: str = Field(alias="hall")
    total_seats: int
    pricing: dict[str, dict[str, int]]
    status: str
    description: str | None = None
    duration: str | None = None
    image_url: str | None = None
    booked_seats: list[str] = []


class SeatResponse(CamelModel):
    id: str
    type: str
    price: int
    is_booked: bool
    is_held: bool
    is_available: bool


class SeatMapResponse(CamelModel):
    event_id: str
    hall_id: str
    seats: list[SeatResponse]


class CommitSeatsRequest(CamelModel):
    new_booked_seats: list[str] = Field(min_length=1)


class CommitSeatsResponse(CamelModel):
    event_id: str
    added: list[str]
    booked_seats: list[str]


# -----------------------------
# Bookings
# -----------------------------
class BookingInitiateRequest(CamelModel):
    customer_name: str = Field(min_length=1)
    customer_email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    customer_phone: str = Field(min_length=1)
    event_id: str
    seats: list[str]
    seat_type: str | None = None
    amount: int | None = None
    processing_fee: int | None = None
    total_amount: int | None = None
    payment_method: str | None = None


class BookingInitiateResponse(CamelModel):
    booking_id: str
    booking_code: str
    status: BookingStatus
    provider: str
    payment_reference: str
    transaction_reference: str | None = None
    checkout_url: str | None = None
    checkout_handle: str | None = None
    public_key: str | None = None
    amount: int
    processing_fee: int
    total_amount: int
    currency: str


class BookingResponse(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    booking_code: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_id: str
    seats: list[str]
    seat_type: str
    amount: int
    processing_fee: int
    total_amount: int
    currency: str
    payment_method: str
    payment_reference: str
    transaction_reference: str | None = None
    status: BookingStatus
    gateway_status: str | None = None
    amount_paid: int | None = None
    needs_refund: bool
    receipt_sent_at: datetime | None = None
    created_at: datetime | None = None


# -----------------------------
# Payments
# -----------------------------
class VerifyPaymentRequest(CamelModel):
    payment_reference: str = Field(min_length=1)


class VerifyPaymentResponse(CamelModel):
    success: bool
    payment_status: str
    transaction_reference: str | None = None
    amount_paid: int
    booking_id: str
    booking_status: BookingStatus


class WebhookAck(CamelModel):
    received: bool = True
    processed: bool = False
    detail: str | None = None


# -----------------------------
# Admin
# -----------------------------
class ReconcileRequest(CamelModel):
    older_than_minutes: int | None = Field(default=None, ge=0)


class ReconcileResponse(CamelModel):
    checked: int
    confirmed: list[str]
    failed: list[str]
    skipped: list[str]


class EventSalesSummary(CamelModel):
    event_id: str
    title: str
    total_seats: int
    seats_sold: int
    confirmed_bookings: int
    revenue: int
    occupancy: float


class SalesReportResponse(CamelModel):
    confirmed_bookings: int
    revenue: int
    seats_sold: int
    events: list[EventSalesSummary]
