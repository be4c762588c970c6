from datetime import timedelta
import hashlib
import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLAlchemyTimeoutError

from src.infrastructure.db.session import SessionLocal
from src.application.booking_service import (
    BookingService,
    ConfirmationResult,
    InitiateBookingCommand,
)
from src.application.event_service import EventService
from src.api.schemas.schemas import (
    BookingInitiateRequest,
    BookingInitiateResponse,
    BookingResponse,
    CommitSeatsRequest,
    CommitSeatsResponse,
    EventCreate,
    EventResponse,
    EventSalesSummary,
    EventUpdate,
    HallCreate,
    HallResponse,
    HallUpdate,
    PricingTier,
    ReconcileRequest,
    ReconcileResponse,
    SalesReportResponse,
    SeatMapResponse,
    SeatResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)
from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayUnavailableError,
    IdempotencyConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ResourceInUseError,
    SeatUnavailableError,
    TicketingError,
    ValidationFailedError,
)
from src.domain.payment import PaymentStatus
from src.domain.state_machine import BookingStatus
from src.infrastructure.db.models import Event
from src.infrastructure.gateways.factory import get_gateway
from src.infrastructure.notifications.email_service import (
    build_receipt_context,
    dispatch_receipt,
    render_receipt,
)
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.event_repository import EventRepository
from src.infrastructure.repositories.hall_repository import HallRepository


router = APIRouter()
logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[TicketingError], int]] = [
    (ValidationFailedError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (SeatUnavailableError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (IdempotencyConflictError, status.HTTP_409_CONFLICT),
    (ResourceInUseError, status.HTTP_409_CONFLICT),
    (GatewayUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GatewayConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_gateway_factory():
    return get_gateway


async def get_raw_body(request: Request) -> bytes:
    return await request.body()


def _is_db_degraded(exc: Exception) -> bool:
    return isinstance(exc, (OperationalError, SQLAlchemyTimeoutError))


def _http_error(exc: TicketingError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


def _degraded() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Database is temporarily unavailable. Please retry.",
    )


def _pricing_table(pricing: dict[str, PricingTier]) -> dict:
    return {key: tier.model_dump(exclude_none=True) for key, tier in pricing.items()}


def _event_response(event: Event, booked_seats: list[str]) -> EventResponse:
    return EventResponse(
        id=event.id,
        title=event.title,
        event_type=event.event_type,
        category=event.category,
        event_date=event.event_date,
        event_time=event.event_time,
        hall_id=event.hall_id,
        total_seats=event.total_seats,
        pricing=event.pricing,
        status=event.status,
        description=event.description,
        duration=event.duration,
        image_url=event.image_url,
        booked_seats=booked_seats,
    )


def _hash_payload(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


# -----------------------------
# Health
# -----------------------------
@router.get("/health")
def health():
    return {"message": "Cinema Ticketing Engine is running"}


# -----------------------------
# Halls
# -----------------------------
@router.get("/halls", response_model=list[HallResponse])
def list_halls(db: Session = Depends(get_db)):
    return [
        HallResponse(id=hall.id, name=hall.name, capacity=hall.capacity, type=hall.type)
        for hall in HallRepository(db).list_halls()
    ]


@router.post("/halls", response_model=HallResponse, status_code=status.HTTP_201_CREATED)
def create_hall(request: HallCreate, db: Session = Depends(get_db)):
    try:
        hall = EventService(db).create_hall(
            name=request.name,
            capacity=request.capacity,
            hall_type=request.type,
            hall_id=request.id,
        )
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return HallResponse(id=hall.id, name=hall.name, capacity=hall.capacity, type=hall.type)


@router.put("/halls/{hall_id}", response_model=HallResponse)
def update_hall(hall_id: str, request: HallUpdate, db: Session = Depends(get_db)):
    try:
        hall = EventService(db).update_hall(
            hall_id,
            name=request.name,
            capacity=request.capacity,
            hall_type=request.type,
        )
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return HallResponse(id=hall.id, name=hall.name, capacity=hall.capacity, type=hall.type)


@router.delete("/halls/{hall_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_hall(hall_id: str, db: Session = Depends(get_db)):
    try:
        EventService(db).delete_hall(hall_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc


# -----------------------------
# Events
# -----------------------------
@router.get("/events", response_model=list[EventResponse])
def list_events(
    status_filter: str | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    service = EventService(db)
    return [
        _event_response(event, service.booked_seats(event.id))
        for event in EventRepository(db).list_events(status=status_filter)
    ]


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(request: EventCreate, db: Session = Depends(get_db)):
    try:
        event = EventService(db).create_event(
            title=request.title,
            event_type=request.event_type,
            category=request.category,
            event_date=request.event_date,
            event_time=request.event_time,
            hall_id=request.hall_id,
            pricing=_pricing_table(request.pricing),
            total_seats=request.total_seats,
            status=request.status,
            description=request.description,
            duration=request.duration,
            image_url=request.image_url,
        )
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return _event_response(event, [])


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    service = EventService(db)
    try:
        event = service.get_event(event_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return _event_response(event, service.booked_seats(event.id))


@router.put("/events/{event_id}", response_model=EventResponse)
def update_event(event_id: str, request: EventUpdate, db: Session = Depends(get_db)):
    changes = request.model_dump(exclude_unset=True)
    if request.pricing is not None:
        changes["pricing"] = _pricing_table(request.pricing)
    for required in ("title", "event_type", "category", "event_date", "event_time", "hall_id", "pricing", "status"):
        if required in changes and changes[required] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{required} cannot be cleared",
            )

    service = EventService(db)
    try:
        event = service.update_event(event_id, changes)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return _event_response(event, service.booked_seats(event.id))


@router.patch("/events/{event_id}", response_model=CommitSeatsResponse)
def commit_event_seats(
    event_id: str,
    request: CommitSeatsRequest,
    db: Session = Depends(get_db),
):
    service = EventService(db)
    try:
        added = service.commit_seats(event_id, request.new_booked_seats)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Seats were taken by a concurrent request.",
        ) from exc

    return CommitSeatsResponse(
        event_id=event_id,
        added=added,
        booked_seats=service.booked_seats(event_id),
    )


@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(event_id: str, db: Session = Depends(get_db)):
    try:
        EventService(db).delete_event(event_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc


@router.get("/events/{event_id}/seats", response_model=SeatMapResponse)
def get_seat_map(event_id: str, db: Session = Depends(get_db)):
    try:
        event, seats = EventService(db).seat_map(event_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return SeatMapResponse(
        event_id=event.id,
        hall_id=event.hall_id,
        seats=[
            SeatResponse(
                id=seat.id,
                type=seat.type,
                price=seat.price,
                is_booked=seat.is_booked,
                is_held=seat.is_held,
                is_available=seat.is_available,
            )
            for seat in seats
        ],
    )


# -----------------------------
# Bookings
# -----------------------------
@router.post(
    "/bookings/initiate",
    response_model=BookingInitiateResponse,
    status_code=status.HTTP_201_CREATED,
)
def initiate_booking(
    request: BookingInitiateRequest,
    db: Session = Depends(get_db),
    gateway_factory=Depends(get_gateway_factory),
):
    service = BookingService(db, gateway_factory=gateway_factory)
    command = InitiateBookingCommand(
        customer_name=request.customer_name,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        event_id=request.event_id,
        seats=request.seats,
        seat_type=request.seat_type,
        amount=request.amount,
        processing_fee=request.processing_fee,
        total_amount=request.total_amount,
        payment_method=request.payment_method,
    )
    try:
        initiation = service.initiate_booking(command)
    except GatewayUnavailableError as exc:
        # keep the failed booking and released holds
        db.commit()
        raise _http_error(exc) from exc
    except TicketingError as exc:
        raise _http_error(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Seats were taken by a concurrent request.",
        ) from exc
    except Exception as exc:
        if _is_db_degraded(exc):
            logger.exception("Database unavailable while initiating booking event=%s", request.event_id)
            raise _degraded() from exc
        raise

    booking = initiation.booking
    checkout = initiation.checkout
    return BookingInitiateResponse(
        booking_id=booking.id,
        booking_code=booking.booking_code,
        status=booking.status,
        provider=checkout.provider,
        payment_reference=booking.payment_reference,
        transaction_reference=checkout.transaction_reference,
        checkout_url=checkout.checkout_url,
        checkout_handle=checkout.checkout_handle,
        public_key=checkout.public_key,
        amount=booking.amount,
        processing_fee=booking.processing_fee,
        total_amount=booking.total_amount,
        currency=booking.currency,
    )


@router.get("/bookings", response_model=list[BookingResponse])
def list_bookings(
    email: str | None = None,
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    event_id: str | None = None,
    db: Session = Depends(get_db),
):
    bookings = BookingRepository(db).list_bookings(
        customer_email=email,
        status=status_filter,
        event_id=event_id,
    )
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).get_booking(booking_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).cancel_booking(booking_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/receipt/email", status_code=status.HTTP_202_ACCEPTED)
def resend_receipt(
    booking_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        booking = BookingService(db).get_booking(booking_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    if booking.status != BookingStatus.CONFIRMED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Receipts are only sent for confirmed bookings.",
        )
    background_tasks.add_task(dispatch_receipt, booking.id)
    return {"booking_id": booking.id, "status": "queued"}


@router.get("/receipt/{booking_id}", response_class=HTMLResponse)
def receipt_page(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).get_booking(booking_id)
    except TicketingError as exc:
        raise _http_error(exc) from exc
    event = booking.event
    context = build_receipt_context(booking, event, event.hall if event else None)
    return HTMLResponse(render_receipt(context))


# -----------------------------
# Payments
# -----------------------------
def _confirm(
    db: Session,
    service: BookingService,
    reference: str,
    background_tasks: BackgroundTasks,
    payload_hash: str | None = None,
) -> ConfirmationResult:
    """
    Run the confirmation flow and commit its outcome. The receipt is
    queued only after the commit and only for a first confirmation.
    """
    try:
        result = service.confirm_payment(reference, payload_hash=payload_hash)
        db.commit()
    except IntegrityError as exc:
        # a concurrent delivery already recorded this payment
        db.rollback()
        logger.info("Duplicate confirmation ignored reference=%s", reference)
        raise IdempotencyConflictError(
            f"Payment {reference} was already processed"
        ) from exc

    if result.newly_confirmed:
        background_tasks.add_task(dispatch_receipt, result.booking.id)
    return result


@router.post("/payment/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway_factory=Depends(get_gateway_factory),
):
    service = BookingService(db, gateway_factory=gateway_factory)
    try:
        result = _confirm(db, service, request.payment_reference, background_tasks)
    except IdempotencyConflictError:
        booking = BookingRepository(db).get_by_reference(request.payment_reference)
        return VerifyPaymentResponse(
            success=booking.status == BookingStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID.value,
            transaction_reference=booking.transaction_reference,
            amount_paid=booking.amount_paid or 0,
            booking_id=booking.id,
            booking_status=booking.status,
        )
    except TicketingError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        if _is_db_degraded(exc):
            logger.exception("Database unavailable while verifying reference=%s", request.payment_reference)
            raise _degraded() from exc
        raise

    if result.seat_conflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"Seats {', '.join(result.seat_conflict)} were sold to another booking. "
                "The payment will be refunded."
            ),
        )

    booking = result.booking
    return VerifyPaymentResponse(
        success=result.payment_status == PaymentStatus.PAID
        and booking.status == BookingStatus.CONFIRMED,
        payment_status=result.payment_status.value,
        transaction_reference=booking.transaction_reference,
        amount_paid=result.amount_paid,
        booking_id=booking.id,
        booking_status=booking.status,
    )


def _handle_webhook(
    provider: str,
    raw_body: bytes,
    signature: str | None,
    background_tasks: BackgroundTasks,
    db: Session,
    gateway_factory,
) -> WebhookAck:
    try:
        gateway = gateway_factory(provider)
        signature_valid = gateway.verify_webhook_signature(raw_body, signature)
    except TicketingError as exc:
        logger.error("Webhook signature check failed provider=%s error=%s", provider, exc)
        raise _http_error(exc) from exc
    if not signature_valid:
        logger.warning("Webhook signature rejected provider=%s", provider)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook body is not valid JSON",
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook body must be a JSON object",
        )

    notice = gateway.parse_webhook(payload)
    if not notice.actionable:
        logger.info(
            "Webhook ignored provider=%s event=%s reference=%s",
            provider,
            notice.event_type,
            notice.transaction_reference,
        )
        return WebhookAck(detail=f"Event {notice.event_type or 'unknown'} ignored")

    service = BookingService(db, gateway_factory=gateway_factory)
    try:
        result = _confirm(
            db,
            service,
            notice.transaction_reference,
            background_tasks,
            payload_hash=_hash_payload(raw_body),
        )
    except (NotFoundError, ValidationFailedError) as exc:
        logger.warning(
            "Webhook for unusable reference provider=%s reference=%s error=%s",
            provider,
            notice.transaction_reference,
            exc,
        )
        return WebhookAck(detail=str(exc))
    except IdempotencyConflictError as exc:
        return WebhookAck(detail=str(exc))
    except (GatewayUnavailableError, GatewayConfigurationError) as exc:
        logger.warning(
            "Webhook verification deferred provider=%s reference=%s error=%s",
            provider,
            notice.transaction_reference,
            exc,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment could not be verified yet. Please retry.",
        ) from exc
    except TicketingError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        if _is_db_degraded(exc):
            logger.exception("Database unavailable while handling webhook provider=%s", provider)
            raise _degraded() from exc
        raise

    return WebhookAck(
        processed=result.newly_confirmed,
        detail=f"Booking {result.booking.status.value}",
    )


@router.post("/payment/webhook", response_model=WebhookAck)
def bank_transfer_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    raw_body: bytes = Depends(get_raw_body),
    db: Session = Depends(get_db),
    gateway_factory=Depends(get_gateway_factory),
):
    return _handle_webhook(
        "monnify",
        raw_body,
        request.headers.get("monnify-signature"),
        background_tasks,
        db,
        gateway_factory,
    )


@router.post("/payment/webhook/card", response_model=WebhookAck)
def card_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    raw_body: bytes = Depends(get_raw_body),
    db: Session = Depends(get_db),
    gateway_factory=Depends(get_gateway_factory),
):
    return _handle_webhook(
        "razorpay",
        raw_body,
        request.headers.get("x-razorpay-signature"),
        background_tasks,
        db,
        gateway_factory,
    )


# -----------------------------
# Admin
# -----------------------------
@router.post("/admin/bookings/reconcile", response_model=ReconcileResponse)
def reconcile_bookings(
    background_tasks: BackgroundTasks,
    request: ReconcileRequest | None = None,
    db: Session = Depends(get_db),
    gateway_factory=Depends(get_gateway_factory),
):
    older_than = None
    if request and request.older_than_minutes is not None:
        older_than = timedelta(minutes=request.older_than_minutes)

    try:
        report = BookingService(db, gateway_factory=gateway_factory).reconcile_stale_bookings(older_than)
        db.commit()
    except TicketingError as exc:
        raise _http_error(exc) from exc

    for booking_id in report.confirmed:
        background_tasks.add_task(dispatch_receipt, booking_id)
    return ReconcileResponse(
        checked=report.checked,
        confirmed=report.confirmed,
        failed=report.failed,
        skipped=report.skipped,
    )


@router.get("/admin/reports/summary", response_model=SalesReportResponse)
def sales_summary(db: Session = Depends(get_db)):
    rows = EventRepository(db).sales_summary()
    events = [
        EventSalesSummary(
            event_id=row["event_id"],
            title=row["title"],
            total_seats=row["total_seats"],
            seats_sold=row["seats_sold"],
            confirmed_bookings=row["confirmed_bookings"],
            revenue=row["revenue"],
            occupancy=round(row["seats_sold"] / row["total_seats"], 4) if row["total_seats"] else 0.0,
        )
        for row in rows
    ]
    return SalesReportResponse(
        confirmed_bookings=sum(item.confirmed_bookings for item in events),
        revenue=sum(item.revenue for item in events),
        seats_sold=sum(item.seats_sold for item in events),
        events=events,
    )
