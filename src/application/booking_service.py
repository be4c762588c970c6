import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.domain.exceptions import (
    GatewayUnavailableError,
    NotFoundError,
    SeatUnavailableError,
    ValidationFailedError,
)
from src.domain.payment import Customer, CheckoutSession, PaymentStatus, PaymentVerification
from src.domain.seat_catalog import get_layout, price_seats, processing_fee
from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.infrastructure.db.models import Booking, PaymentWebhookEvent
from src.infrastructure.gateways.base import PaymentGateway, payment_currency
from src.infrastructure.gateways.factory import get_gateway
from src.infrastructure.repositories.availability_repository import AvailabilityRepository
from src.infrastructure.repositories.booking_repository import BookingRepository


logger = logging.getLogger(__name__)

GatewayFactory = Callable[[str | None], PaymentGateway]


def hold_ttl_minutes() -> int:
    return int(os.getenv("BOOKING_HOLD_TTL_MINUTES", "15"))


@dataclass
class InitiateBookingCommand:
    customer_name: str
    customer_email: str
    customer_phone: str
    event_id: str
    seats: list[str]
    seat_type: str | None = None
    amount: int | None = None
    processing_fee: int | None = None
    total_amount: int | None = None
    payment_method: str | None = None


@dataclass
class BookingInitiation:
    booking: Booking
    checkout: CheckoutSession


@dataclass
class ConfirmationResult:
    booking: Booking
    payment_status: PaymentStatus
    amount_paid: int = 0
    newly_confirmed: bool = False
    seat_conflict: list[str] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    checked: int = 0
    confirmed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class BookingService:
    """Application service coordinating booking workflow."""

    def __init__(self, db: Session, gateway_factory: GatewayFactory = get_gateway):
        self.db = db
        self.gateway_factory = gateway_factory
        self.booking_repository = BookingRepository(db)
        self.availability = AvailabilityRepository(db)

    # -----------------------------
    # Initiation
    # -----------------------------
    def initiate_booking(self, command: InitiateBookingCommand) -> BookingInitiation:
        seats = list(command.seats)
        if not seats:
            raise ValidationFailedError("At least one seat must be selected")
        duplicates = sorted({seat for seat in seats if seats.count(seat) > 1})
        if duplicates:
            raise ValidationFailedError(f"Seats selected more than once: {', '.join(duplicates)}")

        event = self.availability.lock_event(command.event_id)
        if event.status != "active":
            raise ValidationFailedError("Event is not open for booking")

        hall = event.hall
        layout = get_layout(hall.type, event.event_type)
        amount, seat_types = price_seats(hall.id, layout, event.pricing, hall.capacity, seats)
        fee = processing_fee(amount)
        self._check_client_amounts(command, amount, fee)

        if not self.availability.is_available(event.id, seats):
            taken = set(self.availability.booked_seat_ids(event.id))
            taken.update(self.availability.held_seat_ids(event.id))
            raise SeatUnavailableError(sorted(set(seats) & taken))

        gateway = self.gateway_factory(command.payment_method)
        booking = self.booking_repository.create_booking(
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            customer_phone=command.customer_phone,
            event_id=event.id,
            seats=seats,
            seat_type=command.seat_type or ",".join(seat_types),
            amount=amount,
            processing_fee=fee,
            total_amount=amount + fee,
            currency=payment_currency(),
            payment_method=gateway.name,
            payment_reference=self._new_reference(),
        )
        self.availability.hold(event.id, seats, booking.id)

        try:
            checkout = gateway.initialize(
                amount=booking.total_amount,
                customer=Customer(
                    name=booking.customer_name,
                    email=booking.customer_email,
                    phone=booking.customer_phone,
                ),
                reference=booking.payment_reference,
                metadata={
                    "bookingId": booking.id,
                    "eventId": event.id,
                    "eventTitle": event.title,
                    "eventType": event.event_type,
                    "seats": seats,
                    "seatType": booking.seat_type,
                },
            )
        except GatewayUnavailableError:
            logger.warning(
                "Payment session could not be opened booking=%s reference=%s",
                booking.id,
                booking.payment_reference,
            )
            self._transition(booking, BookingStatus.FAILED)
            self.availability.release(booking.id)
            self.db.flush()
            raise

        booking.transaction_reference = checkout.transaction_reference
        booking.checkout_url = checkout.checkout_url
        self.db.flush()
        logger.info(
            "Booking initiated booking=%s reference=%s seats=%s total=%s",
            booking.id,
            booking.payment_reference,
            seats,
            booking.total_amount,
        )
        return BookingInitiation(booking=booking, checkout=checkout)

    @staticmethod
    def _check_client_amounts(command: InitiateBookingCommand, amount: int, fee: int) -> None:
        if command.amount is not None and command.amount != amount:
            raise ValidationFailedError(
                f"Amount {command.amount} does not match the seat prices ({amount})"
            )
        if command.processing_fee is not None and command.processing_fee != fee:
            raise ValidationFailedError(
                f"Processing fee {command.processing_fee} does not match the expected fee ({fee})"
            )
        if command.total_amount is not None and command.total_amount != amount + fee:
            raise ValidationFailedError(
                f"Total amount {command.total_amount} must equal amount plus processing fee ({amount + fee})"
            )

    @staticmethod
    def _new_reference() -> str:
        return f"PAY_{uuid4().hex[:24].upper()}"

    # -----------------------------
    # Confirmation
    # -----------------------------
    def confirm_payment(
        self,
        reference: str,
        payload_hash: str | None = None,
    ) -> ConfirmationResult:
        """
        Apply the gateway's authoritative status to a booking.

        Safe to call any number of times for the same reference: a
        confirmed booking is returned untouched, and a failed or
        cancelled one is never revived.
        """
        booking = self.booking_repository.get_by_reference(reference)
        if not booking:
            raise NotFoundError(f"No booking for payment reference {reference}")
        if not booking.transaction_reference:
            raise ValidationFailedError("Booking has no payment session to verify")

        gateway = self.gateway_factory(booking.payment_method)
        verification = gateway.verify(booking.transaction_reference)

        booking = self.booking_repository.get_by_id(booking.id, for_update=True)
        return self._apply_verification(booking, verification, payload_hash)

    def _apply_verification(
        self,
        booking: Booking,
        verification: PaymentVerification,
        payload_hash: str | None,
    ) -> ConfirmationResult:
        result = ConfirmationResult(
            booking=booking,
            payment_status=verification.status,
            amount_paid=verification.amount_paid,
        )

        if booking.status == BookingStatus.CONFIRMED:
            logger.info("Booking already confirmed, skipping booking=%s", booking.id)
            return result

        booking.gateway_status = verification.gateway_status or verification.status.value
        booking.amount_paid = verification.amount_paid

        if not verification.is_paid:
            if booking.status == BookingStatus.PENDING:
                self._fail(booking)
                logger.info(
                    "Payment not confirmed booking=%s gateway_status=%s",
                    booking.id,
                    booking.gateway_status,
                )
            self.db.flush()
            return result

        if booking.status != BookingStatus.PENDING:
            booking.needs_refund = True
            logger.error(
                "Payment received for %s booking=%s reference=%s, refund required",
                booking.status.value,
                booking.id,
                booking.payment_reference,
            )
            self.db.flush()
            return result

        if verification.amount_paid < booking.total_amount:
            self._fail(booking, needs_refund=True)
            logger.error(
                "Underpayment booking=%s paid=%s expected=%s",
                booking.id,
                verification.amount_paid,
                booking.total_amount,
            )
            self.db.flush()
            return result

        self.availability.lock_event(booking.event_id)
        try:
            self.availability.commit(booking.event_id, booking.seats, booking.id)
        except SeatUnavailableError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise
            self._fail(booking, needs_refund=True)
            logger.error(
                "Seat conflict on confirmation booking=%s seats=%s, refund required",
                booking.id,
                exc.seat_ids,
            )
            self.db.flush()
            result.seat_conflict = exc.seat_ids
            return result

        self.db.add(
            PaymentWebhookEvent(
                provider=verification.provider,
                transaction_reference=verification.transaction_reference,
                booking_id=booking.id,
                payload_hash=payload_hash,
                status="PROCESSED",
            )
        )
        self._transition(booking, BookingStatus.CONFIRMED)
        self.db.flush()

        result.newly_confirmed = True
        logger.info(
            "Booking confirmed booking=%s reference=%s seats=%s",
            booking.id,
            booking.payment_reference,
            booking.seats,
        )
        return result

    # -----------------------------
    # Cancellation / sweep
    # -----------------------------
    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def cancel_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if not booking:
            raise NotFoundError("Booking not found")

        self._transition(booking, BookingStatus.CANCELLED)
        self.availability.release(booking.id)
        self.db.flush()
        logger.info("Booking cancelled booking=%s", booking.id)
        return booking

    def reconcile_stale_bookings(
        self,
        older_than: timedelta | None = None,
    ) -> ReconciliationReport:
        """
        Re-verify pending bookings whose payment session outlived the
        hold window. Gateway outages leave them pending for the next run.
        """
        if older_than is None:
            older_than = timedelta(minutes=hold_ttl_minutes())
        cutoff = datetime.now(timezone.utc) - older_than
        report = ReconciliationReport()

        for booking in self.booking_repository.list_stale_pending(cutoff):
            report.checked += 1
            if not booking.transaction_reference:
                self._fail(booking)
                report.failed.append(booking.id)
                continue
            try:
                result = self.confirm_payment(booking.payment_reference)
            except GatewayUnavailableError:
                report.skipped.append(booking.id)
                continue

            if result.newly_confirmed:
                report.confirmed.append(booking.id)
            elif result.booking.status == BookingStatus.FAILED:
                report.failed.append(booking.id)

        self.db.flush()
        logger.info(
            "Reconciliation done checked=%s confirmed=%s failed=%s skipped=%s",
            report.checked,
            len(report.confirmed),
            len(report.failed),
            len(report.skipped),
        )
        return report

    def _fail(self, booking: Booking, needs_refund: bool = False) -> None:
        self._transition(booking, BookingStatus.FAILED)
        if needs_refund:
            booking.needs_refund = True
        self.availability.release(booking.id)

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)
