# src/infrastructure/notifications/email_service.py

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.domain.seat_catalog import seat_type_label
from src.infrastructure.db.models import Booking, Event, Hall
from src.infrastructure.db.session import get_db_session
from src.infrastructure.repositories.booking_repository import BookingRepository


logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates"
BREVO_URL = "https://api.brevo.com/v3/smtp/email"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def _display_seat(seat_id: str) -> str:
    if "-" in seat_id:
        return seat_id.split("-", 1)[1]
    return seat_id


def build_receipt_context(booking: Booking, event: Event | None, hall: Hall | None) -> dict:
    """Snapshot of everything the receipt shows, detached from the session."""
    return {
        "booking_id": booking.id,
        "booking_code": booking.booking_code,
        "customer_name": booking.customer_name,
        "customer_email": booking.customer_email,
        "event_title": event.title if event else "Unknown Event",
        "event_type": "Sports Match" if event and event.event_type == "match" else "Movie",
        "event_date": event.event_date.isoformat() if event else "N/A",
        "event_time": event.event_time if event else "N/A",
        "hall_name": hall.name if hall else "N/A",
        "seats": ", ".join(_display_seat(seat) for seat in booking.seats),
        "seat_type": ", ".join(seat_type_label(t) for t in booking.seat_type.split(",")),
        "amount": booking.amount,
        "processing_fee": booking.processing_fee,
        "total_amount": booking.total_amount,
        "currency": booking.currency,
        "payment_reference": booking.payment_reference,
        "status": booking.status.value,
    }


def render_receipt(context: dict) -> str:
    return _env.get_template("receipt.html").render(**context)


class EmailService:

    def __init__(self, api_key: str | None = None, sender_email: str | None = None):
        self.api_key = api_key or os.getenv("BREVO_API_KEY")
        self.sender_email = sender_email or os.getenv(
            "BREVO_SENDER_EMAIL", "no-reply@cinema.example.com"
        )
        self.sender_name = os.getenv("BREVO_SENDER_NAME", "Cinema Tickets")

    def send_booking_receipt(self, context: dict) -> bool:
        if not self.api_key:
            logger.warning("BREVO_API_KEY not configured. Skipping receipt email for booking=%s", context["booking_id"])
            return False

        payload = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": context["customer_email"], "name": context["customer_name"]}],
            "subject": f"Your booking confirmation - {context['event_title']}",
            "htmlContent": render_receipt(context),
        }
        try:
            response = requests.post(
                BREVO_URL,
                json=payload,
                headers={"api-key": self.api_key, "Content-Type": "application/json"},
                timeout=10,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            logger.error("Receipt email failed booking=%s error=%s", context["booking_id"], exc)
            return False

        logger.info("Receipt email sent booking=%s", context["booking_id"])
        return True


def dispatch_receipt(booking_id: str, email_service: EmailService | None = None) -> bool:
    """
    Best-effort receipt delivery, run after the confirmation has been
    committed. Failures are logged and never touch the booking status.
    """
    service = email_service or EmailService()
    try:
        with get_db_session() as db:
            booking = BookingRepository(db).get_by_id(booking_id)
            if not booking:
                logger.warning("Receipt requested for unknown booking=%s", booking_id)
                return False
            event = booking.event
            context = build_receipt_context(booking, event, event.hall if event else None)
            sent = service.send_booking_receipt(context)
            if sent:
                booking.receipt_sent_at = datetime.now(timezone.utc)
            return sent
    except Exception:
        logger.exception("Receipt dispatch crashed booking=%s", booking_id)
        return False
