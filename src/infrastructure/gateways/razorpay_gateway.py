# src/infrastructure/gateways/razorpay_gateway.py

import logging
import os

import razorpay
import requests

from src.domain.exceptions import GatewayConfigurationError, GatewayUnavailableError
from src.domain.payment import (
    CheckoutSession,
    Customer,
    PaymentStatus,
    PaymentVerification,
    WebhookNotice,
)
from src.infrastructure.gateways.base import PaymentGateway, gateway_timeout, payment_currency


logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.exceptions.RequestException,
)

_ACTIONABLE_EVENTS = {"order.paid", "payment.captured", "payment.failed"}


def _razorpay_client() -> razorpay.Client:
    key_id = os.getenv("RAZORPAY_KEY_ID")
    key_secret = os.getenv("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        raise GatewayConfigurationError(
            "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
        )
    return razorpay.Client(auth=(key_id, key_secret))


class RazorpayGateway(PaymentGateway):
    """
    Card aggregator. The server creates an order; the order id is handed
    to the checkout popup on the client and doubles as the transaction
    reference for verification.
    """

    name = "razorpay"

    def __init__(self, client: razorpay.Client | None = None):
        self._client = client

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            self._client = _razorpay_client()
        return self._client

    def initialize(
        self,
        amount: int,
        customer: Customer,
        reference: str,
        metadata: dict,
    ) -> CheckoutSession:
        notes = {
            "customer_name": customer.name,
            "customer_email": customer.email,
            "customer_phone": customer.phone,
        }
        notes.update({key: str(value) for key, value in metadata.items()})
        try:
            order = self.client.order.create(
                {
                    "amount": amount * 100,
                    "currency": payment_currency(),
                    "receipt": reference,
                    "notes": notes,
                },
                timeout=gateway_timeout(),
            )
        except _TRANSPORT_ERRORS as exc:
            logger.warning("Razorpay order creation failed reference=%s error=%s", reference, exc)
            raise GatewayUnavailableError("Card payment service is unavailable") from exc

        order_id = order.get("id")
        if not order_id:
            raise GatewayUnavailableError("Card payment service returned no order id")

        return CheckoutSession(
            provider=self.name,
            transaction_reference=order_id,
            checkout_handle=order_id,
            public_key=os.getenv("RAZORPAY_KEY_ID"),
        )

    def verify(self, transaction_reference: str) -> PaymentVerification:
        try:
            order = self.client.order.fetch(transaction_reference, timeout=gateway_timeout())
            order_status = order.get("status")
            amount_paid = int(order.get("amount_paid", 0)) // 100
            if order_status == "paid":
                status = PaymentStatus.PAID
            elif order_status == "attempted":
                payments = self.client.order.payments(
                    transaction_reference,
                    timeout=gateway_timeout(),
                )
                items = payments.get("items", [])
                status = self._status_from_payments(items)
                if status is PaymentStatus.PAID:
                    # order.amount_paid lags behind captured payments
                    amount_paid = max(amount_paid, self._captured_amount(items))
            else:
                status = PaymentStatus.PENDING
        except _TRANSPORT_ERRORS as exc:
            logger.warning(
                "Razorpay order fetch failed reference=%s error=%s",
                transaction_reference,
                exc,
            )
            raise GatewayUnavailableError("Card payment service is unavailable") from exc

        return PaymentVerification(
            provider=self.name,
            transaction_reference=transaction_reference,
            status=status,
            amount_paid=amount_paid,
            gateway_status=order_status,
            raw=order,
        )

    @staticmethod
    def _captured_amount(items: list[dict]) -> int:
        paise = sum(int(item.get("amount", 0)) for item in items if item.get("status") == "captured")
        return paise // 100

    @staticmethod
    def _status_from_payments(items: list[dict]) -> PaymentStatus:
        statuses = {item.get("status") for item in items}
        if "captured" in statuses:
            return PaymentStatus.PAID
        if statuses and statuses <= {"failed"}:
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING

    def parse_webhook(self, payload: dict) -> WebhookNotice:
        event_type = payload.get("event", "")
        entities = payload.get("payload", {})
        order = entities.get("order", {}).get("entity", {})
        payment = entities.get("payment", {}).get("entity", {})
        reference = order.get("id") or payment.get("order_id")
        return WebhookNotice(
            provider=self.name,
            event_type=event_type,
            transaction_reference=reference,
            claimed_status=payment.get("status") or order.get("status"),
            actionable=event_type in _ACTIONABLE_EVENTS and bool(reference),
        )

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        secret = os.getenv("RAZORPAY_WEBHOOK_SECRET")
        if not secret:
            return True
        if not signature:
            return False
        try:
            body = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            return False
        try:
            self.client.utility.verify_webhook_signature(body, signature, secret)
        except razorpay.errors.SignatureVerificationError:
            return False
        return True
