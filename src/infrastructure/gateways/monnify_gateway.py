# src/infrastructure/gateways/monnify_gateway.py

import hashlib
import hmac
import logging
import os
from urllib.parse import quote

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

DEFAULT_BASE_URL = "https://sandbox.monnify.com"

_STATUS_MAP = {
    "PAID": PaymentStatus.PAID,
    "OVERPAID": PaymentStatus.PAID,
    "PENDING": PaymentStatus.PENDING,
    "FAILED": PaymentStatus.FAILED,
    "PARTIALLY_PAID": PaymentStatus.FAILED,
    "REVERSED": PaymentStatus.FAILED,
    "EXPIRED": PaymentStatus.CANCELLED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "ABANDONED": PaymentStatus.CANCELLED,
}

_ACTIONABLE_EVENTS = {"SUCCESSFUL_TRANSACTION", "TRANSACTION_STATUS_CHANGED"}


def normalize_status(raw_status: str | None) -> PaymentStatus:
    return _STATUS_MAP.get((raw_status or "").upper(), PaymentStatus.PENDING)


class MonnifyGateway(PaymentGateway):
    """
    Bank-transfer aggregator with a hosted checkout. Confirmation arrives
    by webhook and is always re-queried before it is acted upon.
    """

    name = "monnify"

    def __init__(
        self,
        api_key: str | None = None,
        secret_key: str | None = None,
        contract_code: str | None = None,
        base_url: str | None = None,
        session: requests.Session | None = None,
    ):
        self.api_key = api_key or os.getenv("MONNIFY_PUBLIC_KEY")
        self.secret_key = secret_key or os.getenv("MONNIFY_SECRET_KEY")
        self.contract_code = contract_code or os.getenv("MONNIFY_CONTRACT_CODE")
        self.base_url = (base_url or os.getenv("MONNIFY_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.http = session or requests.Session()

    def _ensure_configured(self) -> None:
        if not self.api_key or not self.secret_key or not self.contract_code:
            raise GatewayConfigurationError(
                "Monnify keys not configured. Set MONNIFY_PUBLIC_KEY, "
                "MONNIFY_SECRET_KEY and MONNIFY_CONTRACT_CODE."
            )

    def _call(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=gateway_timeout(), **kwargs)
            response.raise_for_status()
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning("Monnify call failed path=%s error=%s", path, exc)
            raise GatewayUnavailableError("Bank transfer service is unavailable") from exc

        if not body.get("requestSuccessful"):
            logger.warning(
                "Monnify rejected request path=%s message=%s",
                path,
                body.get("responseMessage"),
            )
            raise GatewayUnavailableError(
                body.get("responseMessage") or "Bank transfer service rejected the request"
            )
        return body.get("responseBody") or {}

    def _access_token(self) -> str:
        self._ensure_configured()
        body = self._call("POST", "/api/v1/auth/login", auth=(self.api_key, self.secret_key))
        token = body.get("accessToken")
        if not token:
            raise GatewayUnavailableError("Bank transfer service returned no access token")
        return token

    def initialize(
        self,
        amount: int,
        customer: Customer,
        reference: str,
        metadata: dict,
    ) -> CheckoutSession:
        token = self._access_token()
        base_url = os.getenv("APP_BASE_URL", "http://localhost:8000").rstrip("/")
        seats = metadata.get("seats", [])
        payload = {
            "amount": amount,
            "customerName": customer.name,
            "customerEmail": customer.email,
            "customerPhoneNumber": customer.phone,
            "paymentReference": reference,
            "paymentDescription": (
                f"Booking for {metadata.get('eventTitle', metadata.get('eventId'))}"
                f" - Seats: {', '.join(seats)}"
            ),
            "currencyCode": payment_currency(),
            "contractCode": self.contract_code,
            "redirectUrl": f"{base_url}/bookings?paymentReference={quote(reference)}",
            "paymentMethods": ["CARD", "ACCOUNT_TRANSFER"],
            "metaData": metadata,
        }
        body = self._call(
            "POST",
            "/api/v1/merchant/transactions/init-transaction",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        transaction_reference = body.get("transactionReference")
        if not transaction_reference:
            raise GatewayUnavailableError("Bank transfer service returned no transaction reference")

        return CheckoutSession(
            provider=self.name,
            transaction_reference=transaction_reference,
            checkout_url=body.get("checkoutUrl"),
            public_key=self.api_key,
        )

    def verify(self, transaction_reference: str) -> PaymentVerification:
        token = self._access_token()
        body = self._call(
            "GET",
            f"/api/v2/transactions/{quote(transaction_reference, safe='')}",
            headers={"Authorization": f"Bearer {token}"},
        )
        raw_status = body.get("paymentStatus")
        return PaymentVerification(
            provider=self.name,
            transaction_reference=body.get("transactionReference", transaction_reference),
            status=normalize_status(raw_status),
            amount_paid=int(float(body.get("amountPaid") or 0)),
            gateway_status=raw_status,
            raw=body,
        )

    def parse_webhook(self, payload: dict) -> WebhookNotice:
        event_type = payload.get("eventType", "")
        # the flat form carries the fields at the top level
        data = payload.get("eventData") or payload
        reference = data.get("transactionReference")
        return WebhookNotice(
            provider=self.name,
            event_type=event_type,
            transaction_reference=reference,
            claimed_status=data.get("paymentStatus"),
            actionable=bool(reference) and (not event_type or event_type in _ACTIONABLE_EVENTS),
        )

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if not signature:
            return True
        if not self.secret_key:
            return False
        expected = hmac.new(
            self.secret_key.encode("utf-8"),
            raw_body,
            hashlib.sha512,
        ).hexdigest()
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
