# src/infrastructure/gateways/base.py

import os
from abc import ABC, abstractmethod

from src.domain.payment import (
    CheckoutSession,
    Customer,
    PaymentVerification,
    WebhookNotice,
)


def gateway_timeout() -> float:
    return float(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "10"))


def payment_currency() -> str:
    return os.getenv("PAYMENT_CURRENCY", "NGN")


class PaymentGateway(ABC):
    """
    One payment aggregator behind the booking flow.

    `verify` is a pure query: calling it any number of times must not
    change anything on the aggregator side. Transport problems raise
    GatewayUnavailableError and are never reported as a failed payment.
    """

    name: str = ""

    @abstractmethod
    def initialize(
        self,
        amount: int,
        customer: Customer,
        reference: str,
        metadata: dict,
    ) -> CheckoutSession:
        ...

    @abstractmethod
    def verify(self, transaction_reference: str) -> PaymentVerification:
        ...

    @abstractmethod
    def parse_webhook(self, payload: dict) -> WebhookNotice:
        ...

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        return True
