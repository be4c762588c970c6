# src/infrastructure/gateways/factory.py

import os

from src.domain.exceptions import ValidationFailedError
from src.infrastructure.gateways.base import PaymentGateway
from src.infrastructure.gateways.monnify_gateway import MonnifyGateway
from src.infrastructure.gateways.razorpay_gateway import RazorpayGateway


_GATEWAYS: dict[str, type[PaymentGateway]] = {
    "card": RazorpayGateway,
    "razorpay": RazorpayGateway,
    "bank_transfer": MonnifyGateway,
    "monnify": MonnifyGateway,
}


def default_gateway_name() -> str:
    return os.getenv("PAYMENT_GATEWAY", "bank_transfer").lower()


def get_gateway(name: str | None = None) -> PaymentGateway:
    """Build the adapter for a payment method or provider name."""
    key = (name or default_gateway_name()).lower()
    gateway_class = _GATEWAYS.get(key)
    if not gateway_class:
        raise ValidationFailedError(f"Unknown payment method: {name}")
    return gateway_class()
