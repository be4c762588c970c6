# src/domain/payment.py

from dataclasses import dataclass, field
from enum import Enum


class PaymentStatus(str, Enum):
    PAID = "PAID"
    PENDING = "PENDING"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class CheckoutSession:
    """What the client needs to complete a payment."""

    provider: str
    transaction_reference: str
    checkout_url: str | None = None
    checkout_handle: str | None = None
    public_key: str | None = None


@dataclass(frozen=True)
class PaymentVerification:
    provider: str
    transaction_reference: str
    status: PaymentStatus
    amount_paid: int = 0
    gateway_status: str | None = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_paid(self) -> bool:
        return self.status is PaymentStatus.PAID


@dataclass(frozen=True)
class WebhookNotice:
    """A gateway callback reduced to what the confirmation flow needs."""

    provider: str
    event_type: str
    transaction_reference: str | None
    claimed_status: str | None
    actionable: bool
