

class TicketingError(Exception):
    """
    Base exception for all domain-level errors
    inside the ticketing engine.
    """


class ValidationFailedError(TicketingError):
    """Raised when a request is malformed or violates a business rule."""


class UnsupportedLayoutError(ValidationFailedError):
    """Raised for a hall type / event type pair with no seat layout."""

    def __init__(self, hall_type: str, event_type: str):
        self.hall_type = hall_type
        self.event_type = event_type
        super().__init__(
            f"No seat layout for a {event_type} in a {hall_type} hall"
        )


class InvalidPricingError(ValidationFailedError):
    """Raised when an event's pricing table does not fit its layout."""


class UnknownSeatError(ValidationFailedError):
    """Raised when seat ids are not part of the event's seat universe."""

    def __init__(self, seat_ids: list[str]):
        self.seat_ids = seat_ids
        super().__init__(f"Unknown seats for this event: {', '.join(seat_ids)}")


class NotFoundError(TicketingError):
    """Raised when a hall, event or booking does not exist."""


class InvalidStateTransitionError(TicketingError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class SeatUnavailableError(TicketingError):
    """Raised when requested seats are already held or booked."""

    def __init__(self, seat_ids: list[str]):
        self.seat_ids = seat_ids
        super().__init__(f"Seats no longer available: {', '.join(seat_ids)}")


class IdempotencyConflictError(TicketingError):
    """Raised when an idempotent request conflicts with previous data."""


class GatewayUnavailableError(TicketingError):
    """
    Raised when a payment aggregator cannot be reached or answers with
    an error. The payment outcome is unknown, not failed.
    """


class GatewayConfigurationError(TicketingError):
    """Raised when gateway credentials are missing from the environment."""


class ResourceInUseError(TicketingError):
    """Raised when a hall or event is still referenced and cannot change."""
