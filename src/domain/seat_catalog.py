# src/domain/seat_catalog.py

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Sequence

from src.domain.exceptions import (
    InvalidPricingError,
    UnknownSeatError,
    UnsupportedLayoutError,
)


PROCESSING_FEE_RATE = Decimal("0.02")


class HallType(str, Enum):
    VIP = "vip"
    STANDARD = "standard"


class EventType(str, Enum):
    MOVIE = "movie"
    MATCH = "match"


@dataclass(frozen=True)
class SeatTier:
    """
    One pricing bucket of a layout.

    `pricing_key` is the key used in an event's pricing table,
    `seat_type` the semantic type stamped on each generated seat.
    `prefixes` and `per_row` describe named-row layouts; a tier without
    rows is numbered `{HALLID}-{n}` over the whole hall capacity.
    """

    pricing_key: str
    seat_type: str
    label: str
    prefixes: tuple[str, ...] = ()
    per_row: int = 0
    # physical seats the tier occupies, when it differs from the id count
    fixed_count: int | None = None

    @property
    def hall_numbered(self) -> bool:
        return not self.prefixes

    def seat_ids(self, hall_id: str, capacity: int) -> list[str]:
        if self.hall_numbered:
            return [f"{hall_id.upper()}-{n}" for n in range(1, capacity + 1)]
        return [
            f"{prefix}{n}"
            for prefix in self.prefixes
            for n in range(1, self.per_row + 1)
        ]

    def expected_count(self, capacity: int) -> int:
        if self.hall_numbered:
            return capacity
        if self.fixed_count is not None:
            return self.fixed_count
        return len(self.prefixes) * self.per_row


@dataclass(frozen=True)
class SeatLayout:
    hall_type: HallType
    event_type: EventType
    tiers: tuple[SeatTier, ...]

    def tier_for_key(self, pricing_key: str) -> SeatTier | None:
        for tier in self.tiers:
            if tier.pricing_key == pricing_key:
                return tier
        return None


@dataclass(frozen=True)
class Seat:
    id: str
    type: str
    price: int
    is_booked: bool = False
    is_held: bool = False

    @property
    def is_available(self) -> bool:
        return not (self.is_booked or self.is_held)


_LAYOUTS: dict[tuple[HallType, EventType], SeatLayout] = {
    (HallType.VIP, EventType.MATCH): SeatLayout(
        hall_type=HallType.VIP,
        event_type=EventType.MATCH,
        tiers=(
            SeatTier("vipSofaSeats", "sofa", "VIP Sofa Seat", ("S1", "S2"), 5),
            SeatTier("vipRegularSeats", "regular", "VIP Regular Seat", ("A", "B"), 6),
        ),
    ),
    (HallType.VIP, EventType.MOVIE): SeatLayout(
        hall_type=HallType.VIP,
        event_type=EventType.MOVIE,
        tiers=(
            SeatTier("vipSingle", "vipSingle", "VIP Single Seat", ("S",), 20),
            # 7 couple pods seat 14 people
            SeatTier("vipCouple", "vipCouple", "VIP Couple Seat", ("C",), 7, fixed_count=14),
            SeatTier("vipFamily", "vipFamily", "VIP Family Seat", ("F",), 14),
        ),
    ),
    (HallType.STANDARD, EventType.MATCH): SeatLayout(
        hall_type=HallType.STANDARD,
        event_type=EventType.MATCH,
        tiers=(
            SeatTier("standardMatchSeats", "standardMatch", "Standard Match Seat"),
        ),
    ),
    (HallType.STANDARD, EventType.MOVIE): SeatLayout(
        hall_type=HallType.STANDARD,
        event_type=EventType.MOVIE,
        tiers=(
            SeatTier("standardSingle", "standardSingle", "Standard Single Seat"),
        ),
    ),
}

_SEAT_TYPE_LABELS = {
    tier.seat_type: tier.label
    for layout in _LAYOUTS.values()
    for tier in layout.tiers
}


def get_layout(hall_type: str, event_type: str) -> SeatLayout:
    try:
        key = (HallType(hall_type), EventType(event_type))
    except ValueError as exc:
        raise UnsupportedLayoutError(str(hall_type), str(event_type)) from exc
    return _LAYOUTS[key]


def validate_pricing(
    layout: SeatLayout,
    pricing: dict,
    capacity: int,
) -> dict[str, dict[str, int]]:
    """
    Check a pricing table against a layout and return it normalized.

    Every tier of the layout must be priced. Counts are optional and
    default to what the layout produces; the total must equal the hall
    capacity. Keys that belong to no tier are rejected.
    """
    if capacity <= 0:
        raise InvalidPricingError("Hall capacity must be a positive number")

    pricing = pricing or {}
    unknown = sorted(key for key in pricing if layout.tier_for_key(key) is None)
    if unknown:
        raise InvalidPricingError(
            f"Pricing tiers not used by this layout: {', '.join(unknown)}"
        )

    normalized: dict[str, dict[str, int]] = {}
    for tier in layout.tiers:
        entry = pricing.get(tier.pricing_key)
        if entry is None or entry.get("price") is None:
            raise InvalidPricingError(f"Missing price for tier {tier.pricing_key}")

        price = entry["price"]
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise InvalidPricingError(
                f"Price for tier {tier.pricing_key} must be a non-negative integer"
            )

        expected = tier.expected_count(capacity)
        count = entry.get("count", expected)
        if count != expected:
            raise InvalidPricingError(
                f"Tier {tier.pricing_key} has {expected} seats, got count {count}"
            )
        normalized[tier.pricing_key] = {"price": price, "count": count}

    total = sum(item["count"] for item in normalized.values())
    if total != capacity:
        raise InvalidPricingError(
            f"Seat counts add up to {total} but the hall holds {capacity}"
        )
    return normalized


def generate_seats(
    hall_id: str,
    layout: SeatLayout,
    pricing: dict,
    capacity: int,
    booked: Iterable[str] = (),
    held: Iterable[str] = (),
) -> list[Seat]:
    booked_set = set(booked)
    held_set = set(held)
    seats: list[Seat] = []
    for tier in layout.tiers:
        price = pricing[tier.pricing_key]["price"]
        for seat_id in tier.seat_ids(hall_id, capacity):
            seats.append(
                Seat(
                    id=seat_id,
                    type=tier.seat_type,
                    price=price,
                    is_booked=seat_id in booked_set,
                    is_held=seat_id in held_set,
                )
            )
    return seats


def seat_universe(hall_id: str, layout: SeatLayout, capacity: int) -> set[str]:
    return {
        seat_id
        for tier in layout.tiers
        for seat_id in tier.seat_ids(hall_id, capacity)
    }


def price_seats(
    hall_id: str,
    layout: SeatLayout,
    pricing: dict,
    capacity: int,
    seat_ids: Sequence[str],
) -> tuple[int, list[str]]:
    """Return the amount for a selection and the seat types it spans."""
    by_id = {
        seat.id: seat
        for seat in generate_seats(hall_id, layout, pricing, capacity)
    }
    unknown = [seat_id for seat_id in seat_ids if seat_id not in by_id]
    if unknown:
        raise UnknownSeatError(unknown)

    amount = sum(by_id[seat_id].price for seat_id in seat_ids)
    seat_types: list[str] = []
    for seat_id in seat_ids:
        if by_id[seat_id].type not in seat_types:
            seat_types.append(by_id[seat_id].type)
    return amount, seat_types


def processing_fee(amount: int) -> int:
    fee = (Decimal(amount) * PROCESSING_FEE_RATE).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(fee)


def seat_type_label(seat_type: str) -> str:
    return _SEAT_TYPE_LABELS.get(seat_type, seat_type)
