# tests/unit/test_seat_catalog.py

import pytest

from src.domain.exceptions import (
    InvalidPricingError,
    UnknownSeatError,
    UnsupportedLayoutError,
)
from src.domain.seat_catalog import (
    generate_seats,
    get_layout,
    price_seats,
    processing_fee,
    seat_type_label,
    seat_universe,
    validate_pricing,
)


VIP_MATCH_PRICING = {
    "vipSofaSeats": {"price": 12000},
    "vipRegularSeats": {"price": 6000},
}

VIP_MOVIE_PRICING = {
    "vipSingle": {"price": 8000},
    "vipCouple": {"price": 15000},
    "vipFamily": {"price": 7000},
}


# ---------------------
# LAYOUTS
# ---------------------

def test_vip_match_layout_has_22_seats():
    layout = get_layout("vip", "match")
    pricing = validate_pricing(layout, VIP_MATCH_PRICING, 22)

    seats = generate_seats("vipArena", layout, pricing, 22)
    ids = [seat.id for seat in seats]

    assert len(ids) == 22
    assert len(set(ids)) == 22
    assert [seat.id for seat in seats if seat.type == "sofa"] == [
        "S11", "S12", "S13", "S14", "S15",
        "S21", "S22", "S23", "S24", "S25",
    ]
    assert len([seat for seat in seats if seat.type == "regular"]) == 12
    assert "A1" in ids and "B6" in ids


def test_vip_movie_layout_counts_couple_pods_twice():
    layout = get_layout("vip", "movie")
    pricing = validate_pricing(layout, VIP_MOVIE_PRICING, 48)

    assert pricing["vipCouple"]["count"] == 14
    seats = generate_seats("vipHall", layout, pricing, 48)
    couple_ids = [seat.id for seat in seats if seat.type == "vipCouple"]
    assert couple_ids == [f"C{n}" for n in range(1, 8)]
    assert len({seat.id for seat in seats}) == len(seats)


def test_standard_layout_is_numbered_by_hall():
    layout = get_layout("standard", "movie")

    universe = seat_universe("hallA", layout, 48)

    assert len(universe) == 48
    assert "HALLA-1" in universe
    assert "HALLA-48" in universe
    assert "HALLA-49" not in universe


def test_unsupported_layout():
    with pytest.raises(UnsupportedLayoutError):
        get_layout("imax", "movie")

    with pytest.raises(UnsupportedLayoutError):
        get_layout("standard", "concert")


def test_booked_and_held_flags():
    layout = get_layout("standard", "match")
    pricing = validate_pricing(layout, {"standardMatchSeats": {"price": 2000}}, 5)

    seats = {
        seat.id: seat
        for seat in generate_seats("hallB", layout, pricing, 5, booked=["HALLB-1"], held=["HALLB-2"])
    }

    assert seats["HALLB-1"].is_booked and not seats["HALLB-1"].is_available
    assert seats["HALLB-2"].is_held and not seats["HALLB-2"].is_available
    assert seats["HALLB-3"].is_available
    assert seats["HALLB-3"].price == 2000


# ---------------------
# PRICING VALIDATION
# ---------------------

def test_missing_tier_price_is_rejected():
    layout = get_layout("vip", "match")

    with pytest.raises(InvalidPricingError):
        validate_pricing(layout, {"vipSofaSeats": {"price": 12000}}, 22)


def test_unknown_tier_is_rejected():
    layout = get_layout("standard", "movie")

    with pytest.raises(InvalidPricingError):
        validate_pricing(
            layout,
            {"standardSingle": {"price": 2500}, "vipSingle": {"price": 9000}},
            48,
        )


@pytest.mark.parametrize("price", [-1, "2500", True, None])
def test_bad_prices_are_rejected(price):
    layout = get_layout("standard", "movie")

    with pytest.raises(InvalidPricingError):
        validate_pricing(layout, {"standardSingle": {"price": price}}, 48)


def test_counts_must_match_layout_and_capacity():
    with pytest.raises(InvalidPricingError):
        validate_pricing(
            get_layout("standard", "movie"),
            {"standardSingle": {"price": 2500, "count": 40}},
            48,
        )

    # the vip match layout only seats 22
    with pytest.raises(InvalidPricingError):
        validate_pricing(get_layout("vip", "match"), VIP_MATCH_PRICING, 30)


def test_free_tier_is_allowed_when_explicit():
    pricing = validate_pricing(
        get_layout("standard", "movie"),
        {"standardSingle": {"price": 0}},
        10,
    )

    assert pricing == {"standardSingle": {"price": 0, "count": 10}}


# ---------------------
# PRICING A SELECTION
# ---------------------

def test_price_seats_across_tiers():
    layout = get_layout("vip", "match")
    pricing = validate_pricing(layout, VIP_MATCH_PRICING, 22)

    amount, seat_types = price_seats("vipArena", layout, pricing, 22, ["S11", "A1", "A2"])

    assert amount == 24000
    assert seat_types == ["sofa", "regular"]


def test_price_seats_rejects_unknown_ids():
    layout = get_layout("standard", "movie")
    pricing = validate_pricing(layout, {"standardSingle": {"price": 2500}}, 48)

    with pytest.raises(UnknownSeatError) as exc_info:
        price_seats("hallA", layout, pricing, 48, ["HALLA-1", "HALLB-1"])

    assert exc_info.value.seat_ids == ["HALLB-1"]


@pytest.mark.parametrize(
    "amount, fee",
    [(5000, 100), (2525, 51), (2475, 50), (0, 0), (1, 0)],
)
def test_processing_fee_rounds_half_up(amount, fee):
    assert processing_fee(amount) == fee


def test_seat_type_labels():
    assert seat_type_label("sofa") == "VIP Sofa Seat"
    assert seat_type_label("standardSingle") == "Standard Single Seat"
    assert seat_type_label("mystery") == "mystery"
