VIP_ARENA = {"id": "vipArena", "name": "VIP Arena", "capacity": 22, "type": "vip"}


def _event_body(**overrides):
    body = {
        "title": "Cup Final Screening",
        "type": "match",
        "category": "football",
        "date": "2026-12-20",
        "time": "17:00",
        "hall": "vipArena",
        "pricing": {
            "vipSofaSeats": {"price": 12000},
            "vipRegularSeats": {"price": 6000},
        },
    }
    body.update(overrides)
    return body


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200


def test_hall_lifecycle(client):
    created = client.post("/halls", json=VIP_ARENA)
    assert created.status_code == 201
    assert created.json()["id"] == "vipArena"

    duplicate = client.post("/halls", json=VIP_ARENA)
    assert duplicate.status_code == 409

    generated = client.post("/halls", json={"name": "Hall B", "capacity": 60, "type": "standard"})
    assert generated.status_code == 201
    assert generated.json()["id"]

    renamed = client.put("/halls/vipArena", json={"name": "Arena", "capacity": 22, "type": "vip"})
    assert renamed.json()["name"] == "Arena"

    assert {hall["id"] for hall in client.get("/halls").json()} == {"vipArena", generated.json()["id"]}

    assert client.delete("/halls/vipArena").status_code == 204
    assert client.delete("/halls/vipArena").status_code == 404


def test_hall_type_is_validated(client):
    response = client.post("/halls", json={"name": "IMAX", "capacity": 100, "type": "imax"})

    assert response.status_code == 400


def test_hall_in_use_cannot_be_deleted_or_reshaped(client):
    client.post("/halls", json=VIP_ARENA)
    client.post("/events", json=_event_body())

    assert client.delete("/halls/vipArena").status_code == 409
    reshaped = client.put("/halls/vipArena", json={"name": "VIP Arena", "capacity": 30, "type": "vip"})
    assert reshaped.status_code == 409


def test_vip_match_seat_map(client):
    client.post("/halls", json=VIP_ARENA)
    event = client.post("/events", json=_event_body()).json()

    assert event["totalSeats"] == 22
    assert event["pricing"]["vipSofaSeats"] == {"price": 12000, "count": 10}

    seat_map = client.get(f"/events/{event['id']}/seats").json()
    seats = seat_map["seats"]
    assert len(seats) == 22
    assert len({seat["id"] for seat in seats}) == 22
    assert sum(1 for seat in seats if seat["type"] == "sofa") == 10
    assert sum(1 for seat in seats if seat["type"] == "regular") == 12


def test_event_pricing_is_validated(client):
    client.post("/halls", json=VIP_ARENA)

    missing_tier = client.post(
        "/events",
        json=_event_body(pricing={"vipSofaSeats": {"price": 12000}}),
    )
    assert missing_tier.status_code == 400

    wrong_total = client.post("/events", json=_event_body(totalSeats=30))
    assert wrong_total.status_code == 400

    wrong_layout = client.post(
        "/events",
        json=_event_body(type="concert"),
    )
    assert wrong_layout.status_code == 400

    unknown_hall = client.post("/events", json=_event_body(hall="nowhere"))
    assert unknown_hall.status_code == 400

    assert client.get("/events").json() == []


def test_event_update_and_delete(client, standard_event, make_booking):
    updated = client.put(
        f"/events/{standard_event}",
        json={"title": "Director's Cut", "pricing": {"standardSingle": {"price": 3000}}},
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Director's Cut"
    assert updated.json()["pricing"]["standardSingle"] == {"price": 3000, "count": 48}

    cleared = client.put(f"/events/{standard_event}", json={"title": None})
    assert cleared.status_code == 400

    no_category = client.put(f"/events/{standard_event}", json={"category": None})
    assert no_category.status_code == 400
    assert client.get(f"/events/{standard_event}").json()["category"] == "drama"

    make_booking(standard_event, ["HALLA-1"])
    switch_type = client.put(
        f"/events/{standard_event}",
        json={"type": "match", "pricing": {"standardMatchSeats": {"price": 2000}}},
    )
    assert switch_type.status_code == 409

    assert client.delete(f"/events/{standard_event}").status_code == 409


def test_event_without_bookings_can_be_deleted(client, standard_event):
    assert client.delete(f"/events/{standard_event}").status_code == 204
    assert client.get(f"/events/{standard_event}").status_code == 404


def test_admin_commit_is_set_union(client, standard_event):
    first = client.patch(f"/events/{standard_event}", json={"newBookedSeats": ["HALLA-10", "HALLA-11"]})
    again = client.patch(f"/events/{standard_event}", json={"newBookedSeats": ["HALLA-11", "HALLA-12"]})

    assert first.status_code == 200
    assert again.status_code == 200
    assert again.json()["added"] == ["HALLA-12"]
    assert sorted(again.json()["bookedSeats"]) == ["HALLA-10", "HALLA-11", "HALLA-12"]


def test_admin_commit_rejects_unknown_and_held_seats(client, standard_event, make_booking):
    unknown = client.patch(f"/events/{standard_event}", json={"newBookedSeats": ["HALLB-1"]})
    assert unknown.status_code == 400

    make_booking(standard_event, ["HALLA-1"])
    held = client.patch(f"/events/{standard_event}", json={"newBookedSeats": ["HALLA-1"]})
    assert held.status_code == 409

    missing = client.patch("/events/nope", json={"newBookedSeats": ["HALLA-1"]})
    assert missing.status_code == 404


def test_list_events_by_status(client, standard_event):
    client.post("/halls", json=VIP_ARENA)
    client.post("/events", json=_event_body(status="draft"))

    active = client.get("/events", params={"status": "active"}).json()

    assert [event["id"] for event in active] == [standard_event]
    assert len(client.get("/events").json()) == 2
