ALICE = {"Authorization": "Bearer alice"}
BOB = {"Authorization": "Bearer bob"}


def create_column(client, title="Todo", headers=ALICE):
    resp = client.post("/v1/columns", json={"title": title}, headers=headers)
    assert resp.status_code == 201
    return resp.json()["id"]


def create_card(client, column_id, title, headers=ALICE, **extra):
    resp = client.post("/v1/cards", json={"title": title, "columnId": column_id, **extra}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def column_cards(client, column_id, headers=ALICE):
    resp = client.get(f"/v1/columns/{column_id}/cards", headers=headers)
    assert resp.status_code == 200
    return [(c["id"], c["order"]) for c in resp.json()]


def test_health(client):
    assert client.get("/v1/health").json() == {"status": "ok"}


def test_requires_bearer_token(client):
    resp = client.get("/v1/columns")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
    assert client.get("/v1/columns", headers={"Authorization": "Token x"}).status_code == 401


def test_version(client):
    assert client.get("/v1/version").json() == {"version": "1.0.0"}


def test_column_crud(client):
    column_id = create_column(client, "  Backlog ")
    assert client.get(f"/v1/columns/{column_id}", headers=ALICE).json()["title"] == "Backlog"

    resp = client.patch(f"/v1/columns/{column_id}", json={"title": "Doing"}, headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["title"] == "Doing"

    listed = client.get("/v1/columns", headers=ALICE).json()["columns"]
    assert [c["id"] for c in listed] == [column_id]
    assert client.get("/v1/columns", headers=BOB).json()["columns"] == []

    create_card(client, column_id, "Card one")
    assert client.delete(f"/v1/columns/{column_id}", headers=ALICE).status_code == 204
    assert client.get(f"/v1/columns/{column_id}", headers=ALICE).status_code == 404


def test_column_of_other_user_is_forbidden(client):
    column_id = create_column(client)
    resp = client.get(f"/v1/columns/{column_id}/cards", headers=BOB)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"
    assert client.delete(f"/v1/columns/{column_id}", headers=BOB).status_code == 403


def test_create_card_appends_and_normalizes(client):
    column_id = create_column(client)
    first = create_card(client, column_id, "First card")
    second = create_card(
        client,
        column_id,
        "Second card",
        priority="Without Priority",
        deadline="2025-07-01T00:00:00.000Z",
    )
    assert first["order"] == 0
    assert first["priority"] == "low"
    assert first["dueDate"] is None
    assert second["order"] == 1
    assert second["priority"] == "low"
    assert second["dueDate"].startswith("2025-07-01")
    assert second["column"] == column_id
    assert second["owner"] == "alice"


def test_create_card_validation_errors(client):
    column_id = create_column(client)
    resp = client.post("/v1/cards", json={"title": "ab", "column": column_id}, headers=ALICE)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "bad_request"

    resp = client.post("/v1/cards", json={"title": "Card", "column": column_id, "priority": "urgent"}, headers=ALICE)
    assert resp.status_code == 400

    resp = client.post("/v1/cards", json={"title": "Card", "column": column_id, "dueDate": "soon"}, headers=ALICE)
    assert resp.status_code == 400

    resp = client.post("/v1/cards", json={"title": "Card", "column": "missing"}, headers=ALICE)
    assert resp.status_code == 404

    assert column_cards(client, column_id) == []


def test_create_card_in_foreign_column_is_forbidden(client):
    column_id = create_column(client)
    resp = client.post("/v1/cards", json={"title": "Sneaky", "column": column_id}, headers=BOB)
    assert resp.status_code == 403
    assert column_cards(client, column_id) == []


def test_get_and_update_card(client):
    column_id = create_column(client)
    card = create_card(client, column_id, "Original")

    resp = client.patch(
        f"/v1/cards/{card['id']}",
        json={"title": "Renamed", "priority": "HIGH", "deadline": "2030-01-01T12:00:00Z"},
        headers=ALICE,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Renamed"
    assert body["priority"] == "high"
    assert body["dueDate"].startswith("2030-01-01")
    assert body["order"] == 0

    resp = client.put(f"/v1/cards/{card['id']}", json={"dueDate": None}, headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["dueDate"] is None
    assert resp.json()["title"] == "Renamed"

    assert client.get(f"/v1/cards/{card['id']}", headers=ALICE).json()["title"] == "Renamed"
    assert client.get(f"/v1/cards/{card['id']}", headers=BOB).status_code == 403
    assert client.patch(f"/v1/cards/{card['id']}", json={"title": "Hacked"}, headers=BOB).status_code == 403


def test_delete_card_relabels_column(client):
    column_id = create_column(client)
    cards = [create_card(client, column_id, f"Card {i}")["id"] for i in range(5)]

    assert client.delete(f"/v1/cards/{cards[2]}", headers=BOB).status_code == 403
    assert client.delete(f"/v1/cards/{cards[2]}", headers=ALICE).status_code == 204
    assert client.delete(f"/v1/cards/{cards[2]}", headers=ALICE).status_code == 404

    assert column_cards(client, column_id) == [
        (cards[0], 0),
        (cards[1], 1),
        (cards[3], 2),
        (cards[4], 3),
    ]


def test_reorder_cards(client):
    column_id = create_column(client)
    cards = [create_card(client, column_id, f"Card {i}")["id"] for i in range(3)]
    payload = {
        "columnId": column_id,
        "cardOrders": [
            {"id": cards[0], "order": 2},
            {"id": cards[1], "order": 0},
            {"id": cards[2], "order": 1},
        ],
    }
    resp = client.patch("/v1/cards/reorder", json=payload, headers=ALICE)
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()] == [cards[1], cards[2], cards[0]]


def test_reorder_rejects_bad_payloads(client):
    column_id = create_column(client)
    cards = [create_card(client, column_id, f"Card {i}")["id"] for i in range(2)]

    resp = client.patch("/v1/cards/reorder", json={"columnId": column_id, "cardOrders": "nope"}, headers=ALICE)
    assert resp.status_code == 400

    duplicate = {"columnId": column_id, "cardOrders": [{"id": c, "order": 0} for c in cards]}
    resp = client.patch("/v1/cards/reorder", json=duplicate, headers=ALICE)
    assert resp.status_code == 400

    valid = {"columnId": column_id, "cardOrders": [{"id": cards[1], "order": 0}, {"id": cards[0], "order": 1}]}
    assert client.patch("/v1/cards/reorder", json=valid, headers=BOB).status_code == 403
    missing = dict(valid, columnId="missing")
    assert client.patch("/v1/cards/reorder", json=missing, headers=ALICE).status_code == 404

    assert column_cards(client, column_id) == [(cards[0], 0), (cards[1], 1)]


def test_move_card_between_columns(client):
    source = create_column(client, "A")
    destination = create_column(client, "B")
    a = [create_card(client, source, f"Card a{i}")["id"] for i in range(5)]
    b = [create_card(client, destination, f"Card b{i}")["id"] for i in range(3)]

    resp = client.post(
        f"/v1/cards/{a[2]}/move",
        json={"newColumnId": destination, "newPosition": 1},
        headers=ALICE,
    )
    assert resp.status_code == 200
    assert resp.json()["column"] == destination
    assert resp.json()["order"] == 1

    assert column_cards(client, source) == [(a[0], 0), (a[1], 1), (a[3], 2), (a[4], 3)]
    assert column_cards(client, destination) == [(b[0], 0), (a[2], 1), (b[1], 2), (b[2], 3)]
    assert client.get(f"/v1/columns/{source}/integrity", headers=ALICE).json() == {
        "columnId": source,
        "count": 4,
        "dense": True,
    }


def test_move_card_errors(client):
    source = create_column(client, "A")
    foreign = create_column(client, "Theirs", headers=BOB)
    card_id = create_card(client, source, "Card one")["id"]

    resp = client.post(f"/v1/cards/{card_id}/move", json={"newColumnId": "missing", "newPosition": 0}, headers=ALICE)
    assert resp.status_code == 404
    resp = client.post(f"/v1/cards/{card_id}/move", json={"newColumnId": foreign, "newPosition": 0}, headers=ALICE)
    assert resp.status_code == 403
    resp = client.post("/v1/cards/missing/move", json={"newColumnId": source}, headers=ALICE)
    assert resp.status_code == 404
    resp = client.post(f"/v1/cards/{card_id}/move", json={"newColumnId": source}, headers=BOB)
    assert resp.status_code == 403

    assert column_cards(client, source) == [(card_id, 0)]
