"""
Tests for the service catalogue and staff lookups.
"""


def test_list_services(client, seeded):
    resp = client.get("/services")

    assert resp.status_code == 200
    body = resp.json()
    assert [s["name"] for s in body] == ["Consultation Premium", "Suivi"]
    assert body[0]["duration"] == 90
    assert body[1]["room_id"] == 1


def test_create_service_defaults_colour(client, db):
    resp = client.post("/services", json={"name": "Massage", "duration": 60, "price": 80})

    assert resp.status_code == 201
    assert resp.json()["color"] == "#3B82F6"
    assert db.tables["services"][0]["duree"] == 60


def test_create_service_validation(client, db):
    assert client.post("/services", json={"name": "X", "duration": 0, "price": 10}).status_code == 422
    assert client.post("/services", json={"name": "X", "duration": 30, "price": -1}).status_code == 422
    assert client.post("/services", json={"name": "X", "duration": 30, "price": 1, "color": "red"}).status_code == 422


def test_duplicate_service_is_409(client, db):
    db.fail_next("services", "insert", code="23505", message="duplicate key value")

    resp = client.post("/services", json={"name": "Suivi", "duration": 30, "price": 10})

    assert resp.status_code == 409


def test_update_and_delete_service(client, seeded):
    resp = client.patch("/services/2", json={"price": 75})
    assert resp.status_code == 200
    assert resp.json()["price"] == 75

    assert client.delete("/services/2").status_code == 204
    assert [s["id"] for s in client.get("/services").json()] == [1]
    assert client.get("/services/42").status_code == 404


def test_staff_lists(client, seeded):
    seeded.seed("employes", {"id": 2, "nom_employe": "Ancien", "actif": False})

    employees = client.get("/staff/employees").json()
    rooms = client.get("/staff/rooms").json()

    assert employees == [{"id": 1, "name": "Julie Martin", "initials": "JM", "color": None, "active": True}]
    assert rooms[0]["description"] == "Salle A"
