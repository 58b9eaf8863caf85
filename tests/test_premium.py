"""
Tests for expenses, hours and tasks, and the dashboard figures built on them.
"""
from datetime import date

from jmplan.dashboard import compute_stats


def test_expense_lifecycle(client, db):
    resp = client.post("/expenses", json={"description": "Papier", "amount": 12.5, "date": "2024-01-15"})
    assert resp.status_code == 201
    expense_id = resp.json()["id"]
    assert db.tables["depenses"][0]["montant"] == 12.5
    assert db.tables["depenses"][0]["date"] == "2024-01-15"

    resp = client.patch(f"/expenses/{expense_id}", json={"amount": 20, "synced_to_quickbooks": True})
    assert resp.status_code == 200
    assert resp.json()["amount"] == 20
    assert resp.json()["synced_to_quickbooks"] is True

    assert client.delete(f"/expenses/{expense_id}").status_code == 204
    assert client.delete(f"/expenses/{expense_id}").status_code == 404


def test_expenses_newest_first(client, db):
    db.seed(
        "depenses",
        {"id": 1, "description": "Ancien", "montant": 5, "date": "2024-01-01"},
        {"id": 2, "description": "Récent", "montant": 7, "date": "2024-01-20", "client_id": 1},
    )

    assert [e["id"] for e in client.get("/expenses").json()] == [2, 1]
    assert [e["id"] for e in client.get("/expenses", params={"client_id": 1}).json()] == [2]


def test_expense_validation(client, db):
    assert client.post("/expenses", json={"description": "", "amount": 1, "date": "2024-01-15"}).status_code == 422
    assert client.post("/expenses", json={"description": "x", "amount": -1, "date": "2024-01-15"}).status_code == 422
    assert client.patch("/expenses/9", json={"amount": 3}).status_code == 404


def test_hours_filters(client, db):
    client.post("/hours", json={"date": "2024-01-15", "duration_minutes": 90, "client_id": 1})
    client.post("/hours", json={"date": "2024-01-16", "duration_minutes": 30, "billed": True})

    unbilled = client.get("/hours", params={"billed": False}).json()

    assert [h["duration_minutes"] for h in unbilled] == [90]
    assert db.tables["heures"][1]["facture"] is True
    assert client.post("/hours", json={"date": "2024-01-16", "duration_minutes": 0}).status_code == 422


def test_tasks_crud(client, db):
    first = client.post("/tasks", json={"title": "Rappeler fournisseur", "due_date": "2024-01-20"}).json()
    client.post("/tasks", json={"title": "Inventaire", "completed": True})

    done = client.get("/tasks", params={"completed": True}).json()
    assert [t["title"] for t in done] == ["Inventaire"]

    resp = client.patch(f"/tasks/{first['id']}", json={"completed": True})
    assert resp.json()["completed"] is True
    assert db.tables["taches"][0]["complete"] is True

    # an empty patch returns the row unchanged
    assert client.patch(f"/tasks/{first['id']}", json={}).json()["title"] == "Rappeler fournisseur"
    assert client.delete(f"/tasks/{first['id']}").status_code == 204


def test_compute_stats(seeded):
    seeded.seed("clients", {"id": 3, "nom": "Parti", "actif": False})
    seeded.seed(
        "rendez_vous",
        {"id": 1, "client_id": 1, "service_id": 1, "statut": "completed", "prix": 150},
        {"id": 2, "client_id": 2, "service_id": 2, "statut": "pending", "prix": 60},
        {"id": 3, "client_id": 2, "service_id": 2, "statut": "cancelled", "prix": 60},
    )
    seeded.seed("taches", {"id": 1, "titre": "a", "complete": True}, {"id": 2, "titre": "b", "complete": False})
    seeded.seed("depenses", {"id": 1, "montant": 12.5}, {"id": 2, "montant": 7.5})
    seeded.seed(
        "heures",
        # this week, unbilled at 60/h
        {"id": 1, "service_id": 2, "date": "2024-01-16", "duree_minutes": 90, "facture": False},
        # older and already billed
        {"id": 2, "service_id": 1, "date": "2024-01-02", "duree_minutes": 60, "facture": True},
    )

    stats = compute_stats(seeded, today=date(2024, 1, 17))

    assert stats.total_clients == 2
    assert stats.total_appointments == 3
    assert stats.total_revenue == 150
    assert stats.pending_appointments == 1
    assert stats.completed_tasks == 1
    assert stats.total_expenses == 20
    assert stats.week_hours == 1.5
    assert stats.unbilled_amount == 90


def test_dashboard_endpoint(client, seeded):
    resp = client.get("/dashboard/stats")

    assert resp.status_code == 200
    assert resp.json()["total_clients"] == 2
    assert resp.json()["total_revenue"] == 0
