"""
Pytest configuration and fixtures.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from jmplan import config
from jmplan.auth import current_user_id
from jmplan.deps import get_http_client, get_supabase
from jmplan.main import app
from tests.fakes import FakeSupabase

USER_ID = "user-1"


@pytest.fixture
def db():
    """Empty in-memory Supabase."""
    return FakeSupabase()


@pytest.fixture
def seeded(db):
    """Two clients, two services, one employee and one room."""
    db.seed(
        "clients",
        {"id": 1, "nom": "Dupont", "prenom": "Jean", "courriel": "jean.dupont@example.com",
         "telephone": "514-123-4567", "adresse": "123 rue Principale", "ville": "Montréal",
         "province": "QC", "codepostal": "H2X 1Y2", "notes": "Client VIP", "actif": True},
        {"id": 2, "nom": "Tremblay", "prenom": "Marie", "courriel": "marie.tremblay@example.com",
         "telephone": None, "actif": True},
    )
    db.seed(
        "services",
        {"id": 1, "nom": "Consultation Premium", "categorie": "Consultation", "duree": 90,
         "prix": 150, "couleur": "#E91E63", "salle_id": None, "actif": True},
        {"id": 2, "nom": "Suivi", "duree": 45, "prix": 60, "couleur": "#2743E3", "salle_id": 1, "actif": True},
    )
    db.seed("employes", {"id": 1, "nom_employe": "Julie Martin", "initiales": "JM", "actif": True})
    db.seed("salles", {"id": 1, "description": "Salle A", "actif": True})
    return db


class GoogleStub:
    """Records requests and answers them with the queued handler."""

    def __init__(self):
        self.requests = []
        self.handler = lambda request: httpx.Response(404)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def google():
    return GoogleStub()


@pytest.fixture
def client(db, google, monkeypatch):
    monkeypatch.setattr(config, "TIMEZONE", "America/Montreal")
    monkeypatch.setattr(config, "FRONTEND_URL", "http://localhost:3000")

    async def http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(google)) as http:
            yield http

    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[current_user_id] = lambda: USER_ID
    app.dependency_overrides[get_http_client] = http_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
