import pytest
from fastapi.testclient import TestClient

from pulse import routes_core
from pulse.database import get_db
from pulse.insight_engine import InsightEngine
from pulse.main import app
from pulse.models import SalesDaily


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[routes_core.get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health_reports_database(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "database_connection": "successful"}


def test_latest_generates_when_store_is_empty_then_reuses(client):
    first = client.get("/api/insights/latest")
    assert first.status_code == 200
    body = first.json()
    assert body["runDate"]
    assert body["insights"][0]["source"] == "summary"
    assert "error" not in body

    second = client.get("/api/insights/latest").json()
    assert [c["id"] for c in second["insights"]] == [c["id"] for c in body["insights"]]


def test_generate_accepts_optional_body(client):
    res = client.post("/api/insights/generate", json={"useModel": False})
    assert res.status_code == 200
    assert res.json()["insights"][0]["title"] == "Daily summary"

    assert client.post("/api/insights/generate").status_code == 200


def test_generate_degrades_on_unexpected_error(client, monkeypatch):
    async def exploding_run(self, *args, **kwargs):
        raise RuntimeError("selector bug")

    monkeypatch.setattr(InsightEngine, "run", exploding_run)
    res = client.post("/api/insights/generate", json={"useModel": False})

    assert res.status_code == 200
    body = res.json()
    assert body["error"] == "RuntimeError: selector bug"
    assert body["insights"][0]["source"] == "summary"


def test_generate_returns_500_when_degraded_path_fails(client, monkeypatch):
    async def exploding(self, *args, **kwargs):
        raise RuntimeError("everything is down")

    monkeypatch.setattr(InsightEngine, "run", exploding)
    monkeypatch.setattr(InsightEngine, "degraded", exploding)
    res = client.post("/api/insights/generate")
    assert res.status_code == 500


def test_refresh_reports_source_statuses(client, monkeypatch):
    async def fake_refresh_all(session_factory=None, settings=None, **kwargs):
        return {"sales": "ok (3 days)", "telegram": "error: ConnectorError: 503"}

    monkeypatch.setattr(routes_core, "refresh_all", fake_refresh_all)

    for method in ("post", "get"):
        body = getattr(client, method)("/api/refresh").json()
        assert body["ok"] is False
        assert body["sources"]["sales"] == "ok (3 days)"


def test_refresh_ok_when_every_source_succeeds(client, monkeypatch):
    async def fake_refresh_all(session_factory=None, settings=None, **kwargs):
        return {"sales": "ok (no rows)", "calendar": "ok (2 events)"}

    monkeypatch.setattr(routes_core, "refresh_all", fake_refresh_all)
    assert client.post("/api/refresh").json()["ok"] is True


def test_dashboard_serves_demo_when_store_is_empty(client):
    body = client.get("/api/dashboard").json()
    assert body["demo"] is True
    assert body["youtube"]["latestVideos"]


def test_dashboard_uses_stored_sales(client, session_factory):
    db = session_factory()
    try:
        db.add(SalesDaily(date="2025-03-14", total_sales=4, revenue_cents=20000, profit_cents=5000))
        db.add(SalesDaily(date="2025-03-15", total_sales=1, revenue_cents=5000, profit_cents=1000))
        db.commit()
    finally:
        db.close()

    body = client.get("/api/dashboard").json()
    assert "demo" not in body
    assert body["sales"]["metrics"] == {
        "totalSales": 5,
        "totalRevenue": 250.0,
        "totalProfit": 60.0,
        "avgProfit": 12.0,
    }
    assert [p["label"] for p in body["sales"]["chart"]["points"]] == ["2025-03-14", "2025-03-15"]


def test_cors_preflight(client):
    res = client.options(
        "/api/insights/generate",
        headers={"Origin": "https://dashboard.example", "Access-Control-Request-Method": "POST"},
    )
    assert res.status_code == 200
    assert res.headers["access-control-allow-origin"] == "*"
