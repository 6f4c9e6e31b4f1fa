import pytest

pytestmark = pytest.mark.django_db


def test_healthz_reports_database(client):
    resp = client.get("/api/healthz")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "db": {"ok": True}}
