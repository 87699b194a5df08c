from __future__ import annotations

from fastapi.testclient import TestClient

from storefront.main import app


def test_healthz_and_metrics_without_database():
    client = TestClient(app)

    assert client.get("/healthz").json() == {"status": "ok"}
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "storefront_login_attempts_total" in metrics.text
