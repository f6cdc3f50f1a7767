from __future__ import annotations

from fastapi.testclient import TestClient

from cinerecap.api.app import create_app


def test_cors_is_opt_in(tmp_path, monkeypatch):
    monkeypatch.setenv("CINERECAP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("CINERECAP_CORS_ORIGINS", raising=False)
    app = create_app()
    client = TestClient(app)

    resp = client.get("/health", headers={"Origin": "https://example.com"})
    assert resp.status_code == 200
    # No CORS headers when not configured.
    assert "access-control-allow-origin" not in resp.headers


def test_cors_allows_configured_origin(tmp_path, monkeypatch):
    monkeypatch.setenv("CINERECAP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv(
        "CINERECAP_CORS_ORIGINS",
        "https://example.com,https://other.example.com",
    )
    app = create_app()
    client = TestClient(app)

    resp = client.get("/health", headers={"Origin": "https://example.com"})
    assert resp.status_code == 200
    assert resp.headers.get("access-control-allow-origin") == "https://example.com"
    assert resp.headers.get("access-control-allow-credentials") == "true"
