def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status_code"] == 200
    assert payload["status"] == "success"
    assert payload["message"] == "Service is healthy"
    assert payload["data"] == {"status": "ok", "service": "UX Audit AI", "environment": "local"}


def test_versioned_health_check(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200


def test_root_info(client):
    response = client.get("/")
    assert response.status_code == 200
    payload = response.json()
    assert payload["app_name"] == "UX Audit AI API"
    assert payload["version"] == "1.0.0"
    assert payload["docs_url"] == "/docs"
    assert payload["api_base"] == "/api/v1"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/v1/does-not-exist")
    assert response.status_code == 404

    payload = response.json()
    assert payload["status"] == "error"
    assert payload["data"] == {}
