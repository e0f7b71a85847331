import pytest

from storefront.core.config import Config


class TestApp:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json()["database"] == "reachable"

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/v1/nothing-here")

        body = response.get_json()
        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    def test_non_json_body_is_400(self, client, customer, auth_headers):
        response = client.post("/api/v1/addresses/me", data="label=Home", headers=auth_headers(customer))

        assert response.status_code == 400
        assert response.get_json()["error"]["message"] == "Content-Type must be application/json."

    def test_success_envelope(self, client):
        body = client.get("/api/v1/categories").get_json()

        assert body["success"] is True
        assert body["data"] == []
        assert "timestamp" in body


class TestConfig:

    def test_production_requires_secrets(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("DATABASE_URL", "postgresql://shop@localhost/shop")
        monkeypatch.delenv("JWT_SECRET_KEY", raising=False)

        with pytest.raises(ValueError):
            Config().validate()

    def test_testing_config_is_valid(self, config):
        config.validate()

        assert config.database.url == "sqlite://"
        assert config.api.version == "v1"
