"""Health check, correlation IDs and the profile endpoint."""

import pytest

pytestmark = pytest.mark.integration


class TestHealth:
    def test_healthy(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["database"]["status"] == "up"
        assert body["services"]["cache"]["status"] == "up"

    def test_cache_down(self, api_client, monkeypatch):
        from modules.core import views

        def broken():
            raise ConnectionError("redis unreachable")

        monkeypatch.setattr(views, "_check_cache", broken)
        response = api_client.get("/health")
        assert response.status_code == 503
        assert response.json()["services"]["cache"] == {"status": "down"}


class TestCorrelationId:
    def test_incoming_id_is_echoed(self, api_client_with_correlation):
        client, cid = api_client_with_correlation
        assert client.get("/health")["X-Request-ID"] == cid

    def test_id_is_generated_when_absent(self, api_client):
        assert len(api_client.get("/health")["X-Request-ID"]) == 36

    def test_id_on_error_responses(self, api_client_with_correlation):
        client, cid = api_client_with_correlation
        response = client.get("/api/orders/")
        assert response.status_code == 401
        assert response["X-Request-ID"] == cid


class TestMe:
    def test_profile(self, customer_client, customer_profile):
        response = customer_client.get("/api/accounts/me")
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(customer_profile.id)
        assert body["role"] == "customer"
        assert body["email"] == "priya@example.com"

    def test_anonymous(self, api_client):
        assert api_client.get("/api/accounts/me").status_code == 401

    def test_user_without_profile(self, api_client, django_user_model):
        user = django_user_model.objects.create_user(username="staffonly", password="x")
        api_client.force_authenticate(user=user)
        response = api_client.get("/api/accounts/me")
        assert response.status_code == 404
        assert response.json() == {"error": "Profile not found."}

    def test_token_login(self, api_client, customer_profile):
        tokens = api_client.post(
            "/api/auth/token/", {"username": "priya", "password": "testpass123"}, format="json"
        ).json()
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        assert api_client.get("/api/accounts/me").json()["id"] == str(customer_profile.id)
