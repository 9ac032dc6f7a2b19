"""Admin delivery settings endpoint."""

import pytest

from modules.delivery.models import DeliverySettings

pytestmark = pytest.mark.integration

URL = "/api/admin/delivery-settings/"


class TestAccess:
    def test_anonymous(self, api_client, delivery_settings):
        assert api_client.get(URL).status_code == 401

    def test_customer(self, customer_client, delivery_settings):
        assert customer_client.get(URL).status_code == 403
        assert customer_client.put(URL, {"local_delivery_charge": 0}, format="json").status_code == 403


class TestReadSettings:
    def test_current_settings(self, admin_client, delivery_settings):
        response = admin_client.get(URL)
        assert response.status_code == 200
        body = response.json()
        assert body["business_pincode"] == "400001"
        assert body["national_delivery_charge"] == "100.00"
        assert body["free_shipping_enabled"] is False

    def test_not_configured(self, admin_client):
        response = admin_client.get(URL)
        assert response.status_code == 500
        assert response.json()["kind"] == "config_error"


class TestUpdateSettings:
    def test_partial_update(self, admin_client, admin_profile, delivery_settings):
        response = admin_client.put(
            URL,
            {"national_delivery_charge": 120, "free_shipping_enabled": True},
            format="json",
        )

        assert response.status_code == 200
        body = response.json()
        assert body["national_delivery_charge"] == "120.00"
        assert body["free_shipping_enabled"] is True
        assert body["local_delivery_charge"] == "40.00"
        assert body["updated_by_id"] == str(admin_profile.id)

        stored = DeliverySettings.objects.get()
        assert stored.free_shipping_enabled is True

    def test_update_is_visible_to_next_read(self, admin_client, delivery_settings):
        admin_client.get(URL)
        admin_client.put(URL, {"business_city": "Pune", "business_state": "Maharashtra"}, format="json")
        assert admin_client.get(URL).json()["business_city"] == "Pune"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"unknown_field": 1},
            {"business_pincode": "0400"},
            {"business_latitude": 95},
            {"business_longitude": -181},
            {"city_delivery_charge": -5},
            {"free_shipping_threshold": "lots"},
            {"free_shipping_enabled": "yes"},
        ],
    )
    def test_rejected(self, admin_client, delivery_settings, body):
        response = admin_client.put(URL, body, format="json")
        assert response.status_code == 400
        assert "error" in response.json()
        delivery_settings.refresh_from_db()
        assert delivery_settings.city_delivery_charge == 60
