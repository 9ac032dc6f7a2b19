from django.urls import path

from modules.delivery.views import DeliverySettingsView

urlpatterns = [
    path(
        "admin/delivery-settings/",
        DeliverySettingsView.as_view(),
        name="admin_delivery_settings",
    ),
]
