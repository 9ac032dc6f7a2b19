from django.urls import path

from modules.checkout.views import (
    ActiveCouponsView,
    CalculateDeliveryView,
    CreatePaymentView,
    PlaceCodOrderView,
    ValidateCouponView,
    VerifyPaymentView,
)

urlpatterns = [
    path(
        "checkout/calculate-delivery",
        CalculateDeliveryView.as_view(),
        name="checkout_calculate_delivery",
    ),
    path(
        "checkout/validate-coupon",
        ValidateCouponView.as_view(),
        name="checkout_validate_coupon",
    ),
    path("checkout/coupons", ActiveCouponsView.as_view(), name="checkout_active_coupons"),
    path(
        "checkout/create-payment",
        CreatePaymentView.as_view(),
        name="checkout_create_payment",
    ),
    path(
        "checkout/verify-payment",
        VerifyPaymentView.as_view(),
        name="checkout_verify_payment",
    ),
    path(
        "checkout/place-cod-order",
        PlaceCodOrderView.as_view(),
        name="checkout_place_cod_order",
    ),
]
