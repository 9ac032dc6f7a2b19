import django_filters

from modules.orders.constants import OrderStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=OrderStatus.choices)
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")
    order_number = django_filters.CharFilter(
        field_name="order_number", lookup_expr="icontains"
    )

    class Meta:
        model = Order
        fields = ["status", "start_date", "end_date", "order_number"]
