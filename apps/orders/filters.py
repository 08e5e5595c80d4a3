import django_filters

from .models import Order
from .services import search_orders


class OrderFilter(django_filters.FilterSet):
    """
    Admin order list: ?userId= &email= &status= &paymentStatus= &search=
    &startDate=YYYY-MM-DD &endDate=YYYY-MM-DD
    """
    userId = django_filters.UUIDFilter(field_name='user_id')
    email = django_filters.CharFilter(field_name='customer_email', lookup_expr='iexact')
    status = django_filters.CharFilter(method='filter_upper', field_name='status')
    paymentStatus = django_filters.CharFilter(method='filter_upper', field_name='payment_status')
    search = django_filters.CharFilter(method='filter_search')
    startDate = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    endDate = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Order
        fields = []

    def filter_upper(self, queryset, name, value):
        # "all" is what the admin dropdown sends for no filter
        if not value or value.lower() == 'all':
            return queryset
        return queryset.filter(**{name: value.strip().upper()})

    def filter_search(self, queryset, name, value):
        return search_orders(queryset, value)


class CustomerOrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(method='filter_status')

    class Meta:
        model = Order
        fields = []

    def filter_status(self, queryset, name, value):
        if not value or value.lower() == 'all':
            return queryset
        return queryset.filter(status=value.strip().upper())
