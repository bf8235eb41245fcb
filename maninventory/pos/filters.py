import django_filters
from .models import Sale


class SaleFilter(django_filters.FilterSet):
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    payment_method = django_filters.ChoiceFilter(choices=Sale.PAYMENT_METHOD_CHOICES)
    search = django_filters.CharFilter(field_name='sale_number', lookup_expr='icontains')

    class Meta:
        model = Sale
        fields = ['date_from', 'date_to', 'payment_method', 'search']
