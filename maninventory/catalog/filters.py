import django_filters
from django.db.models import F, Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Search by name or category, filter by category and stock level"""
    search = django_filters.CharFilter(method='filter_search')
    category = django_filters.CharFilter(field_name='category', lookup_expr='iexact')
    low_stock = django_filters.BooleanFilter(method='filter_low_stock')
    min_price = django_filters.NumberFilter(field_name='unit_price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='unit_price', lookup_expr='lte')

    class Meta:
        model = Product
        fields = ['search', 'category', 'low_stock', 'min_price', 'max_price']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(category__icontains=value))

    def filter_low_stock(self, queryset, name, value):
        if value is None:
            return queryset
        condition = Q(quantity_on_hand__lte=F('reorder_threshold'))
        return queryset.filter(condition) if value else queryset.exclude(condition)
