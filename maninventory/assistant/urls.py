from django.urls import path
from .views import restock_suggestions, analytics_insights, extract_products

urlpatterns = [
    path('assistant/restock-suggestions/', restock_suggestions, name='assistant-restock-suggestions'),
    path('assistant/analytics-insights/', analytics_insights, name='assistant-analytics-insights'),
    path('assistant/extract-products/', extract_products, name='assistant-extract-products'),
]
