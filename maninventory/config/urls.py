"""
URL configuration for the ManInventory backend.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "ManInventory Admin Panel"
admin.site.site_title = "ManInventory Admin Portal"
admin.site.index_title = "Welcome to ManInventory Admin"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('maninventory.core.urls')),
    path('api/v1/', include('maninventory.catalog.urls')),
    path('api/v1/', include('maninventory.pos.urls')),
    path('api/v1/', include('maninventory.reports.urls')),
    path('api/v1/', include('maninventory.assistant.urls')),
]
