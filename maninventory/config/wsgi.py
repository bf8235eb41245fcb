"""
WSGI config for the ManInventory backend.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'maninventory.config.settings')

application = get_wsgi_application()
