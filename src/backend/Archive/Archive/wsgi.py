"""WSGI config for the Archive project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'Archive.settings')

application = get_wsgi_application()
