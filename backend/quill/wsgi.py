"""
WSGI entry point for the quill project.

Serve with any WSGI server pointed at quill.wsgi:application.
"""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'quill.settings')
application = get_wsgi_application()
