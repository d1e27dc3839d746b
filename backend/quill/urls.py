"""
Quill URL Configuration
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'Quill Notes API Server',
        'version': '1.0',
        'endpoints': {
            'documents': '/api/documents/',
            'featured': '/api/documents/featured/',
            'recent': '/api/documents/recent/',
            'document': '/api/documents/<id>/',
            'comments': '/api/documents/<id>/comments/',
            'ratings': '/api/documents/<id>/ratings/',
            'users': '/api/users/<id>/',
            'collections': '/api/collections/',
            'stats': '/api/stats/',
        },
        'admin': '/admin/',
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('library.urls')),
]
