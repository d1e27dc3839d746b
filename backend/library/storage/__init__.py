"""
Storage backend selection.

The backend class is named by settings.LIBRARY_STORAGE_BACKEND (a dotted
path) and instantiated once per process.
"""
import logging
import threading

from django.conf import settings
from django.utils.module_loading import import_string

from .base import DocumentQuery, Storage

logger = logging.getLogger(__name__)

_storage = None
_storage_lock = threading.Lock()


def get_storage() -> Storage:
    """Return the process-wide storage backend, creating it on first use."""
    global _storage
    if _storage is None:
        with _storage_lock:
            if _storage is None:
                backend_class = import_string(settings.LIBRARY_STORAGE_BACKEND)
                logger.info(f"Using storage backend {settings.LIBRARY_STORAGE_BACKEND}")
                _storage = backend_class()
    return _storage


def reset_storage() -> None:
    """Forget the current backend so the next get_storage() builds a new one."""
    global _storage
    with _storage_lock:
        _storage = None


__all__ = ['DocumentQuery', 'Storage', 'get_storage', 'reset_storage']
