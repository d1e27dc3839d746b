"""
Shared builders for library tests. They write straight to a Storage so
tests can arrange state without going through the facade.
"""

import itertools

from library.cache import ResultCache

_sequence = itertools.count(1)


def make_user(storage, username=None, **fields):
    n = next(_sequence)
    username = username or f'user{n}'
    return storage.insert_user(
        username=username,
        email=fields.pop('email', f'{username}@test.com'),
        password=fields.pop('password', 'hashed'),
        **fields
    )


def make_document(storage, uploader, **fields):
    n = next(_sequence)
    defaults = {
        'title': f'Notes {n}',
        'subject': 'Mathematics',
        'file_type': 'pdf',
        'file_name': f'notes-{n}.pdf',
        'file_size': 1024,
        'file_path': f'uploads/notes-{n}.pdf',
    }
    defaults.update(fields)
    return storage.insert_document(uploader_id=uploader.id, **defaults)


class AlwaysMissCache(ResultCache):
    """A cache that never returns anything, for checking results without caching."""

    def get(self, key):
        super().get(key)
        return None
