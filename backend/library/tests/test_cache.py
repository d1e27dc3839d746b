"""
Tests for the result cache.

Expiry is driven by the Django cache backend, which reads time.time(),
so tests move the clock by patching it.
"""

from unittest.mock import patch

from django.test import SimpleTestCase

from library.cache import (
    DOCUMENT_LIST_TTL, SEARCH_TTL, STATS_KEY, ResultCache,
    document_key, documents_key, search_key, user_key,
)


class CacheKeyTestCase(SimpleTestCase):

    def test_equal_filters_give_equal_keys(self):
        self.assertEqual(
            documents_key({'subject': 'Physics', 'limit': None}),
            documents_key({'limit': None, 'subject': 'Physics'})
        )
        self.assertNotEqual(documents_key({'subject': 'Physics'}), documents_key({'subject': 'Biology'}))

    def test_families(self):
        self.assertTrue(documents_key({}).startswith('documents:'))
        self.assertTrue(search_key('algebra').startswith('search:'))
        self.assertEqual(document_key(7), 'document:7:uploader')
        self.assertEqual(user_key(3, 'profile'), 'user:3:profile')


class ResultCacheTestCase(SimpleTestCase):

    def setUp(self):
        self.cache = ResultCache()
        self.cache.clear()

    def tearDown(self):
        self.cache.clear()

    def test_set_and_get(self):
        self.cache.set('document:1:uploader', {'id': 1}, 60)

        self.assertEqual(self.cache.get('document:1:uploader'), {'id': 1})
        self.assertIsNone(self.cache.get('document:2:uploader'))
        self.assertEqual(self.cache.stats(), {'hits': 1, 'misses': 1, 'keys': 1})

    def test_entry_expires_after_ttl(self):
        with patch('time.time') as clock:
            clock.return_value = 1000.0
            self.cache.set(documents_key({}), ['listing'], DOCUMENT_LIST_TTL)

            clock.return_value = 1000.0 + DOCUMENT_LIST_TTL - 1
            self.assertEqual(self.cache.get(documents_key({})), ['listing'])

            clock.return_value = 1000.0 + DOCUMENT_LIST_TTL + 1
            self.assertIsNone(self.cache.get(documents_key({})))
            self.assertFalse(self.cache.has(documents_key({})))

    def test_expired_entry_stays_expired(self):
        with patch('time.time') as clock:
            clock.return_value = 1000.0
            self.cache.set(search_key('algebra'), ['hit'], SEARCH_TTL)

            clock.return_value = 1000.0 + SEARCH_TTL + 1
            self.assertIsNone(self.cache.get(search_key('algebra')))

            # Rewinding the clock does not bring it back
            clock.return_value = 1000.0
            self.assertIsNone(self.cache.get(search_key('algebra')))

    def test_fetch_loads_once(self):
        calls = []

        def loader():
            calls.append(1)
            return 'value'

        self.assertEqual(self.cache.fetch('user:1:record', loader, 60), 'value')
        self.assertEqual(self.cache.fetch('user:1:record', loader, 60), 'value')
        self.assertEqual(len(calls), 1)

    def test_fetch_does_not_cache_none(self):
        calls = []

        def loader():
            calls.append(1)
            return None

        self.assertIsNone(self.cache.fetch('user:9:record', loader, 60))
        self.assertIsNone(self.cache.fetch('user:9:record', loader, 60))
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.cache.keys(), [])

    def test_delete(self):
        self.cache.set('user:1:record', 'alice', 60)

        self.assertTrue(self.cache.delete('user:1:record'))
        self.assertIsNone(self.cache.get('user:1:record'))
        self.assertEqual(self.cache.keys(), [])

    def test_invalidate_document(self):
        self.cache.set(document_key(1), 'one', 60)
        self.cache.set(document_key(1, 'details'), 'one+', 60)
        self.cache.set(document_key(2), 'two', 60)
        self.cache.set(documents_key({}), 'listing', 60)
        self.cache.set(search_key('x'), 'results', 60)
        self.cache.set(STATS_KEY, 'stats', 60)
        self.cache.set(user_key(1), 'alice', 60)

        self.cache.invalidate_document(1)

        self.assertEqual(self.cache.keys(), sorted([document_key(2), user_key(1)]))
        self.assertIsNone(self.cache.get(document_key(1, 'details')))
        self.assertIsNone(self.cache.get(STATS_KEY))
        self.assertEqual(self.cache.get(document_key(2)), 'two')

    def test_invalidate_user(self):
        self.cache.set(user_key(1), 'alice', 60)
        self.cache.set(user_key(1, 'profile'), 'alice+', 60)
        self.cache.set(user_key(2), 'bob', 60)
        self.cache.set(documents_key({}), 'listing', 60)
        self.cache.set(document_key(5), 'uploaded by alice', 60)
        self.cache.set(document_key(5, 'details'), 'uploaded by alice', 60)

        self.cache.invalidate_user(1)

        self.assertEqual(self.cache.keys(), [user_key(2)])
        self.assertIsNone(self.cache.get(document_key(5)))

    def test_sweep_forgets_expired_keys(self):
        with patch('time.time') as clock:
            clock.return_value = 1000.0
            self.cache.set('document:1:uploader', 'short', 10)
            self.cache.set('document:2:uploader', 'long', 600)

            clock.return_value = 1011.0
            self.assertEqual(self.cache.sweep(), 1)

        self.assertEqual(self.cache.keys(), ['document:2:uploader'])

    def test_lazy_sweep_runs_from_set(self):
        cache = ResultCache(sweep_interval=0)

        with patch('time.time') as clock:
            clock.return_value = 1000.0
            cache.set('document:1:uploader', 'short', 10)

            clock.return_value = 1011.0
            cache.set('document:2:uploader', 'fresh', 10)

        self.assertEqual(cache.keys(), ['document:2:uploader'])

    def test_clear(self):
        self.cache.set('document:1:uploader', 'x', 60)
        self.cache.get('document:1:uploader')
        self.cache.clear()

        self.assertEqual(self.cache.stats(), {'hits': 0, 'misses': 0, 'keys': 0})
        self.assertFalse(self.cache.has('document:1:uploader'))
