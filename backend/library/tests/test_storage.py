"""
Storage backend tests.

StorageContractTests runs once per backend: both must return the same
records for the same calls. Backend-specific behavior (F() updates,
locking, orphaned rows) is tested separately below.
"""

import threading
from decimal import Decimal

from django.db import connection
from django.test import SimpleTestCase, TestCase
from django.test.utils import CaptureQueriesContext

from library.exceptions import ConstraintViolation
from library.records import Document, DocumentWithUploader, FileType
from library.storage.base import DocumentQuery
from library.storage.database import DatabaseStorage
from library.storage.memory import MemoryStorage

from .helpers import make_document, make_user


class StorageContractTests:
    """Mixed into a TestCase together with a make_storage() implementation."""

    def make_storage(self):
        raise NotImplementedError

    def setUp(self):
        self.storage = self.make_storage()
        self.alice = make_user(self.storage, 'alice')
        self.bob = make_user(self.storage, 'bob')

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def test_missing_rows_read_as_none(self):
        self.assertIsNone(self.storage.get_user(999))
        self.assertIsNone(self.storage.get_document(999))
        self.assertIsNone(self.storage.get_document_with_uploader(999))
        self.assertIsNone(self.storage.get_comment(999))
        self.assertIsNone(self.storage.get_collection(999))
        self.assertEqual(self.storage.list_ratings(999), [])

    def test_user_lookup_by_username_and_email(self):
        self.assertEqual(self.storage.get_user_by_username('alice').id, self.alice.id)
        self.assertEqual(self.storage.get_user_by_email('bob@test.com').id, self.bob.id)
        self.assertIsNone(self.storage.get_user_by_username('carol'))

    def test_duplicate_username_rejected(self):
        with self.assertRaises(ConstraintViolation):
            make_user(self.storage, 'alice', email='other@test.com')

    def test_update_user(self):
        user = self.storage.update_user(self.alice.id, bio='Maths student')
        self.assertEqual(user.bio, 'Maths student')
        self.assertIsNone(self.storage.update_user(999, bio='x'))

    def test_user_counters(self):
        self.storage.increment_user_counter(self.alice.id, 'total_uploads')
        self.storage.increment_user_counter(self.alice.id, 'total_uploads')
        self.assertEqual(self.storage.get_user(self.alice.id).total_uploads, 2)

    def test_unknown_counter_rejected(self):
        with self.assertRaises(ValueError):
            self.storage.increment_user_counter(self.alice.id, 'password')
        document = make_document(self.storage, self.alice)
        with self.assertRaises(ValueError):
            self.storage.increment_document_counter(document.id, 'rating')

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def test_insert_document_defaults(self):
        document = make_document(self.storage, self.alice, tags=['exam'])

        self.assertIsInstance(document, Document)
        self.assertEqual(document.file_type, FileType.PDF)
        self.assertEqual(document.tags, ['exam'])
        self.assertEqual(document.downloads, 0)
        self.assertEqual(document.views, 0)
        self.assertEqual(document.rating, Decimal('0.00'))
        self.assertEqual(document.rating_count, 0)
        self.assertTrue(document.is_public)
        self.assertIsNotNone(document.created_at)

    def test_document_with_uploader(self):
        document = make_document(self.storage, self.alice)
        joined = self.storage.get_document_with_uploader(document.id)

        self.assertIsInstance(joined, DocumentWithUploader)
        self.assertEqual(joined.document.id, document.id)
        self.assertEqual(joined.uploader.username, 'alice')

    def test_listing_is_newest_first(self):
        first = make_document(self.storage, self.alice)
        second = make_document(self.storage, self.bob)
        third = make_document(self.storage, self.alice)

        listing = self.storage.list_documents(DocumentQuery())
        self.assertEqual([item.id for item in listing], [third.id, second.id, first.id])

    def test_listing_includes_private_documents(self):
        public = make_document(self.storage, self.alice)
        private = make_document(self.storage, self.alice, is_public=False)
        make_document(self.storage, self.bob)

        listing = self.storage.list_documents(DocumentQuery())
        self.assertIn(private.id, [item.id for item in listing])

        mine = self.storage.list_documents(DocumentQuery(uploader_id=self.alice.id))
        self.assertEqual([item.id for item in mine], [private.id, public.id])

    def test_filter_by_subject_ignores_case(self):
        physics = make_document(self.storage, self.alice, subject='Physics')
        make_document(self.storage, self.alice, subject='Physics II')

        listing = self.storage.list_documents(DocumentQuery(subject='physics'))
        self.assertEqual([item.id for item in listing], [physics.id])

    def test_text_search_matches_title_description_and_subject(self):
        by_title = make_document(self.storage, self.alice, title='Linear Algebra notes')
        by_description = make_document(
            self.storage, self.alice, title='Week 3', description='eigenvalues and LINEAR maps'
        )
        by_subject = make_document(self.storage, self.alice, title='Quiz', subject='Linear Systems')
        make_document(self.storage, self.alice, title='Calculus')

        listing = self.storage.list_documents(DocumentQuery(text='linear'))
        self.assertEqual(
            [item.id for item in listing],
            [by_subject.id, by_description.id, by_title.id]
        )

    def test_featured_threshold_and_limit(self):
        rated = make_document(self.storage, self.alice)
        self.storage.set_document_rating(rated.id, Decimal('4.50'), 2)
        almost_rated = make_document(self.storage, self.alice)
        self.storage.set_document_rating(almost_rated.id, Decimal('4.49'), 3)
        popular = make_document(self.storage, self.alice)
        self.storage.update_document(popular.id, downloads=101)
        almost_popular = make_document(self.storage, self.alice)
        self.storage.update_document(almost_popular.id, downloads=100)

        featured = self.storage.list_documents(DocumentQuery(featured=True))
        self.assertEqual([item.id for item in featured], [popular.id, rated.id])

        limited = self.storage.list_documents(DocumentQuery(featured=True, limit=1))
        self.assertEqual([item.id for item in limited], [popular.id])

    def test_update_document(self):
        document = make_document(self.storage, self.alice)
        updated = self.storage.update_document(document.id, title='Renamed', tags=['a', 'b'])

        self.assertEqual(updated.title, 'Renamed')
        self.assertEqual(updated.tags, ['a', 'b'])
        self.assertIsNone(self.storage.update_document(999, title='x'))

    def test_document_counters(self):
        document = make_document(self.storage, self.alice)
        self.storage.increment_document_counter(document.id, 'views')
        self.storage.increment_document_counter(document.id, 'views')
        self.storage.increment_document_counter(document.id, 'downloads')
        # Unknown ids are ignored
        self.storage.increment_document_counter(999, 'views')

        stored = self.storage.get_document(document.id)
        self.assertEqual(stored.views, 2)
        self.assertEqual(stored.downloads, 1)

    def test_platform_stats(self):
        first = make_document(self.storage, self.alice)
        make_document(self.storage, self.bob)
        self.storage.update_document(first.id, downloads=7, views=20)

        stats = self.storage.platform_stats()
        self.assertEqual(stats.documents, 2)
        self.assertEqual(stats.users, 2)
        self.assertEqual(stats.downloads, 7)
        self.assertEqual(stats.views, 20)

    def test_count_user_relations(self):
        make_document(self.storage, self.alice)
        self.storage.insert_follow(self.bob.id, self.alice.id)

        self.assertEqual(self.storage.count_user_relations(self.alice.id), (1, 0, 1))
        self.assertEqual(self.storage.count_user_relations(self.bob.id), (0, 1, 0))

    # ------------------------------------------------------------------
    # Pair uniqueness
    # ------------------------------------------------------------------
    def test_duplicate_rating_rejected(self):
        document = make_document(self.storage, self.alice)
        self.storage.insert_rating(document.id, self.bob.id, 4)

        with self.assertRaises(ConstraintViolation):
            self.storage.insert_rating(document.id, self.bob.id, 5)
        self.assertEqual(self.storage.rating_values(document.id), [4])

    def test_duplicate_bookmark_rejected(self):
        document = make_document(self.storage, self.alice)
        self.storage.insert_bookmark(document.id, self.bob.id)

        with self.assertRaises(ConstraintViolation):
            self.storage.insert_bookmark(document.id, self.bob.id)

    def test_duplicate_follow_rejected(self):
        self.storage.insert_follow(self.alice.id, self.bob.id)

        with self.assertRaises(ConstraintViolation):
            self.storage.insert_follow(self.alice.id, self.bob.id)
        # The reverse edge is a different pair
        self.storage.insert_follow(self.bob.id, self.alice.id)

    def test_duplicate_membership_rejected(self):
        document = make_document(self.storage, self.alice)
        collection = self.storage.insert_collection(user_id=self.alice.id, name='Exam prep')
        self.storage.insert_membership(collection.id, document.id)

        with self.assertRaises(ConstraintViolation):
            self.storage.insert_membership(collection.id, document.id)

    # ------------------------------------------------------------------
    # Edges and collections
    # ------------------------------------------------------------------
    def test_delete_edges_reports_whether_anything_was_removed(self):
        document = make_document(self.storage, self.alice)
        self.storage.insert_bookmark(document.id, self.bob.id)
        self.storage.insert_follow(self.bob.id, self.alice.id)

        self.assertTrue(self.storage.delete_bookmark(document.id, self.bob.id))
        self.assertFalse(self.storage.delete_bookmark(document.id, self.bob.id))
        self.assertTrue(self.storage.delete_follow(self.bob.id, self.alice.id))
        self.assertFalse(self.storage.delete_follow(self.bob.id, self.alice.id))

    def test_followers_and_following(self):
        carol = make_user(self.storage, 'carol')
        self.storage.insert_follow(self.bob.id, self.alice.id)
        self.storage.insert_follow(carol.id, self.alice.id)

        followers = self.storage.list_followers(self.alice.id)
        self.assertEqual([user.username for user in followers], ['carol', 'bob'])
        self.assertEqual(
            [user.username for user in self.storage.list_following(self.bob.id)],
            ['alice']
        )

    def test_bookmarked_documents(self):
        first = make_document(self.storage, self.alice)
        make_document(self.storage, self.alice)
        third = make_document(self.storage, self.alice)
        self.storage.insert_bookmark(first.id, self.bob.id)
        self.storage.insert_bookmark(third.id, self.bob.id)

        listing = self.storage.list_bookmarked_documents(self.bob.id)
        self.assertEqual([item.id for item in listing], [third.id, first.id])
        self.assertTrue(self.storage.has_bookmark(first.id, self.bob.id))
        self.assertFalse(self.storage.has_bookmark(first.id, self.alice.id))

    def test_collection_documents_most_recently_added_first(self):
        older = make_document(self.storage, self.alice)
        newer = make_document(self.storage, self.alice)
        collection = self.storage.insert_collection(user_id=self.bob.id, name='Finals')
        self.storage.insert_membership(collection.id, newer.id)
        self.storage.insert_membership(collection.id, older.id)

        listing = self.storage.list_collection_documents(collection.id)
        self.assertEqual([item.id for item in listing], [older.id, newer.id])

    def test_delete_collection_removes_memberships(self):
        document = make_document(self.storage, self.alice)
        collection = self.storage.insert_collection(user_id=self.bob.id, name='Finals')
        self.storage.insert_membership(collection.id, document.id)

        self.assertTrue(self.storage.delete_collection(collection.id))
        self.assertFalse(self.storage.delete_collection(collection.id))
        self.assertEqual(self.storage.list_collection_documents(collection.id), [])
        self.assertEqual(self.storage.list_collections(self.bob.id), [])
        # The document itself survives
        self.assertIsNotNone(self.storage.get_document(document.id))

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------
    def test_comments_oldest_first(self):
        document = make_document(self.storage, self.alice)
        first = self.storage.insert_comment(document.id, self.bob.id, 'First')
        second = self.storage.insert_comment(document.id, self.alice.id, 'Second')
        reply = self.storage.insert_comment(document.id, self.alice.id, 'Reply', first.id)

        roots = self.storage.list_root_comments(document.id)
        self.assertEqual([node.id for node in roots], [first.id, second.id])
        self.assertEqual(roots[0].user.username, 'bob')

        replies = self.storage.list_replies([first.id, second.id])
        self.assertEqual([node.id for node in replies], [reply.id])
        self.assertEqual(len(roots) + len(replies), 3)

    def test_delete_comments_returns_count(self):
        document = make_document(self.storage, self.alice)
        first = self.storage.insert_comment(document.id, self.bob.id, 'First')
        second = self.storage.insert_comment(document.id, self.bob.id, 'Second')

        self.assertEqual(self.storage.delete_comments([first.id, second.id, 999]), 2)
        self.assertEqual(self.storage.delete_comments([]), 0)
        self.assertEqual(self.storage.list_root_comments(document.id), [])

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def test_flush(self):
        make_document(self.storage, self.alice)
        self.storage.flush()

        self.assertEqual(self.storage.platform_stats().users, 0)
        self.assertEqual(self.storage.list_documents(DocumentQuery()), [])


class MemoryStorageTests(StorageContractTests, SimpleTestCase):

    def make_storage(self):
        return MemoryStorage()

    def test_returned_records_are_copies(self):
        document = make_document(self.storage, self.alice, tags=['exam'])
        document.tags.append('mutated')
        document.title = 'mutated'

        stored = self.storage.get_document(document.id)
        self.assertEqual(stored.tags, ['exam'])
        self.assertNotEqual(stored.title, 'mutated')

    def test_rows_with_missing_user_are_omitted_from_joins(self):
        document = make_document(self.storage, self.alice)
        self.storage.insert_comment(document.id, self.alice.id, 'Orphan soon')
        del self.storage._tables['users'][self.alice.id]

        self.assertIsNone(self.storage.get_document_with_uploader(document.id))
        self.assertEqual(self.storage.list_documents(DocumentQuery()), [])
        self.assertEqual(self.storage.list_root_comments(document.id), [])

    def test_concurrent_increments_are_not_lost(self):
        document = make_document(self.storage, self.alice)

        def hammer():
            for _ in range(200):
                self.storage.increment_document_counter(document.id, 'views')

        workers = [threading.Thread(target=hammer) for _ in range(8)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        self.assertEqual(self.storage.get_document(document.id).views, 1600)

    def test_concurrent_duplicate_inserts_leave_one_row(self):
        document = make_document(self.storage, self.alice)
        outcomes = []

        def bookmark():
            try:
                self.storage.insert_bookmark(document.id, self.bob.id)
                outcomes.append('created')
            except ConstraintViolation:
                outcomes.append('duplicate')

        workers = [threading.Thread(target=bookmark) for _ in range(8)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        self.assertEqual(outcomes.count('created'), 1)
        self.assertEqual(len(self.storage.list_bookmarked_documents(self.bob.id)), 1)


class DatabaseStorageTests(StorageContractTests, TestCase):

    def make_storage(self):
        return DatabaseStorage()

    def test_counter_increment_is_a_single_update(self):
        """
        The increment must happen in SQL (views = views + 1), not as a
        read-modify-write in Python.
        """
        document = make_document(self.storage, self.alice)

        with CaptureQueriesContext(connection) as context:
            self.storage.increment_document_counter(document.id, 'views')

        self.assertEqual(len(context.captured_queries), 1)
        sql = context.captured_queries[0]['sql']
        self.assertTrue(sql.startswith('UPDATE'))
        self.assertRegex(sql, r'"views"\s*\+')

    def test_increment_ignores_stale_instances(self):
        from library import models

        document = make_document(self.storage, self.alice)
        stale = models.Document.objects.get(id=document.id)

        self.storage.increment_document_counter(document.id, 'downloads')
        self.storage.increment_document_counter(document.id, 'downloads')
        stale.refresh_from_db()

        self.assertEqual(stale.downloads, 2)

    def test_listing_is_one_query(self):
        for _ in range(5):
            make_document(self.storage, self.alice)
            make_document(self.storage, self.bob)

        with self.assertNumQueries(1):
            listing = self.storage.list_documents(DocumentQuery())
            usernames = {item.uploader.username for item in listing}

        self.assertEqual(usernames, {'alice', 'bob'})

    def test_deleting_a_user_removes_their_rows(self):
        from library import models

        document = make_document(self.storage, self.alice)
        self.storage.insert_comment(document.id, self.bob.id, 'Nice')
        models.User.objects.filter(id=self.bob.id).delete()

        self.assertEqual(self.storage.list_root_comments(document.id), [])
