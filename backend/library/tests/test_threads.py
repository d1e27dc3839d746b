"""
Tests for comment threads.

Focus areas:
1. Thread assembly (roots and replies, oldest first)
2. Parent validation
3. Subtree deletion
4. Query count on the database backend
"""

from datetime import timedelta

from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from library.exceptions import InvalidState, NotFound
from library.records import Comment, CommentWithUser, UserSummary
from library.storage.database import DatabaseStorage
from library.storage.memory import MemoryStorage
from library.threads import (
    build_threads, count_comments, create_comment, delete_comment, get_threads, update_comment,
)

from .helpers import make_document, make_user


def _node(comment_id, parent_id=None):
    now = timezone.now()
    return CommentWithUser(
        comment=Comment(
            id=comment_id,
            document_id=1,
            user_id=1,
            content=f'comment {comment_id}',
            parent_id=parent_id,
            created_at=now + timedelta(seconds=comment_id),
        ),
        user=UserSummary(id=1, username='alice'),
    )


class BuildThreadsTestCase(SimpleTestCase):

    def test_replies_attached_to_their_roots(self):
        roots = [_node(1), _node(3)]
        replies = [_node(2, parent_id=1), _node(4, parent_id=1), _node(5, parent_id=3)]

        threads = build_threads(roots, replies)

        self.assertEqual([thread.id for thread in threads], [1, 3])
        self.assertEqual([reply.id for reply in threads[0].replies], [2, 4])
        self.assertEqual([reply.id for reply in threads[1].replies], [5])
        self.assertEqual(count_comments(threads), 5)

    def test_root_without_replies_gets_empty_list(self):
        threads = build_threads([_node(1)], [])
        self.assertEqual(threads[0].replies, [])


class CommentThreadTestCase(SimpleTestCase):

    def setUp(self):
        self.storage = MemoryStorage()
        self.alice = make_user(self.storage, 'alice')
        self.bob = make_user(self.storage, 'bob')
        self.document = make_document(self.storage, self.alice)

    def test_threads_for_document(self):
        first = create_comment(self.storage, self.document.id, self.bob.id, 'First!')
        second = create_comment(self.storage, self.document.id, self.alice.id, 'Thanks for reading')
        reply = create_comment(self.storage, self.document.id, self.alice.id, 'Welcome', parent_id=first.id)

        threads = get_threads(self.storage, self.document.id)

        self.assertEqual([thread.id for thread in threads], [first.id, second.id])
        self.assertEqual([r.id for r in threads[0].replies], [reply.id])
        self.assertEqual(threads[0].user.username, 'bob')
        self.assertEqual(threads[1].replies, [])

    def test_content_is_stripped_and_required(self):
        comment = create_comment(self.storage, self.document.id, self.bob.id, '  Nice notes  ')
        self.assertEqual(comment.content, 'Nice notes')

        with self.assertRaises(ValueError):
            create_comment(self.storage, self.document.id, self.bob.id, '   ')

    def test_missing_references(self):
        with self.assertRaises(NotFound):
            create_comment(self.storage, 999, self.bob.id, 'Hello')
        with self.assertRaises(NotFound):
            create_comment(self.storage, self.document.id, 999, 'Hello')
        with self.assertRaises(NotFound):
            create_comment(self.storage, self.document.id, self.bob.id, 'Hello', parent_id=999)

    def test_parent_must_belong_to_same_document(self):
        other_document = make_document(self.storage, self.alice)
        elsewhere = create_comment(self.storage, other_document.id, self.bob.id, 'Elsewhere')

        with self.assertRaises(InvalidState):
            create_comment(self.storage, self.document.id, self.bob.id, 'Reply', parent_id=elsewhere.id)

    def test_update_comment(self):
        comment = create_comment(self.storage, self.document.id, self.bob.id, 'Typo')
        updated = update_comment(self.storage, comment.id, 'Fixed')

        self.assertEqual(updated.content, 'Fixed')
        with self.assertRaises(InvalidState):
            update_comment(self.storage, 999, 'Nothing here')

    def test_delete_removes_whole_subtree(self):
        root = create_comment(self.storage, self.document.id, self.bob.id, 'Root')
        reply = create_comment(self.storage, self.document.id, self.alice.id, 'Reply', parent_id=root.id)
        nested = create_comment(self.storage, self.document.id, self.bob.id, 'Nested', parent_id=reply.id)
        survivor = create_comment(self.storage, self.document.id, self.bob.id, 'Other root')

        deleted = delete_comment(self.storage, root.id)

        self.assertEqual(deleted.id, root.id)
        for comment_id in (root.id, reply.id, nested.id):
            self.assertIsNone(self.storage.get_comment(comment_id))
        self.assertIsNotNone(self.storage.get_comment(survivor.id))
        self.assertEqual([thread.id for thread in get_threads(self.storage, self.document.id)], [survivor.id])

    def test_delete_reply_keeps_parent(self):
        root = create_comment(self.storage, self.document.id, self.bob.id, 'Root')
        reply = create_comment(self.storage, self.document.id, self.alice.id, 'Reply', parent_id=root.id)

        delete_comment(self.storage, reply.id)

        threads = get_threads(self.storage, self.document.id)
        self.assertEqual([thread.id for thread in threads], [root.id])
        self.assertEqual(threads[0].replies, [])

    def test_delete_missing_comment(self):
        with self.assertRaises(InvalidState):
            delete_comment(self.storage, 999)


class DatabaseThreadTestCase(TestCase):

    def setUp(self):
        self.storage = DatabaseStorage()
        self.alice = make_user(self.storage, 'alice')
        self.bob = make_user(self.storage, 'bob')
        self.document = make_document(self.storage, self.alice)

    def test_threads_use_two_queries(self):
        """Roots and replies are one query each, however many comments there are."""
        for i in range(5):
            root = create_comment(self.storage, self.document.id, self.bob.id, f'Root {i}')
            for j in range(3):
                create_comment(self.storage, self.document.id, self.alice.id, f'Reply {j}', parent_id=root.id)

        with self.assertNumQueries(2):
            threads = get_threads(self.storage, self.document.id)
            authors = {reply.user.username for thread in threads for reply in thread.replies}

        self.assertEqual(len(threads), 5)
        self.assertEqual(authors, {'alice'})
        self.assertEqual(count_comments(threads), 20)

    def test_delete_removes_whole_subtree(self):
        from library import models

        root = create_comment(self.storage, self.document.id, self.bob.id, 'Root')
        reply = create_comment(self.storage, self.document.id, self.alice.id, 'Reply', parent_id=root.id)
        create_comment(self.storage, self.document.id, self.bob.id, 'Nested', parent_id=reply.id)

        delete_comment(self.storage, root.id)

        self.assertFalse(models.Comment.objects.filter(document_id=self.document.id).exists())
