"""
In-process storage backend.
============================

Plain dicts keyed by id, one per table. Intended for development and tests.

CONCURRENCY:
------------
Django serves requests from several threads, so every public method runs
under one re-entrant lock. That makes read-modify-write sequences such as
counter increments and check-then-insert of unique pairs atomic within
the process. Nothing is shared across processes; use DatabaseStorage
when more than one worker writes.

Records are copied on the way in and out, so a caller mutating a returned
record never changes stored state.
"""

import copy
import itertools
import threading
from dataclasses import replace
from decimal import Decimal
from functools import wraps
from typing import Iterable, Optional

from django.utils import timezone

from ..exceptions import ConstraintViolation
from ..records import (
    Bookmark, Collection, Comment, CommentWithUser, Document,
    DocumentWithUploader, FileType, Follow, PlatformStats, Rating,
    RatingWithUser, User,
)
from .base import (
    DOCUMENT_COUNTERS, FEATURED_MIN_DOWNLOADS, FEATURED_MIN_RATING,
    USER_COUNTERS, DocumentQuery, Storage,
)


def synchronized(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def _newest_first(rows, stamp='created_at'):
    return sorted(rows, key=lambda row: (getattr(row, stamp), row.id), reverse=True)


def _oldest_first(rows):
    return sorted(rows, key=lambda row: (row.created_at, row.id))


class _Membership:
    __slots__ = ('id', 'collection_id', 'document_id', 'added_at')

    def __init__(self, id, collection_id, document_id, added_at):
        self.id = id
        self.collection_id = collection_id
        self.document_id = document_id
        self.added_at = added_at


class MemoryStorage(Storage):

    TABLES = (
        'users', 'documents', 'ratings', 'comments',
        'bookmarks', 'follows', 'collections', 'memberships',
    )

    def __init__(self):
        self._lock = threading.RLock()
        self.flush()

    @synchronized
    def flush(self) -> None:
        self._tables = {name: {} for name in self.TABLES}
        self._sequences = {name: itertools.count(1) for name in self.TABLES}

    def _next_id(self, table: str) -> int:
        return next(self._sequences[table])

    def _join_uploader(self, document: Document) -> Optional[DocumentWithUploader]:
        uploader = self._tables['users'].get(document.uploader_id)
        if uploader is None:
            return None
        return DocumentWithUploader(
            document=copy.deepcopy(document),
            uploader=uploader.summary(),
        )

    def _join_author(self, comment: Comment) -> Optional[CommentWithUser]:
        author = self._tables['users'].get(comment.user_id)
        if author is None:
            return None
        return CommentWithUser(comment=replace(comment), user=author.summary())

    def _find_pair(self, table: str, **match):
        for row in self._tables[table].values():
            if all(getattr(row, name) == value for name, value in match.items()):
                return row
        return None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @synchronized
    def get_user(self, user_id: int) -> Optional[User]:
        user = self._tables['users'].get(user_id)
        return replace(user) if user else None

    @synchronized
    def get_user_by_username(self, username: str) -> Optional[User]:
        user = self._find_pair('users', username=username)
        return replace(user) if user else None

    @synchronized
    def get_user_by_email(self, email: str) -> Optional[User]:
        user = self._find_pair('users', email=email)
        return replace(user) if user else None

    def _check_user_unique(self, username, email, exclude_id=None):
        for user in self._tables['users'].values():
            if user.id == exclude_id:
                continue
            if username is not None and user.username == username:
                raise ConstraintViolation(f"Username {username!r} is already taken")
            if email is not None and user.email == email:
                raise ConstraintViolation(f"Email {email!r} is already registered")

    @synchronized
    def insert_user(self, **fields) -> User:
        self._check_user_unique(fields.get('username'), fields.get('email'))
        user = User(
            id=self._next_id('users'),
            created_at=timezone.now(),
            **fields
        )
        self._tables['users'][user.id] = user
        return replace(user)

    @synchronized
    def update_user(self, user_id: int, **changes) -> Optional[User]:
        user = self._tables['users'].get(user_id)
        if user is None:
            return None
        self._check_user_unique(changes.get('username'), changes.get('email'), exclude_id=user_id)
        updated = replace(user, **changes)
        self._tables['users'][user_id] = updated
        return replace(updated)

    @synchronized
    def increment_user_counter(self, user_id: int, counter: str, amount: int = 1) -> None:
        if counter not in USER_COUNTERS:
            raise ValueError(f"Unknown user counter: {counter}")
        user = self._tables['users'].get(user_id)
        if user is not None:
            setattr(user, counter, getattr(user, counter) + amount)

    @synchronized
    def count_user_relations(self, user_id: int) -> tuple[int, int, int]:
        follows = self._tables['follows'].values()
        followers = sum(1 for edge in follows if edge.following_id == user_id)
        following = sum(1 for edge in follows if edge.follower_id == user_id)
        documents = sum(
            1 for document in self._tables['documents'].values()
            if document.uploader_id == user_id
        )
        return followers, following, documents

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    @synchronized
    def get_document(self, document_id: int) -> Optional[Document]:
        document = self._tables['documents'].get(document_id)
        return copy.deepcopy(document) if document else None

    @synchronized
    def get_document_with_uploader(self, document_id: int) -> Optional[DocumentWithUploader]:
        document = self._tables['documents'].get(document_id)
        if document is None:
            return None
        return self._join_uploader(document)

    def _matches(self, document: Document, query: DocumentQuery) -> bool:
        if query.uploader_id is not None and document.uploader_id != query.uploader_id:
            return False
        if query.subject is not None and document.subject.lower() != query.subject.lower():
            return False
        if query.text is not None:
            needle = query.text.lower()
            haystacks = (document.title, document.description or '', document.subject)
            if not any(needle in haystack.lower() for haystack in haystacks):
                return False
        if query.featured:
            if not (document.rating >= FEATURED_MIN_RATING
                    or document.downloads > FEATURED_MIN_DOWNLOADS):
                return False
        return True

    @synchronized
    def list_documents(self, query: DocumentQuery) -> list[DocumentWithUploader]:
        results = []
        for document in _newest_first(self._tables['documents'].values()):
            if not self._matches(document, query):
                continue
            joined = self._join_uploader(document)
            if joined is None:
                continue
            results.append(joined)
            if query.limit is not None and len(results) >= query.limit:
                break
        return results

    @synchronized
    def insert_document(self, **fields) -> Document:
        fields['file_type'] = FileType(fields['file_type'])
        fields['tags'] = list(fields.get('tags') or [])
        document = Document(
            id=self._next_id('documents'),
            created_at=timezone.now(),
            **fields
        )
        self._tables['documents'][document.id] = document
        return copy.deepcopy(document)

    @synchronized
    def update_document(self, document_id: int, **changes) -> Optional[Document]:
        document = self._tables['documents'].get(document_id)
        if document is None:
            return None
        if 'file_type' in changes:
            changes['file_type'] = FileType(changes['file_type'])
        if 'tags' in changes:
            changes['tags'] = list(changes['tags'] or [])
        updated = replace(document, **changes)
        self._tables['documents'][document_id] = updated
        return copy.deepcopy(updated)

    @synchronized
    def increment_document_counter(self, document_id: int, counter: str) -> None:
        if counter not in DOCUMENT_COUNTERS:
            raise ValueError(f"Unknown document counter: {counter}")
        document = self._tables['documents'].get(document_id)
        if document is not None:
            setattr(document, counter, getattr(document, counter) + 1)

    @synchronized
    def set_document_rating(self, document_id: int, mean: Decimal, count: int) -> None:
        document = self._tables['documents'].get(document_id)
        if document is not None:
            document.rating = mean
            document.rating_count = count

    @synchronized
    def platform_stats(self) -> PlatformStats:
        documents = self._tables['documents'].values()
        return PlatformStats(
            documents=len(documents),
            users=len(self._tables['users']),
            downloads=sum(document.downloads for document in documents),
            views=sum(document.views for document in documents),
        )

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------
    @synchronized
    def get_rating(self, rating_id: int) -> Optional[Rating]:
        rating = self._tables['ratings'].get(rating_id)
        return replace(rating) if rating else None

    @synchronized
    def find_rating(self, document_id: int, user_id: int) -> Optional[Rating]:
        rating = self._find_pair('ratings', document_id=document_id, user_id=user_id)
        return replace(rating) if rating else None

    @synchronized
    def insert_rating(self, document_id: int, user_id: int, value: int,
                      review: Optional[str] = None) -> Rating:
        if self._find_pair('ratings', document_id=document_id, user_id=user_id):
            raise ConstraintViolation(f"User {user_id} already rated document {document_id}")
        rating = Rating(
            id=self._next_id('ratings'),
            document_id=document_id,
            user_id=user_id,
            value=value,
            review=review,
            created_at=timezone.now(),
        )
        self._tables['ratings'][rating.id] = rating
        return replace(rating)

    @synchronized
    def update_rating(self, rating_id: int, **changes) -> Optional[Rating]:
        rating = self._tables['ratings'].get(rating_id)
        if rating is None:
            return None
        updated = replace(rating, **changes)
        self._tables['ratings'][rating_id] = updated
        return replace(updated)

    @synchronized
    def rating_values(self, document_id: int) -> list[int]:
        return [
            rating.value for rating in self._tables['ratings'].values()
            if rating.document_id == document_id
        ]

    @synchronized
    def list_ratings(self, document_id: int) -> list[RatingWithUser]:
        ratings = [
            rating for rating in self._tables['ratings'].values()
            if rating.document_id == document_id
        ]
        results = []
        for rating in _newest_first(ratings):
            user = self._tables['users'].get(rating.user_id)
            if user is not None:
                results.append(RatingWithUser(rating=replace(rating), user=user.summary()))
        return results

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------
    @synchronized
    def get_comment(self, comment_id: int) -> Optional[Comment]:
        comment = self._tables['comments'].get(comment_id)
        return replace(comment) if comment else None

    @synchronized
    def insert_comment(self, document_id: int, user_id: int, content: str,
                       parent_id: Optional[int] = None) -> Comment:
        comment = Comment(
            id=self._next_id('comments'),
            document_id=document_id,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
            created_at=timezone.now(),
        )
        self._tables['comments'][comment.id] = comment
        return replace(comment)

    @synchronized
    def update_comment(self, comment_id: int, **changes) -> Optional[Comment]:
        comment = self._tables['comments'].get(comment_id)
        if comment is None:
            return None
        updated = replace(comment, **changes)
        self._tables['comments'][comment_id] = updated
        return replace(updated)

    @synchronized
    def list_root_comments(self, document_id: int) -> list[CommentWithUser]:
        roots = [
            comment for comment in self._tables['comments'].values()
            if comment.document_id == document_id and comment.parent_id is None
        ]
        joined = (self._join_author(comment) for comment in _oldest_first(roots))
        return [node for node in joined if node is not None]

    @synchronized
    def list_replies(self, parent_ids: Iterable[int]) -> list[CommentWithUser]:
        parents = set(parent_ids)
        replies = [
            comment for comment in self._tables['comments'].values()
            if comment.parent_id in parents
        ]
        joined = (self._join_author(comment) for comment in _oldest_first(replies))
        return [node for node in joined if node is not None]

    @synchronized
    def child_comment_ids(self, parent_ids: Iterable[int]) -> list[int]:
        parents = set(parent_ids)
        return [
            comment.id for comment in self._tables['comments'].values()
            if comment.parent_id in parents
        ]

    @synchronized
    def delete_comments(self, comment_ids: Iterable[int]) -> int:
        deleted = 0
        for comment_id in set(comment_ids):
            if self._tables['comments'].pop(comment_id, None) is not None:
                deleted += 1
        return deleted

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------
    @synchronized
    def insert_bookmark(self, document_id: int, user_id: int) -> Bookmark:
        if self._find_pair('bookmarks', document_id=document_id, user_id=user_id):
            raise ConstraintViolation(f"Document {document_id} is already bookmarked by user {user_id}")
        bookmark = Bookmark(
            id=self._next_id('bookmarks'),
            document_id=document_id,
            user_id=user_id,
            created_at=timezone.now(),
        )
        self._tables['bookmarks'][bookmark.id] = bookmark
        return replace(bookmark)

    @synchronized
    def delete_bookmark(self, document_id: int, user_id: int) -> bool:
        bookmark = self._find_pair('bookmarks', document_id=document_id, user_id=user_id)
        if bookmark is None:
            return False
        del self._tables['bookmarks'][bookmark.id]
        return True

    @synchronized
    def has_bookmark(self, document_id: int, user_id: int) -> bool:
        return self._find_pair('bookmarks', document_id=document_id, user_id=user_id) is not None

    @synchronized
    def list_bookmarked_documents(self, user_id: int) -> list[DocumentWithUploader]:
        bookmarked_ids = {
            bookmark.document_id for bookmark in self._tables['bookmarks'].values()
            if bookmark.user_id == user_id
        }
        documents = [
            document for document in self._tables['documents'].values()
            if document.id in bookmarked_ids
        ]
        joined = (self._join_uploader(document) for document in _newest_first(documents))
        return [item for item in joined if item is not None]

    # ------------------------------------------------------------------
    # Follows
    # ------------------------------------------------------------------
    @synchronized
    def insert_follow(self, follower_id: int, following_id: int) -> Follow:
        if self._find_pair('follows', follower_id=follower_id, following_id=following_id):
            raise ConstraintViolation(f"User {follower_id} already follows user {following_id}")
        follow = Follow(
            id=self._next_id('follows'),
            follower_id=follower_id,
            following_id=following_id,
            created_at=timezone.now(),
        )
        self._tables['follows'][follow.id] = follow
        return replace(follow)

    @synchronized
    def delete_follow(self, follower_id: int, following_id: int) -> bool:
        follow = self._find_pair('follows', follower_id=follower_id, following_id=following_id)
        if follow is None:
            return False
        del self._tables['follows'][follow.id]
        return True

    @synchronized
    def has_follow(self, follower_id: int, following_id: int) -> bool:
        return self._find_pair(
            'follows', follower_id=follower_id, following_id=following_id
        ) is not None

    def _edge_users(self, edges, attribute: str) -> list[User]:
        users = []
        for edge in _newest_first(edges):
            user = self._tables['users'].get(getattr(edge, attribute))
            if user is not None:
                users.append(replace(user))
        return users

    @synchronized
    def list_followers(self, user_id: int) -> list[User]:
        edges = [edge for edge in self._tables['follows'].values() if edge.following_id == user_id]
        return self._edge_users(edges, 'follower_id')

    @synchronized
    def list_following(self, user_id: int) -> list[User]:
        edges = [edge for edge in self._tables['follows'].values() if edge.follower_id == user_id]
        return self._edge_users(edges, 'following_id')

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    @synchronized
    def get_collection(self, collection_id: int) -> Optional[Collection]:
        collection = self._tables['collections'].get(collection_id)
        return replace(collection) if collection else None

    @synchronized
    def insert_collection(self, **fields) -> Collection:
        collection = Collection(
            id=self._next_id('collections'),
            created_at=timezone.now(),
            **fields
        )
        self._tables['collections'][collection.id] = collection
        return replace(collection)

    @synchronized
    def update_collection(self, collection_id: int, **changes) -> Optional[Collection]:
        collection = self._tables['collections'].get(collection_id)
        if collection is None:
            return None
        updated = replace(collection, **changes)
        self._tables['collections'][collection_id] = updated
        return replace(updated)

    @synchronized
    def delete_collection(self, collection_id: int) -> bool:
        if self._tables['collections'].pop(collection_id, None) is None:
            return False
        memberships = self._tables['memberships']
        for membership_id in [
            row.id for row in memberships.values() if row.collection_id == collection_id
        ]:
            del memberships[membership_id]
        return True

    @synchronized
    def list_collections(self, user_id: int) -> list[Collection]:
        collections = [
            collection for collection in self._tables['collections'].values()
            if collection.user_id == user_id
        ]
        return [replace(collection) for collection in _newest_first(collections)]

    @synchronized
    def insert_membership(self, collection_id: int, document_id: int) -> None:
        if self._find_pair('memberships', collection_id=collection_id, document_id=document_id):
            raise ConstraintViolation(
                f"Document {document_id} is already in collection {collection_id}"
            )
        membership = _Membership(
            id=self._next_id('memberships'),
            collection_id=collection_id,
            document_id=document_id,
            added_at=timezone.now(),
        )
        self._tables['memberships'][membership.id] = membership

    @synchronized
    def delete_membership(self, collection_id: int, document_id: int) -> bool:
        membership = self._find_pair(
            'memberships', collection_id=collection_id, document_id=document_id
        )
        if membership is None:
            return False
        del self._tables['memberships'][membership.id]
        return True

    @synchronized
    def list_collection_documents(self, collection_id: int) -> list[DocumentWithUploader]:
        memberships = [
            row for row in self._tables['memberships'].values()
            if row.collection_id == collection_id
        ]
        results = []
        for membership in _newest_first(memberships, stamp='added_at'):
            document = self._tables['documents'].get(membership.document_id)
            if document is None:
                continue
            joined = self._join_uploader(document)
            if joined is not None:
                results.append(joined)
        return results
