"""
Library service facade
======================

The single entry point for route handlers, management commands and
anything else outside the core. Operations are grouped by entity:

    library = get_library()
    library.documents.search("linear algebra")
    library.ratings.submit(document_id, user_id, 5)
    library.comments.list_threads_for_document(document_id)

Each group wraps a Storage backend and the shared ResultCache:

- Reads of listings, single documents, user records/profiles and
  platform stats go through the cache.
- Every mutation invalidates the cache entries it affects before it
  returns, so a read that follows a write in the same process never sees
  pre-write data.

Invariant logic (rating aggregation, comment cascade, edge uniqueness)
lives in library.ratings, library.threads and library.relationships, not
here and not in the storage backends.
"""

from typing import Optional

from . import ratings, relationships, threads
from .cache import (
    DOCUMENT_LIST_TTL, DOCUMENT_TTL, SEARCH_TTL, STATS_KEY, STATS_TTL, USER_TTL,
    ResultCache, document_key, documents_key, get_result_cache, search_key, user_key,
)
from .exceptions import InvalidState, NotFound
from .records import (
    Bookmark, Collection, CollectionWithDocuments, Comment, CommentWithUser,
    Document, DocumentDetails, DocumentWithUploader, FileType, Follow,
    PlatformStats, Rating, RatingWithUser, User, UserProfile,
)
from .storage import get_storage
from .storage.base import FEATURED_LIMIT, RECENT_LIMIT, DocumentQuery, Storage

USER_EDITABLE_FIELDS = frozenset({
    'username', 'email', 'avatar', 'bio', 'university', 'major', 'year',
})

DOCUMENT_EDITABLE_FIELDS = frozenset({
    'title', 'description', 'subject', 'tags', 'course', 'professor',
    'semester', 'thumbnail_path', 'is_public', 'is_featured',
})

COLLECTION_EDITABLE_FIELDS = frozenset({'name', 'description', 'is_public'})


def _check_fields(changes: dict, allowed: frozenset, entity: str) -> dict:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update {entity} field(s): {', '.join(sorted(unknown))}")
    return changes


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{name} is required.")
    return value.strip()


class _Operations:
    def __init__(self, storage: Storage, cache: ResultCache):
        self.storage = storage
        self.cache = cache


class UserOperations(_Operations):

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.cache.fetch(
            user_key(user_id),
            lambda: self.storage.get_user(user_id),
            USER_TTL
        )

    def get_by_username(self, username: str) -> Optional[User]:
        return self.storage.get_user_by_username(username)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.storage.get_user_by_email(email)

    def create(self, username: str, email: str, password: str, **profile) -> User:
        """Create a user. `password` is expected to be hashed already."""
        _check_fields(profile, USER_EDITABLE_FIELDS - {'username', 'email'}, 'user')
        user = self.storage.insert_user(
            username=_require_text(username, 'Username'),
            email=_require_text(email, 'Email'),
            password=password,
            **profile
        )
        self.cache.invalidate_user(user.id)
        return user

    def update_profile(self, user_id: int, **changes) -> User:
        _check_fields(changes, USER_EDITABLE_FIELDS, 'user')
        for name in ('username', 'email'):
            if name in changes:
                changes[name] = _require_text(changes[name], name.title())
        if not changes:
            user = self.storage.get_user(user_id)
        else:
            user = self.storage.update_user(user_id, **changes)
        if user is None:
            raise NotFound('User', user_id)
        self.cache.invalidate_user(user_id)
        return user

    def get_profile_with_counts(self, user_id: int, viewer_id: Optional[int] = None) -> Optional[UserProfile]:
        def load():
            user = self.storage.get_user(user_id)
            if user is None:
                return None
            return relationships.build_profile(self.storage, user, viewer_id)

        if viewer_id is not None:
            return load()
        return self.cache.fetch(user_key(user_id, 'profile'), load, USER_TTL)


class DocumentOperations(_Operations):

    def _cached_listing(self, query: DocumentQuery) -> list[DocumentWithUploader]:
        return self.cache.fetch(
            documents_key(query.as_key()),
            lambda: self.storage.list_documents(query),
            DOCUMENT_LIST_TTL
        )

    def get_by_id(self, document_id: int) -> Optional[Document]:
        return self.storage.get_document(document_id)

    def get_with_uploader(self, document_id: int) -> Optional[DocumentWithUploader]:
        return self.cache.fetch(
            document_key(document_id),
            lambda: self.storage.get_document_with_uploader(document_id),
            DOCUMENT_TTL
        )

    def get_with_details(self, document_id: int, user_id: Optional[int] = None) -> Optional[DocumentDetails]:
        """
        Document, uploader and comment count, plus the viewer's bookmark
        and rating when `user_id` is given. Only the anonymous view is
        cached.

        The comment count is taken from the rendered threads (roots plus
        their direct replies), so it matches list_threads_for_document.
        """
        def load():
            base = self.storage.get_document_with_uploader(document_id)
            if base is None:
                return None
            details = DocumentDetails(
                document=base.document,
                uploader=base.uploader,
                comments_count=threads.count_comments(threads.get_threads(self.storage, document_id)),
            )
            if user_id is not None:
                details.is_bookmarked = self.storage.has_bookmark(document_id, user_id)
                rating = self.storage.find_rating(document_id, user_id)
                details.user_rating = rating.value if rating else None
            return details

        if user_id is not None:
            return load()
        return self.cache.fetch(document_key(document_id, 'details'), load, DOCUMENT_TTL)

    def list_all(self) -> list[DocumentWithUploader]:
        return self._cached_listing(DocumentQuery())

    def list_by_subject(self, subject: str) -> list[DocumentWithUploader]:
        return self._cached_listing(DocumentQuery(subject=subject))

    def list_by_user(self, user_id: int) -> list[DocumentWithUploader]:
        return self._cached_listing(DocumentQuery(uploader_id=user_id))

    def search(self, text: str) -> list[DocumentWithUploader]:
        """
        Case-insensitive substring match over title, description and
        subject. Results are not ranked; they keep listing order.
        """
        text = (text or '').strip()
        if not text:
            return self.list_all()
        query = DocumentQuery(text=text)
        return self.cache.fetch(
            search_key(text),
            lambda: self.storage.list_documents(query),
            SEARCH_TTL
        )

    def list_featured(self) -> list[DocumentWithUploader]:
        return self._cached_listing(DocumentQuery(featured=True, limit=FEATURED_LIMIT))

    def list_recent(self) -> list[DocumentWithUploader]:
        return self._cached_listing(DocumentQuery(limit=RECENT_LIMIT))

    def create(
        self,
        uploader_id: int,
        title: str,
        subject: str,
        file_type: str,
        file_name: str,
        file_size: int,
        file_path: str,
        **optional
    ) -> Document:
        _check_fields(optional, DOCUMENT_EDITABLE_FIELDS - {'is_featured'}, 'document')
        if self.storage.get_user(uploader_id) is None:
            raise NotFound('User', uploader_id)
        if file_size is None or file_size < 0:
            raise ValueError("File size must be a non-negative integer.")

        document = self.storage.insert_document(
            uploader_id=uploader_id,
            title=_require_text(title, 'Title'),
            subject=_require_text(subject, 'Subject'),
            file_type=FileType(file_type),
            file_name=file_name,
            file_size=file_size,
            file_path=file_path,
            **optional
        )
        self.storage.increment_user_counter(uploader_id, 'total_uploads')
        self.cache.invalidate_user(uploader_id)
        self.cache.invalidate_document(document.id)
        return document

    def update(self, document_id: int, **changes) -> Document:
        _check_fields(changes, DOCUMENT_EDITABLE_FIELDS, 'document')
        for name in ('title', 'subject'):
            if name in changes:
                changes[name] = _require_text(changes[name], name.title())
        if changes:
            document = self.storage.update_document(document_id, **changes)
        else:
            document = self.storage.get_document(document_id)
        if document is None:
            raise NotFound('Document', document_id)
        self.cache.invalidate_document(document_id)
        return document

    def increment_downloads(self, document_id: int) -> None:
        self.storage.increment_document_counter(document_id, 'downloads')
        self.cache.invalidate_document(document_id)

    def increment_views(self, document_id: int) -> None:
        self.storage.increment_document_counter(document_id, 'views')
        self.cache.invalidate_document(document_id)

    def record_download(self, document_id: int) -> Document:
        """
        Count one download of a document and credit its uploader.
        Returns the document so the caller can serve the file.
        """
        document = self.storage.get_document(document_id)
        if document is None:
            raise NotFound('Document', document_id)
        self.increment_downloads(document_id)
        self.storage.increment_user_counter(document.uploader_id, 'total_downloads')
        self.cache.invalidate_user(document.uploader_id)
        return document


class RatingOperations(_Operations):

    def submit(self, document_id: int, user_id: int, value: int, review: Optional[str] = None) -> Rating:
        rating = ratings.submit_rating(self.storage, document_id, user_id, value, review)
        self.cache.invalidate_document(document_id)
        return rating

    def get_for_user_and_document(self, document_id: int, user_id: int) -> Optional[Rating]:
        return self.storage.find_rating(document_id, user_id)

    def list_for_document(self, document_id: int) -> list[RatingWithUser]:
        return self.storage.list_ratings(document_id)


class CommentOperations(_Operations):

    def create(self, document_id: int, user_id: int, content: str, parent_id: Optional[int] = None) -> Comment:
        comment = threads.create_comment(self.storage, document_id, user_id, content, parent_id)
        self.cache.invalidate_document(document_id)
        return comment

    def list_threads_for_document(self, document_id: int) -> list[CommentWithUser]:
        return threads.get_threads(self.storage, document_id)

    def get_replies(self, parent_id: int) -> list[CommentWithUser]:
        return self.storage.list_replies([parent_id])

    def update(self, comment_id: int, content: str) -> Comment:
        comment = threads.update_comment(self.storage, comment_id, content)
        self.cache.invalidate_document(comment.document_id)
        return comment

    def delete(self, comment_id: int) -> None:
        comment = threads.delete_comment(self.storage, comment_id)
        self.cache.invalidate_document(comment.document_id)


class BookmarkOperations(_Operations):

    def create(self, document_id: int, user_id: int) -> Bookmark:
        return relationships.add_bookmark(self.storage, document_id, user_id)

    def remove(self, document_id: int, user_id: int) -> None:
        relationships.remove_bookmark(self.storage, document_id, user_id)

    def toggle(self, document_id: int, user_id: int) -> bool:
        return relationships.toggle_bookmark(self.storage, document_id, user_id)

    def list_for_user(self, user_id: int) -> list[DocumentWithUploader]:
        return relationships.get_bookmarked_documents(self.storage, user_id)

    def is_bookmarked(self, document_id: int, user_id: int) -> bool:
        return relationships.is_bookmarked(self.storage, document_id, user_id)


class FollowOperations(_Operations):

    def _forget_profiles(self, *user_ids: int) -> None:
        for user_id in user_ids:
            self.cache.delete(user_key(user_id, 'profile'))

    def follow(self, follower_id: int, following_id: int) -> Follow:
        edge = relationships.follow(self.storage, follower_id, following_id)
        self._forget_profiles(follower_id, following_id)
        return edge

    def unfollow(self, follower_id: int, following_id: int) -> None:
        relationships.unfollow(self.storage, follower_id, following_id)
        self._forget_profiles(follower_id, following_id)

    def is_following(self, follower_id: int, following_id: int) -> bool:
        return relationships.is_following(self.storage, follower_id, following_id)

    def list_followers(self, user_id: int, viewer_id: Optional[int] = None) -> list[UserProfile]:
        return relationships.get_followers(self.storage, user_id, viewer_id)

    def list_following(self, user_id: int, viewer_id: Optional[int] = None) -> list[UserProfile]:
        return relationships.get_following(self.storage, user_id, viewer_id)


class CollectionOperations(_Operations):

    def _with_documents(self, collection: Collection) -> CollectionWithDocuments:
        return CollectionWithDocuments(
            collection=collection,
            documents=self.storage.list_collection_documents(collection.id),
        )

    def _require_collection(self, collection_id: int) -> Collection:
        collection = self.storage.get_collection(collection_id)
        if collection is None:
            raise NotFound('Collection', collection_id)
        return collection

    def create(self, user_id: int, name: str, description: Optional[str] = None,
               is_public: bool = False) -> Collection:
        if self.storage.get_user(user_id) is None:
            raise NotFound('User', user_id)
        return self.storage.insert_collection(
            user_id=user_id,
            name=_require_text(name, 'Name'),
            description=description,
            is_public=is_public,
        )

    def list_for_user(self, user_id: int) -> list[CollectionWithDocuments]:
        return [
            self._with_documents(collection)
            for collection in self.storage.list_collections(user_id)
        ]

    def get_with_membership(self, collection_id: int) -> Optional[CollectionWithDocuments]:
        collection = self.storage.get_collection(collection_id)
        if collection is None:
            return None
        return self._with_documents(collection)

    def add_document(self, collection_id: int, document_id: int) -> None:
        self._require_collection(collection_id)
        if self.storage.get_document(document_id) is None:
            raise NotFound('Document', document_id)
        self.storage.insert_membership(collection_id, document_id)

    def remove_document(self, collection_id: int, document_id: int) -> None:
        if not self.storage.delete_membership(collection_id, document_id):
            raise InvalidState(
                f"Document {document_id} is not in collection {collection_id}"
            )

    def update(self, collection_id: int, **changes) -> Collection:
        _check_fields(changes, COLLECTION_EDITABLE_FIELDS, 'collection')
        if 'name' in changes:
            changes['name'] = _require_text(changes['name'], 'Name')
        if changes:
            collection = self.storage.update_collection(collection_id, **changes)
        else:
            collection = self.storage.get_collection(collection_id)
        if collection is None:
            raise InvalidState(f"Collection {collection_id} does not exist")
        return collection

    def delete(self, collection_id: int) -> None:
        if not self.storage.delete_collection(collection_id):
            raise InvalidState(f"Collection {collection_id} does not exist")


class Library:
    """All library operations over one storage backend and one cache."""

    def __init__(self, storage: Optional[Storage] = None, cache: Optional[ResultCache] = None):
        self.storage = storage if storage is not None else get_storage()
        self.cache = cache if cache is not None else get_result_cache()

        self.users = UserOperations(self.storage, self.cache)
        self.documents = DocumentOperations(self.storage, self.cache)
        self.ratings = RatingOperations(self.storage, self.cache)
        self.comments = CommentOperations(self.storage, self.cache)
        self.bookmarks = BookmarkOperations(self.storage, self.cache)
        self.follows = FollowOperations(self.storage, self.cache)
        self.collections = CollectionOperations(self.storage, self.cache)

    def platform_stats(self) -> PlatformStats:
        return self.cache.fetch(STATS_KEY, self.storage.platform_stats, STATS_TTL)


def get_library() -> Library:
    return Library()
