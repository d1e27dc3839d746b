"""
Storage interface for the library core.

A Storage only moves records in and out of a backing store. It does not
recompute ratings, cascade comment deletes or touch the result cache;
those rules live once, above the storage layer, in library.ratings,
library.threads, library.relationships and library.services. Both
backends therefore differ only in I/O.

Shared contract for every backend:
- Reads return None / [] for missing rows, never raise.
- Joined reads omit rows whose user cannot be resolved.
- Listings are newest first (created_at desc, then id desc).
- Pair inserts (rating, bookmark, follow, membership) raise
  ConstraintViolation when the pair already exists.
- Counter increments are atomic.
"""

import abc
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from ..records import (
    Bookmark, Collection, Comment, CommentWithUser, Document,
    DocumentWithUploader, Follow, PlatformStats, Rating, RatingWithUser, User,
)

FEATURED_MIN_RATING = Decimal('4.50')
FEATURED_MIN_DOWNLOADS = 100
FEATURED_LIMIT = 6
RECENT_LIMIT = 8

DOCUMENT_COUNTERS = ('downloads', 'views')
USER_COUNTERS = ('total_uploads', 'total_downloads', 'reputation')


@dataclass(frozen=True)
class DocumentQuery:
    """
    Filter set for document listings.

    All given filters are AND-combined. `text` is a case-insensitive
    substring match OR-ed over title, description and subject. `subject`
    is a case-insensitive exact match. `featured` keeps documents rated
    at least FEATURED_MIN_RATING or downloaded more than
    FEATURED_MIN_DOWNLOADS times.
    """
    subject: Optional[str] = None
    uploader_id: Optional[int] = None
    text: Optional[str] = None
    featured: bool = False
    limit: Optional[int] = None

    def as_key(self) -> dict:
        return {
            'subject': self.subject,
            'uploader_id': self.uploader_id,
            'text': self.text,
            'featured': self.featured,
            'limit': self.limit,
        }


class Storage(abc.ABC):
    """Backing-store primitives shared by the memory and database backends."""

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abc.abstractmethod
    def insert_user(self, **fields) -> User:
        """Raises ConstraintViolation if username or email is taken."""

    @abc.abstractmethod
    def update_user(self, user_id: int, **changes) -> Optional[User]: ...

    @abc.abstractmethod
    def increment_user_counter(self, user_id: int, counter: str, amount: int = 1) -> None: ...

    @abc.abstractmethod
    def count_user_relations(self, user_id: int) -> tuple[int, int, int]:
        """Return (followers, following, documents) counts for a user."""

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def get_document(self, document_id: int) -> Optional[Document]: ...

    @abc.abstractmethod
    def get_document_with_uploader(self, document_id: int) -> Optional[DocumentWithUploader]: ...

    @abc.abstractmethod
    def list_documents(self, query: DocumentQuery) -> list[DocumentWithUploader]: ...

    @abc.abstractmethod
    def insert_document(self, **fields) -> Document: ...

    @abc.abstractmethod
    def update_document(self, document_id: int, **changes) -> Optional[Document]: ...

    @abc.abstractmethod
    def increment_document_counter(self, document_id: int, counter: str) -> None:
        """Add one to `downloads` or `views`. Unknown ids are ignored."""

    @abc.abstractmethod
    def set_document_rating(self, document_id: int, mean: Decimal, count: int) -> None: ...

    @abc.abstractmethod
    def platform_stats(self) -> PlatformStats: ...

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def get_rating(self, rating_id: int) -> Optional[Rating]: ...

    @abc.abstractmethod
    def find_rating(self, document_id: int, user_id: int) -> Optional[Rating]: ...

    @abc.abstractmethod
    def insert_rating(self, document_id: int, user_id: int, value: int,
                      review: Optional[str] = None) -> Rating: ...

    @abc.abstractmethod
    def update_rating(self, rating_id: int, **changes) -> Optional[Rating]: ...

    @abc.abstractmethod
    def rating_values(self, document_id: int) -> list[int]: ...

    @abc.abstractmethod
    def list_ratings(self, document_id: int) -> list[RatingWithUser]: ...

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def get_comment(self, comment_id: int) -> Optional[Comment]: ...

    @abc.abstractmethod
    def insert_comment(self, document_id: int, user_id: int, content: str,
                       parent_id: Optional[int] = None) -> Comment: ...

    @abc.abstractmethod
    def update_comment(self, comment_id: int, **changes) -> Optional[Comment]: ...

    @abc.abstractmethod
    def list_root_comments(self, document_id: int) -> list[CommentWithUser]:
        """Root comments of a document, oldest first."""

    @abc.abstractmethod
    def list_replies(self, parent_ids: Iterable[int]) -> list[CommentWithUser]:
        """Direct replies to any of `parent_ids`, oldest first."""

    @abc.abstractmethod
    def child_comment_ids(self, parent_ids: Iterable[int]) -> list[int]: ...

    @abc.abstractmethod
    def delete_comments(self, comment_ids: Iterable[int]) -> int: ...

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def insert_bookmark(self, document_id: int, user_id: int) -> Bookmark: ...

    @abc.abstractmethod
    def delete_bookmark(self, document_id: int, user_id: int) -> bool: ...

    @abc.abstractmethod
    def has_bookmark(self, document_id: int, user_id: int) -> bool: ...

    @abc.abstractmethod
    def list_bookmarked_documents(self, user_id: int) -> list[DocumentWithUploader]: ...

    # ------------------------------------------------------------------
    # Follows
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def insert_follow(self, follower_id: int, following_id: int) -> Follow: ...

    @abc.abstractmethod
    def delete_follow(self, follower_id: int, following_id: int) -> bool: ...

    @abc.abstractmethod
    def has_follow(self, follower_id: int, following_id: int) -> bool: ...

    @abc.abstractmethod
    def list_followers(self, user_id: int) -> list[User]:
        """Users following `user_id`, most recent edge first."""

    @abc.abstractmethod
    def list_following(self, user_id: int) -> list[User]:
        """Users followed by `user_id`, most recent edge first."""

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def get_collection(self, collection_id: int) -> Optional[Collection]: ...

    @abc.abstractmethod
    def insert_collection(self, **fields) -> Collection: ...

    @abc.abstractmethod
    def update_collection(self, collection_id: int, **changes) -> Optional[Collection]: ...

    @abc.abstractmethod
    def delete_collection(self, collection_id: int) -> bool:
        """Delete a collection together with its memberships."""

    @abc.abstractmethod
    def list_collections(self, user_id: int) -> list[Collection]: ...

    @abc.abstractmethod
    def insert_membership(self, collection_id: int, document_id: int) -> None: ...

    @abc.abstractmethod
    def delete_membership(self, collection_id: int, document_id: int) -> bool: ...

    @abc.abstractmethod
    def list_collection_documents(self, collection_id: int) -> list[DocumentWithUploader]:
        """Member documents, most recently added first."""

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def flush(self) -> None:
        """Remove every row. Used by the seed command and tests."""
