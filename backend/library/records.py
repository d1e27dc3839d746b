"""
Record types returned by the library core.

Both storage backends hand out these dataclasses instead of ORM instances,
so callers (views, the seed command, tests) see identical shapes whether
the data lives in process memory or in PostgreSQL.

Joined records (DocumentWithUploader, CommentWithUser, ...) are only built
when the referenced user resolves. A row whose user is missing is omitted
from results rather than returned half-populated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

RATING_PLACES = Decimal('0.01')
ZERO_RATING = Decimal('0.00')


class FileType(str, Enum):
    PDF = 'pdf'
    IMAGE = 'image'
    TEXT = 'text'


def quantize_rating(value) -> Decimal:
    """Round a mean rating to two decimal places, half away from zero."""
    return Decimal(value).quantize(RATING_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class User:
    id: int
    username: str
    email: str
    password: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    university: Optional[str] = None
    major: Optional[str] = None
    year: Optional[str] = None
    reputation: int = 0
    total_uploads: int = 0
    total_downloads: int = 0
    created_at: Optional[datetime] = None

    def summary(self) -> 'UserSummary':
        return UserSummary(
            id=self.id,
            username=self.username,
            avatar=self.avatar,
            reputation=self.reputation,
        )


@dataclass
class UserSummary:
    """Minimal user representation embedded in other records."""
    id: int
    username: str
    avatar: Optional[str] = None
    reputation: int = 0


@dataclass
class UserProfile:
    user: User
    followers_count: int = 0
    following_count: int = 0
    documents_count: int = 0
    is_following: bool = False


@dataclass
class Document:
    id: int
    title: str
    subject: str
    file_type: FileType
    file_name: str
    file_size: int
    file_path: str
    uploader_id: int
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    course: Optional[str] = None
    professor: Optional[str] = None
    semester: Optional[str] = None
    thumbnail_path: Optional[str] = None
    downloads: int = 0
    views: int = 0
    rating: Decimal = ZERO_RATING
    rating_count: int = 0
    is_featured: bool = False
    is_public: bool = True
    created_at: Optional[datetime] = None


@dataclass
class DocumentWithUploader:
    document: Document
    uploader: UserSummary

    @property
    def id(self) -> int:
        return self.document.id


@dataclass
class DocumentDetails:
    document: Document
    uploader: UserSummary
    comments_count: int = 0
    is_bookmarked: bool = False
    user_rating: Optional[int] = None

    @property
    def id(self) -> int:
        return self.document.id


@dataclass
class Rating:
    id: int
    document_id: int
    user_id: int
    value: int
    review: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class RatingWithUser:
    rating: Rating
    user: UserSummary


@dataclass
class Comment:
    id: int
    document_id: int
    user_id: int
    content: str
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass
class CommentWithUser:
    comment: Comment
    user: UserSummary
    replies: list['CommentWithUser'] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.comment.id


@dataclass
class Bookmark:
    id: int
    document_id: int
    user_id: int
    created_at: Optional[datetime] = None


@dataclass
class Follow:
    id: int
    follower_id: int
    following_id: int
    created_at: Optional[datetime] = None


@dataclass
class Collection:
    id: int
    name: str
    user_id: int
    description: Optional[str] = None
    is_public: bool = False
    created_at: Optional[datetime] = None


@dataclass
class CollectionWithDocuments:
    collection: Collection
    documents: list[DocumentWithUploader] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.collection.id

    @property
    def documents_count(self) -> int:
        return len(self.documents)


@dataclass
class PlatformStats:
    documents: int = 0
    users: int = 0
    downloads: int = 0
    views: int = 0
