"""
Relational storage backend (Django ORM).
=========================================

QUERY STRATEGY:
---------------
- Joined reads use select_related on non-null foreign keys, which Django
  renders as INNER JOIN. A row whose user is gone simply does not come
  back, matching the omission rule of the memory backend.
- Listings and threads are one query each; the comment tree is assembled
  in Python by library.threads.

CONCURRENCY:
------------
Counters are updated with F() expressions, so the database does
`views = views + 1` server-side and concurrent requests cannot lose an
increment:

    UPDATE library_document SET views = views + 1 WHERE id = %s

Pair uniqueness is enforced by UniqueConstraint. Inserts run inside
transaction.atomic() so an IntegrityError only rolls back the savepoint,
then it is re-raised as ConstraintViolation.
"""

from decimal import Decimal
from typing import Iterable, Optional

from django.db import IntegrityError, transaction
from django.db.models import F, Q, Sum
from django.db.models.functions import Coalesce

from .. import models
from ..exceptions import ConstraintViolation
from ..records import (
    Bookmark, Collection, Comment, CommentWithUser, Document,
    DocumentWithUploader, FileType, Follow, PlatformStats, Rating,
    RatingWithUser, User, UserSummary,
)
from .base import (
    DOCUMENT_COUNTERS, FEATURED_MIN_DOWNLOADS, FEATURED_MIN_RATING,
    USER_COUNTERS, DocumentQuery, Storage,
)

NEWEST_FIRST = ('-created_at', '-id')
OLDEST_FIRST = ('created_at', 'id')


# ============================================================================
# ROW -> RECORD CONVERSION
# ============================================================================

def _user(row: models.User) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password=row.password,
        avatar=row.avatar,
        bio=row.bio,
        university=row.university,
        major=row.major,
        year=row.year,
        reputation=row.reputation,
        total_uploads=row.total_uploads,
        total_downloads=row.total_downloads,
        created_at=row.created_at,
    )


def _summary(row: models.User) -> UserSummary:
    return UserSummary(
        id=row.id,
        username=row.username,
        avatar=row.avatar,
        reputation=row.reputation,
    )


def _document(row: models.Document) -> Document:
    return Document(
        id=row.id,
        title=row.title,
        description=row.description,
        subject=row.subject,
        tags=list(row.tags or []),
        course=row.course,
        professor=row.professor,
        semester=row.semester,
        file_type=FileType(row.file_type),
        file_name=row.file_name,
        file_size=row.file_size,
        file_path=row.file_path,
        thumbnail_path=row.thumbnail_path,
        uploader_id=row.uploader_id,
        downloads=row.downloads,
        views=row.views,
        rating=Decimal(row.rating),
        rating_count=row.rating_count,
        is_featured=row.is_featured,
        is_public=row.is_public,
        created_at=row.created_at,
    )


def _document_with_uploader(row: models.Document) -> DocumentWithUploader:
    return DocumentWithUploader(document=_document(row), uploader=_summary(row.uploader))


def _rating(row: models.Rating) -> Rating:
    return Rating(
        id=row.id,
        document_id=row.document_id,
        user_id=row.user_id,
        value=row.value,
        review=row.review,
        created_at=row.created_at,
    )


def _comment(row: models.Comment) -> Comment:
    return Comment(
        id=row.id,
        document_id=row.document_id,
        user_id=row.user_id,
        content=row.content,
        parent_id=row.parent_id,
        created_at=row.created_at,
    )


def _comment_with_user(row: models.Comment) -> CommentWithUser:
    return CommentWithUser(comment=_comment(row), user=_summary(row.user))


def _collection(row: models.Collection) -> Collection:
    return Collection(
        id=row.id,
        name=row.name,
        description=row.description,
        user_id=row.user_id,
        is_public=row.is_public,
        created_at=row.created_at,
    )


def _normalize_document_fields(fields: dict) -> dict:
    if 'file_type' in fields:
        fields['file_type'] = FileType(fields['file_type']).value
    if 'tags' in fields:
        fields['tags'] = list(fields['tags'] or [])
    return fields


class DatabaseStorage(Storage):

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        row = models.User.objects.filter(id=user_id).first()
        return _user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        row = models.User.objects.filter(username=username).first()
        return _user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = models.User.objects.filter(email=email).first()
        return _user(row) if row else None

    def insert_user(self, **fields) -> User:
        try:
            with transaction.atomic():
                row = models.User.objects.create(**fields)
        except IntegrityError as exc:
            raise ConstraintViolation("Username or email is already registered") from exc
        return _user(row)

    def update_user(self, user_id: int, **changes) -> Optional[User]:
        try:
            with transaction.atomic():
                updated = models.User.objects.filter(id=user_id).update(**changes)
        except IntegrityError as exc:
            raise ConstraintViolation("Username or email is already registered") from exc
        return self.get_user(user_id) if updated else None

    def increment_user_counter(self, user_id: int, counter: str, amount: int = 1) -> None:
        if counter not in USER_COUNTERS:
            raise ValueError(f"Unknown user counter: {counter}")
        models.User.objects.filter(id=user_id).update(**{counter: F(counter) + amount})

    def count_user_relations(self, user_id: int) -> tuple[int, int, int]:
        followers = models.Follow.objects.filter(following_id=user_id).count()
        following = models.Follow.objects.filter(follower_id=user_id).count()
        documents = models.Document.objects.filter(uploader_id=user_id).count()
        return followers, following, documents

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def get_document(self, document_id: int) -> Optional[Document]:
        row = models.Document.objects.filter(id=document_id).first()
        return _document(row) if row else None

    def get_document_with_uploader(self, document_id: int) -> Optional[DocumentWithUploader]:
        row = (
            models.Document.objects
            .select_related('uploader')
            .filter(id=document_id)
            .first()
        )
        return _document_with_uploader(row) if row else None

    def list_documents(self, query: DocumentQuery) -> list[DocumentWithUploader]:
        queryset = models.Document.objects.select_related('uploader')

        if query.uploader_id is not None:
            queryset = queryset.filter(uploader_id=query.uploader_id)
        if query.subject is not None:
            queryset = queryset.filter(subject__iexact=query.subject)
        if query.text is not None:
            queryset = queryset.filter(
                Q(title__icontains=query.text) |
                Q(description__icontains=query.text) |
                Q(subject__icontains=query.text)
            )
        if query.featured:
            queryset = queryset.filter(
                Q(rating__gte=FEATURED_MIN_RATING) |
                Q(downloads__gt=FEATURED_MIN_DOWNLOADS)
            )

        queryset = queryset.order_by(*NEWEST_FIRST)
        if query.limit is not None:
            queryset = queryset[:query.limit]

        return [_document_with_uploader(row) for row in queryset]

    def insert_document(self, **fields) -> Document:
        row = models.Document.objects.create(**_normalize_document_fields(fields))
        return _document(row)

    def update_document(self, document_id: int, **changes) -> Optional[Document]:
        updated = models.Document.objects.filter(id=document_id).update(
            **_normalize_document_fields(changes)
        )
        return self.get_document(document_id) if updated else None

    def increment_document_counter(self, document_id: int, counter: str) -> None:
        if counter not in DOCUMENT_COUNTERS:
            raise ValueError(f"Unknown document counter: {counter}")
        # Using F() for atomic increment - prevents lost updates
        models.Document.objects.filter(id=document_id).update(**{counter: F(counter) + 1})

    def set_document_rating(self, document_id: int, mean: Decimal, count: int) -> None:
        models.Document.objects.filter(id=document_id).update(rating=mean, rating_count=count)

    def platform_stats(self) -> PlatformStats:
        totals = models.Document.objects.aggregate(
            downloads=Coalesce(Sum('downloads'), 0),
            views=Coalesce(Sum('views'), 0),
        )
        return PlatformStats(
            documents=models.Document.objects.count(),
            users=models.User.objects.count(),
            downloads=totals['downloads'],
            views=totals['views'],
        )

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------
    def get_rating(self, rating_id: int) -> Optional[Rating]:
        row = models.Rating.objects.filter(id=rating_id).first()
        return _rating(row) if row else None

    def find_rating(self, document_id: int, user_id: int) -> Optional[Rating]:
        row = models.Rating.objects.filter(document_id=document_id, user_id=user_id).first()
        return _rating(row) if row else None

    def insert_rating(self, document_id: int, user_id: int, value: int,
                      review: Optional[str] = None) -> Rating:
        try:
            with transaction.atomic():
                row = models.Rating.objects.create(
                    document_id=document_id,
                    user_id=user_id,
                    value=value,
                    review=review,
                )
        except IntegrityError as exc:
            raise ConstraintViolation(
                f"User {user_id} already rated document {document_id}"
            ) from exc
        return _rating(row)

    def update_rating(self, rating_id: int, **changes) -> Optional[Rating]:
        updated = models.Rating.objects.filter(id=rating_id).update(**changes)
        return self.get_rating(rating_id) if updated else None

    def rating_values(self, document_id: int) -> list[int]:
        return list(
            models.Rating.objects
            .filter(document_id=document_id)
            .values_list('value', flat=True)
        )

    def list_ratings(self, document_id: int) -> list[RatingWithUser]:
        rows = (
            models.Rating.objects
            .filter(document_id=document_id)
            .select_related('user')
            .order_by(*NEWEST_FIRST)
        )
        return [RatingWithUser(rating=_rating(row), user=_summary(row.user)) for row in rows]

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------
    def get_comment(self, comment_id: int) -> Optional[Comment]:
        row = models.Comment.objects.filter(id=comment_id).first()
        return _comment(row) if row else None

    def insert_comment(self, document_id: int, user_id: int, content: str,
                       parent_id: Optional[int] = None) -> Comment:
        row = models.Comment.objects.create(
            document_id=document_id,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
        )
        return _comment(row)

    def update_comment(self, comment_id: int, **changes) -> Optional[Comment]:
        updated = models.Comment.objects.filter(id=comment_id).update(**changes)
        return self.get_comment(comment_id) if updated else None

    def list_root_comments(self, document_id: int) -> list[CommentWithUser]:
        rows = (
            models.Comment.objects
            .filter(document_id=document_id, parent__isnull=True)
            .select_related('user')
            .order_by(*OLDEST_FIRST)
        )
        return [_comment_with_user(row) for row in rows]

    def list_replies(self, parent_ids: Iterable[int]) -> list[CommentWithUser]:
        parent_ids = list(parent_ids)
        if not parent_ids:
            return []
        rows = (
            models.Comment.objects
            .filter(parent_id__in=parent_ids)
            .select_related('user')
            .order_by(*OLDEST_FIRST)
        )
        return [_comment_with_user(row) for row in rows]

    def child_comment_ids(self, parent_ids: Iterable[int]) -> list[int]:
        parent_ids = list(parent_ids)
        if not parent_ids:
            return []
        return list(
            models.Comment.objects
            .filter(parent_id__in=parent_ids)
            .values_list('id', flat=True)
        )

    def delete_comments(self, comment_ids: Iterable[int]) -> int:
        comment_ids = list(comment_ids)
        if not comment_ids:
            return 0
        with transaction.atomic():
            _, per_model = models.Comment.objects.filter(id__in=comment_ids).delete()
        return per_model.get(models.Comment._meta.label, 0)

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------
    def insert_bookmark(self, document_id: int, user_id: int) -> Bookmark:
        try:
            with transaction.atomic():
                row = models.Bookmark.objects.create(document_id=document_id, user_id=user_id)
        except IntegrityError as exc:
            raise ConstraintViolation(
                f"Document {document_id} is already bookmarked by user {user_id}"
            ) from exc
        return Bookmark(
            id=row.id,
            document_id=row.document_id,
            user_id=row.user_id,
            created_at=row.created_at,
        )

    def delete_bookmark(self, document_id: int, user_id: int) -> bool:
        deleted, _ = models.Bookmark.objects.filter(
            document_id=document_id,
            user_id=user_id
        ).delete()
        return deleted > 0

    def has_bookmark(self, document_id: int, user_id: int) -> bool:
        return models.Bookmark.objects.filter(document_id=document_id, user_id=user_id).exists()

    def list_bookmarked_documents(self, user_id: int) -> list[DocumentWithUploader]:
        rows = (
            models.Document.objects
            .filter(bookmarks__user_id=user_id)
            .select_related('uploader')
            .order_by(*NEWEST_FIRST)
        )
        return [_document_with_uploader(row) for row in rows]

    # ------------------------------------------------------------------
    # Follows
    # ------------------------------------------------------------------
    def insert_follow(self, follower_id: int, following_id: int) -> Follow:
        try:
            with transaction.atomic():
                row = models.Follow.objects.create(
                    follower_id=follower_id,
                    following_id=following_id
                )
        except IntegrityError as exc:
            raise ConstraintViolation(
                f"User {follower_id} already follows user {following_id}"
            ) from exc
        return Follow(
            id=row.id,
            follower_id=row.follower_id,
            following_id=row.following_id,
            created_at=row.created_at,
        )

    def delete_follow(self, follower_id: int, following_id: int) -> bool:
        deleted, _ = models.Follow.objects.filter(
            follower_id=follower_id,
            following_id=following_id
        ).delete()
        return deleted > 0

    def has_follow(self, follower_id: int, following_id: int) -> bool:
        return models.Follow.objects.filter(
            follower_id=follower_id,
            following_id=following_id
        ).exists()

    def list_followers(self, user_id: int) -> list[User]:
        edges = (
            models.Follow.objects
            .filter(following_id=user_id)
            .select_related('follower')
            .order_by(*NEWEST_FIRST)
        )
        return [_user(edge.follower) for edge in edges]

    def list_following(self, user_id: int) -> list[User]:
        edges = (
            models.Follow.objects
            .filter(follower_id=user_id)
            .select_related('following')
            .order_by(*NEWEST_FIRST)
        )
        return [_user(edge.following) for edge in edges]

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    def get_collection(self, collection_id: int) -> Optional[Collection]:
        row = models.Collection.objects.filter(id=collection_id).first()
        return _collection(row) if row else None

    def insert_collection(self, **fields) -> Collection:
        return _collection(models.Collection.objects.create(**fields))

    def update_collection(self, collection_id: int, **changes) -> Optional[Collection]:
        updated = models.Collection.objects.filter(id=collection_id).update(**changes)
        return self.get_collection(collection_id) if updated else None

    def delete_collection(self, collection_id: int) -> bool:
        # Memberships go with it through the CASCADE foreign key
        with transaction.atomic():
            deleted, _ = models.Collection.objects.filter(id=collection_id).delete()
        return deleted > 0

    def list_collections(self, user_id: int) -> list[Collection]:
        rows = models.Collection.objects.filter(user_id=user_id).order_by(*NEWEST_FIRST)
        return [_collection(row) for row in rows]

    def insert_membership(self, collection_id: int, document_id: int) -> None:
        try:
            with transaction.atomic():
                models.CollectionDocument.objects.create(
                    collection_id=collection_id,
                    document_id=document_id
                )
        except IntegrityError as exc:
            raise ConstraintViolation(
                f"Document {document_id} is already in collection {collection_id}"
            ) from exc

    def delete_membership(self, collection_id: int, document_id: int) -> bool:
        deleted, _ = models.CollectionDocument.objects.filter(
            collection_id=collection_id,
            document_id=document_id
        ).delete()
        return deleted > 0

    def list_collection_documents(self, collection_id: int) -> list[DocumentWithUploader]:
        memberships = (
            models.CollectionDocument.objects
            .filter(collection_id=collection_id)
            .select_related('document__uploader')
            .order_by('-added_at', '-id')
        )
        return [_document_with_uploader(row.document) for row in memberships]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def flush(self) -> None:
        with transaction.atomic():
            models.CollectionDocument.objects.all().delete()
            models.Collection.objects.all().delete()
            models.Follow.objects.all().delete()
            models.Bookmark.objects.all().delete()
            models.Comment.objects.all().delete()
            models.Rating.objects.all().delete()
            models.Document.objects.all().delete()
            models.User.objects.all().delete()
