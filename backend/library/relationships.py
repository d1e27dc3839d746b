"""
Relationship Resolver
=====================

Bookmarks (user -> document) and follows (user -> user) are edge rows.
This module answers membership questions and reverse lookups over them,
and guards their uniqueness.

Uniqueness is checked here before inserting (clear error message) and
again by the storage layer on insert (unique constraint / locked check),
which is what actually holds under concurrent requests.
"""

from typing import Optional

from .exceptions import ConstraintViolation, InvalidState, NotFound
from .records import Bookmark, DocumentWithUploader, Follow, User, UserProfile
from .storage.base import Storage


# ============================================================================
# BOOKMARKS
# ============================================================================

def is_bookmarked(storage: Storage, document_id: int, user_id: int) -> bool:
    return storage.has_bookmark(document_id, user_id)


def add_bookmark(storage: Storage, document_id: int, user_id: int) -> Bookmark:
    if storage.get_document(document_id) is None:
        raise NotFound('Document', document_id)
    if storage.get_user(user_id) is None:
        raise NotFound('User', user_id)
    if storage.has_bookmark(document_id, user_id):
        raise ConstraintViolation(
            f"Document {document_id} is already bookmarked by user {user_id}"
        )
    return storage.insert_bookmark(document_id, user_id)


def remove_bookmark(storage: Storage, document_id: int, user_id: int) -> None:
    if not storage.delete_bookmark(document_id, user_id):
        raise InvalidState(f"Document {document_id} is not bookmarked by user {user_id}")


def toggle_bookmark(storage: Storage, document_id: int, user_id: int) -> bool:
    """
    Flip the bookmark and return the new state.

    NOT atomic across check-and-toggle: two simultaneous toggles can end
    up as a no-op, never as a duplicate row.
    """
    if storage.has_bookmark(document_id, user_id):
        remove_bookmark(storage, document_id, user_id)
        return False
    add_bookmark(storage, document_id, user_id)
    return True


def get_bookmarked_documents(storage: Storage, user_id: int) -> list[DocumentWithUploader]:
    return storage.list_bookmarked_documents(user_id)


# ============================================================================
# FOLLOWS
# ============================================================================

def is_following(storage: Storage, follower_id: int, following_id: int) -> bool:
    return storage.has_follow(follower_id, following_id)


def follow(storage: Storage, follower_id: int, following_id: int) -> Follow:
    if follower_id == following_id:
        raise ConstraintViolation("Users cannot follow themselves")
    if storage.get_user(follower_id) is None:
        raise NotFound('User', follower_id)
    if storage.get_user(following_id) is None:
        raise NotFound('User', following_id)
    if storage.has_follow(follower_id, following_id):
        raise ConstraintViolation(f"User {follower_id} already follows user {following_id}")
    return storage.insert_follow(follower_id, following_id)


def unfollow(storage: Storage, follower_id: int, following_id: int) -> None:
    if not storage.delete_follow(follower_id, following_id):
        raise InvalidState(f"User {follower_id} does not follow user {following_id}")


def build_profile(storage: Storage, user: User, viewer_id: Optional[int] = None) -> UserProfile:
    followers, following, documents = storage.count_user_relations(user.id)
    return UserProfile(
        user=user,
        followers_count=followers,
        following_count=following,
        documents_count=documents,
        is_following=(
            viewer_id is not None
            and viewer_id != user.id
            and storage.has_follow(viewer_id, user.id)
        ),
    )


def get_followers(storage: Storage, user_id: int, viewer_id: Optional[int] = None) -> list[UserProfile]:
    return [build_profile(storage, user, viewer_id) for user in storage.list_followers(user_id)]


def get_following(storage: Storage, user_id: int, viewer_id: Optional[int] = None) -> list[UserProfile]:
    return [build_profile(storage, user, viewer_id) for user in storage.list_following(user_id)]
