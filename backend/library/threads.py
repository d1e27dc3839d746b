"""
Comment Thread Assembler
========================

Comments are stored flat (adjacency list: parent_id). Threads are two
levels deep - root comments and their replies - so a document's threads
are built from exactly two reads:

    1. root comments of the document, oldest first
    2. replies to any of those roots, oldest first

and stitched together in Python with a dict keyed by parent id, O(n).

Example:
    flat:   [C1(parent=None), C2(parent=C1), C3(parent=None)]
    thread: [C1 -> [C2], C3 -> []]

Deleting a comment removes its whole subtree so no reply is ever left
pointing at a missing parent.
"""

from collections import defaultdict
from typing import Optional

from .exceptions import InvalidState, NotFound
from .records import Comment, CommentWithUser
from .storage.base import Storage


def build_threads(
    roots: list[CommentWithUser],
    replies: list[CommentWithUser]
) -> list[CommentWithUser]:
    """Attach each reply to its root. Replies keep their input order."""
    replies_by_parent = defaultdict(list)
    for reply in replies:
        replies_by_parent[reply.comment.parent_id].append(reply)

    for root in roots:
        root.replies = replies_by_parent.get(root.comment.id, [])

    return roots


def get_threads(storage: Storage, document_id: int) -> list[CommentWithUser]:
    roots = storage.list_root_comments(document_id)
    replies = storage.list_replies([root.comment.id for root in roots])
    return build_threads(roots, replies)


def count_comments(threads: list[CommentWithUser]) -> int:
    """Roots plus replies."""
    return sum(1 + len(thread.replies) for thread in threads)


def create_comment(
    storage: Storage,
    document_id: int,
    user_id: int,
    content: str,
    parent_id: Optional[int] = None
) -> Comment:
    if not content or not content.strip():
        raise ValueError("Comment cannot be empty.")
    if storage.get_document(document_id) is None:
        raise NotFound('Document', document_id)
    if storage.get_user(user_id) is None:
        raise NotFound('User', user_id)

    if parent_id is not None:
        parent = storage.get_comment(parent_id)
        if parent is None:
            raise NotFound('Comment', parent_id)
        if parent.document_id != document_id:
            raise InvalidState(
                f"Parent comment {parent_id} belongs to another document"
            )

    return storage.insert_comment(document_id, user_id, content.strip(), parent_id)


def update_comment(storage: Storage, comment_id: int, content: str) -> Comment:
    if not content or not content.strip():
        raise ValueError("Comment cannot be empty.")
    comment = storage.update_comment(comment_id, content=content.strip())
    if comment is None:
        raise InvalidState(f"Comment {comment_id} does not exist")
    return comment


def delete_comment(storage: Storage, comment_id: int) -> Comment:
    """
    Delete a comment together with every comment below it.

    Replies are collected level by level until none are left, then the
    whole set is deleted in one call. Returns the deleted comment.
    """
    comment = storage.get_comment(comment_id)
    if comment is None:
        raise InvalidState(f"Comment {comment_id} does not exist")

    doomed = [comment_id]
    frontier = [comment_id]
    while frontier:
        frontier = storage.child_comment_ids(frontier)
        doomed.extend(frontier)

    storage.delete_comments(doomed)
    return comment
