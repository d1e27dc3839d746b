"""
Rating Aggregator
=================

A document's `rating` and `rating_count` are always derived from its
Rating rows:

    rating       = mean(values) rounded to 2 places
    rating_count = len(values)

WHY A FULL RESCAN:
------------------
Every write re-reads all ratings of the document instead of keeping a
running average. A running average drifts the moment an update and an
insert race; a rescan is correct by construction and a document has at
most a few hundred ratings.

ONE RATING PER (document, user):
--------------------------------
submit_rating() looks for an existing rating and updates it; otherwise it
inserts. If a concurrent request inserts first, the storage unique
constraint rejects our insert and we fall back to updating the winner's
row. Either way exactly one row survives.
"""

from decimal import Decimal
from typing import Optional

from .exceptions import ConstraintViolation, NotFound
from .records import Rating, quantize_rating
from .storage.base import Storage

MIN_RATING = 1
MAX_RATING = 5


def validate_rating_value(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {value}")
    return value


def mean_rating(values: list[int]) -> Decimal:
    return quantize_rating(Decimal(sum(values)) / Decimal(len(values)))


def recompute_rating(storage: Storage, document_id: int) -> Optional[tuple[Decimal, int]]:
    """
    Rescan a document's ratings and write the aggregate back.

    A document with no ratings (including an unknown document id) is left
    untouched and None is returned.
    """
    values = storage.rating_values(document_id)
    if not values:
        return None

    mean = mean_rating(values)
    storage.set_document_rating(document_id, mean, len(values))
    return mean, len(values)


def submit_rating(
    storage: Storage,
    document_id: int,
    user_id: int,
    value: int,
    review: Optional[str] = None
) -> Rating:
    """
    Create or update the user's rating of a document, then re-aggregate.

    A review of None keeps the review already stored on an existing rating.
    """
    validate_rating_value(value)

    if storage.get_document(document_id) is None:
        raise NotFound('Document', document_id)
    if storage.get_user(user_id) is None:
        raise NotFound('User', user_id)

    existing = storage.find_rating(document_id, user_id)
    rating = None

    if existing is None:
        try:
            rating = storage.insert_rating(document_id, user_id, value, review)
        except ConstraintViolation:
            # Lost the race to a concurrent submit - update its row instead
            existing = storage.find_rating(document_id, user_id)

    if rating is None:
        changes = {'value': value}
        if review is not None:
            changes['review'] = review
        rating = storage.update_rating(existing.id, **changes)

    recompute_rating(storage, document_id)
    return rating
