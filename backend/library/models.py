"""
Relational schema for the note library.
========================================

One table per entity, matching library.records one-to-one. These models
are only touched by library.storage.database; everything above the
storage layer works with record dataclasses.

Design notes:
-------------
1. Comments use an adjacency list (parent_id FK). Threads are two levels
   deep in practice, so roots and replies are fetched with two queries and
   joined in Python (see library.threads).

2. Pair uniqueness (rating per document/user, bookmark, follow, collection
   membership) is a UniqueConstraint. Application code still looks before
   it inserts, but the constraint is what makes concurrent inserts safe.

3. Document.rating / rating_count are derived from Rating rows and only
   written by library.ratings.recompute_rating.

4. downloads / views are only ever changed with F() expressions so two
   concurrent increments cannot overwrite each other.
"""

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone

from .records import FileType


class User(models.Model):
    """
    Library member. Authentication lives elsewhere; this table only holds
    the profile and counters the library needs.
    """
    username = models.CharField(max_length=150, unique=True)
    email = models.EmailField(max_length=254, unique=True)
    password = models.CharField(max_length=255)
    avatar = models.TextField(null=True, blank=True)
    bio = models.TextField(null=True, blank=True)
    university = models.TextField(null=True, blank=True)
    major = models.TextField(null=True, blank=True)
    year = models.TextField(null=True, blank=True)
    reputation = models.IntegerField(default=0)
    total_uploads = models.PositiveIntegerField(default=0)
    total_downloads = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.username


class Document(models.Model):
    """An uploaded note. Binary content lives on disk at file_path."""

    FILE_TYPE_CHOICES = [(file_type.value, file_type.name.title()) for file_type in FileType]

    title = models.TextField()
    description = models.TextField(null=True, blank=True)
    subject = models.TextField(db_index=True)
    tags = models.JSONField(default=list, blank=True)
    course = models.TextField(null=True, blank=True)
    professor = models.TextField(null=True, blank=True)
    semester = models.TextField(null=True, blank=True)
    file_type = models.CharField(max_length=10, choices=FILE_TYPE_CHOICES)
    file_name = models.TextField()
    file_size = models.PositiveIntegerField()
    file_path = models.TextField()
    thumbnail_path = models.TextField(null=True, blank=True)
    uploader = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='documents',
        db_index=True
    )
    downloads = models.PositiveIntegerField(default=0)
    views = models.PositiveIntegerField(default=0)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default='0.00')
    rating_count = models.PositiveIntegerField(default=0)
    is_featured = models.BooleanField(default=False)
    is_public = models.BooleanField(default=True)
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True  # Listings are newest first
    )

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['uploader', '-created_at']),
            models.Index(fields=['rating']),
            models.Index(fields=['downloads']),
        ]

    def __str__(self):
        return f"{self.title[:50]} ({self.subject})"


class Rating(models.Model):
    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='ratings'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='ratings'
    )
    value = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    review = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['document', 'user'],
                name='unique_rating_per_user_per_document'
            )
        ]

    def __str__(self):
        return f"{self.user_id} rated {self.document_id}: {self.value}"


class Comment(models.Model):
    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies'
    )
    content = models.TextField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']  # Oldest first within a thread
        indexes = [
            models.Index(fields=['document', 'created_at']),
            models.Index(fields=['parent', 'created_at']),
        ]

    def __str__(self):
        return f"Comment by {self.user_id} on {self.document_id}"


class Bookmark(models.Model):
    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='bookmarks'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='bookmarks'
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['document', 'user'],
                name='unique_bookmark_per_user_per_document'
            )
        ]


class Follow(models.Model):
    """Directed edge: follower -> following."""
    follower = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='following_edges'
    )
    following = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='follower_edges'
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['follower', 'following'],
                name='unique_follow_edge'
            )
        ]
        indexes = [
            models.Index(fields=['following', 'created_at']),
        ]


class Collection(models.Model):
    name = models.TextField()
    description = models.TextField(null=True, blank=True)
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='collections'
    )
    is_public = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    documents = models.ManyToManyField(
        Document,
        through='CollectionDocument',
        related_name='collections'
    )

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.name


class CollectionDocument(models.Model):
    collection = models.ForeignKey(
        Collection,
        on_delete=models.CASCADE,
        related_name='memberships'
    )
    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='memberships'
    )
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['collection', 'document'],
                name='unique_document_per_collection'
            )
        ]
