"""
DRF Serializers
===============

Input serializers validate request bodies before they reach the library
facade. Output serializers render record dataclasses (not model
instances), so the same views work over either storage backend.

Joined records are flattened the way clients expect them:

    DocumentWithUploader -> {...document fields, "uploader": {...}}
    CommentWithUser      -> {...comment fields, "user": {...}, "replies": [...]}
"""

from rest_framework import serializers

from .ratings import MAX_RATING, MIN_RATING
from .records import FileType

FILE_TYPE_CHOICES = [file_type.value for file_type in FileType]


# ============================================================================
# OUTPUT
# ============================================================================

class UserSummarySerializer(serializers.Serializer):
    """Minimal user representation for embedding in other objects."""
    id = serializers.IntegerField()
    username = serializers.CharField()
    avatar = serializers.CharField(allow_null=True)
    reputation = serializers.IntegerField()


class UserSerializer(serializers.Serializer):
    """Full user record. The password hash is never rendered."""
    id = serializers.IntegerField()
    username = serializers.CharField()
    email = serializers.EmailField()
    avatar = serializers.CharField(allow_null=True)
    bio = serializers.CharField(allow_null=True)
    university = serializers.CharField(allow_null=True)
    major = serializers.CharField(allow_null=True)
    year = serializers.CharField(allow_null=True)
    reputation = serializers.IntegerField()
    total_uploads = serializers.IntegerField()
    total_downloads = serializers.IntegerField()
    created_at = serializers.DateTimeField()


class UserProfileSerializer(serializers.Serializer):
    followers_count = serializers.IntegerField()
    following_count = serializers.IntegerField()
    documents_count = serializers.IntegerField()
    is_following = serializers.BooleanField()

    def to_representation(self, instance):
        data = UserSerializer(instance.user).data
        data.update(super().to_representation(instance))
        return data


class DocumentSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField()
    description = serializers.CharField(allow_null=True)
    subject = serializers.CharField()
    tags = serializers.ListField(child=serializers.CharField())
    course = serializers.CharField(allow_null=True)
    professor = serializers.CharField(allow_null=True)
    semester = serializers.CharField(allow_null=True)
    file_type = serializers.CharField(source='file_type.value')
    file_name = serializers.CharField()
    file_size = serializers.IntegerField()
    uploader_id = serializers.IntegerField()
    downloads = serializers.IntegerField()
    views = serializers.IntegerField()
    rating = serializers.DecimalField(max_digits=3, decimal_places=2)
    rating_count = serializers.IntegerField()
    is_featured = serializers.BooleanField()
    is_public = serializers.BooleanField()
    created_at = serializers.DateTimeField()


class DocumentWithUploaderSerializer(serializers.Serializer):

    def to_representation(self, instance):
        data = DocumentSerializer(instance.document).data
        data['uploader'] = UserSummarySerializer(instance.uploader).data
        return data


class DocumentDetailsSerializer(serializers.Serializer):
    comments_count = serializers.IntegerField()
    is_bookmarked = serializers.BooleanField()
    user_rating = serializers.IntegerField(allow_null=True)

    def to_representation(self, instance):
        data = DocumentSerializer(instance.document).data
        data['uploader'] = UserSummarySerializer(instance.uploader).data
        data.update(super().to_representation(instance))
        return data


class RatingSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    document_id = serializers.IntegerField()
    user_id = serializers.IntegerField()
    value = serializers.IntegerField()
    review = serializers.CharField(allow_null=True)
    created_at = serializers.DateTimeField()


class RatingWithUserSerializer(serializers.Serializer):

    def to_representation(self, instance):
        data = RatingSerializer(instance.rating).data
        data['user'] = UserSummarySerializer(instance.user).data
        return data


class CommentSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    document_id = serializers.IntegerField()
    user_id = serializers.IntegerField()
    content = serializers.CharField()
    parent_id = serializers.IntegerField(allow_null=True)
    created_at = serializers.DateTimeField()


class CommentThreadSerializer(serializers.Serializer):
    """A comment with its author and (for roots) its replies."""

    def to_representation(self, instance):
        data = CommentSerializer(instance.comment).data
        data['user'] = UserSummarySerializer(instance.user).data
        data['replies'] = CommentThreadSerializer(instance.replies, many=True).data
        return data


class CollectionSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    description = serializers.CharField(allow_null=True)
    user_id = serializers.IntegerField()
    is_public = serializers.BooleanField()
    created_at = serializers.DateTimeField()


class CollectionWithDocumentsSerializer(serializers.Serializer):

    def to_representation(self, instance):
        data = CollectionSerializer(instance.collection).data
        data['documents'] = DocumentWithUploaderSerializer(instance.documents, many=True).data
        data['documents_count'] = instance.documents_count
        return data


class PlatformStatsSerializer(serializers.Serializer):
    documents = serializers.IntegerField()
    users = serializers.IntegerField()
    downloads = serializers.IntegerField()
    views = serializers.IntegerField()


# ============================================================================
# INPUT
# ============================================================================

class ActorSerializer(serializers.Serializer):
    """The acting user, supplied by the (external) auth layer."""
    user_id = serializers.IntegerField(min_value=1)


class UserCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=8, write_only=True)
    avatar = serializers.CharField(required=False, allow_null=True)
    bio = serializers.CharField(required=False, allow_null=True)
    university = serializers.CharField(required=False, allow_null=True)
    major = serializers.CharField(required=False, allow_null=True)
    year = serializers.CharField(required=False, allow_null=True)


class UserUpdateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150, required=False)
    email = serializers.EmailField(required=False)
    avatar = serializers.CharField(required=False, allow_null=True)
    bio = serializers.CharField(required=False, allow_null=True)
    university = serializers.CharField(required=False, allow_null=True)
    major = serializers.CharField(required=False, allow_null=True)
    year = serializers.CharField(required=False, allow_null=True)


class DocumentCreateSerializer(serializers.Serializer):
    """
    Metadata for an uploaded file. The upload itself (and where it is
    stored) is handled before this point.
    """
    uploader_id = serializers.IntegerField(min_value=1)
    title = serializers.CharField()
    subject = serializers.CharField()
    file_type = serializers.ChoiceField(choices=FILE_TYPE_CHOICES)
    file_name = serializers.CharField()
    file_size = serializers.IntegerField(min_value=0)
    file_path = serializers.CharField()
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    tags = serializers.ListField(child=serializers.CharField(), required=False)
    course = serializers.CharField(required=False, allow_null=True)
    professor = serializers.CharField(required=False, allow_null=True)
    semester = serializers.CharField(required=False, allow_null=True)
    is_public = serializers.BooleanField(required=False)

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title is required.")
        return value.strip()


class DocumentUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(required=False)
    subject = serializers.CharField(required=False)
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    tags = serializers.ListField(child=serializers.CharField(), required=False)
    course = serializers.CharField(required=False, allow_null=True)
    professor = serializers.CharField(required=False, allow_null=True)
    semester = serializers.CharField(required=False, allow_null=True)
    thumbnail_path = serializers.CharField(required=False, allow_null=True)
    is_public = serializers.BooleanField(required=False)


class RatingSubmitSerializer(ActorSerializer):
    value = serializers.IntegerField(min_value=MIN_RATING, max_value=MAX_RATING)
    review = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class CommentCreateSerializer(ActorSerializer):
    content = serializers.CharField()
    parent_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Comment cannot be empty.")
        return value.strip()


class CommentUpdateSerializer(serializers.Serializer):
    content = serializers.CharField()

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Comment cannot be empty.")
        return value.strip()


class CollectionCreateSerializer(ActorSerializer):
    name = serializers.CharField()
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    is_public = serializers.BooleanField(required=False, default=False)


class CollectionUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False)
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    is_public = serializers.BooleanField(required=False)


class MembershipSerializer(serializers.Serializer):
    document_id = serializers.IntegerField(min_value=1)
