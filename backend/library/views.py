"""
DRF Views
=========

Thin route handlers over the library facade. Views validate input,
call exactly one facade operation (or a read + its composition) and
render the result. Errors raised by the core (NotFound, InvalidState,
ConstraintViolation, ValueError) are turned into responses by
library.exceptions.custom_exception_handler.

AUTHENTICATION NOTE:
--------------------
Sessions and credentials are handled upstream. The acting user is passed
as `user_id` in the request body or query string.
"""

import logging

from django.contrib.auth.hashers import make_password
from rest_framework import permissions, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import (
    ActorSerializer,
    CollectionCreateSerializer,
    CollectionSerializer,
    CollectionUpdateSerializer,
    CollectionWithDocumentsSerializer,
    CommentCreateSerializer,
    CommentSerializer,
    CommentThreadSerializer,
    CommentUpdateSerializer,
    DocumentCreateSerializer,
    DocumentDetailsSerializer,
    DocumentSerializer,
    DocumentUpdateSerializer,
    DocumentWithUploaderSerializer,
    MembershipSerializer,
    PlatformStatsSerializer,
    RatingSerializer,
    RatingSubmitSerializer,
    RatingWithUserSerializer,
    UserCreateSerializer,
    UserProfileSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from .services import get_library

logger = logging.getLogger(__name__)


def _acting_user(request) -> int:
    """Read the acting user id from the body, falling back to the query string."""
    raw = request.data.get('user_id') if hasattr(request.data, 'get') else None
    if raw is None:
        raw = request.query_params.get('user_id')
    serializer = ActorSerializer(data={'user_id': raw})
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data['user_id']


def _optional_int(request, name: str):
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError({name: 'Must be an integer.'})


def _not_found(entity: str) -> Response:
    return Response(
        {'error': f'{entity} not found'},
        status=status.HTTP_404_NOT_FOUND
    )


class LibraryAPIView(APIView):
    permission_classes = [permissions.AllowAny]

    @property
    def library(self):
        return get_library()


# ============================================================================
# DOCUMENTS
# ============================================================================

class DocumentListView(LibraryAPIView):
    """
    GET  /api/documents/?subject=...&search=...
    POST /api/documents/

    `search` wins over `subject` when both are given.
    """

    def get(self, request):
        search = request.query_params.get('search')
        subject = request.query_params.get('subject')

        if search:
            documents = self.library.documents.search(search)
        elif subject:
            documents = self.library.documents.list_by_subject(subject)
        else:
            documents = self.library.documents.list_all()

        return Response(DocumentWithUploaderSerializer(documents, many=True).data)

    def post(self, request):
        serializer = DocumentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        document = self.library.documents.create(**serializer.validated_data)
        logger.info(f"Document {document.id} uploaded by user {document.uploader_id}")
        return Response(DocumentSerializer(document).data, status=status.HTTP_201_CREATED)


class FeaturedDocumentsView(LibraryAPIView):
    """GET /api/documents/featured/"""

    def get(self, request):
        documents = self.library.documents.list_featured()
        return Response(DocumentWithUploaderSerializer(documents, many=True).data)


class RecentDocumentsView(LibraryAPIView):
    """GET /api/documents/recent/"""

    def get(self, request):
        documents = self.library.documents.list_recent()
        return Response(DocumentWithUploaderSerializer(documents, many=True).data)


class DocumentDetailView(LibraryAPIView):
    """
    GET   /api/documents/<id>/?user_id=...
    PATCH /api/documents/<id>/

    With `user_id`, the response includes that user's bookmark state and
    rating.
    """

    def get(self, request, document_id):
        details = self.library.documents.get_with_details(
            document_id,
            user_id=_optional_int(request, 'user_id')
        )
        if details is None:
            return _not_found('Document')
        return Response(DocumentDetailsSerializer(details).data)

    def patch(self, request, document_id):
        serializer = DocumentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        document = self.library.documents.update(document_id, **serializer.validated_data)
        return Response(DocumentSerializer(document).data)


class DocumentDownloadView(LibraryAPIView):
    """
    POST /api/documents/<id>/download/

    Counts the download and returns where the file lives; streaming the
    file is up to the file server.
    """

    def post(self, request, document_id):
        document = self.library.documents.record_download(document_id)
        return Response({
            'id': document.id,
            'file_name': document.file_name,
            'file_path': document.file_path,
        })


class DocumentViewCountView(LibraryAPIView):
    """POST /api/documents/<id>/view/"""

    def post(self, request, document_id):
        if self.library.documents.get_by_id(document_id) is None:
            return _not_found('Document')
        self.library.documents.increment_views(document_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# RATINGS & COMMENTS
# ============================================================================

class DocumentRatingsView(LibraryAPIView):
    """
    GET  /api/documents/<id>/ratings/
    POST /api/documents/<id>/ratings/   {"user_id", "value", "review"?}

    Posting twice from the same user updates the existing rating.
    """

    def get(self, request, document_id):
        ratings = self.library.ratings.list_for_document(document_id)
        return Response(RatingWithUserSerializer(ratings, many=True).data)

    def post(self, request, document_id):
        serializer = RatingSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        rating = self.library.ratings.submit(
            document_id,
            data['user_id'],
            data['value'],
            data.get('review')
        )
        document = self.library.documents.get_by_id(document_id)
        return Response({
            'rating': RatingSerializer(rating).data,
            'document_rating': DocumentSerializer(document).data['rating'],
            'document_rating_count': document.rating_count,
        })


class DocumentCommentsView(LibraryAPIView):
    """
    GET  /api/documents/<id>/comments/
    POST /api/documents/<id>/comments/  {"user_id", "content", "parent_id"?}
    """

    def get(self, request, document_id):
        threads = self.library.comments.list_threads_for_document(document_id)
        return Response(CommentThreadSerializer(threads, many=True).data)

    def post(self, request, document_id):
        serializer = CommentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        comment = self.library.comments.create(
            document_id,
            data['user_id'],
            data['content'],
            parent_id=data.get('parent_id')
        )
        return Response(CommentSerializer(comment).data, status=status.HTTP_201_CREATED)


class CommentDetailView(LibraryAPIView):
    """
    PATCH  /api/comments/<id>/
    DELETE /api/comments/<id>/   (removes replies too)
    """

    def patch(self, request, comment_id):
        serializer = CommentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = self.library.comments.update(comment_id, serializer.validated_data['content'])
        return Response(CommentSerializer(comment).data)

    def delete(self, request, comment_id):
        self.library.comments.delete(comment_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# BOOKMARKS
# ============================================================================

class DocumentBookmarkView(LibraryAPIView):
    """
    POST   /api/documents/<id>/bookmark/   {"user_id"}
    DELETE /api/documents/<id>/bookmark/?user_id=...
    """

    def post(self, request, document_id):
        user_id = _acting_user(request)
        self.library.bookmarks.create(document_id, user_id)
        return Response({'bookmarked': True}, status=status.HTTP_201_CREATED)

    def delete(self, request, document_id):
        user_id = _acting_user(request)
        self.library.bookmarks.remove(document_id, user_id)
        return Response({'bookmarked': False})


class UserBookmarksView(LibraryAPIView):
    """GET /api/users/<id>/bookmarks/"""

    def get(self, request, user_id):
        documents = self.library.bookmarks.list_for_user(user_id)
        return Response(DocumentWithUploaderSerializer(documents, many=True).data)


# ============================================================================
# USERS & FOLLOWS
# ============================================================================

class UserCreateView(LibraryAPIView):
    """POST /api/users/"""

    def post(self, request):
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data['password'] = make_password(data['password'])

        user = self.library.users.create(**data)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class UserDetailView(LibraryAPIView):
    """
    GET   /api/users/<id>/?viewer_id=...
    PATCH /api/users/<id>/
    """

    def get(self, request, user_id):
        profile = self.library.users.get_profile_with_counts(
            user_id,
            viewer_id=_optional_int(request, 'viewer_id')
        )
        if profile is None:
            return _not_found('User')
        return Response(UserProfileSerializer(profile).data)

    def patch(self, request, user_id):
        serializer = UserUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        user = self.library.users.update_profile(user_id, **serializer.validated_data)
        return Response(UserSerializer(user).data)


class UserDocumentsView(LibraryAPIView):
    """GET /api/users/<id>/documents/"""

    def get(self, request, user_id):
        documents = self.library.documents.list_by_user(user_id)
        return Response(DocumentWithUploaderSerializer(documents, many=True).data)


class FollowView(LibraryAPIView):
    """
    POST   /api/users/<id>/follow/   {"user_id": follower}
    DELETE /api/users/<id>/follow/?user_id=follower
    """

    def post(self, request, user_id):
        follower_id = _acting_user(request)
        self.library.follows.follow(follower_id, user_id)
        return Response({'following': True}, status=status.HTTP_201_CREATED)

    def delete(self, request, user_id):
        follower_id = _acting_user(request)
        self.library.follows.unfollow(follower_id, user_id)
        return Response({'following': False})


class FollowersView(LibraryAPIView):
    """GET /api/users/<id>/followers/"""

    def get(self, request, user_id):
        profiles = self.library.follows.list_followers(
            user_id,
            viewer_id=_optional_int(request, 'viewer_id')
        )
        return Response(UserProfileSerializer(profiles, many=True).data)


class FollowingView(LibraryAPIView):
    """GET /api/users/<id>/following/"""

    def get(self, request, user_id):
        profiles = self.library.follows.list_following(
            user_id,
            viewer_id=_optional_int(request, 'viewer_id')
        )
        return Response(UserProfileSerializer(profiles, many=True).data)


# ============================================================================
# COLLECTIONS
# ============================================================================

class CollectionListView(LibraryAPIView):
    """
    GET  /api/collections/?user_id=...
    POST /api/collections/
    """

    def get(self, request):
        user_id = _acting_user(request)
        collections = self.library.collections.list_for_user(user_id)
        return Response(CollectionWithDocumentsSerializer(collections, many=True).data)

    def post(self, request):
        serializer = CollectionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        collection = self.library.collections.create(**serializer.validated_data)
        return Response(CollectionSerializer(collection).data, status=status.HTTP_201_CREATED)


class CollectionDetailView(LibraryAPIView):
    """
    GET    /api/collections/<id>/
    PATCH  /api/collections/<id>/
    DELETE /api/collections/<id>/
    """

    def get(self, request, collection_id):
        collection = self.library.collections.get_with_membership(collection_id)
        if collection is None:
            return _not_found('Collection')
        return Response(CollectionWithDocumentsSerializer(collection).data)

    def patch(self, request, collection_id):
        serializer = CollectionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        collection = self.library.collections.update(collection_id, **serializer.validated_data)
        return Response(CollectionSerializer(collection).data)

    def delete(self, request, collection_id):
        self.library.collections.delete(collection_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CollectionDocumentsView(LibraryAPIView):
    """POST /api/collections/<id>/documents/  {"document_id"}"""

    def post(self, request, collection_id):
        serializer = MembershipSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        self.library.collections.add_document(
            collection_id,
            serializer.validated_data['document_id']
        )
        return Response(status=status.HTTP_201_CREATED)


class CollectionDocumentDetailView(LibraryAPIView):
    """DELETE /api/collections/<id>/documents/<document_id>/"""

    def delete(self, request, collection_id, document_id):
        self.library.collections.remove_document(collection_id, document_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# STATS
# ============================================================================

class PlatformStatsView(LibraryAPIView):
    """GET /api/stats/"""

    def get(self, request):
        return Response(PlatformStatsSerializer(self.library.platform_stats()).data)
