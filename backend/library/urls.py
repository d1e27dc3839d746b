"""
Library App URL Configuration
"""
from django.urls import path
from .views import (
    CollectionDetailView,
    CollectionDocumentDetailView,
    CollectionDocumentsView,
    CollectionListView,
    CommentDetailView,
    DocumentBookmarkView,
    DocumentCommentsView,
    DocumentDetailView,
    DocumentDownloadView,
    DocumentListView,
    DocumentRatingsView,
    DocumentViewCountView,
    FeaturedDocumentsView,
    FollowersView,
    FollowingView,
    FollowView,
    PlatformStatsView,
    RecentDocumentsView,
    UserBookmarksView,
    UserCreateView,
    UserDetailView,
    UserDocumentsView,
)

urlpatterns = [
    # Documents
    path('documents/', DocumentListView.as_view(), name='document-list'),
    path('documents/featured/', FeaturedDocumentsView.as_view(), name='document-featured'),
    path('documents/recent/', RecentDocumentsView.as_view(), name='document-recent'),
    path('documents/<int:document_id>/', DocumentDetailView.as_view(), name='document-detail'),
    path('documents/<int:document_id>/download/', DocumentDownloadView.as_view(), name='document-download'),
    path('documents/<int:document_id>/view/', DocumentViewCountView.as_view(), name='document-view'),
    path('documents/<int:document_id>/ratings/', DocumentRatingsView.as_view(), name='document-ratings'),
    path('documents/<int:document_id>/comments/', DocumentCommentsView.as_view(), name='document-comments'),
    path('documents/<int:document_id>/bookmark/', DocumentBookmarkView.as_view(), name='document-bookmark'),

    # Comments
    path('comments/<int:comment_id>/', CommentDetailView.as_view(), name='comment-detail'),

    # Users
    path('users/', UserCreateView.as_view(), name='user-create'),
    path('users/<int:user_id>/', UserDetailView.as_view(), name='user-detail'),
    path('users/<int:user_id>/documents/', UserDocumentsView.as_view(), name='user-documents'),
    path('users/<int:user_id>/bookmarks/', UserBookmarksView.as_view(), name='user-bookmarks'),
    path('users/<int:user_id>/follow/', FollowView.as_view(), name='user-follow'),
    path('users/<int:user_id>/followers/', FollowersView.as_view(), name='user-followers'),
    path('users/<int:user_id>/following/', FollowingView.as_view(), name='user-following'),

    # Collections
    path('collections/', CollectionListView.as_view(), name='collection-list'),
    path('collections/<int:collection_id>/', CollectionDetailView.as_view(), name='collection-detail'),
    path('collections/<int:collection_id>/documents/', CollectionDocumentsView.as_view(), name='collection-documents'),
    path(
        'collections/<int:collection_id>/documents/<int:document_id>/',
        CollectionDocumentDetailView.as_view(),
        name='collection-document-detail'
    ),

    # Stats
    path('stats/', PlatformStatsView.as_view(), name='platform-stats'),
]
