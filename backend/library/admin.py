"""
Django Admin Configuration for Library Models
"""
from django.contrib import admin
from .models import Bookmark, Collection, CollectionDocument, Comment, Document, Follow, Rating, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['username', 'email', 'university', 'reputation', 'total_uploads', 'created_at']
    search_fields = ['username', 'email', 'university']
    readonly_fields = ['total_uploads', 'total_downloads', 'created_at']
    exclude = ['password']


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ['title', 'subject', 'uploader', 'downloads', 'views', 'rating', 'rating_count', 'is_public']
    list_filter = ['file_type', 'is_featured', 'is_public', 'created_at']
    search_fields = ['title', 'description', 'subject', 'uploader__username']
    # Derived from Rating rows and counter increments
    readonly_fields = ['downloads', 'views', 'rating', 'rating_count', 'created_at']


@admin.register(Rating)
class RatingAdmin(admin.ModelAdmin):
    list_display = ['document', 'user', 'value', 'created_at']
    list_filter = ['value']
    search_fields = ['user__username', 'document__title']

    def has_change_permission(self, request, obj=None):
        # Editing here would leave Document.rating stale
        return False

    def has_add_permission(self, request):
        return False


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'document', 'user', 'parent', 'created_at']
    list_filter = ['created_at']
    search_fields = ['content', 'user__username']


@admin.register(Bookmark)
class BookmarkAdmin(admin.ModelAdmin):
    list_display = ['user', 'document', 'created_at']
    search_fields = ['user__username']


@admin.register(Follow)
class FollowAdmin(admin.ModelAdmin):
    list_display = ['follower', 'following', 'created_at']
    search_fields = ['follower__username', 'following__username']


class CollectionDocumentInline(admin.TabularInline):
    model = CollectionDocument
    extra = 0


@admin.register(Collection)
class CollectionAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'is_public', 'created_at']
    list_filter = ['is_public']
    search_fields = ['name', 'user__username']
    inlines = [CollectionDocumentInline]
