from django.contrib import admin

from .models import Category, Comment, NewsletterSubscriber, Post, Tag
from .publishing import save_with_unique_slug


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "name_sw", "is_active", "order")
    list_filter = ("is_active",)
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ("name", "slug")
    search_fields = ("name",)


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ("title", "author", "category", "is_published", "is_featured", "published_at", "views")
    list_filter = ("is_published", "is_featured", "category")
    search_fields = ("title", "content", "author__name")
    readonly_fields = ("slug", "views", "created_at", "updated_at")
    filter_horizontal = ("tags",)

    def save_model(self, request, obj, form, change):
        if not change or "title" in form.changed_data:
            save_with_unique_slug(obj, obj.title)
        else:
            super().save_model(request, obj, form, change)


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ("author_name", "post", "parent", "is_approved", "likes", "created_at")
    list_filter = ("is_approved",)
    search_fields = ("author_name", "author_email", "content")
    readonly_fields = ("likes", "created_at")


@admin.register(NewsletterSubscriber)
class NewsletterSubscriberAdmin(admin.ModelAdmin):
    list_display = ("id", "email", "source", "is_active", "subscribed_at", "unsubscribed_at")
    list_filter = ("is_active", "source")
    search_fields = ("email",)
    ordering = ("-subscribed_at",)
