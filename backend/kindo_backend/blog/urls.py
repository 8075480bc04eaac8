from django.urls import path

from . import views

urlpatterns = [
    # Posts (fixed paths before the identifier catch-all)
    path("posts/", views.PostListCreateView.as_view(), name="posts"),
    path("posts/featured/", views.FeaturedPostsView.as_view(), name="posts-featured"),
    path("posts/recent/", views.RecentPostsView.as_view(), name="posts-recent"),
    path("posts/search/", views.PostSearchView.as_view(), name="posts-search"),
    path("posts/upload-image/", views.ImageUploadView.as_view(), name="posts-upload-image"),
    path("posts/<int:pk>/edit/", views.PostEditView.as_view(), name="post-edit"),
    path("posts/<int:pk>/publish/", views.PostPublishView.as_view(), name="post-publish"),
    path("posts/<int:pk>/unpublish/", views.PostUnpublishView.as_view(), name="post-unpublish"),
    path("posts/<int:post_id>/comments/", views.PostCommentsView.as_view(), name="post-comments"),
    path("posts/<str:identifier>/", views.PostDetailView.as_view(), name="post-detail"),

    # Categories & tags
    path("categories/", views.CategoryListView.as_view(), name="categories"),
    path("categories/<int:pk>/", views.CategoryDetailView.as_view(), name="category-detail"),
    path("categories/<slug:slug>/posts/", views.CategoryPostsView.as_view(), name="category-posts"),
    path("tags/", views.TagListView.as_view(), name="tags"),

    # Comments
    path("comments/moderation-queue/", views.PendingCommentsView.as_view(), name="comments-moderation-queue"),
    path("comments/moderation/", views.PendingCommentsView.as_view(), name="comments-moderation"),
    path("comments/<int:pk>/", views.CommentDetailView.as_view(), name="comment-detail"),
    path("comments/<int:pk>/approve/", views.CommentApproveView.as_view(), name="comment-approve"),
    path("comments/<int:pk>/like/", views.CommentLikeView.as_view(), name="comment-like"),

    # Newsletter
    path("newsletter/subscribe/", views.NewsletterSubscribeView.as_view(), name="newsletter-subscribe"),
    path("newsletter/unsubscribe/", views.NewsletterUnsubscribeView.as_view(), name="newsletter-unsubscribe"),
    path("newsletter/subscribers/", views.NewsletterSubscribersView.as_view(), name="newsletter-subscribers"),
    path("newsletter/stats/", views.NewsletterStatsView.as_view(), name="newsletter-stats"),
]
