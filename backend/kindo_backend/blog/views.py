import logging
from datetime import timedelta

from django.db import transaction
from django.db.models import Count, ProtectedError, Q
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.permissions import SAFE_METHODS, AllowAny, IsAuthenticated
from rest_framework.views import APIView

from accounts.authentication import OptionalBearerTokenAuthentication
from accounts.permissions import IsAdmin, IsAuthor, ensure_can_mutate_post, is_admin
from kindo_backend.api import BusinessRuleViolation, api_response, get_object_or_not_found

from . import moderation, publishing
from .listing import author_post_listing, flag, listing_stats, post_listing, search_posts
from .models import Category, Comment, NewsletterSubscriber, Post, Tag
from .pagination import StandardResultsSetPagination
from .serializers import (
    AuthorPostSerializer,
    CategorySerializer,
    CommentCreateSerializer,
    CommentSerializer,
    ImageUploadSerializer,
    ModerationCommentSerializer,
    NewsletterSubscribeSerializer,
    NewsletterSubscriberSerializer,
    NewsletterUnsubscribeSerializer,
    PostSerializer,
    PostWriteSerializer,
    TagSerializer,
    image_url,
)
from .utils import build_email_html, frontend_url, send_email_via_sendgrid

logger = logging.getLogger(__name__)

UPLOADED_IMAGE_FOLDER = "posts/images"


def paginated(request, view, queryset, serializer_class, page_size=None, context=None):
    paginator = StandardResultsSetPagination()
    if page_size is not None:
        paginator.page_size = page_size
    page = paginator.paginate_queryset(queryset, request, view=view)
    return paginator.get_paginated_data(serializer_class(page, many=True, context=context or {}).data)


def mutable_post(request, pk):
    post = get_object_or_not_found(Post.objects.with_relations(), "Post not found.", pk=pk)
    ensure_can_mutate_post(request.user, post)
    return post


def post_payload(request, post):
    return PostSerializer(post, context={"request": request}).data


# ---------------- POSTS ----------------

class PostListCreateView(APIView):
    authentication_classes = [OptionalBearerTokenAuthentication]

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAuthor()]

    def get(self, request):
        if "user_id" in request.query_params:
            return self.author_posts(request)

        queryset, admin_view = post_listing(request.query_params, request.user)
        data = paginated(request, self, queryset, PostSerializer, context={"request": request})
        extra = {"stats": listing_stats()} if admin_view else {}
        return api_response(True, "Posts retrieved successfully.", data, **extra)

    def author_posts(self, request):
        params = request.query_params
        queryset = author_post_listing(params, request.user)
        context = {"request": request}

        if flag(params, "all") or flag(params, "dashboard"):
            data = AuthorPostSerializer(queryset, many=True, context=context).data
        else:
            data = paginated(request, self, queryset, AuthorPostSerializer, context=context)
        return api_response(True, "User posts retrieved successfully.", data)

    def post(self, request):
        serializer = PostWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        post = publishing.create_post(request.user, serializer.validated_data)
        return api_response(True, "Post created successfully.", post_payload(request, post), status.HTTP_201_CREATED)


class PostDetailView(APIView):
    """GET by slug (public) or numeric id (editor); changes by numeric id only."""

    authentication_classes = [OptionalBearerTokenAuthentication]

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, identifier):
        post, public_lookup = publishing.resolve_post(identifier, request.user)

        if public_lookup and post.is_published:
            publishing.record_view(post)

        data = post_payload(request, post)
        if public_lookup:
            data["comments"] = CommentSerializer(moderation.comment_tree(post), many=True).data
        return api_response(True, "Post retrieved successfully.", data)

    def _post_for_change(self, request, identifier):
        if not publishing.is_numeric_identifier(identifier):
            raise NotFound("Post not found.")
        return mutable_post(request, int(identifier))

    def put(self, request, identifier):
        post = self._post_for_change(request, identifier)
        serializer = PostWriteSerializer(post, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        post = publishing.update_post(post, serializer.validated_data)
        return api_response(True, "Post updated successfully.", post_payload(request, post))

    patch = put

    def delete(self, request, identifier):
        post = self._post_for_change(request, identifier)
        publishing.delete_post(post)
        return api_response(True, "Post deleted successfully.")


class PostEditView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        post = mutable_post(request, pk)
        return api_response(True, "Post retrieved for editing.", post_payload(request, post))


class PostPublishView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        post = publishing.publish_post(mutable_post(request, pk))
        return api_response(True, "Post published successfully.", post_payload(request, post))


class PostUnpublishView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        post = publishing.unpublish_post(mutable_post(request, pk))
        return api_response(True, "Post unpublished successfully.", post_payload(request, post))


class FeaturedPostsView(APIView):
    authentication_classes = []

    def get(self, request):
        posts = Post.objects.published().featured().with_relations().order_by("-published_at", "-id")[:5]
        data = PostSerializer(posts, many=True, context={"request": request}).data
        return api_response(True, "Featured posts retrieved successfully.", data)


class RecentPostsView(APIView):
    authentication_classes = []

    def get(self, request):
        posts = Post.objects.published().with_relations().order_by("-published_at", "-id")[:10]
        data = PostSerializer(posts, many=True, context={"request": request}).data
        return api_response(True, "Recent posts retrieved successfully.", data)


class PostSearchView(APIView):
    authentication_classes = []

    def get(self, request):
        query = (request.query_params.get("q") or "").strip()
        if len(query) < 2:
            return api_response(
                False,
                "Search query must be at least 2 characters long.",
                http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        data = paginated(request, self, search_posts(query), PostSerializer, page_size=12, context={"request": request})
        return api_response(True, "Search results retrieved successfully.", data, query=query)


class ImageUploadView(APIView):
    permission_classes = [IsAuthor]

    def post(self, request):
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        path = publishing.store_image(serializer.validated_data["image"], folder=UPLOADED_IMAGE_FOLDER)
        logger.info("User %s uploaded image %s", request.user.pk, path)
        return api_response(
            True,
            "Image uploaded successfully.",
            {"path": path, "url": image_url(path, request)},
            status.HTTP_201_CREATED,
        )


# ---------------- CATEGORIES ----------------

def published_posts_count():
    return Count(
        "posts",
        filter=Q(posts__is_published=True, posts__published_at__lte=timezone.now()),
    )


class CategoryListView(APIView):
    authentication_classes = [OptionalBearerTokenAuthentication]

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAdmin()]

    def get(self, request):
        categories = Category.objects.annotate(posts_count=published_posts_count()).order_by("order", "name")
        if not (is_admin(request.user) and flag(request.query_params, "all")):
            categories = categories.filter(is_active=True)
        return api_response(True, "Categories retrieved successfully.", CategorySerializer(categories, many=True).data)

    def post(self, request):
        serializer = CategorySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        category = serializer.save()
        return api_response(True, "Category created successfully.", CategorySerializer(category).data, status.HTTP_201_CREATED)


class CategoryDetailView(APIView):
    permission_classes = [IsAdmin]

    def put(self, request, pk):
        category = get_object_or_not_found(Category, "Category not found.", pk=pk)
        serializer = CategorySerializer(category, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        category = serializer.save()
        return api_response(True, "Category updated successfully.", CategorySerializer(category).data)

    patch = put

    def delete(self, request, pk):
        category = get_object_or_not_found(Category, "Category not found.", pk=pk)
        if category.posts.exists():
            raise BusinessRuleViolation("Cannot delete category with existing posts.")
        try:
            with transaction.atomic():
                category.delete()
        except ProtectedError:
            # a post was assigned between the check and the delete
            raise BusinessRuleViolation("Cannot delete category with existing posts.")
        logger.info("Category %s deleted by admin %s", pk, request.user.pk)
        return api_response(True, "Category deleted successfully.")


class CategoryPostsView(APIView):
    authentication_classes = []

    def get(self, request, slug):
        category = get_object_or_not_found(Category, "Category not found.", slug=slug, is_active=True)
        posts = category.posts.published().with_relations().order_by("-published_at", "-id")
        data = paginated(request, self, posts, PostSerializer, context={"request": request})
        return api_response(
            True, "Category posts retrieved successfully.", data, category=CategorySerializer(category).data,
        )


# ---------------- TAGS ----------------

class TagListView(APIView):
    authentication_classes = [OptionalBearerTokenAuthentication]

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAdmin()]

    def get(self, request):
        return api_response(True, "Tags retrieved successfully.", TagSerializer(Tag.objects.all(), many=True).data)

    def post(self, request):
        serializer = TagSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tag = serializer.save()
        return api_response(True, "Tag created successfully.", TagSerializer(tag).data, status.HTTP_201_CREATED)


# ---------------- COMMENTS ----------------

class PostCommentsView(APIView):
    authentication_classes = []

    def get(self, request, post_id):
        # drafts keep a readable thread for previews; only submission needs a published post
        post = get_object_or_not_found(Post, "Post not found.", pk=post_id)
        data = CommentSerializer(moderation.comment_tree(post), many=True).data
        return api_response(True, "Comments retrieved successfully.", data)

    def post(self, request, post_id):
        # the post is resolved first so a missing post is a 404 even for invalid input
        post = get_object_or_not_found(Post.objects.published(), "Post not found.", pk=post_id)
        serializer = CommentCreateSerializer(data=request.data, context={"post": post})
        serializer.is_valid(raise_exception=True)
        comment = moderation.submit_comment(post, serializer.validated_data)

        message = (
            "Comment posted successfully."
            if comment.is_approved
            else "Comment submitted successfully and is awaiting moderation."
        )
        return api_response(True, message, CommentSerializer(comment).data, status.HTTP_201_CREATED)


class PendingCommentsView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        data = paginated(request, self, moderation.moderation_queue(), ModerationCommentSerializer, page_size=20)
        return api_response(True, "Pending comments retrieved successfully.", data)


class CommentApproveView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request, pk):
        comment = get_object_or_not_found(Comment, "Comment not found.", pk=pk)
        moderation.approve_comment(comment)
        return api_response(True, "Comment approved successfully.", CommentSerializer(comment).data)


class CommentLikeView(APIView):
    authentication_classes = []

    def post(self, request, pk):
        comment = get_object_or_not_found(Comment.objects.approved(), "Comment not found.", pk=pk)
        likes = moderation.like_comment(comment)
        return api_response(True, "Comment liked successfully.", {"likes": likes})


class CommentDetailView(APIView):
    permission_classes = [IsAdmin]

    def delete(self, request, pk):
        comment = get_object_or_not_found(Comment, "Comment not found.", pk=pk)
        moderation.delete_comment(comment)
        return api_response(True, "Comment deleted successfully.")


# ---------------- NEWSLETTER ----------------

def send_subscription_email(subscriber):
    html_message = build_email_html(
        title="Welcome to our Newsletter",
        greeting=subscriber.email,
        message="Thank you for subscribing. You'll now receive an email whenever we publish a new article.",
        footer="If you wish to unsubscribe anytime, click here:<br>"
               f"<a href='{frontend_url(f'newsletter/unsubscribe?email={subscriber.email}')}'>Unsubscribe</a>",
    )
    send_email_via_sendgrid("Welcome to our Newsletter!", html_message, subscriber.email)


def send_unsubscribe_email(subscriber):
    html_message = build_email_html(
        title="You Have Unsubscribed",
        greeting=subscriber.email,
        message="You have successfully unsubscribed from our newsletter. We're sorry to see you go.",
        footer="If you ever change your mind, you can subscribe again on our website:<br>"
               f"<a href='{frontend_url('newsletter')}'>Resubscribe</a>",
    )
    send_email_via_sendgrid("You Have Unsubscribed", html_message, subscriber.email)


class NewsletterSubscribeView(APIView):
    authentication_classes = []

    def post(self, request):
        serializer = NewsletterSubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"]
        source = serializer.validated_data.get("source") or None

        subscriber = NewsletterSubscriber.objects.filter(email__iexact=email).first()
        if subscriber is not None and subscriber.is_active:
            return api_response(True, "You are already subscribed.", NewsletterSubscriberSerializer(subscriber).data)

        created = subscriber is None
        if created:
            subscriber = NewsletterSubscriber.objects.create(email=email, source=source or "website")
        else:
            subscriber.is_active = True
            subscriber.subscribed_at = timezone.now()
            subscriber.unsubscribed_at = None
            if source:
                subscriber.source = source
            subscriber.save()

        send_subscription_email(subscriber)
        logger.info("Newsletter %s: %s", "subscription" if created else "resubscription", subscriber.email)

        return api_response(
            True,
            "Subscription successful! A confirmation email has been sent.",
            NewsletterSubscriberSerializer(subscriber).data,
            status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class NewsletterUnsubscribeView(APIView):
    authentication_classes = []

    def post(self, request):
        serializer = NewsletterUnsubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        subscriber = get_object_or_not_found(
            NewsletterSubscriber, "Email not found in our subscriber list.",
            email__iexact=serializer.validated_data["email"],
        )
        if not subscriber.is_active:
            return api_response(True, "You are already unsubscribed.")

        subscriber.is_active = False
        subscriber.unsubscribed_at = timezone.now()
        subscriber.save(update_fields=["is_active", "unsubscribed_at"])
        send_unsubscribe_email(subscriber)

        return api_response(True, "You have unsubscribed successfully. A confirmation email has been sent.")


def newsletter_stats():
    month_ago = timezone.now() - timedelta(days=30)
    totals = NewsletterSubscriber.objects.aggregate(
        total_subscribers=Count("id"),
        active_subscribers=Count("id", filter=Q(is_active=True)),
        unsubscribed=Count("id", filter=Q(is_active=False)),
        recent_subscribers=Count("id", filter=Q(is_active=True, subscribed_at__gte=month_ago)),
    )
    totals["by_source"] = list(
        NewsletterSubscriber.objects.filter(is_active=True)
        .values("source")
        .annotate(count=Count("id"))
        .order_by("-count", "source")
    )
    return totals


class NewsletterSubscribersView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        params = request.query_params
        subscribers = NewsletterSubscriber.objects.order_by("-subscribed_at", "-id")

        if params.get("status") == "active":
            subscribers = subscribers.filter(is_active=True)
        elif params.get("status") == "inactive":
            subscribers = subscribers.filter(is_active=False)
        if params.get("source"):
            subscribers = subscribers.filter(source=params["source"])
        if params.get("search"):
            subscribers = subscribers.filter(email__icontains=params["search"])

        data = paginated(request, self, subscribers, NewsletterSubscriberSerializer, page_size=50)
        return api_response(True, "Subscribers retrieved successfully.", data)


class NewsletterStatsView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        return api_response(True, "Newsletter statistics retrieved successfully.", newsletter_stats())
