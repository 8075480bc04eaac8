"""
Query composition for post listings.

Query-string parameters are turned into a queryset here; views only paginate
and serialize the result.
"""
from django.db.models import Count, Q
from rest_framework.exceptions import NotAuthenticated, PermissionDenied, ValidationError

from accounts.permissions import is_admin

from .models import Comment, Post

SORTABLE_FIELDS = ("created_at", "updated_at", "published_at", "title", "views")
SORT_DIRECTIONS = ("asc", "desc")

STATUS_PUBLISHED = "published"
STATUS_DRAFT = "draft"
STATUS_ALL = "all"


def flag(params, name):
    """True when the query parameter is present and not an explicit false value."""
    if name not in params:
        return False
    return params.get(name, "").strip().lower() not in ("0", "false", "no", "off")


def is_admin_listing(params, user):
    # an admin token alone is not enough, the client must also ask for the admin view
    return is_admin(user) and flag(params, "admin")


def _filter_status(queryset, status_filter):
    if status_filter == STATUS_PUBLISHED:
        return queryset.filter(is_published=True)
    if status_filter == STATUS_DRAFT:
        return queryset.drafts()
    return queryset


def _apply_filters(queryset, params):
    search = params.get("search")
    if search:
        queryset = queryset.filter(
            Q(title__icontains=search)
            | Q(content__icontains=search)
            | Q(excerpt__icontains=search)
        )

    category = params.get("category")
    if category:
        queryset = queryset.filter(category__slug=category)

    tag = params.get("tag")
    if tag:
        queryset = queryset.filter(tags__slug=tag)

    if flag(params, "featured"):
        queryset = queryset.featured()

    return queryset


def _apply_ordering(queryset, params, default_field):
    order_by = params.get("order_by") or default_field
    if order_by not in SORTABLE_FIELDS:
        raise ValidationError({"order_by": [f"Must be one of: {', '.join(SORTABLE_FIELDS)}."]})

    order_dir = (params.get("order_dir") or "desc").lower()
    if order_dir not in SORT_DIRECTIONS:
        raise ValidationError({"order_dir": ["Must be 'asc' or 'desc'."]})

    prefix = "-" if order_dir == "desc" else ""
    return queryset.order_by(f"{prefix}{order_by}", f"{prefix}id")


def post_listing(params, user):
    """Returns (queryset, admin_view)."""
    admin_view = is_admin_listing(params, user)

    if admin_view:
        queryset = _filter_status(Post.objects.with_relations(), params.get("status", STATUS_ALL))
        default_order = "created_at"
    else:
        queryset = Post.objects.published().with_relations()
        default_order = "published_at"

    queryset = _apply_filters(queryset, params)
    return _apply_ordering(queryset, params, default_order), admin_view


def listing_stats():
    return {
        "total_posts": Post.objects.count(),
        "published_posts": Post.objects.filter(is_published=True).count(),
        "draft_posts": Post.objects.drafts().count(),
        "total_comments": Comment.objects.count(),
    }


def author_post_listing(params, user):
    """Posts of one author for their dashboard; admins may look at anyone's."""
    if not (user and user.is_authenticated):
        raise NotAuthenticated("Authentication required.")

    user_id = params.get("user_id", "")
    if not user_id.isdigit():
        raise ValidationError({"user_id": ["A valid user id is required."]})
    if not is_admin(user) and int(user_id) != user.pk:
        raise PermissionDenied("Unauthorized access to user posts.")

    queryset = (
        Post.objects.filter(author_id=int(user_id))
        .with_relations()
        .annotate(comments_count=Count("comments", filter=Q(comments__is_approved=True)))
    )
    queryset = _filter_status(queryset, params.get("status", STATUS_ALL))
    return queryset.order_by("-created_at", "-id")


def search_posts(query):
    """Public full search, wider than the listing `search` filter."""
    return (
        Post.objects.published()
        .with_relations()
        .filter(
            Q(title__icontains=query)
            | Q(title_sw__icontains=query)
            | Q(content__icontains=query)
            | Q(content_sw__icontains=query)
            | Q(excerpt__icontains=query)
            | Q(category__name__icontains=query)
            | Q(category__name_sw__icontains=query)
            | Q(tags__name__icontains=query)
        )
        .distinct()
        .order_by("-published_at", "-id")
    )
