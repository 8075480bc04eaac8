import logging
from datetime import timedelta

from django.core.cache import cache
from django.db import DatabaseError, connections
from django.db.models import Count, Q, Sum
from django.http import JsonResponse
from django.utils import timezone
from django.views import View
from rest_framework.views import APIView

from accounts.models import User
from accounts.permissions import IsAdmin
from blog.models import Category, Comment, Post
from kindo_backend.api import api_response

logger = logging.getLogger(__name__)

MONTHS_IN_SERIES = 12


class HealthCheckView(View):
    def get(self, request, *args, **kwargs):
        # DB check
        users_count = None
        try:
            connections["default"].cursor()
            users_count = User.objects.count()
            db_status = "connected"
        except DatabaseError:
            logger.exception("Health check: database unreachable")
            db_status = "error"

        # Cache check
        try:
            cache.set("health_check", "ok", timeout=5)
            cache_status = "ok" if cache.get("health_check") == "ok" else "error"
        except Exception:
            logger.exception("Health check: cache round-trip failed")
            cache_status = "error"

        healthy = db_status == "connected" and cache_status == "ok"
        return JsonResponse(
            {
                "success": healthy,
                "status": "healthy" if healthy else "unhealthy",
                "database": db_status,
                "cache": cache_status,
                "users_count": users_count,
            },
            status=200 if healthy else 500,
        )


class DashboardStatsView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        month_ago = timezone.now() - timedelta(days=30)

        post_totals = Post.objects.aggregate(
            posts=Count("id"),
            draft_posts=Count("id", filter=Q(is_published=False)),
            recent=Count("id", filter=Q(created_at__gte=month_ago)),
            views=Sum("views"),
        )
        popular_posts = (
            Post.objects.published()
            .order_by("-views", "-id")
            .values("id", "title", "slug", "views", "published_at")[:5]
        )

        data = {
            "totals": {
                "posts": post_totals["posts"],
                "published_posts": Post.objects.published().count(),
                "draft_posts": post_totals["draft_posts"],
                "users": User.objects.count(),
                "comments": Comment.objects.count(),
                "categories": Category.objects.count(),
                "views": post_totals["views"] or 0,
            },
            "recent": {
                "posts": post_totals["recent"],
                "users": User.objects.filter(created_at__gte=month_ago).count(),
                "comments": Comment.objects.filter(created_at__gte=month_ago).count(),
            },
            "popular_posts": list(popular_posts),
        }
        return api_response(True, "Dashboard statistics retrieved successfully.", data)


class RecentActivityView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        recent_posts = (
            Post.objects.order_by("-created_at", "-id")
            .values("id", "title", "slug", "is_published", "created_at", "author__name", "category__name")[:10]
        )
        recent_comments = (
            Comment.objects.order_by("-created_at", "-id")
            .values("id", "content", "author_name", "is_approved", "created_at", "post_id", "post__title")[:10]
        )
        recent_users = User.objects.order_by("-created_at", "-id").values("id", "name", "email", "role", "created_at")[:10]

        data = {
            "recent_posts": list(recent_posts),
            "recent_comments": list(recent_comments),
            "recent_users": list(recent_users),
        }
        return api_response(True, "Recent activity retrieved successfully.", data)


def month_starts(count):
    """Start of each of the last `count` calendar months, oldest first, in local time."""
    current = timezone.localtime().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    year, month = current.year, current.month
    starts = []
    for _ in range(count):
        starts.append(current.replace(year=year, month=month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def monthly_counts(queryset, starts):
    buckets = {}
    for index, start in enumerate(starts):
        window = Q(created_at__gte=start)
        if index + 1 < len(starts):
            window &= Q(created_at__lt=starts[index + 1])
        buckets[f"m{index}"] = Count("id", filter=window)
    totals = queryset.aggregate(**buckets)
    return [totals[f"m{index}"] for index in range(len(starts))]


class MonthlyStatsView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        starts = month_starts(MONTHS_IN_SERIES)
        data = {
            "months": [start.strftime("%b %Y") for start in starts],
            "posts": monthly_counts(Post.objects.all(), starts),
            "users": monthly_counts(User.objects.all(), starts),
            "comments": monthly_counts(Comment.objects.all(), starts),
        }
        return api_response(True, "Monthly statistics retrieved successfully.", data)
