from datetime import timedelta
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from accounts.models import User
from blog.models import Category, Comment, Post

from .views import month_starts


def make_user(email, role=User.ROLE_AUTHOR):
    return User.objects.create_user(
        email=email, password="secret-pass-123", name=email.split("@")[0], role=role, status=User.STATUS_ACTIVE,
    )


class MonthStartsTest(TestCase):
    def test_twelve_consecutive_month_starts_ending_with_current_month(self):
        starts = month_starts(12)
        now = timezone.localtime()

        self.assertEqual(len(starts), 12)
        self.assertEqual((starts[-1].year, starts[-1].month, starts[-1].day), (now.year, now.month, 1))
        for earlier, later in zip(starts, starts[1:]):
            self.assertLess(earlier, later)
            self.assertEqual((later.year * 12 + later.month) - (earlier.year * 12 + earlier.month), 1)


class DashboardTests(APITestCase):
    def setUp(self):
        self.admin = make_user("admin@example.com", role=User.ROLE_ADMIN)
        self.author = make_user("author@example.com")
        category = Category.objects.create(name="Habari")

        now = timezone.now()
        self.popular = Post.objects.create(
            title="Popular", slug="popular", content="x", author=self.author, category=category,
            is_published=True, published_at=now - timedelta(days=1), views=40,
        )
        Post.objects.create(
            title="Quiet", slug="quiet", content="x", author=self.author,
            is_published=True, published_at=now - timedelta(days=1), views=2,
        )
        Post.objects.create(title="Draft", slug="draft", content="x", author=self.author)
        Comment.objects.create(post=self.popular, content="Nzuri", author_name="A", author_email="a@example.com")

    def authenticate(self, user):
        token, _ = Token.objects.get_or_create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")

    def test_dashboard_is_admin_only(self):
        self.assertEqual(self.client.get(reverse("dashboard-stats")).status_code, 401)

        self.authenticate(self.author)
        for name in ("dashboard-stats", "dashboard-recent-activity", "dashboard-monthly-stats"):
            self.assertEqual(self.client.get(reverse(name)).status_code, 403)

    def test_stats(self):
        self.authenticate(self.admin)
        response = self.client.get(reverse("dashboard-stats"))

        self.assertEqual(response.status_code, 200)
        totals = response.data["data"]["totals"]
        self.assertEqual(totals["posts"], 3)
        self.assertEqual(totals["published_posts"], 2)
        self.assertEqual(totals["draft_posts"], 1)
        self.assertEqual(totals["users"], 2)
        self.assertEqual(totals["comments"], 1)
        self.assertEqual(totals["categories"], 1)
        self.assertEqual(totals["views"], 42)
        self.assertEqual(response.data["data"]["recent"]["posts"], 3)
        self.assertEqual([p["title"] for p in response.data["data"]["popular_posts"]], ["Popular", "Quiet"])

    def test_recent_activity(self):
        self.authenticate(self.admin)
        data = self.client.get(reverse("dashboard-recent-activity")).data["data"]

        self.assertEqual(len(data["recent_posts"]), 3)
        self.assertEqual(data["recent_comments"][0]["post__title"], "Popular")
        self.assertEqual({u["email"] for u in data["recent_users"]}, {"admin@example.com", "author@example.com"})

    def test_monthly_stats(self):
        self.authenticate(self.admin)
        data = self.client.get(reverse("dashboard-monthly-stats")).data["data"]

        self.assertEqual(len(data["months"]), 12)
        self.assertEqual(data["months"][-1], timezone.localtime().strftime("%b %Y"))
        self.assertEqual(data["posts"][-1], 3)
        self.assertEqual(data["users"][-1], 2)
        self.assertEqual(data["comments"][-1], 1)
        self.assertEqual(sum(data["posts"]), 3)


class HealthCheckTests(TestCase):
    def test_healthy(self):
        make_user("author@example.com")
        response = self.client.get(reverse("health-check"))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["database"], "connected")
        self.assertEqual(body["cache"], "ok")
        self.assertEqual(body["users_count"], 1)

    def test_database_failure_is_reported(self):
        with mock.patch("dashboard.views.User.objects.count", side_effect=DatabaseError("down")):
            response = self.client.get(reverse("health-check"))

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["database"], "error")
