import io
import shutil
import tempfile
from datetime import timedelta
from unittest import mock

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from PIL import Image
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from accounts.models import User

from .models import Category, Comment, NewsletterSubscriber, Post, Tag
from .publishing import (
    SLUG_BASE_MAX_LENGTH,
    create_post,
    publish_post,
    slugify_title,
    truncate_slug,
    unique_slug,
    unpublish_post,
    update_post,
)
from .signals import post_published

MEDIA_ROOT = tempfile.mkdtemp()


def tearDownModule():
    shutil.rmtree(MEDIA_ROOT, ignore_errors=True)


def make_user(email, role=User.ROLE_AUTHOR):
    return User.objects.create_user(
        email=email, password="secret-pass-123", name=email.split("@")[0], role=role, status=User.STATUS_ACTIVE,
    )


def make_post(author, title="Habari za Tanzania", published=True, **fields):
    data = {"title": title, "content": "Maneno machache kuhusu Tanzania.", "is_published": published}
    data.update(fields)
    return create_post(author, data)


def png_upload(name="photo.png"):
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color="green").save(buffer, format="PNG")
    return SimpleUploadedFile(name, buffer.getvalue(), content_type="image/png")


class BlogAPITestCase(APITestCase):
    def setUp(self):
        self.admin = make_user("admin@example.com", role=User.ROLE_ADMIN)
        self.author = make_user("author@example.com")
        self.other_author = make_user("other@example.com")

    def authenticate(self, user):
        token, _ = Token.objects.get_or_create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")

    def logout(self):
        self.client.credentials()


# ---------------- SLUGS ----------------

class SlugTests(TestCase):
    def setUp(self):
        self.author = make_user("author@example.com")

    def test_slugify_title(self):
        self.assertEqual(slugify_title("Hello, World! "), "hello-world")
        self.assertEqual(slugify_title("snake_case__title -- here"), "snake-case-title-here")
        self.assertEqual(slugify_title("Ñandú wa Dodoma"), "nandu-wa-dodoma")
        self.assertEqual(slugify_title("!!!"), "post")
        self.assertEqual(slugify_title("2024"), "post-2024")

    def test_punctuated_title_and_its_duplicate(self):
        title = "Tanzania's 2024 Election: A Turning Point?"
        first = make_post(self.author, title)
        second = make_post(self.author, title)
        self.assertEqual(first.slug, "tanzanias-2024-election-a-turning-point")
        self.assertEqual(second.slug, "tanzanias-2024-election-a-turning-point-1")

    def test_truncate_slug_keeps_whole_words(self):
        self.assertEqual(truncate_slug("abc-defgh", 6), "abc")
        self.assertEqual(truncate_slug("abc-def-ghi", 7), "abc-def")
        self.assertEqual(truncate_slug("short", 10), "short")

    def test_long_title_is_bounded_at_a_word_boundary(self):
        post = make_post(self.author, "karibu " * 60)
        self.assertLessEqual(len(post.slug), SLUG_BASE_MAX_LENGTH)
        self.assertTrue(all(part == "karibu" for part in post.slug.split("-")))

    def test_colliding_titles_get_numbered_suffixes(self):
        slugs = [make_post(self.author, "Same Title").slug for _ in range(3)]
        self.assertEqual(slugs, ["same-title", "same-title-1", "same-title-2"])

    def test_suffixed_slug_of_long_title_stays_within_column(self):
        title = "x" * 400
        first = make_post(self.author, title)
        second = make_post(self.author, title)
        self.assertEqual(len(first.slug), SLUG_BASE_MAX_LENGTH)
        self.assertTrue(second.slug.endswith("-1"))
        self.assertLessEqual(len(second.slug), 250)

    def test_slug_only_changes_when_title_changes(self):
        post = make_post(self.author, "Hello World")
        update_post(post, {"content": "Changed body"})
        self.assertEqual(post.slug, "hello-world")

        # same slug as before, and the post does not collide with itself
        update_post(post, {"title": "Hello   World!"})
        self.assertEqual(post.slug, "hello-world")

        update_post(post, {"title": "Brand New Title"})
        self.assertEqual(post.slug, "brand-new-title")

    def test_renamed_post_avoids_other_posts_slug(self):
        make_post(self.author, "Taken Title")
        post = make_post(self.author, "Original")
        update_post(post, {"title": "Taken Title"})
        self.assertEqual(post.slug, "taken-title-1")

    def test_unique_slug_ignores_excluded_post(self):
        post = make_post(self.author, "Mine")
        self.assertEqual(unique_slug("Mine", exclude_pk=post.pk), "mine")
        self.assertEqual(unique_slug("Mine"), "mine-1")

    def test_slug_taken_between_check_and_save_is_retried(self):
        existing = make_post(self.author, "Race Condition")
        with mock.patch("blog.publishing.unique_slug", side_effect=[existing.slug, "race-condition-1"]) as patched:
            post = make_post(self.author, "Race Condition")

        self.assertEqual(post.slug, "race-condition-1")
        self.assertEqual(patched.call_count, 2)
        self.assertEqual(Post.objects.filter(title="Race Condition").count(), 2)


# ---------------- PUBLISHING ----------------

@override_settings(SENDGRID_API_KEY="")
class PublishingTests(TestCase):
    def setUp(self):
        self.author = make_user("author@example.com")

    def test_draft_has_no_publish_date(self):
        post = make_post(self.author, published=False)
        self.assertFalse(post.is_published)
        self.assertIsNone(post.published_at)

    def test_publish_date_is_kept_across_unpublish_and_republish(self):
        post = make_post(self.author, published=False)
        publish_post(post)
        first_date = post.published_at
        self.assertIsNotNone(first_date)

        unpublish_post(post)
        post.refresh_from_db()
        self.assertFalse(post.is_published)
        self.assertEqual(post.published_at, first_date)

        publish_post(post)
        post.refresh_from_db()
        self.assertEqual(post.published_at, first_date)

    def test_explicit_publish_date_is_honoured(self):
        when = timezone.now() - timedelta(days=3)
        post = make_post(self.author, published_at=when)
        self.assertEqual(post.published_at, when)

    def test_publish_date_not_overwritten_by_later_edits(self):
        post = make_post(self.author)
        first_date = post.published_at
        update_post(post, {"is_published": True, "published_at": timezone.now() + timedelta(days=1)})
        self.assertEqual(post.published_at, first_date)

    def test_publication_signal_fires_only_on_first_publish(self):
        received = []

        def listener(sender, post, **kwargs):
            received.append(post.pk)

        post_published.connect(listener)
        self.addCleanup(post_published.disconnect, listener)

        with self.captureOnCommitCallbacks(execute=True):
            post = make_post(self.author, published=False)
        with self.captureOnCommitCallbacks(execute=True):
            publish_post(post)
        unpublish_post(post)
        with self.captureOnCommitCallbacks(execute=True):
            publish_post(post)

        self.assertEqual(received, [post.pk])

    def test_subscribers_are_notified_of_new_post(self):
        NewsletterSubscriber.objects.create(email="reader@example.com")
        NewsletterSubscriber.objects.create(email="gone@example.com", is_active=False)

        with mock.patch("blog.signals.send_email_via_sendgrid", return_value=True) as send:
            with self.captureOnCommitCallbacks(execute=True):
                make_post(self.author, "Big News")

        self.assertEqual(send.call_count, 1)
        subject, _, recipient = send.call_args[0]
        self.assertIn("Big News", subject)
        self.assertEqual(recipient, "reader@example.com")

    def test_reading_time(self):
        post = make_post(self.author, content="neno " * 450)
        self.assertEqual(post.reading_time, 3)
        self.assertEqual(make_post(self.author, content="fupi").reading_time, 1)


# ---------------- POST ENDPOINTS ----------------

@override_settings(SENDGRID_API_KEY="", MEDIA_ROOT=MEDIA_ROOT)
class PostEndpointTests(BlogAPITestCase):
    def test_draft_to_published_lifecycle(self):
        category = Category.objects.create(name="Teknolojia")
        tag = Tag.objects.create(name="Python")
        self.authenticate(self.author)

        response = self.client.post(reverse("posts"), {
            "title": "Habari za Leo",
            "content": "Leo tunazungumza kuhusu teknolojia.",
            "category_id": category.pk,
            "tags": [tag.pk],
        }, format="json")
        self.assertEqual(response.status_code, 201)
        data = response.data["data"]
        self.assertEqual(data["slug"], "habari-za-leo")
        self.assertFalse(data["is_published"])
        self.assertIsNone(data["published_at"])
        self.assertEqual(data["category"]["name"], "Teknolojia")
        self.assertEqual([t["name"] for t in data["tags"]], ["Python"])
        self.assertEqual(data["author"]["name"], "author")

        detail = reverse("post-detail", args=["habari-za-leo"])
        self.logout()
        self.assertEqual(self.client.get(detail).status_code, 404)

        self.authenticate(self.other_author)
        self.assertEqual(self.client.get(detail).status_code, 404)

        self.authenticate(self.author)
        response = self.client.get(detail)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["views"], 0)

        response = self.client.post(reverse("post-publish", args=[data["id"]]))
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.data["data"]["published_at"])

        self.logout()
        response = self.client.get(detail)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["views"], 1)
        self.assertEqual(response.data["data"]["comments"], [])

    def test_id_lookup_requires_owner_or_admin_and_never_counts_views(self):
        post = make_post(self.author)
        url = reverse("post-detail", args=[str(post.pk)])

        self.assertEqual(self.client.get(url).status_code, 401)

        self.authenticate(self.other_author)
        self.assertEqual(self.client.get(url).status_code, 403)

        self.authenticate(self.admin)
        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertNotIn("comments", response.data["data"])

        self.authenticate(self.author)
        self.assertEqual(self.client.get(url).status_code, 200)

        post.refresh_from_db()
        self.assertEqual(post.views, 0)

    def test_id_lookup_of_missing_post(self):
        self.authenticate(self.admin)
        response = self.client.get(reverse("post-detail", args=["9999"]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["message"], "Post not found.")

    def test_future_dated_published_post_is_readable_by_slug_and_counted(self):
        post = make_post(self.author, "Kesho", published_at=timezone.now() + timedelta(days=2))
        url = reverse("post-detail", args=[post.slug])

        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["views"], 1)

        self.authenticate(self.admin)
        self.assertEqual(self.client.get(url).data["data"]["views"], 2)

        # listings still wait for the publish date
        self.logout()
        titles = [p["title"] for p in self.client.get(reverse("posts")).data["data"]["results"]]
        self.assertNotIn("Kesho", titles)

    def test_unpublished_post_is_hidden_from_public_slug_lookup(self):
        post = make_post(self.author, "Rasimu", published=False)
        url = reverse("post-detail", args=[post.slug])
        self.assertEqual(self.client.get(url).status_code, 404)

        self.authenticate(self.author)
        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["views"], 0)

    def test_create_requires_authentication_and_valid_data(self):
        response = self.client.post(reverse("posts"), {"title": "Nope", "content": "x"}, format="json")
        self.assertEqual(response.status_code, 401)

        self.authenticate(self.author)
        response = self.client.post(reverse("posts"), {"title": "", "category_id": 9999}, format="json")
        self.assertEqual(response.status_code, 422)
        self.assertIn("title", response.data["errors"])
        self.assertIn("content", response.data["errors"])
        self.assertIn("category_id", response.data["errors"])

    def test_create_with_featured_image_upload(self):
        self.authenticate(self.author)
        response = self.client.post(reverse("posts"), {
            "title": "Picha",
            "content": "Picha nzuri.",
            "featured_image_file": png_upload(),
        }, format="multipart")
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["data"]["featured_image"].startswith("posts/"))
        self.assertTrue(default_storage.exists(response.data["data"]["featured_image"]))

    def test_only_owner_or_admin_may_change_a_post(self):
        post = make_post(self.author)
        url = reverse("post-detail", args=[str(post.pk)])

        self.authenticate(self.other_author)
        self.assertEqual(self.client.put(url, {"title": "Hijacked"}, format="json").status_code, 403)
        self.assertEqual(self.client.delete(url).status_code, 403)
        self.assertEqual(self.client.post(reverse("post-unpublish", args=[post.pk])).status_code, 403)

        self.authenticate(self.admin)
        response = self.client.put(url, {"title": "Edited by Admin"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["slug"], "edited-by-admin")

        self.authenticate(self.author)
        response = self.client.patch(url, {"excerpt": "Short"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["slug"], "edited-by-admin")

    def test_changes_by_slug_are_not_found(self):
        post = make_post(self.author)
        self.authenticate(self.author)
        response = self.client.put(reverse("post-detail", args=[post.slug]), {"title": "x"}, format="json")
        self.assertEqual(response.status_code, 404)

    def test_edit_view(self):
        post = make_post(self.author, published=False)
        self.authenticate(self.author)
        response = self.client.get(reverse("post-edit", args=[post.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["id"], post.pk)

        self.authenticate(self.other_author)
        self.assertEqual(self.client.get(reverse("post-edit", args=[post.pk])).status_code, 403)

    def test_delete_removes_stored_image(self):
        path = default_storage.save("posts/old.png", ContentFile(b"image-bytes"))
        post = make_post(self.author, featured_image=path)
        self.authenticate(self.author)

        response = self.client.delete(reverse("post-detail", args=[str(post.pk)]))

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Post.objects.filter(pk=post.pk).exists())
        self.assertFalse(default_storage.exists(path))

    def test_image_storage_failure_does_not_block_delete(self):
        post = make_post(self.author, featured_image="posts/broken.png")
        self.authenticate(self.author)

        with mock.patch("blog.publishing.default_storage") as storage:
            storage.delete.side_effect = OSError("disk unavailable")
            response = self.client.delete(reverse("post-detail", args=[str(post.pk)]))

        self.assertEqual(response.status_code, 200)
        storage.delete.assert_called_once_with("posts/broken.png")
        self.assertFalse(Post.objects.filter(pk=post.pk).exists())

    def test_external_image_url_is_left_alone_on_delete(self):
        post = make_post(self.author, featured_image="https://cdn.example.com/photo.jpg")
        self.authenticate(self.author)

        with mock.patch("blog.publishing.default_storage") as storage:
            response = self.client.delete(reverse("post-detail", args=[str(post.pk)]))

        self.assertEqual(response.status_code, 200)
        storage.delete.assert_not_called()

    def test_deleting_post_keeps_image_still_used_by_another_post(self):
        path = default_storage.save("posts/shared.png", ContentFile(b"image-bytes"))
        make_post(self.other_author, "Original Owner", featured_image=path)
        borrower = make_post(self.author, "Borrowed Image", featured_image=path)
        self.authenticate(self.author)

        response = self.client.delete(reverse("post-detail", args=[str(borrower.pk)]))

        self.assertEqual(response.status_code, 200)
        self.assertTrue(default_storage.exists(path))

    def test_replacing_image_keeps_file_still_used_by_another_post(self):
        path = default_storage.save("posts/shared-too.png", ContentFile(b"image-bytes"))
        make_post(self.other_author, "Original Owner", featured_image=path)
        borrower = make_post(self.author, "Borrowed Image", featured_image=path)

        update_post(borrower, {"featured_image_file": png_upload()})

        self.assertNotEqual(borrower.featured_image, path)
        self.assertTrue(default_storage.exists(path))

    def test_upload_image(self):
        self.assertEqual(self.client.post(reverse("posts-upload-image"), {"image": png_upload()}, format="multipart").status_code, 401)

        self.authenticate(self.author)
        response = self.client.post(reverse("posts-upload-image"), {"image": png_upload()}, format="multipart")
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["data"]["path"].startswith("posts/images/"))
        self.assertTrue(response.data["data"]["url"].startswith("http://testserver/media/posts/images/"))

        text_file = SimpleUploadedFile("notes.txt", b"not an image", content_type="text/plain")
        response = self.client.post(reverse("posts-upload-image"), {"image": text_file}, format="multipart")
        self.assertEqual(response.status_code, 422)
        self.assertIn("image", response.data["errors"])

    def test_featured_and_recent(self):
        make_post(self.author, "Featured One", is_featured=True)
        make_post(self.author, "Plain One")
        make_post(self.author, "Featured Draft", published=False, is_featured=True)

        featured = self.client.get(reverse("posts-featured"))
        self.assertEqual([p["title"] for p in featured.data["data"]], ["Featured One"])

        recent = self.client.get(reverse("posts-recent"))
        self.assertEqual({p["title"] for p in recent.data["data"]}, {"Featured One", "Plain One"})

    def test_search(self):
        response = self.client.get(reverse("posts-search"), {"q": "a"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["message"], "Search query must be at least 2 characters long.")

        post = make_post(self.author, "Mavuno ya Mwaka")
        post.tags.set([Tag.objects.create(name="Kilimo"), Tag.objects.create(name="Kilimo Bora")])
        make_post(self.author, "Kilimo Draft", published=False)

        response = self.client.get(reverse("posts-search"), {"q": "kilimo"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["id"] for p in response.data["data"]["results"]], [post.pk])
        self.assertEqual(response.data["query"], "kilimo")
        self.assertEqual(response.data["data"]["per_page"], 12)


# ---------------- LISTING ----------------

@override_settings(SENDGRID_API_KEY="")
class PostListingTests(BlogAPITestCase):
    def setUp(self):
        super().setUp()
        self.category = Category.objects.create(name="Michezo")
        self.tag = Tag.objects.create(name="Soka")
        self.published = make_post(self.author, "Published Story", category=self.category, is_featured=True)
        self.published.tags.set([self.tag])
        self.other = make_post(self.other_author, "Another Story")
        self.draft = make_post(self.author, "Draft Story", published=False)
        self.future = make_post(self.author, "Future Story", published_at=timezone.now() + timedelta(days=1))

    def titles(self, response):
        return [post["title"] for post in response.data["data"]["results"]]

    def test_public_listing_shows_only_live_posts(self):
        response = self.client.get(reverse("posts"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(set(self.titles(response)), {"Published Story", "Another Story"})
        self.assertNotIn("stats", response.data)

    def test_admin_view_needs_admin_token_and_flag(self):
        self.authenticate(self.author)
        response = self.client.get(reverse("posts"), {"admin": "1"})
        self.assertNotIn("Draft Story", self.titles(response))
        self.assertNotIn("stats", response.data)

        self.authenticate(self.admin)
        response = self.client.get(reverse("posts"))
        self.assertNotIn("Draft Story", self.titles(response))

        response = self.client.get(reverse("posts"), {"admin": "1"})
        self.assertEqual(len(self.titles(response)), 4)
        self.assertEqual(response.data["stats"]["total_posts"], 4)
        self.assertEqual(response.data["stats"]["draft_posts"], 1)

        response = self.client.get(reverse("posts"), {"admin": "1", "status": "draft"})
        self.assertEqual(self.titles(response), ["Draft Story"])

    def test_filters(self):
        by_category = self.client.get(reverse("posts"), {"category": "michezo"})
        self.assertEqual(self.titles(by_category), ["Published Story"])

        by_tag = self.client.get(reverse("posts"), {"tag": "soka"})
        self.assertEqual(self.titles(by_tag), ["Published Story"])

        featured = self.client.get(reverse("posts"), {"featured": "true"})
        self.assertEqual(self.titles(featured), ["Published Story"])

        not_featured_flag = self.client.get(reverse("posts"), {"featured": "false"})
        self.assertEqual(len(self.titles(not_featured_flag)), 2)

        search = self.client.get(reverse("posts"), {"search": "another"})
        self.assertEqual(self.titles(search), ["Another Story"])

    def test_ordering(self):
        response = self.client.get(reverse("posts"), {"order_by": "title", "order_dir": "asc"})
        self.assertEqual(self.titles(response), ["Another Story", "Published Story"])

        response = self.client.get(reverse("posts"), {"order_by": "password"})
        self.assertEqual(response.status_code, 422)
        self.assertIn("order_by", response.data["errors"])

    def test_pagination_is_capped(self):
        response = self.client.get(reverse("posts"), {"per_page": "500"})
        self.assertEqual(response.data["data"]["per_page"], 100)

        response = self.client.get(reverse("posts"), {"per_page": "1", "page": "2"})
        self.assertEqual(response.data["data"]["current_page"], 2)
        self.assertEqual(response.data["data"]["last_page"], 2)
        self.assertEqual(response.data["data"]["total"], 2)

    def test_author_dashboard_listing(self):
        Comment.objects.create(post=self.published, content="Safi", author_name="A", author_email="a@example.com", is_approved=True)
        Comment.objects.create(post=self.published, content="Pending", author_name="B", author_email="b@example.com")

        url = reverse("posts")
        self.assertEqual(self.client.get(url, {"user_id": self.author.pk}).status_code, 401)

        self.authenticate(self.other_author)
        self.assertEqual(self.client.get(url, {"user_id": self.author.pk}).status_code, 403)

        self.authenticate(self.author)
        response = self.client.get(url, {"user_id": self.author.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["total"], 3)
        counts = {post["title"]: post["comments_count"] for post in response.data["data"]["results"]}
        self.assertEqual(counts["Published Story"], 1)

        response = self.client.get(url, {"user_id": self.author.pk, "dashboard": "1", "status": "draft"})
        self.assertEqual([post["title"] for post in response.data["data"]], ["Draft Story"])

        self.authenticate(self.admin)
        self.assertEqual(self.client.get(url, {"user_id": self.author.pk}).status_code, 200)


# ---------------- COMMENTS ----------------

class CommentTests(BlogAPITestCase):
    def setUp(self):
        super().setUp()
        self.post = make_post(self.author, "Maoni")
        self.url = reverse("post-comments", args=[self.post.pk])

    def comment_payload(self, content="Makala nzuri!", **extra):
        payload = {"content": content, "author_name": "Juma", "author_email": "juma@example.com"}
        payload.update(extra)
        return payload

    @override_settings(COMMENTS_AUTO_APPROVE=False)
    def test_moderated_comment_is_hidden_until_approved(self):
        response = self.client.post(self.url, self.comment_payload(), format="json")
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data["data"]["is_approved"])
        comment_id = response.data["data"]["id"]

        self.assertEqual(self.client.get(self.url).data["data"], [])

        self.authenticate(self.author)
        self.assertEqual(self.client.get(reverse("comments-moderation-queue")).status_code, 403)
        self.assertEqual(self.client.post(reverse("comment-approve", args=[comment_id])).status_code, 403)

        self.authenticate(self.admin)
        queue = self.client.get(reverse("comments-moderation-queue"))
        self.assertEqual([c["id"] for c in queue.data["data"]["results"]], [comment_id])
        self.assertEqual(queue.data["data"]["results"][0]["post"]["id"], self.post.pk)

        self.assertEqual(self.client.post(reverse("comment-approve", args=[comment_id])).status_code, 200)
        # approving twice is harmless
        self.assertEqual(self.client.post(reverse("comment-approve", args=[comment_id])).status_code, 200)

        self.logout()
        self.assertEqual([c["id"] for c in self.client.get(self.url).data["data"]], [comment_id])

    def test_moderation_queue_urls(self):
        self.assertEqual(reverse("comments-moderation-queue"), "/api/v1/comments/moderation-queue/")
        self.authenticate(self.admin)
        self.assertEqual(self.client.get("/api/v1/comments/moderation-queue/").status_code, 200)
        self.assertEqual(self.client.get("/api/v1/comments/moderation/").status_code, 200)

    @override_settings(COMMENTS_AUTO_APPROVE=True)
    def test_auto_approved_comment_is_visible_immediately(self):
        response = self.client.post(self.url, self.comment_payload(), format="json")
        self.assertTrue(response.data["data"]["is_approved"])
        self.assertEqual(len(self.client.get(self.url).data["data"]), 1)

    @override_settings(COMMENTS_AUTO_APPROVE=True)
    def test_nested_replies_are_flattened_under_their_thread(self):
        top = self.client.post(self.url, self.comment_payload("A"), format="json").data["data"]
        reply = self.client.post(self.url, self.comment_payload("B", parent_id=top["id"]), format="json").data["data"]
        self.client.post(self.url, self.comment_payload("C", parent_id=reply["id"]), format="json")

        tree = self.client.get(self.url).data["data"]
        self.assertEqual(len(tree), 1)
        self.assertEqual(tree[0]["content"], "A")
        self.assertEqual([r["content"] for r in tree[0]["replies"]], ["B", "C"])

        detail = self.client.get(reverse("post-detail", args=[self.post.slug]))
        self.assertEqual([r["content"] for r in detail.data["data"]["comments"][0]["replies"]], ["B", "C"])

    def test_thread_ordering(self):
        now = timezone.now()
        older = Comment.objects.create(
            post=self.post, content="older", author_name="A", author_email="a@example.com",
            is_approved=True, created_at=now - timedelta(hours=2),
        )
        Comment.objects.create(
            post=self.post, content="newer", author_name="B", author_email="b@example.com",
            is_approved=True, created_at=now - timedelta(hours=1),
        )
        for offset, content in ((30, "second reply"), (50, "first reply")):
            Comment.objects.create(
                post=self.post, parent=older, content=content, author_name="C", author_email="c@example.com",
                is_approved=True, created_at=now - timedelta(minutes=offset),
            )
        Comment.objects.create(
            post=self.post, parent=older, content="hidden reply", author_name="D", author_email="d@example.com",
        )

        tree = self.client.get(self.url).data["data"]
        self.assertEqual([c["content"] for c in tree], ["newer", "older"])
        self.assertEqual([r["content"] for r in tree[1]["replies"]], ["first reply", "second reply"])

    def test_parent_must_belong_to_same_post(self):
        other_post = make_post(self.author, "Nyingine")
        foreign = Comment.objects.create(post=other_post, content="x", author_name="A", author_email="a@example.com", is_approved=True)

        response = self.client.post(self.url, self.comment_payload(parent_id=foreign.pk), format="json")
        self.assertEqual(response.status_code, 422)
        self.assertIn("parent_id", response.data["errors"])

        response = self.client.post(self.url, self.comment_payload(parent_id=9999), format="json")
        self.assertEqual(response.status_code, 422)

    def test_comment_validation(self):
        response = self.client.post(self.url, {"content": "x" * 1001, "author_email": "not-an-email"}, format="json")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(set(response.data["errors"]), {"content", "author_name", "author_email"})

    def test_comments_on_unpublished_or_missing_post_are_not_found(self):
        draft = make_post(self.author, "Rasimu", published=False)
        response = self.client.post(reverse("post-comments", args=[draft.pk]), self.comment_payload(), format="json")
        self.assertEqual(response.status_code, 404)

        # the draft's thread can still be read for previews
        response = self.client.get(reverse("post-comments", args=[draft.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"], [])
        self.assertEqual(self.client.get(reverse("post-comments", args=[9999])).status_code, 404)

        # missing post wins over invalid input
        response = self.client.post(reverse("post-comments", args=[9999]), {}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(Comment.objects.count(), 0)

    def test_like_increments(self):
        comment = Comment.objects.create(post=self.post, content="x", author_name="A", author_email="a@example.com", is_approved=True)
        self.client.post(reverse("comment-like", args=[comment.pk]))
        response = self.client.post(reverse("comment-like", args=[comment.pk]))
        self.assertEqual(response.data["data"]["likes"], 2)

    def test_deleting_comment_removes_its_replies(self):
        top = Comment.objects.create(post=self.post, content="top", author_name="A", author_email="a@example.com", is_approved=True)
        reply = Comment.objects.create(post=self.post, parent=top, content="reply", author_name="B", author_email="b@example.com", is_approved=True)

        self.authenticate(self.author)
        self.assertEqual(self.client.delete(reverse("comment-detail", args=[top.pk])).status_code, 403)

        self.authenticate(self.admin)
        self.assertEqual(self.client.delete(reverse("comment-detail", args=[top.pk])).status_code, 200)
        self.assertFalse(Comment.objects.filter(pk__in=[top.pk, reply.pk]).exists())


# ---------------- CATEGORIES & TAGS ----------------

class CategoryTagTests(BlogAPITestCase):
    def test_public_category_list(self):
        active = Category.objects.create(name="Biashara", order=1)
        Category.objects.create(name="Hidden", is_active=False)
        make_post(self.author, "Live", category=active)
        make_post(self.author, "Draft", category=active, published=False)

        response = self.client.get(reverse("categories"))
        self.assertEqual([c["name"] for c in response.data["data"]], ["Biashara"])
        self.assertEqual(response.data["data"][0]["posts_count"], 1)

    def test_admin_creates_and_renames_category(self):
        self.authenticate(self.author)
        self.assertEqual(self.client.post(reverse("categories"), {"name": "Afya"}, format="json").status_code, 403)

        self.authenticate(self.admin)
        response = self.client.post(reverse("categories"), {"name": "Afya Bora", "color": "#00AA00"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["data"]["slug"], "afya-bora")

        duplicate = self.client.post(reverse("categories"), {"name": "Afya Bora"}, format="json")
        self.assertEqual(duplicate.status_code, 422)

        response = self.client.put(reverse("category-detail", args=[response.data["data"]["id"]]), {"name": "Afya"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["slug"], "afya")

    def test_category_in_use_cannot_be_deleted(self):
        category = Category.objects.create(name="Siasa")
        post = make_post(self.author, category=category)
        self.authenticate(self.admin)

        response = self.client.delete(reverse("category-detail", args=[category.pk]))
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["message"], "Cannot delete category with existing posts.")
        self.assertTrue(Category.objects.filter(pk=category.pk).exists())

        post.delete()
        response = self.client.delete(reverse("category-detail", args=[category.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Category.objects.filter(pk=category.pk).exists())

    def test_category_posts(self):
        category = Category.objects.create(name="Utalii")
        make_post(self.author, "Serengeti", category=category)
        make_post(self.author, "Draft Safari", category=category, published=False)

        response = self.client.get(reverse("category-posts", args=["utalii"]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["title"] for p in response.data["data"]["results"]], ["Serengeti"])
        self.assertEqual(response.data["category"]["name"], "Utalii")

        self.assertEqual(self.client.get(reverse("category-posts", args=["missing"])).status_code, 404)

    def test_tags(self):
        self.authenticate(self.admin)
        response = self.client.post(reverse("tags"), {"name": "Machine Learning"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["data"]["slug"], "machine-learning")
        self.assertEqual(self.client.post(reverse("tags"), {"name": "machine learning"}, format="json").status_code, 422)

        self.logout()
        response = self.client.get(reverse("tags"))
        self.assertEqual([t["name"] for t in response.data["data"]], ["Machine Learning"])


# ---------------- NEWSLETTER ----------------

@override_settings(SENDGRID_API_KEY="")
class NewsletterTests(BlogAPITestCase):
    def test_subscribe_unsubscribe_resubscribe(self):
        subscribe = reverse("newsletter-subscribe")
        unsubscribe = reverse("newsletter-unsubscribe")

        response = self.client.post(subscribe, {"email": "msomaji@example.com", "source": "footer"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["data"]["source"], "footer")

        response = self.client.post(subscribe, {"email": "msomaji@example.com"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "You are already subscribed.")

        response = self.client.post(unsubscribe, {"email": "msomaji@example.com"}, format="json")
        self.assertEqual(response.status_code, 200)
        subscriber = NewsletterSubscriber.objects.get(email="msomaji@example.com")
        self.assertFalse(subscriber.is_active)
        self.assertIsNotNone(subscriber.unsubscribed_at)

        response = self.client.post(unsubscribe, {"email": "msomaji@example.com"}, format="json")
        self.assertEqual(response.data["message"], "You are already unsubscribed.")

        response = self.client.post(subscribe, {"email": "msomaji@example.com"}, format="json")
        self.assertEqual(response.status_code, 200)
        subscriber.refresh_from_db()
        self.assertTrue(subscriber.is_active)
        self.assertIsNone(subscriber.unsubscribed_at)
        self.assertEqual(NewsletterSubscriber.objects.count(), 1)

    def test_unsubscribe_unknown_email(self):
        response = self.client.post(reverse("newsletter-unsubscribe"), {"email": "ghost@example.com"}, format="json")
        self.assertEqual(response.status_code, 404)

    def test_subscribe_requires_valid_email(self):
        response = self.client.post(reverse("newsletter-subscribe"), {"email": "nope"}, format="json")
        self.assertEqual(response.status_code, 422)

    def test_admin_subscriber_list_and_stats(self):
        NewsletterSubscriber.objects.create(email="a@example.com", source="footer")
        NewsletterSubscriber.objects.create(email="b@example.com")
        NewsletterSubscriber.objects.create(email="c@example.com", is_active=False, unsubscribed_at=timezone.now())

        self.assertEqual(self.client.get(reverse("newsletter-subscribers")).status_code, 401)

        self.authenticate(self.admin)
        response = self.client.get(reverse("newsletter-subscribers"), {"status": "active"})
        self.assertEqual(response.data["data"]["total"], 2)
        self.assertEqual(response.data["data"]["per_page"], 50)

        stats = self.client.get(reverse("newsletter-stats")).data["data"]
        self.assertEqual(stats["active_subscribers"], 2)
        self.assertEqual(stats["unsubscribed"], 1)
        self.assertEqual(stats["recent_subscribers"], 2)
        self.assertEqual({row["source"]: row["count"] for row in stats["by_source"]}, {"footer": 1, "website": 1})
