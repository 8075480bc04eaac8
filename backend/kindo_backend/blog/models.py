import math

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.html import strip_tags
from django.utils.text import slugify


class Category(models.Model):
    name = models.CharField(max_length=255, unique=True)
    name_sw = models.CharField(max_length=255, blank=True, null=True)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True, null=True)
    color = models.CharField(max_length=7, blank=True, null=True)
    icon = models.CharField(max_length=50, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["order", "name"]
        verbose_name_plural = "categories"

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    @property
    def display_name(self):
        return self.name_sw or self.name


class Tag(models.Model):
    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=150, unique=True, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)


class PostQuerySet(models.QuerySet):
    def published(self):
        """Public visibility: flagged published and the publish time has arrived."""
        return self.filter(is_published=True, published_at__lte=timezone.now())

    def drafts(self):
        return self.filter(is_published=False)

    def featured(self):
        return self.filter(is_featured=True)

    def with_relations(self):
        return self.select_related("category", "author").prefetch_related("tags")


class Post(models.Model):
    title = models.CharField(max_length=255)
    title_sw = models.CharField(max_length=255, blank=True, null=True)
    slug = models.SlugField(max_length=255, unique=True)
    content = models.TextField()
    content_sw = models.TextField(blank=True, null=True)
    excerpt = models.TextField(max_length=500, blank=True, null=True)
    featured_image = models.CharField(max_length=500, blank=True, null=True)   # stored path or external URL
    image_caption = models.CharField(max_length=255, blank=True, null=True)
    is_published = models.BooleanField(default=False)
    is_featured = models.BooleanField(default=False)
    published_at = models.DateTimeField(blank=True, null=True)
    views = models.PositiveIntegerField(default=0)
    meta_title = models.CharField(max_length=255, blank=True, null=True)
    meta_description = models.TextField(max_length=500, blank=True, null=True)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="posts", on_delete=models.CASCADE)
    # PROTECT backs the "category in use" rule at the database level
    category = models.ForeignKey(Category, related_name="posts", on_delete=models.PROTECT, null=True, blank=True)
    tags = models.ManyToManyField(Tag, related_name="posts", blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PostQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.title

    @property
    def reading_time(self):
        """Estimated minutes at 200 words per minute, never less than one."""
        word_count = len(strip_tags(self.content or "").split())
        return max(1, math.ceil(word_count / 200))


class CommentQuerySet(models.QuerySet):
    def approved(self):
        return self.filter(is_approved=True)

    def pending(self):
        return self.filter(is_approved=False)

    def top_level(self):
        return self.filter(parent__isnull=True)


class Comment(models.Model):
    post = models.ForeignKey(Post, related_name="comments", on_delete=models.CASCADE)
    # Deleting a comment removes its replies as well
    parent = models.ForeignKey("self", related_name="replies", on_delete=models.CASCADE, null=True, blank=True)
    content = models.TextField(max_length=1000)
    author_name = models.CharField(max_length=255)
    author_email = models.EmailField(max_length=255)
    author_website = models.URLField(max_length=255, blank=True, null=True)
    is_approved = models.BooleanField(default=False)
    likes = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CommentQuerySet.as_manager()

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"Comment by {self.author_name} on {self.post.title}"


class NewsletterSubscriber(models.Model):
    email = models.EmailField(max_length=255, unique=True)
    is_active = models.BooleanField(default=True)
    source = models.CharField(max_length=50, default="website")
    subscribed_at = models.DateTimeField(default=timezone.now)
    unsubscribed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ["-subscribed_at"]

    def __str__(self):
        return self.email
