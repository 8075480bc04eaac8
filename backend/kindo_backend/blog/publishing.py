"""
Publishing workflow for posts.

Covers how a post gets its URL slug and keeps it unique, when `published_at`
is stamped, how public reads are counted, and who may see or change a post.
Views call these functions with the acting user passed in explicitly.
"""
import logging
import os
import re
from functools import partial
from urllib.parse import urlparse
from uuid import uuid4

from django.core.files.storage import default_storage
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.text import slugify
from rest_framework.exceptions import NotAuthenticated, NotFound

from accounts.permissions import can_mutate_post, ensure_can_mutate_post

from .models import Post
from .signals import post_published

logger = logging.getLogger(__name__)

# Base slug derived from the title, before any "-N" suffix
SLUG_BASE_MAX_LENGTH = 200
# Longest slug ever generated; the column allows 255
SLUG_MAX_LENGTH = 250
SLUG_FALLBACK = "post"
SLUG_SAVE_ATTEMPTS = 5

POST_IMAGE_FOLDER = "posts"


# ---------------- SLUGS ----------------

def slugify_title(title):
    """Lower-cased ASCII slug made only of [a-z0-9-]."""
    slug = slugify(title or "")
    slug = re.sub(r"[-_]+", "-", slug).strip("-")
    if slug.isdigit():
        # an all-digit slug would be read as a post id
        slug = f"{SLUG_FALLBACK}-{slug}"
    return slug or SLUG_FALLBACK


def truncate_slug(slug, max_length):
    """Cut to max_length, dropping a trailing partial word when the cut lands mid-word."""
    if len(slug) <= max_length:
        return slug
    truncated = slug[:max_length]
    if slug[max_length] != "-" and "-" in truncated:
        truncated = truncated.rsplit("-", 1)[0]
    return truncated.strip("-")


def unique_slug(title, exclude_pk=None):
    """
    First free slug for `title`: the bounded base, then base-1, base-2, ...

    `exclude_pk` lets a post keep competing only against other rows when its
    own title changes.
    """
    base = truncate_slug(slugify_title(title), SLUG_BASE_MAX_LENGTH)

    others = Post.objects.all()
    if exclude_pk is not None:
        others = others.exclude(pk=exclude_pk)
    taken = set(others.filter(slug__startswith=base).values_list("slug", flat=True))

    slug = base
    counter = 1
    while slug in taken:
        suffix = f"-{counter}"
        slug = truncate_slug(base, SLUG_MAX_LENGTH - len(suffix)) + suffix
        counter += 1
    return slug


def _slug_taken(slug, exclude_pk=None):
    others = Post.objects.filter(slug=slug)
    if exclude_pk is not None:
        others = others.exclude(pk=exclude_pk)
    return others.exists()


def save_with_unique_slug(post, title):
    """
    Assign a free slug and save. The pre-check can race with a concurrent
    save of the same title, so the unique index has the final word: on a slug
    collision the suffix loop runs again and the save is retried.
    """
    for attempt in range(1, SLUG_SAVE_ATTEMPTS + 1):
        post.slug = unique_slug(title, exclude_pk=post.pk)
        try:
            with transaction.atomic():
                post.save()
            return post
        except IntegrityError:
            if attempt == SLUG_SAVE_ATTEMPTS or not _slug_taken(post.slug, exclude_pk=post.pk):
                raise
            logger.warning("Slug %r was taken concurrently, retrying (attempt %s)", post.slug, attempt)


# ---------------- PUBLISHING ----------------

def apply_publish_transition(post, is_published, requested_published_at=None):
    """
    Set the published flag and stamp `published_at` once.

    The timestamp is filled the first time it is needed (publishing, or an
    explicit schedule) and is never overwritten or cleared afterwards, so
    unpublishing and republishing keep the original date. Returns True when
    this call publishes a post that had never been published.
    """
    first_publish = bool(is_published) and not post.is_published and post.published_at is None
    post.is_published = bool(is_published)
    if post.published_at is None and (post.is_published or requested_published_at):
        post.published_at = requested_published_at or timezone.now()
    return first_publish


def _announce_publication(post):
    transaction.on_commit(partial(post_published.send, sender=Post, post=post))


def create_post(author, data):
    """Create a post from validated PostWriteSerializer data."""
    data = dict(data)
    tags = data.pop("tags", None)
    image_file = data.pop("featured_image_file", None)
    is_published = data.pop("is_published", False)
    requested_published_at = data.pop("published_at", None)

    post = Post(author=author, **data)
    if image_file is not None:
        post.featured_image = store_image(image_file)
    first_publish = apply_publish_transition(post, is_published, requested_published_at)

    with transaction.atomic():
        save_with_unique_slug(post, post.title)
        if tags is not None:
            post.tags.set(tags)
        if first_publish:
            _announce_publication(post)

    logger.info("Post %s created by user %s with slug %r", post.pk, author.pk, post.slug)
    return post


def update_post(post, data):
    """Apply a (partial) update. The slug only changes when the title does."""
    data = dict(data)
    tags = data.pop("tags", None)
    image_file = data.pop("featured_image_file", None)
    has_publish_flag = "is_published" in data
    is_published = data.pop("is_published", post.is_published)
    requested_published_at = data.pop("published_at", None)

    title_changed = "title" in data and data["title"] != post.title
    old_image = post.featured_image

    for field, value in data.items():
        setattr(post, field, value)
    if image_file is not None:
        post.featured_image = store_image(image_file)

    first_publish = False
    if has_publish_flag or requested_published_at:
        first_publish = apply_publish_transition(post, is_published, requested_published_at)

    with transaction.atomic():
        if title_changed:
            save_with_unique_slug(post, post.title)
        else:
            post.save()
        if tags is not None:
            post.tags.set(tags)
        if first_publish:
            _announce_publication(post)

    if image_file is not None and old_image and old_image != post.featured_image:
        release_image(old_image, post.pk)
    return post


def publish_post(post):
    first_publish = apply_publish_transition(post, True)
    with transaction.atomic():
        post.save(update_fields=["is_published", "published_at", "updated_at"])
        if first_publish:
            _announce_publication(post)
    return post


def unpublish_post(post):
    # published_at is kept so republishing does not lose the original date
    apply_publish_transition(post, False)
    post.save(update_fields=["is_published", "updated_at"])
    return post


def delete_post(post):
    image = post.featured_image
    post_id = post.pk
    post.delete()
    if image:
        release_image(image, post_id)
    logger.info("Post %s deleted", post_id)


# ---------------- READS ----------------

def is_numeric_identifier(identifier):
    return identifier.isascii() and identifier.isdigit()


def resolve_post(identifier, user):
    """
    Dual-mode lookup behind GET /posts/{identifier}.

    A numeric identifier is an editor lookup: it needs an authenticated admin
    or owner. Anything else is a public slug lookup, where unpublished posts
    exist only for their admin/owner and are reported missing to everyone
    else. The published flag alone decides; a future `published_at` only keeps
    the post out of listings and feeds. Returns (post, is_public_lookup).
    """
    posts = Post.objects.with_relations()

    if is_numeric_identifier(identifier):
        post = posts.filter(pk=int(identifier)).first()
        if not (user and user.is_authenticated):
            raise NotAuthenticated("Authentication required for ID-based access.")
        if post is not None:
            ensure_can_mutate_post(user, post, "You do not have permission to access this post.")
        if post is None:
            raise NotFound("Post not found.")
        return post, False

    post = posts.filter(slug=identifier).first()
    if post is None or (not post.is_published and not can_mutate_post(user, post)):
        raise NotFound("Post not found.")
    return post, True


def record_view(post):
    """Count one public read. Done in SQL so updated_at is untouched."""
    Post.objects.filter(pk=post.pk).update(views=F("views") + 1)
    post.refresh_from_db(fields=["views"])
    return post.views


# ---------------- IMAGES ----------------

def is_external_url(value):
    return urlparse(value or "").scheme in ("http", "https")


def store_image(upload, folder=POST_IMAGE_FOLDER):
    ext = os.path.splitext(upload.name or "")[1].lower()
    return default_storage.save(f"{folder}/{uuid4().hex}{ext}", upload)


def release_image(path, post_pk):
    """Delete an image the post no longer uses, unless another post still points at it."""
    if Post.objects.filter(featured_image=path).exclude(pk=post_pk).exists():
        logger.info("Stored image %s is still used by another post, keeping it", path)
        return False
    return delete_stored_image(path)


def delete_stored_image(path):
    """
    Best-effort removal of a locally stored image. External URLs are left
    alone; storage errors are logged and never propagate, so they cannot block
    the record change that triggered them.
    """
    if not path or is_external_url(path):
        return False
    try:
        default_storage.delete(path)
        return True
    except Exception:
        logger.exception("Could not delete stored image %s", path)
        return False
