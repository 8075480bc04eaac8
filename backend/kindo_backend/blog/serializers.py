import os

from django.conf import settings
from django.core.files.storage import default_storage
from django.utils.text import slugify
from rest_framework import serializers

from accounts.serializers import AuthorSummarySerializer

from .models import Category, Comment, NewsletterSubscriber, Post, Tag
from .publishing import is_external_url

# Optional fallback placeholder for missing images
PLACEHOLDER_IMAGE = getattr(settings, "PLACEHOLDER_IMAGE", None)

ALLOWED_IMAGE_EXTENSIONS = (".jpeg", ".jpg", ".png", ".gif", ".webp")
MAX_IMAGE_SIZE = 2 * 1024 * 1024


def validate_image_upload(image):
    ext = os.path.splitext(image.name or "")[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise serializers.ValidationError("The image must be a file of type: jpeg, png, jpg, gif, webp.")
    if image.size > MAX_IMAGE_SIZE:
        raise serializers.ValidationError("The image may not be greater than 2048 kilobytes.")
    return image


def image_url(path, request=None):
    """Public URL for a stored path; external URLs pass through untouched."""
    if not path:
        return PLACEHOLDER_IMAGE
    if is_external_url(path):
        return path
    url = default_storage.url(path)
    return request.build_absolute_uri(url) if request else url


class TagSerializer(serializers.ModelSerializer):
    class Meta:
        model = Tag
        fields = ("id", "name", "slug")
        read_only_fields = ("slug",)

    def validate_name(self, value):
        slug = slugify(value)
        if not slug:
            raise serializers.ValidationError("The name must contain letters or digits.")
        if Tag.objects.filter(slug=slug).exists():
            raise serializers.ValidationError("A tag with a similar name already exists.")
        return value


class CategorySummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ("id", "name", "name_sw", "slug", "color", "icon")


class CategorySerializer(serializers.ModelSerializer):
    posts_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = (
            "id", "name", "name_sw", "slug", "description", "color", "icon",
            "is_active", "order", "posts_count", "created_at", "updated_at",
        )
        read_only_fields = ("slug", "created_at", "updated_at")

    def get_posts_count(self, obj):
        annotated = getattr(obj, "posts_count", None)
        if annotated is not None:
            return annotated
        return obj.posts.published().count()

    def validate_name(self, value):
        slug = slugify(value)
        if not slug:
            raise serializers.ValidationError("The name must contain letters or digits.")
        clashes = Category.objects.filter(slug=slug)
        if self.instance is not None:
            clashes = clashes.exclude(pk=self.instance.pk)
        if clashes.exists():
            raise serializers.ValidationError("A category with a similar name already exists.")
        return value

    def update(self, instance, validated_data):
        if "name" in validated_data and validated_data["name"] != instance.name:
            instance.slug = slugify(validated_data["name"])
        return super().update(instance, validated_data)


class PostSerializer(serializers.ModelSerializer):
    author = AuthorSummarySerializer(read_only=True)
    category = CategorySummarySerializer(read_only=True)
    tags = TagSerializer(many=True, read_only=True)
    featured_image_url = serializers.SerializerMethodField()
    reading_time = serializers.IntegerField(read_only=True)

    class Meta:
        model = Post
        fields = (
            "id", "title", "title_sw", "slug", "excerpt", "content", "content_sw",
            "featured_image", "featured_image_url", "image_caption",
            "is_published", "is_featured", "published_at", "views", "reading_time",
            "meta_title", "meta_description",
            "author", "category", "tags", "created_at", "updated_at",
        )
        read_only_fields = fields

    def get_featured_image_url(self, obj):
        return image_url(obj.featured_image, self.context.get("request"))


class AuthorPostSerializer(PostSerializer):
    comments_count = serializers.IntegerField(read_only=True)

    class Meta(PostSerializer.Meta):
        fields = PostSerializer.Meta.fields + ("comments_count",)
        read_only_fields = fields


class PostSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Post
        fields = ("id", "title", "slug", "is_published", "views", "published_at", "created_at")
        read_only_fields = fields


class PostWriteSerializer(serializers.ModelSerializer):
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(), source="category", required=False, allow_null=True,
    )
    tags = serializers.PrimaryKeyRelatedField(queryset=Tag.objects.all(), many=True, required=False)
    featured_image_file = serializers.ImageField(
        required=False, write_only=True, validators=[validate_image_upload],
    )

    class Meta:
        model = Post
        fields = (
            "title", "title_sw", "content", "content_sw", "excerpt",
            "featured_image", "featured_image_file", "image_caption",
            "is_published", "is_featured", "published_at",
            "meta_title", "meta_description", "category_id", "tags",
        )
        extra_kwargs = {
            "meta_title": {"max_length": 60},
            "meta_description": {"max_length": 160},
        }


class ReplySerializer(serializers.ModelSerializer):
    class Meta:
        model = Comment
        fields = (
            "id", "post", "parent", "content", "author_name", "author_website",
            "is_approved", "likes", "created_at",
        )
        read_only_fields = fields


class CommentSerializer(ReplySerializer):
    """Top-level comment with its thread flattened into `replies`."""

    replies = serializers.SerializerMethodField()

    class Meta(ReplySerializer.Meta):
        fields = ReplySerializer.Meta.fields + ("replies",)
        read_only_fields = fields

    def get_replies(self, obj):
        return ReplySerializer(getattr(obj, "thread_replies", []), many=True).data


class ModerationCommentSerializer(ReplySerializer):
    post = PostSummarySerializer(read_only=True)
    parent = ReplySerializer(read_only=True)

    class Meta(ReplySerializer.Meta):
        fields = ReplySerializer.Meta.fields + ("author_email",)
        read_only_fields = fields


class CommentCreateSerializer(serializers.ModelSerializer):
    parent_id = serializers.PrimaryKeyRelatedField(
        queryset=Comment.objects.all(), source="parent", required=False, allow_null=True,
    )

    class Meta:
        model = Comment
        fields = ("content", "author_name", "author_email", "author_website", "parent_id")
        extra_kwargs = {"content": {"max_length": 1000}}

    def validate_parent_id(self, parent):
        post = self.context["post"]
        if parent is not None and parent.post_id != post.pk:
            raise serializers.ValidationError("The parent comment belongs to a different post.")
        return parent


class ImageUploadSerializer(serializers.Serializer):
    image = serializers.ImageField(validators=[validate_image_upload])


class NewsletterSubscriberSerializer(serializers.ModelSerializer):
    class Meta:
        model = NewsletterSubscriber
        fields = ("id", "email", "is_active", "source", "subscribed_at", "unsubscribed_at")


class NewsletterSubscribeSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=255)
    source = serializers.CharField(max_length=50, required=False, allow_blank=True)


class NewsletterUnsubscribeSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=255)
