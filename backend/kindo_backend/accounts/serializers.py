from django.contrib.auth import password_validation
from rest_framework import serializers

from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            'id',
            'name',
            'email',
            'role',
            'status',
            'bio',
            'avatar',
            'social_facebook',
            'social_twitter',
            'social_instagram',
            'email_verified_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class AuthorSummarySerializer(serializers.ModelSerializer):
    """Embedded author block on posts; never exposes email or status."""

    class Meta:
        model = User
        fields = ['id', 'name', 'bio', 'avatar']


class UserListSerializer(UserSerializer):
    posts_count = serializers.IntegerField(read_only=True)

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['posts_count']
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField(max_length=255)
    password = serializers.CharField(min_length=8, write_only=True)
    password_confirmation = serializers.CharField(write_only=True)
    bio = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("The email has already been taken.")
        return value

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirmation']:
            raise serializers.ValidationError({"password": ["The password confirmation does not match."]})
        password_validation.validate_password(attrs['password'])
        return attrs

    def create(self, validated_data):
        """
        Self-registration always yields an inactive author; any role the
        client sends is ignored and an admin must activate the account.
        """
        return User.objects.create_user(
            email=validated_data['email'],
            password=validated_data['password'],
            name=validated_data['name'],
            bio=validated_data.get('bio'),
            role=User.ROLE_AUTHOR,
            status=User.STATUS_INACTIVE,
        )


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['name', 'bio', 'social_facebook', 'social_twitter', 'social_instagram']
        extra_kwargs = {
            'bio': {'max_length': 500},
        }


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    password = serializers.CharField(min_length=8, write_only=True)
    password_confirmation = serializers.CharField(write_only=True)

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirmation']:
            raise serializers.ValidationError({"password": ["The password confirmation does not match."]})
        password_validation.validate_password(attrs['password'])
        return attrs


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()

    def validate_email(self, value):
        if not User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("The selected email is invalid.")
        return value


class ResetPasswordSerializer(ChangePasswordSerializer):
    current_password = None
    email = serializers.EmailField()
    token = serializers.CharField()


class AdminUserUpdateSerializer(serializers.ModelSerializer):
    """Fields an administrator may change on another account."""

    class Meta:
        model = User
        fields = [
            'name',
            'email',
            'role',
            'bio',
            'avatar',
            'social_facebook',
            'social_twitter',
            'social_instagram',
        ]
        extra_kwargs = {
            'bio': {'max_length': 500},
        }

    def validate_email(self, value):
        qs = User.objects.filter(email__iexact=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError("The email has already been taken.")
        return value


class UserStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=User.STATUS_CHOICES)
