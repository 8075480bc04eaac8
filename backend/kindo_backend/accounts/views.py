import logging
from datetime import timedelta

from django.contrib.auth.tokens import default_token_generator
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from blog.pagination import StandardResultsSetPagination
from blog.utils import build_email_html, frontend_url, send_email_via_sendgrid
from blog.serializers import PostSummarySerializer
from kindo_backend.api import api_response, get_object_or_not_found

from .models import User
from .permissions import IsAdmin, last_active_admin_guard
from .serializers import (
    AdminUserUpdateSerializer,
    ChangePasswordSerializer,
    ForgotPasswordSerializer,
    LoginSerializer,
    ProfileSerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
    UserListSerializer,
    UserSerializer,
    UserStatusSerializer,
)

logger = logging.getLogger(__name__)

INACTIVE_LOGIN_MESSAGES = {
    User.STATUS_INACTIVE: "Your account is pending admin activation. Please contact an administrator.",
    User.STATUS_SUSPENDED: "Your account has been suspended. Please contact an administrator.",
}


# ---------------- AUTHENTICATION ----------------

class RegisterView(APIView):
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("Registered author %s (pending activation)", user.email)

        # No token until an administrator activates the account
        return api_response(
            True,
            "Registration successful! Your account is pending admin activation.",
            {"user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role, "status": user.status}},
            status.HTTP_201_CREATED,
        )


class LoginView(APIView):
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = User.objects.filter(email__iexact=serializer.validated_data["email"]).first()
        if not user or not user.check_password(serializer.validated_data["password"]):
            raise ValidationError({"email": ["The provided credentials are incorrect."]})

        if user.status != User.STATUS_ACTIVE:
            message = INACTIVE_LOGIN_MESSAGES.get(user.status, "Your account is not available for login.")
            return api_response(False, message, http_status=status.HTTP_403_FORBIDDEN)

        token, _ = Token.objects.get_or_create(user=user)
        user.last_login = timezone.now()
        user.save(update_fields=["last_login"])

        return api_response(
            True,
            "User logged in successfully.",
            {"user": UserSerializer(user).data, "token": token.key},
        )


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        # Revoke the token this request was authenticated with
        if request.auth is not None:
            request.auth.delete()
        return api_response(True, "User logged out successfully.")


class CurrentUserView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return api_response(True, "User profile retrieved successfully.", {"user": UserSerializer(request.user).data})


class ProfileUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request):
        serializer = ProfileSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return api_response(True, "Profile updated successfully.", {"user": UserSerializer(user).data})


class ChangePasswordView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = request.user
        if not user.check_password(serializer.validated_data["current_password"]):
            return api_response(False, "Current password is incorrect.", http_status=status.HTTP_422_UNPROCESSABLE_ENTITY)

        user.set_password(serializer.validated_data["password"])
        user.save(update_fields=["password"])
        return api_response(True, "Password changed successfully.")


class ForgotPasswordView(APIView):
    authentication_classes = []

    def post(self, request):
        serializer = ForgotPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = User.objects.get(email__iexact=serializer.validated_data["email"])
        token = default_token_generator.make_token(user)
        reset_link = frontend_url(f"reset-password?email={user.email}&token={token}")

        html_message = build_email_html(
            title="Reset Your Password",
            greeting=user.name,
            message="We received a request to reset your password. The link below is valid for 24 hours.<br><br>"
                    f"<a href='{reset_link}'>Reset Password</a>",
            footer="If you did not request a password reset, you can safely ignore this email.",
        )
        send_email_via_sendgrid("Password Reset Request", html_message, user.email)

        return api_response(True, "Password reset link sent to your email.")


class ResetPasswordView(APIView):
    authentication_classes = []

    def post(self, request):
        serializer = ResetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = User.objects.filter(email__iexact=data["email"]).first()
        if not user or not default_token_generator.check_token(user, data["token"]):
            return api_response(False, "Invalid or expired reset token.", http_status=status.HTTP_422_UNPROCESSABLE_ENTITY)

        user.set_password(data["password"])
        user.save(update_fields=["password"])
        # Changing the password invalidates the reset token; also drop API sessions
        Token.objects.filter(user=user).delete()
        return api_response(True, "Password reset successfully.")


# ---------------- USER MANAGEMENT (ADMIN) ----------------

def user_totals():
    """Counts over the whole user table, regardless of list filters."""
    return User.objects.aggregate(
        total_users=Count("id"),
        total_admins=Count("id", filter=Q(role=User.ROLE_ADMIN)),
        total_authors=Count("id", filter=Q(role=User.ROLE_AUTHOR)),
        total_verified=Count("id", filter=Q(email_verified_at__isnull=False)),
        active_users=Count("id", filter=Q(status=User.STATUS_ACTIVE)),
        inactive_users=Count("id", filter=Q(status=User.STATUS_INACTIVE)),
        suspended_users=Count("id", filter=Q(status=User.STATUS_SUSPENDED)),
        pending_activation=Count("id", filter=Q(status=User.STATUS_INACTIVE, role=User.ROLE_AUTHOR)),
    )


class UserListView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        params = request.query_params
        qs = User.objects.annotate(posts_count=Count("posts")).order_by("-created_at")

        if params.get("role"):
            qs = qs.filter(role=params["role"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        search = params.get("search")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(email__icontains=search))

        paginator = StandardResultsSetPagination()
        paginator.page_size = 15
        page = paginator.paginate_queryset(qs, request, view=self)
        data = paginator.get_paginated_data(UserListSerializer(page, many=True).data)
        return api_response(True, "Users retrieved successfully.", data, stats=user_totals())


class UserStatsView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        week_ago = timezone.now() - timedelta(days=7)
        stats = User.objects.aggregate(
            total_users=Count("id"),
            admin_users=Count("id", filter=Q(role=User.ROLE_ADMIN)),
            author_users=Count("id", filter=Q(role=User.ROLE_AUTHOR)),
            verified_users=Count("id", filter=Q(email_verified_at__isnull=False)),
            recent_users=Count("id", filter=Q(created_at__gte=week_ago)),
        )
        return api_response(True, "User statistics retrieved successfully.", stats)


class UserDetailView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request, pk):
        user = get_object_or_not_found(User.objects.annotate(posts_count=Count("posts")), "User not found.", pk=pk)
        data = UserListSerializer(user).data
        data["posts"] = PostSummarySerializer(user.posts.order_by("-created_at")[:5], many=True).data
        return api_response(True, "User retrieved successfully.", data)

    def put(self, request, pk):
        user = get_object_or_not_found(User, "User not found.", pk=pk)
        serializer = AdminUserUpdateSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            new_role = serializer.validated_data.get("role", user.role)
            if new_role != User.ROLE_ADMIN:
                last_active_admin_guard(user, None, "Cannot change the role of the last active administrator.")
            user = serializer.save()

        return api_response(True, "User updated successfully.", UserSerializer(user).data)

    patch = put

    def delete(self, request, pk):
        user = get_object_or_not_found(User, "User not found.", pk=pk)

        with transaction.atomic():
            # The last-admin rule is checked before self-deletion on purpose:
            # the sole admin deleting themselves gets the last-admin message.
            last_active_admin_guard(user, None, "Cannot delete the last administrator.")
            if user.pk == request.user.pk:
                raise PermissionDenied("You cannot delete your own account.")
            user.delete()

        logger.info("User %s deleted by admin %s", pk, request.user.pk)
        return api_response(True, "User deleted successfully.")


def change_user_status(user, new_status, refusal_message="Cannot change status of the last active admin account."):
    with transaction.atomic():
        last_active_admin_guard(user, new_status, refusal_message)
        user.status = new_status
        user.save(update_fields=["status", "updated_at"])

    if new_status != User.STATUS_ACTIVE:
        # Tokens of deactivated accounts must stop working immediately
        Token.objects.filter(user=user).delete()
    logger.info("User %s status changed to %s", user.pk, new_status)
    return user


class UserActivateView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request, pk):
        user = get_object_or_not_found(User, "User not found.", pk=pk)
        change_user_status(user, User.STATUS_ACTIVE)
        return api_response(True, "User account activated successfully.", UserSerializer(user).data)


class UserDeactivateView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request, pk):
        user = get_object_or_not_found(User, "User not found.", pk=pk)
        change_user_status(user, User.STATUS_INACTIVE, "Cannot deactivate the last active admin account.")
        return api_response(True, "User account deactivated successfully.", UserSerializer(user).data)


class UserStatusView(APIView):
    permission_classes = [IsAdmin]

    def put(self, request, pk):
        serializer = UserStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = get_object_or_not_found(User, "User not found.", pk=pk)
        change_user_status(user, serializer.validated_data["status"])
        return api_response(True, "User status updated successfully.", UserSerializer(user).data)
