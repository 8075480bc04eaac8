"""
Authorization predicates shared by every mutation endpoint.

The plain functions take the acting user explicitly; the DRF permission
classes wrap them for use in `permission_classes`.
"""
import logging

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from .models import User

logger = logging.getLogger(__name__)


def is_admin(user):
    return bool(user and user.is_authenticated and user.role == User.ROLE_ADMIN)


def is_owner(user, post):
    return bool(user and user.is_authenticated and post.author_id == user.id)


def can_mutate_post(user, post):
    return is_admin(user) or is_owner(user, post)


def last_active_admin_guard(target_user, target_new_state, message="Cannot remove the last active administrator."):
    """
    Refuse a change that could leave the platform without an active admin.

    `target_new_state` is the status the target would end up in; pass None when
    the target is being deleted or demoted away from admin. Must run inside a
    transaction so the active admin rows stay locked until the change commits.
    """
    if target_user.role != User.ROLE_ADMIN or target_new_state == User.STATUS_ACTIVE:
        return

    active_admins = list(
        User.objects.select_for_update()
        .filter(role=User.ROLE_ADMIN, status=User.STATUS_ACTIVE)
        .values_list("pk", flat=True)
    )
    if len(active_admins) <= 1:
        logger.warning("Refused change to admin %s: last active administrator", target_user.pk)
        raise PermissionDenied(message)


def ensure_can_mutate_post(user, post, message="You do not have permission to modify this post."):
    if not can_mutate_post(user, post):
        raise PermissionDenied(message)


class IsAdmin(BasePermission):
    message = "Access denied. Admin privileges required."

    def has_permission(self, request, view):
        return is_admin(request.user)


class IsAuthor(BasePermission):
    message = "Access denied. Author privileges required."

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_author)
