"""
Comment moderation: submission, threaded retrieval and the admin actions.
"""
import logging

from django.conf import settings
from django.db.models import F

from .models import Comment

logger = logging.getLogger(__name__)


def initial_approval():
    """Approval state given to a newly submitted comment."""
    return bool(settings.COMMENTS_AUTO_APPROVE)


def submit_comment(post, data):
    comment = Comment.objects.create(post=post, is_approved=initial_approval(), **data)
    logger.info(
        "Comment %s submitted on post %s (%s)",
        comment.pk, post.pk, "approved" if comment.is_approved else "pending",
    )
    return comment


def _thread_root(comment, by_id):
    seen = set()
    while comment.parent_id is not None and comment.parent_id in by_id and comment.pk not in seen:
        seen.add(comment.pk)
        comment = by_id[comment.parent_id]
    return comment


def comment_tree(post):
    """
    Approved top-level comments, newest first, each carrying its approved
    replies oldest first in `thread_replies`. Replies to replies are shown
    under the top-level comment their thread starts from.
    """
    comments = list(post.comments.order_by("created_at", "id"))
    by_id = {comment.pk: comment for comment in comments}

    roots = {}
    for comment in comments:
        if comment.parent_id is None and comment.is_approved:
            comment.thread_replies = []
            roots[comment.pk] = comment

    for comment in comments:
        if comment.parent_id is None or not comment.is_approved:
            continue
        root = _thread_root(comment, by_id)
        if root.pk in roots:
            roots[root.pk].thread_replies.append(comment)

    return sorted(roots.values(), key=lambda c: (c.created_at, c.pk), reverse=True)


def moderation_queue():
    return (
        Comment.objects.pending()
        .select_related("post", "parent")
        .order_by("-created_at", "-id")
    )


def approve_comment(comment):
    if not comment.is_approved:
        comment.is_approved = True
        comment.save(update_fields=["is_approved", "updated_at"])
        logger.info("Comment %s approved", comment.pk)
    return comment


def like_comment(comment):
    Comment.objects.filter(pk=comment.pk).update(likes=F("likes") + 1)
    comment.refresh_from_db(fields=["likes"])
    return comment.likes


def delete_comment(comment):
    comment_id = comment.pk
    # replies go with it (parent FK cascades)
    comment.delete()
    logger.info("Comment %s deleted", comment_id)
