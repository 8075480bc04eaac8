import logging

from django.dispatch import Signal, receiver

from .models import NewsletterSubscriber
from .utils import build_email_html, frontend_url, send_email_via_sendgrid

logger = logging.getLogger(__name__)

# Sent once per post, after the transaction that first publishes it commits
post_published = Signal()


@receiver(post_published)
def send_publication_notification(sender, post, **kwargs):
    subscribers = NewsletterSubscriber.objects.filter(is_active=True)
    post_url = frontend_url(f"blog/{post.slug}")

    sent = 0
    for subscriber in subscribers:
        subject = f"New Blog Post: {post.title}"
        html_message = build_email_html(
            title=f"New Blog Published: {post.title}",
            greeting=subscriber.email,
            message="We've just published a new article on our blog!<br><br>"
                    f"<strong>{post.title}</strong><br><br>"
                    f"<a href='{post_url}' "
                    f"style='display:inline-block; padding:10px 20px; background:#0b5394; color:#fff; border-radius:5px; text-decoration:none;'>"
                    f"Read Full Article</a>",
            footer="If you no longer wish to receive these updates, you can unsubscribe anytime:<br>"
                   f"<a href='{frontend_url(f'newsletter/unsubscribe?email={subscriber.email}')}'>Unsubscribe</a>",
        )
        if send_email_via_sendgrid(subject, html_message, subscriber.email):
            sent += 1

    logger.info("Publication notice for post %s sent to %s subscriber(s)", post.pk, sent)
