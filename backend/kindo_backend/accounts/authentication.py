from rest_framework.authentication import TokenAuthentication
from rest_framework.exceptions import AuthenticationFailed


class BearerTokenAuthentication(TokenAuthentication):
    """DRF token auth using the `Authorization: Bearer <key>` scheme the frontend sends."""

    keyword = "Bearer"


class OptionalBearerTokenAuthentication(BearerTokenAuthentication):
    """
    For public endpoints: a missing, revoked or inactive user's token just
    makes the request anonymous instead of failing it.
    """

    def authenticate(self, request):
        try:
            return super().authenticate(request)
        except AuthenticationFailed:
            return None
