import logging

from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BusinessRuleViolation(APIException):
    """A well-formed request refused by a domain rule (e.g. deleting a used category)."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "business_rule"


# Helper for standardized API responses
def api_response(success, message, data=None, http_status=status.HTTP_200_OK, **extra):
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return Response(body, status=http_status)


def _detail_message(detail):
    if isinstance(detail, (list, tuple)) and detail:
        return _detail_message(detail[0])
    if isinstance(detail, dict):
        return _detail_message(next(iter(detail.values()), ""))
    return str(detail)


def api_exception_handler(exc, context):
    """Render every API failure in the same envelope as successful responses."""
    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "view")
        message = str(exc) if settings.DEBUG else "Internal server error"
        return api_response(False, message, http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, ValidationError):
        errors = response.data if isinstance(response.data, dict) else {"non_field_errors": response.data}
        response.data = {
            "success": False,
            "message": "Validation errors occurred",
            "errors": errors,
        }
        response.status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
        return response

    detail = response.data.get("detail", response.data) if isinstance(response.data, dict) else response.data
    response.data = {"success": False, "message": _detail_message(detail)}
    return response


def get_object_or_not_found(queryset, message="Not found.", **lookup):
    """Explicit lookup at the top of a handler; NotFound carries a resource-specific message."""
    manager = getattr(queryset, "_default_manager", queryset)
    obj = manager.filter(**lookup).first()
    if obj is None:
        raise NotFound(message)
    return obj
