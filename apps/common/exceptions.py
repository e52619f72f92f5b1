import logging
from contextlib import contextmanager

from django.db import DatabaseError
from rest_framework import exceptions, status
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class NotFound(exceptions.NotFound):
    default_detail = "Not found."
    default_code = "not_found"


class Forbidden(exceptions.PermissionDenied):
    default_detail = "Access denied"
    default_code = "forbidden"


class StoreFailure(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Storage operation failed."
    default_code = "store_failure"


@contextmanager
def store_errors(message):
    """Re-raise database errors as StoreFailure, keeping the original as the cause."""
    try:
        yield
    except DatabaseError as exc:
        logger.exception("%s", message)
        raise StoreFailure(f"{message}: {exc}") from exc


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {"non_field_errors": response.data}

    response.data = {
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
