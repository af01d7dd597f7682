"""
Core — Exception Handling

Custom exceptions and DRF exception handler for consistent API
error envelopes. Every domain error carries a stable code
(``default_code``) and a human-readable detail.

@file core/exceptions.py
"""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger('branchstock')


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class BusinessRuleViolation(APIException):
    """Raised when a business rule is violated at the service layer."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Business rule violation.'
    default_code = 'BUSINESS_RULE_VIOLATION'


class InvalidStateTransition(BusinessRuleViolation):
    """Raised when a state transition is not allowed."""
    default_detail = 'Invalid state transition.'
    default_code = 'INVALID_STATE_TRANSITION'


class ResourceNotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'RESOURCE_NOT_FOUND'


class TrackingDisabledError(APIException):
    """Raised when stock is adjusted for a product that does not track stock."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This product does not track stock.'
    default_code = 'TRACKING_DISABLED'


class NegativeStockError(APIException):
    """Raised when an adjustment would drive a balance below zero."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Stock cannot go negative.'
    default_code = 'NEGATIVE_STOCK_REJECTED'

    def __init__(self, *, available, delta, detail=None):
        self.available = available
        self.delta = delta
        if detail is None:
            detail = (
                f'Stock cannot go negative: available={available}, '
                f'requested delta={delta}.'
            )
        super().__init__(detail=detail)


class BatchAbortedError(APIException):
    """
    Raised when one item of a bulk adjustment fails. The whole batch is
    rolled back; ``index``, ``key`` and ``cause`` identify the failing item.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Bulk adjustment aborted; no item was applied.'
    default_code = 'BATCH_ABORTED'

    def __init__(self, *, index: int, key, cause: APIException):
        self.index = index
        self.key = key
        self.cause = cause
        super().__init__(detail={
            'detail': f'Item {index} failed: {cause.detail}',
            'index': index,
            'reason_code': getattr(cause, 'default_code', 'ERROR'),
        })


class StorageConflictError(APIException):
    """Concurrent write detected by the store; eligible for bounded retry."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Concurrent stock update detected. Please retry.'
    default_code = 'STORAGE_CONFLICT'


class StorageRejectedError(BusinessRuleViolation):
    """The store refused a value (out of range, too long); not retryable."""
    default_detail = 'Stock storage rejected the value.'
    default_code = 'STORAGE_REJECTED'


class StorageUnavailableError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Stock storage is unavailable.'
    default_code = 'STORAGE_UNAVAILABLE'


# ---------------------------------------------------------------------------
# Standard exception handler
# ---------------------------------------------------------------------------

def standard_exception_handler(exc, context):
    """
    Wraps every error response in the standard envelope:
      { "success": false, "errors": {...}, "code": "ERROR_CODE" }
    """
    if isinstance(exc, Http404):
        exc = ResourceNotFoundError()
    elif isinstance(exc, PermissionDenied):
        exc = APIException(detail='Permission denied.', code='PERMISSION_DENIED')
        exc.status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ValidationError):
        data = {
            'success': False,
            'errors': exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages},
            'code': 'VALIDATION_ERROR',
        }
        return Response(data, status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)

    if response is not None:
        errors = {}
        code = getattr(exc, 'default_code', 'ERROR')

        if isinstance(response.data, dict):
            errors = response.data
            code = response.data.pop('code', code) if 'code' in response.data else code
        elif isinstance(response.data, list):
            errors = {'detail': response.data}
        else:
            errors = {'detail': [str(response.data)]}

        response.data = {
            'success': False,
            'errors': errors,
            'code': code,
        }

    if response is None:
        logger.exception('Unhandled exception in view: %s', exc)
        return Response(
            {'success': False, 'errors': {'detail': ['Internal server error.']}, 'code': 'INTERNAL_ERROR'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return response
