import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

from apps.core.exceptions import MessError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """DRF handler plus domain errors (400) and transient database failures (503)"""
    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, MessError):
        set_rollback()
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, DatabaseError):
        set_rollback()
        view = context.get('view')
        logger.error(f"Transient database failure in {view.__class__.__name__ if view else 'unknown view'}: {exc}")
        return Response(
            {'error': 'Service temporarily unavailable, please retry', 'kind': 'TRANSIENT'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    return None
