"""Liveness/readiness probe for load balancers."""

from __future__ import annotations

import logging

from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _error_payload(exc: Exception) -> str:
    message = str(exc) or exc.__class__.__name__
    return f"{exc.__class__.__name__}: {message}"


def healthz(_request):
    """Return 200 when the database answers, 503 otherwise."""
    payload = {"ok": True, "db": {"ok": False}}
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        payload["db"]["ok"] = True
    except Exception as exc:
        logger.warning("healthz: database check failed", exc_info=True)
        payload["db"]["error"] = _error_payload(exc)
        payload["ok"] = False
    return JsonResponse(payload, status=200 if payload["ok"] else 503)
