"""Cluster API error taxonomy.

Every failure coming back from the Kubernetes client is translated into one
of these before it leaves the cluster package:
- ConflictError: 409, object with that name already exists
- NotFoundError: 404, object (or namespace) does not exist
- ApiError: anything else, including transport failures (code is None)
"""

import json
from typing import Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError


class ApiError(Exception):
    """Base exception for cluster API errors."""

    def __init__(self, code: Optional[int], reason: str, message: str = ''):
        self.code = code
        self.reason = reason
        self.message = message or reason
        label = code if code is not None else 'transport'
        super().__init__(f"{label}: {self.message}")


class ConflictError(ApiError):
    """Object already exists (409)."""

    def __init__(self, reason: str = 'AlreadyExists', message: str = ''):
        super().__init__(409, reason, message)


class NotFoundError(ApiError):
    """Object does not exist (404)."""

    def __init__(self, reason: str = 'NotFound', message: str = ''):
        super().__init__(404, reason, message)


def _status_message(exc: ApiException) -> str:
    """Pull the human message out of a Status body, if there is one."""
    if not exc.body:
        return ''
    try:
        body = json.loads(exc.body)
    except (TypeError, ValueError):
        return str(exc.body)[:200]
    if isinstance(body, dict):
        return body.get('message', '')
    return ''


def translate(exc: Exception) -> ApiError:
    """Map a client-level exception onto the ApiError taxonomy."""
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, ApiException):
        reason = exc.reason or ''
        message = _status_message(exc) or reason
        if exc.status == 409:
            return ConflictError(reason or 'AlreadyExists', message)
        if exc.status == 404:
            return NotFoundError(reason or 'NotFound', message)
        return ApiError(exc.status, reason, message)
    if isinstance(exc, HTTPError):
        return ApiError(None, type(exc).__name__, str(exc))
    raise TypeError(f"Not a cluster API error: {exc!r}")
