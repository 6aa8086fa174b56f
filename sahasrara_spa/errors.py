"""API error taxonomy.

Handlers raise these; the app's exception handlers render them as
`{"success": false, "error": <message>}` with the matching status code.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message}
        body.update(self.extra)
        return body


class BadRequest(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Locked(ApiError):
    status_code = 423


class InternalError(ApiError):
    status_code = 500
