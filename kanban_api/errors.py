from __future__ import annotations

from typing import Any, Optional


class KanbanError(Exception):
    """Base class for errors the API reports back to the caller."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class BadRequestError(KanbanError):
    status_code = 400
    code = "bad_request"


class UnauthorizedError(KanbanError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(KanbanError):
    status_code = 403
    code = "forbidden"


class NotFoundError(KanbanError):
    status_code = 404
    code = "not_found"
