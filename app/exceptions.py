"""
Application exception hierarchy.

Services raise these; the handlers registered in ``app.main`` are the
single place that turns them into HTTP responses.  Every handler emits
the same envelope::

    {"errors": {"<field or resource>": ["<message>", ...]}}

Hierarchy::

    ConduitError (base)
    ├── ValidationError  → 422 Unprocessable Entity
    ├── AuthError        → 401 Unauthorized
    ├── ForbiddenError   → 403 Forbidden
    └── NotFoundError    → 404 Not Found
"""

from typing import Any, Dict, List, Optional


class ConduitError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  Client-safe error description.
        context:  Extra debug info for logs; never returned to the client.
    """

    status_code: int = 500
    error_key: str = "body"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    @property
    def errors(self) -> Dict[str, List[str]]:
        return {self.error_key: [self.message]}


class ValidationError(ConduitError):
    """Client input is malformed or conflicts with existing data."""

    status_code = 422

    def __init__(
        self,
        message: str = "is invalid",
        field: str = "body",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.error_key = field


class AuthError(ConduitError):
    """Missing, malformed or expired token, or bad credentials."""

    status_code = 401
    error_key = "auth"

    def __init__(
        self,
        message: str = "invalid credentials",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(ConduitError):
    """The caller is authenticated but does not own the resource."""

    status_code = 403

    def __init__(
        self,
        resource: str = "resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        super().__init__(message="forbidden", context=ctx)
        self.resource = resource
        self.error_key = resource


class NotFoundError(ConduitError):
    """
    The requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert that into
    this exception so routers stay free of status-code logic.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message="not found", context=ctx)
        self.resource = resource
        self.error_key = resource
