"""Domain errors raised by the form core and rendered by the API.

Every error carries the HTTP status it maps to, so routers can let them
propagate and rely on the handler registered in ``formsapi.main``.
"""
from typing import Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class FormsError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class NotFoundError(FormsError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Form not available"


class InactiveFormError(NotFoundError):
    # rendered exactly like a missing form so existence is not leaked
    pass


class AuthenticationError(FormsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Could not validate credentials"


class AuthenticationRequiredError(AuthenticationError):
    message = "Authentication required"


class AuthorizationError(FormsError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Insufficient permissions"


class ConfigurationError(FormsError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid field configuration"

    def __init__(self, message: Optional[str] = None, field_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.field_ids = list(field_ids or [])

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "fields": self.field_ids}


class SubmissionLimitError(FormsError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Submission limit reached for this form"


class InvalidValueError(ValueError):
    """Raised by value coercion; collected into a ValidationError."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ValidationError(FormsError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Submission contains invalid fields"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors

    @property
    def field_ids(self) -> List[str]:
        return [e["field_id"] for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "fields": self.errors}


async def forms_error_handler(request: Request, exc: FormsError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
