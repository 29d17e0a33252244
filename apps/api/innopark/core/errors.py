"""Domain errors mapped onto the HTTP error envelope.

PermissionDeniedError is the permission failure; it is not named
PermissionError so the builtin stays unshadowed.
"""

from __future__ import annotations

from typing import Any


class CRMError(Exception):
    status_code = 500
    code = "crm_error"

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(CRMError):
    status_code = 400
    code = "validation_error"


class NotFoundError(CRMError):
    status_code = 404
    code = "not_found"


class PermissionDeniedError(CRMError):
    status_code = 403
    code = "permission_denied"


class StorageError(CRMError):
    status_code = 500
    code = "storage_error"

    def __init__(self, message: str = "storage operation failed", *, details: Any = None) -> None:
        super().__init__(message, details=details)
