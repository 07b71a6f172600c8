"""
Error taxonomy for the ledger engine.

Services raise these directly. They subclass HTTPException so the API layer
renders them without translation, while service callers can catch the
specific class.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException


class LedgerError(HTTPException):
    status_code = 500
    error_code = "ledger_error"

    def __init__(self, message: str, **context: Any):
        self.message = message
        detail: Dict[str, Any] = {"error": self.error_code, "message": message}
        detail.update({key: value for key, value in context.items() if value is not None})
        super().__init__(status_code=self.status_code, detail=detail)

    def __str__(self) -> str:
        return self.message


class ValidationError(LedgerError):
    """Malformed or type-inconsistent transaction request."""
    status_code = 422
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, field=field)


class NotFoundError(LedgerError):
    """Referenced entity does not exist or is outside the caller's budget scope."""
    status_code = 404
    error_code = "not_found"

    def __init__(self, entity: str, entity_id: Optional[str] = None, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            message = f"{entity} with id {entity_id} not found"
        super().__init__(message, entity=entity, entity_id=entity_id)


class ConflictError(LedgerError):
    """Requested transition is not allowed from the current state."""
    status_code = 409
    error_code = "conflict"

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message, entity_id=entity_id)


class StoreError(LedgerError):
    """Durable store failure; the unit of work has been rolled back."""
    status_code = 503
    error_code = "store_error"
