"""
Domain error taxonomy.

Services raise these instead of HTTPException so that the same checks can be
reused from scheduled jobs and tests. The API layer renders them through the
handlers registered in app.main.
"""
import enum
from typing import Optional


class DenialCode(str, enum.Enum):
    BLOCKED_BY_PEER = "BLOCKED_BY_PEER"
    I_BLOCKED = "I_BLOCKED"
    DM_DISABLED = "DM_DISABLED"
    NOT_PARTICIPANT = "NOT_PARTICIPANT"


DENIAL_MESSAGES = {
    DenialCode.BLOCKED_BY_PEER: "You are blocked by this user",
    DenialCode.I_BLOCKED: "You have blocked this user",
    DenialCode.DM_DISABLED: "This user doesn't accept messages",
    DenialCode.NOT_PARTICIPANT: "Access denied to this chat",
}


class DomainError(Exception):
    status_code = 500
    code = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, "code": self.code}


class ValidationError(DomainError):
    """Malformed identifiers, bad payloads, self-targeting actions."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class PermissionDenied(DomainError):
    status_code = 403

    def __init__(self, code: DenialCode, message: Optional[str] = None):
        super().__init__(message or DENIAL_MESSAGES[code], code.value)
        self.denial = code


class ConflictError(DomainError):
    """Duplicate active interaction or a lost optimistic-concurrency race."""
    status_code = 409
    code = "CONFLICT"


class StoreError(DomainError):
    """Opaque persistence failure. Safe to retry: every mutation is idempotent."""
    status_code = 503
    code = "STORE_ERROR"
