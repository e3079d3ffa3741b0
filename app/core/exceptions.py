# app/core/exceptions.py
"""
Domain error taxonomy shared by every moderation service.

ValidationError       malformed input, nothing persisted
AuthorizationError    missing role / not the claim holder, no state change
NotFoundError         referenced entity does not exist
ConflictError         concurrent claim, duplicate escalation or appeal
InvalidStateError     operation not allowed from the entity's current state
IntegrityViolation    signature mismatch, mutation of immutable audit data (fatal)
TransientExternalError  retriable failure of an external collaborator
"""
from datetime import datetime
from typing import Dict, Optional


class ModerationError(Exception):
    code = "moderation_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ModerationError):
    code = "validation_error"

    def __init__(self, errors: Dict[str, str], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors

    def __str__(self) -> str:
        details = "; ".join(f"{field}: {reason}" for field, reason in self.errors.items())
        return f"{self.message} ({details})"


class AuthorizationError(ModerationError):
    code = "authorization_error"


class NotFoundError(ModerationError):
    code = "not_found"


class ConflictError(ModerationError):
    code = "conflict"


class AlreadyClaimedError(ConflictError):
    code = "already_claimed"

    def __init__(self, report_id: str, holder_id: str, expires_at: datetime):
        super().__init__(
            f"Report {report_id} already claimed by {holder_id} until {expires_at.isoformat()}"
        )
        self.report_id = report_id
        self.holder_id = holder_id
        self.expires_at = expires_at


class InvalidStateError(ModerationError):
    code = "invalid_state"


class IntegrityViolation(ModerationError):
    code = "integrity_violation"


class AuditImmutableError(IntegrityViolation):
    code = "audit_immutable"


class SigningKeyUnavailableError(IntegrityViolation):
    code = "signing_key_unavailable"


class TransientExternalError(ModerationError):
    code = "transient_external_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentExternalError(ModerationError):
    code = "permanent_external_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
