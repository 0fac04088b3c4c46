"""
Typed error taxonomy for the access-grant engine.

Every failure the services raise is one of these kinds. The HTTP gateway maps
``kind`` to a fixed status class; the kind is the contract, the status code is
a transport detail.

Kinds:
  - forbidden_actor: role or ownership mismatch
  - invalid_state: illegal lifecycle transition
  - invalid_target: referenced actor/resource missing or of the wrong role
  - not_found: identifier does not resolve
  - storage_unavailable: collaborator failure, retryable by the caller
  - validation_error: malformed input
"""

from typing import Optional

from core.timeutils import utcnow


class AccessControlError(Exception):
    """Base class for all engine errors."""

    kind = "access_control_error"
    status_code = 400

    def __init__(self, message: str, actor_id: Optional[str] = None,
                 target_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.actor_id = actor_id
        self.target_id = target_id
        self.timestamp = utcnow()

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


class ForbiddenActorError(AccessControlError):
    kind = "forbidden_actor"
    status_code = 403


class InvalidStateError(AccessControlError):
    kind = "invalid_state"
    status_code = 400


class InvalidTargetError(AccessControlError):
    kind = "invalid_target"
    status_code = 403


class NotFoundError(AccessControlError):
    kind = "not_found"
    status_code = 404


class StorageUnavailableError(AccessControlError):
    """Storage collaborator failed. Retryable; never retried inside the engine."""

    kind = "storage_unavailable"
    status_code = 503
    retryable = True


class ValidationError(AccessControlError):
    kind = "validation_error"
    status_code = 400
