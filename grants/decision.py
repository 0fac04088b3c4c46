"""
Authorization decision function.

decide() is pure: given the actor, the owner of the target resource, the
actor's active grants over that owner, an optional resource category and the
evaluation time, it returns Allow or Deny(reason). It never raises and never
touches storage. AuthorizationService (grants.service) loads the inputs.

Rules, first match wins:
  1. supervisor            -> allow (resource reads can be switched off)
  2. actor owns the data   -> allow
  3. requester             -> allow iff an active grant exists and, when a
                              category is given, at least one grant is not
                              scope-limited or the category matches the
                              requester's specialty
  4. anything else         -> deny
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from identity.models import Role

REASON_SUPERVISOR = "supervisor"
REASON_OWNER = "owner"
REASON_ACTIVE_GRANT = "active grant"
REASON_NO_ACTIVE_GRANT = "no active grant"
REASON_OUT_OF_SCOPE = "out of scope"
REASON_ROLE_NOT_PERMITTED = "role not permitted"


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check."""
    allowed: bool
    reason: str
    grant_id: Optional[str] = None

    @classmethod
    def allow(cls, reason: str, grant_id: Optional[str] = None) -> "Decision":
        return cls(True, reason, grant_id)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    def __bool__(self):
        return self.allowed

    def to_dict(self):
        return {"allowed": self.allowed, "reason": self.reason, "grant_id": self.grant_id}


def categories_match(resource_category: Optional[str], declared_category: Optional[str]) -> bool:
    """Case-insensitive, whitespace-trimmed comparison. Missing values never match."""
    if not resource_category or not declared_category:
        return False
    return resource_category.strip().casefold() == declared_category.strip().casefold()


def decide(
    actor_id: str,
    actor_role: Role,
    subject_id: str,
    grants: Iterable,
    now: datetime,
    resource_category: Optional[str] = None,
    declared_category: Optional[str] = None,
    supervisor_override: bool = True
) -> Decision:
    """
    Decide whether actor may access subject_id's data at `now`.

    Args:
        actor_id: Acting actor
        actor_role: Role freshly read from the identity store
        subject_id: Owner of the target resource
        grants: Candidate grants held by the actor over subject_id; expired,
            non-approved or mismatched rows are ignored here as well
        now: Evaluation time (naive UTC)
        resource_category: Category of the resource being read; None for a
            subject-level check, where the scope flag does not apply
        declared_category: The requester's specialty
        supervisor_override: Rule 1 on/off

    Returns:
        Decision with a machine-readable reason
    """
    try:
        role = Role(actor_role)
    except ValueError:
        return Decision.deny(REASON_ROLE_NOT_PERMITTED)

    if role is Role.SUPERVISOR:
        if supervisor_override:
            return Decision.allow(REASON_SUPERVISOR)
        return Decision.deny(REASON_ROLE_NOT_PERMITTED)

    if actor_id == subject_id:
        return Decision.allow(REASON_OWNER)

    if role is not Role.REQUESTER:
        return Decision.deny(REASON_ROLE_NOT_PERMITTED)

    active = [
        g for g in grants
        if g.requester_id == actor_id and g.subject_id == subject_id and g.is_active(now)
    ]
    if not active:
        return Decision.deny(REASON_NO_ACTIVE_GRANT)

    if resource_category is None:
        return Decision.allow(REASON_ACTIVE_GRANT, active[0].id)

    for grant in active:
        if not grant.scope_limited or categories_match(resource_category, declared_category):
            return Decision.allow(REASON_ACTIVE_GRANT, grant.id)

    return Decision.deny(REASON_OUT_OF_SCOPE)
