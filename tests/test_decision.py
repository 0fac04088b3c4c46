"""
Unit tests for the pure decision function.

No database: grants are unsaved Grant instances.
"""

from datetime import datetime, timedelta

import pytest

from grants.decision import (
    Decision,
    REASON_ACTIVE_GRANT,
    REASON_NO_ACTIVE_GRANT,
    REASON_OUT_OF_SCOPE,
    REASON_OWNER,
    REASON_ROLE_NOT_PERMITTED,
    REASON_SUPERVISOR,
    categories_match,
    decide,
)
from grants.models import EXPIRED, Grant, GrantStatus
from identity.models import Role

NOW = datetime(2024, 3, 1, 12, 0, 0)


def make_grant(
    status=GrantStatus.APPROVED,
    expires_at=NOW + timedelta(days=10),
    scope_limited=False,
    requester_id="req-1",
    subject_id="sub-1",
    grant_id="g-1"
):
    return Grant(
        id=grant_id,
        requester_id=requester_id,
        subject_id=subject_id,
        purpose="care",
        requested_duration_days=30,
        status=status.value,
        scope_limited=scope_limited,
        created_at=NOW - timedelta(days=1),
        expires_at=expires_at if status == GrantStatus.APPROVED else None,
        version=2
    )


# ============================================================================
# Rule order
# ============================================================================

class TestRules:
    """Rules apply in order, first match wins."""

    def test_supervisor_allowed_without_grants(self):
        decision = decide("sup-1", Role.SUPERVISOR, "sub-1", [], NOW)
        assert decision == Decision.allow(REASON_SUPERVISOR)

    def test_supervisor_override_switched_off(self):
        decision = decide("sup-1", Role.SUPERVISOR, "sub-1", [], NOW, supervisor_override=False)
        assert not decision.allowed
        assert decision.reason == REASON_ROLE_NOT_PERMITTED

    def test_owner_allowed(self):
        decision = decide("sub-1", Role.SUBJECT, "sub-1", [], NOW)
        assert decision.allowed
        assert decision.reason == REASON_OWNER

    def test_subject_denied_on_other_subject(self):
        decision = decide("sub-2", Role.SUBJECT, "sub-1", [], NOW)
        assert not decision.allowed
        assert decision.reason == REASON_ROLE_NOT_PERMITTED

    def test_requester_with_active_grant(self):
        decision = decide("req-1", Role.REQUESTER, "sub-1", [make_grant()], NOW)
        assert decision.allowed
        assert decision.reason == REASON_ACTIVE_GRANT
        assert decision.grant_id == "g-1"

    def test_requester_without_grant(self):
        decision = decide("req-1", Role.REQUESTER, "sub-1", [], NOW)
        assert decision == Decision.deny(REASON_NO_ACTIVE_GRANT)

    def test_unknown_role_denied(self):
        decision = decide("x-1", "janitor", "sub-1", [], NOW)
        assert not decision.allowed
        assert decision.reason == REASON_ROLE_NOT_PERMITTED

    def test_role_given_as_string(self):
        assert decide("req-1", "requester", "sub-1", [make_grant()], NOW).allowed

    def test_decision_is_truthy_only_when_allowed(self):
        assert bool(Decision.allow(REASON_OWNER))
        assert not bool(Decision.deny(REASON_NO_ACTIVE_GRANT))


# ============================================================================
# Grant states and expiry
# ============================================================================

class TestGrantStates:
    """Only approved, unexpired grants for the exact pair count."""

    @pytest.mark.parametrize("status", [GrantStatus.PENDING, GrantStatus.DENIED, GrantStatus.REVOKED])
    def test_non_approved_grants_ignored(self, status):
        decision = decide("req-1", Role.REQUESTER, "sub-1", [make_grant(status=status)], NOW)
        assert decision.reason == REASON_NO_ACTIVE_GRANT

    def test_expiry_boundary_is_exclusive(self):
        grant = make_grant(expires_at=NOW)
        assert not decide("req-1", Role.REQUESTER, "sub-1", [grant], NOW).allowed

    def test_one_second_before_expiry_allowed(self):
        grant = make_grant(expires_at=NOW + timedelta(seconds=1))
        assert decide("req-1", Role.REQUESTER, "sub-1", [grant], NOW).allowed

    def test_grant_for_other_pair_ignored(self):
        grants = [
            make_grant(requester_id="req-2"),
            make_grant(subject_id="sub-2", grant_id="g-2"),
        ]
        assert decide("req-1", Role.REQUESTER, "sub-1", grants, NOW).reason == REASON_NO_ACTIVE_GRANT

    def test_effective_status_derives_expired(self):
        grant = make_grant(expires_at=NOW)
        assert grant.status == GrantStatus.APPROVED.value
        assert grant.effective_status(NOW) == EXPIRED
        assert grant.effective_status(NOW - timedelta(seconds=1)) == GrantStatus.APPROVED.value


# ============================================================================
# Scope limitation
# ============================================================================

class TestScope:
    """Scope-limited grants only cover the requester's declared category."""

    def test_in_scope_category_allowed(self):
        grant = make_grant(scope_limited=True)
        decision = decide(
            "req-1", Role.REQUESTER, "sub-1", [grant], NOW,
            resource_category="Cardiology", declared_category="Cardiology"
        )
        assert decision.allowed

    def test_out_of_scope_category_denied(self):
        grant = make_grant(scope_limited=True)
        decision = decide(
            "req-1", Role.REQUESTER, "sub-1", [grant], NOW,
            resource_category="Imaging", declared_category="Cardiology"
        )
        assert decision == Decision.deny(REASON_OUT_OF_SCOPE)

    def test_unlimited_grant_covers_every_category(self):
        decision = decide(
            "req-1", Role.REQUESTER, "sub-1", [make_grant()], NOW,
            resource_category="Imaging", declared_category="Cardiology"
        )
        assert decision.allowed

    def test_any_unlimited_grant_wins(self):
        grants = [
            make_grant(scope_limited=True, grant_id="g-limited"),
            make_grant(scope_limited=False, grant_id="g-full"),
        ]
        decision = decide(
            "req-1", Role.REQUESTER, "sub-1", grants, NOW,
            resource_category="Imaging", declared_category="Cardiology"
        )
        assert decision.allowed
        assert decision.grant_id == "g-full"

    def test_subject_level_check_ignores_scope(self):
        grant = make_grant(scope_limited=True)
        decision = decide("req-1", Role.REQUESTER, "sub-1", [grant], NOW, declared_category="Cardiology")
        assert decision.allowed

    def test_requester_without_specialty_is_out_of_scope(self):
        grant = make_grant(scope_limited=True)
        decision = decide(
            "req-1", Role.REQUESTER, "sub-1", [grant], NOW,
            resource_category="Cardiology", declared_category=None
        )
        assert decision.reason == REASON_OUT_OF_SCOPE

    @pytest.mark.parametrize("resource, declared, expected", [
        ("Cardiology", "cardiology", True),
        (" Cardiology ", "Cardiology", True),
        ("Cardiology", "Imaging", False),
        ("", "Cardiology", False),
        ("Cardiology", None, False),
    ])
    def test_categories_match(self, resource, declared, expected):
        assert categories_match(resource, declared) is expected
