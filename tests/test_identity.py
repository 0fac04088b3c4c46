"""
Actor directory tests: registration, visibility, profile and role changes.
"""

import pytest

from audit.models import AuditEntry
from auth.cache_manager import ActorCache, actor_cache
from core.exceptions import ForbiddenActorError, InvalidTargetError, NotFoundError, ValidationError
from grants.service import AuthorizationService, GrantService
from identity.models import Role
from identity.repository import ActorRepository
from identity.service import ActorService
from storage.database import DatabaseManager


class TestRegistration:

    def test_duplicate_username_rejected(self, db, subject):
        with pytest.raises(ValidationError):
            ActorService.register_actor(db, subject.username, "Someone Else", Role.SUBJECT)

    def test_blank_name_rejected(self, db):
        with pytest.raises(ValidationError):
            ActorService.register_actor(db, "nobody", "  ", Role.SUBJECT)

    def test_duplicate_email_rejected(self, db, requester):
        with pytest.raises(ValidationError) as exc:
            ActorService.register_actor(db, "newcomer", "New Comer", Role.REQUESTER, email=requester.email)
        assert exc.value.kind == "validation_error"
        assert ActorRepository.get_by_username(db, "newcomer") is None

    def test_email_race_is_validation_error(self, db, requester, monkeypatch):
        monkeypatch.setattr(ActorRepository, "get_by_email", staticmethod(lambda *a, **kw: None))
        with pytest.raises(ValidationError):
            ActorService.register_actor(db, "newcomer", "New Comer", Role.REQUESTER, email=requester.email)


class TestVisibility:

    def test_everyone_lists_requesters(self, db, subject, requester, other_requester, supervisor):
        for viewer in (subject, requester, supervisor):
            listed = ActorService.list_by_role(db, viewer.id, Role.REQUESTER)
            assert {a["id"] for a in listed} == {requester.id, other_requester.id}

    def test_subjects_hidden_from_subjects(self, db, subject, other_subject, requester):
        with pytest.raises(ForbiddenActorError):
            ActorService.list_by_role(db, subject.id, Role.SUBJECT)
        assert len(ActorService.list_by_role(db, requester.id, Role.SUBJECT)) == 2

    def test_supervisors_listed_to_supervisors_only(self, db, requester, supervisor):
        with pytest.raises(ForbiddenActorError):
            ActorService.list_by_role(db, requester.id, Role.SUPERVISOR)
        assert [a["id"] for a in ActorService.list_by_role(db, supervisor.id, Role.SUPERVISOR)] == [supervisor.id]

    def test_subject_profile_needs_grant(self, db, requester, subject, pending_grant, now):
        with pytest.raises(ForbiddenActorError):
            ActorService.get_actor(db, requester.id, subject.id, now=now)

        GrantService.approve_grant(db, subject.id, pending_grant["id"], now=now)
        assert ActorService.get_actor(db, requester.id, subject.id, now=now)["id"] == subject.id

    def test_subject_reads_self_and_requesters(self, db, subject, requester):
        assert ActorService.get_actor(db, subject.id, subject.id)["role"] == "subject"
        assert ActorService.get_actor(db, subject.id, requester.id)["specialty"] == "Cardiology"

    def test_missing_actor_not_found(self, db, supervisor):
        with pytest.raises(NotFoundError):
            ActorService.get_actor(db, supervisor.id, "missing")


class TestProfileUpdate:

    def test_self_update_is_audited_and_invalidates_cache(self, db, requester):
        assert ActorService.get_profile(db, requester.id)["specialty"] == "Cardiology"

        updated = ActorService.update_profile(db, requester.id, requester.id, {"specialty": "Imaging"})

        assert updated["specialty"] == "Imaging"
        assert ActorService.get_profile(db, requester.id)["specialty"] == "Imaging"
        entry = db.query(AuditEntry).filter(AuditEntry.action == "profile_updated").one()
        assert "specialty" in entry.details

    def test_cannot_update_someone_else(self, db, requester, subject):
        with pytest.raises(ForbiddenActorError):
            ActorService.update_profile(db, requester.id, subject.id, {"full_name": "Changed"})

    def test_role_is_not_a_profile_field(self, db, requester):
        with pytest.raises(ValidationError):
            ActorService.update_profile(db, requester.id, requester.id, {"role": "supervisor"})

    def test_email_taken_by_someone_else_rejected(self, db, requester, other_requester):
        original = requester.email
        with pytest.raises(ValidationError):
            ActorService.update_profile(db, requester.id, requester.id, {"email": other_requester.email})
        assert db.query(AuditEntry).filter(AuditEntry.action == "profile_updated").count() == 0
        assert ActorRepository.get_by_id(db, requester.id).email == original

    def test_email_collision_at_flush_is_validation_error(self, db, requester, other_requester, monkeypatch):
        monkeypatch.setattr(ActorRepository, "get_by_email", staticmethod(lambda *a, **kw: None))
        with pytest.raises(ValidationError):
            ActorService.update_profile(db, requester.id, requester.id, {"email": other_requester.email})

    def test_keeping_own_email_is_allowed(self, db, requester):
        updated = ActorService.update_profile(
            db, requester.id, requester.id, {"email": requester.email, "phone": "555-0100"}
        )
        assert updated["phone"] == "555-0100"


class TestRoleChange:

    def test_only_supervisor_changes_roles(self, db, requester, subject):
        with pytest.raises(ForbiddenActorError):
            ActorService.change_role(db, requester.id, subject.id, Role.REQUESTER)

    def test_role_change_takes_effect_on_next_decision(self, db, supervisor, requester, subject, approved_grant, now):
        ActorService.get_profile(db, requester.id)
        assert AuthorizationService.decide(db, requester.id, subject.id, now=now).allowed

        result = ActorService.change_role(db, supervisor.id, requester.id, Role.SUBJECT)

        assert result["role"] == "subject"
        assert actor_cache.get_profile(requester.id) is None
        assert not AuthorizationService.decide(db, requester.id, subject.id, now=now).allowed
        assert db.query(AuditEntry).filter(AuditEntry.action == "role_changed").count() == 1

    def test_role_committed_elsewhere_is_seen_by_open_session(
        self, db, supervisor, requester, subject, approved_grant, now
    ):
        assert AuthorizationService.decide(db, requester.id, subject.id, now=now).allowed

        other = DatabaseManager.new_session()
        try:
            ActorService.change_role(other, supervisor.id, requester.id, Role.SUBJECT)
        finally:
            other.close()

        decision = AuthorizationService.decide(db, requester.id, subject.id, now=now)
        assert not decision.allowed
        assert requester.role == "subject"

    def test_unchanged_role_rejected(self, db, supervisor, requester):
        with pytest.raises(ValidationError):
            ActorService.change_role(db, supervisor.id, requester.id, Role.REQUESTER)

    def test_missing_target_is_invalid(self, db, supervisor):
        with pytest.raises(InvalidTargetError):
            ActorService.change_role(db, supervisor.id, "missing", Role.SUBJECT)


class TestActorCache:

    def test_profiles_expire(self):
        cache = ActorCache(ttl=0)
        cache.cache_profile("a", {"id": "a"}, ttl=-1)
        assert cache.get_profile("a") is None
        assert cache.misses == 1

    def test_returned_profile_is_a_copy(self):
        cache = ActorCache()
        cache.cache_profile("a", {"id": "a"})
        cache.get_profile("a")["id"] = "b"
        assert cache.get_profile("a") == {"id": "a"}
        assert cache.hits == 2
