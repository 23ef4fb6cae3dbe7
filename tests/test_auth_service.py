"""Unit tests for auth/service.py -- registration and two-step login.

Covers:
- Registration stores a bcrypt verifier, never the password
- Weak passwords and taken usernames raise PolicyViolation and are audited
- Unknown username and wrong password give the same InvalidCredential
- Password step issues a challenge; OTP step mints a verifiable token
- Exactly one audit record per outcome
- Password change requires the current password and the policy
"""

import pytest

from audit.models import Origin
from auth.models import Role
from core.errors import ChallengeConsumed, InvalidCredential, PolicyViolation

PASSWORD = "Correct-Horse-9!"


def _actions(audit_store) -> list[str]:
    return [r.action for r in reversed(audit_store.list_recent(limit=500))]


def test_register_stores_hash_not_password(auth_service, account_store):
    account = auth_service.register("ada", PASSWORD, Role.SUBMITTER)
    stored = account_store.get_by_id(account.id)
    assert stored.username == "ada"
    assert stored.role is Role.SUBMITTER
    assert stored.hashed_password != PASSWORD
    assert stored.hashed_password.startswith("$2b$")
    assert stored.mfa_enabled


def test_register_audits_success(auth_service, audit_store):
    account = auth_service.register("ada", PASSWORD, "reviewer", Origin("10.0.0.5", "pytest"))
    record = audit_store.list_recent(limit=1)[0]
    assert record.action == "auth.register"
    assert record.actor_id == account.id
    assert record.ip_address == "10.0.0.5"
    assert PASSWORD not in record.detail


def test_register_weak_password_rejected_and_audited(auth_service, audit_store, account_store):
    with pytest.raises(PolicyViolation):
        auth_service.register("ada", "password", Role.SUBMITTER)
    assert account_store.get_by_username("ada") is None
    assert _actions(audit_store) == ["auth.register.rejected"]


def test_register_duplicate_username_rejected(auth_service):
    auth_service.register("ada", PASSWORD, Role.SUBMITTER)
    with pytest.raises(PolicyViolation) as exc_info:
        auth_service.register("ada", PASSWORD, Role.REVIEWER)
    assert exc_info.value.message == "Username is not available."


def test_unknown_user_and_wrong_password_look_identical(auth_service):
    auth_service.register("ada", PASSWORD, Role.SUBMITTER)
    with pytest.raises(InvalidCredential) as unknown:
        auth_service.login("nobody", PASSWORD)
    with pytest.raises(InvalidCredential) as wrong:
        auth_service.login("ada", "Wrong-Password-1!")
    assert unknown.value.code == wrong.value.code
    assert unknown.value.message == wrong.value.message


def test_unknown_user_failure_is_anonymous_in_audit(auth_service, audit_store):
    with pytest.raises(InvalidCredential):
        auth_service.login("nobody", PASSWORD)
    record = audit_store.list_recent(limit=1)[0]
    assert record.action == "auth.login.failed"
    assert record.actor_id is None


def test_full_two_step_login(auth_service, audit_store):
    account = auth_service.register("ada", PASSWORD, Role.REVIEWER)
    issued = auth_service.login("ada", PASSWORD)
    assert issued.account_id == account.id
    assert len(issued.code) == 6

    result = auth_service.verify_challenge(issued.account_id, issued.code)
    assert result.claims.account_id == account.id
    assert result.claims.role is Role.REVIEWER
    assert auth_service.tokens.verify(result.token) == result.claims

    assert _actions(audit_store) == ["auth.register", "auth.challenge.issued", "auth.login.success"]


def test_code_cannot_be_replayed(auth_service):
    auth_service.register("ada", PASSWORD, Role.SUBMITTER)
    issued = auth_service.login("ada", PASSWORD)
    auth_service.verify_challenge(issued.account_id, issued.code)
    with pytest.raises(ChallengeConsumed):
        auth_service.verify_challenge(issued.account_id, issued.code)


def test_audit_never_contains_code(auth_service, audit_store):
    auth_service.register("ada", PASSWORD, Role.SUBMITTER)
    issued = auth_service.login("ada", PASSWORD)
    auth_service.verify_challenge(issued.account_id, issued.code)
    assert all(issued.code not in r.detail for r in audit_store.list_recent(limit=500))


class TestChangePassword:
    def test_change_password(self, auth_service):
        account = auth_service.register("ada", PASSWORD, Role.SUBMITTER)
        auth_service.change_password(account.id, PASSWORD, "Another-Horse-7?")
        with pytest.raises(InvalidCredential):
            auth_service.login("ada", PASSWORD)
        assert auth_service.login("ada", "Another-Horse-7?").code

    def test_wrong_current_password(self, auth_service, audit_store):
        account = auth_service.register("ada", PASSWORD, Role.SUBMITTER)
        with pytest.raises(InvalidCredential):
            auth_service.change_password(account.id, "Wrong-Password-1!", "Another-Horse-7?")
        assert audit_store.list_recent(limit=1)[0].action == "auth.password_change.failed"

    def test_weak_new_password(self, auth_service):
        account = auth_service.register("ada", PASSWORD, Role.SUBMITTER)
        with pytest.raises(PolicyViolation):
            auth_service.change_password(account.id, PASSWORD, "weak")
