"""Unit tests for auth/acl.py -- the role x resource permission matrix.

Covers:
- authorize() returns exactly the matrix entry for every cell
- Unknown roles, resources, and actions are denied
- The policy cannot be mutated after construction
- as_dict() covers the full grid
"""

import itertools

import pytest

from auth.acl import DEFAULT_POLICY, AccessPolicy
from auth.models import Action, ResourceType, Role

EXPECTED = {
    (Role.SUBMITTER, ResourceType.SUBMISSION): {Action.CREATE, Action.READ},
    (Role.SUBMITTER, ResourceType.GRADE): {Action.READ},
    (Role.SUBMITTER, ResourceType.AUDIT_LOG): set(),
    (Role.REVIEWER, ResourceType.SUBMISSION): {Action.READ, Action.UPDATE},
    (Role.REVIEWER, ResourceType.GRADE): {Action.CREATE, Action.READ, Action.UPDATE},
    (Role.REVIEWER, ResourceType.AUDIT_LOG): {Action.READ},
    (Role.AUDITOR, ResourceType.SUBMISSION): {Action.READ, Action.DELETE},
    (Role.AUDITOR, ResourceType.GRADE): {Action.READ},
    (Role.AUDITOR, ResourceType.AUDIT_LOG): {Action.READ, Action.DELETE},
}


@pytest.mark.parametrize("role, resource, action", list(itertools.product(Role, ResourceType, Action)))
def test_authorize_matches_matrix(role, resource, action):
    assert DEFAULT_POLICY.authorize(role, resource, action) == (action in EXPECTED[(role, resource)])


def test_string_values_are_accepted():
    assert DEFAULT_POLICY.authorize("reviewer", "grade", "create")
    assert not DEFAULT_POLICY.authorize("submitter", "grade", "create")


@pytest.mark.parametrize(
    "role, resource, action",
    [("admin", "submission", "read"), ("reviewer", "course", "read"), ("reviewer", "grade", "publish")],
)
def test_unknown_values_are_denied(role, resource, action):
    assert DEFAULT_POLICY.authorize(role, resource, action) is False


def test_missing_role_has_no_permissions():
    policy = AccessPolicy({Role.REVIEWER: {ResourceType.GRADE: {Action.READ}}})
    assert not policy.authorize(Role.SUBMITTER, ResourceType.GRADE, Action.READ)
    assert policy.permissions(Role.SUBMITTER, ResourceType.GRADE) == frozenset()


def test_policy_is_immutable_after_construction():
    source = {Role.SUBMITTER: {ResourceType.GRADE: {Action.READ}}}
    policy = AccessPolicy(source)
    source[Role.SUBMITTER][ResourceType.GRADE].add(Action.DELETE)
    assert not policy.authorize(Role.SUBMITTER, ResourceType.GRADE, Action.DELETE)
    with pytest.raises(TypeError):
        policy._matrix[Role.AUDITOR] = {}


def test_as_dict_covers_full_grid():
    grid = DEFAULT_POLICY.as_dict()
    assert set(grid) == {r.value for r in Role}
    for row in grid.values():
        assert set(row) == {r.value for r in ResourceType}
    assert grid["submitter"]["audit_log"] == []
    assert grid["reviewer"]["grade"] == ["create", "read", "update"]
