"""
auth/acl.py -- Static role x resource-type -> actions permission matrix.

AccessPolicy is built once at startup and injected (app.state.policy). Its
internal mapping is a MappingProxyType over frozensets, so nothing can mutate
it after construction. authorize() is a pure lookup with default deny: a role
or resource type missing from the matrix has no permissions.

Denials have no side effects here. The caller (auth.dependencies) writes the
audit record and turns the denial into HTTP 403.

Layer rule: no imports from api/, audit/, or vault/.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from auth.models import Action, ResourceType, Role


class AccessPolicy:
    def __init__(self, matrix: Mapping[Role, Mapping[ResourceType, Iterable[Action]]]) -> None:
        self._matrix: Mapping[Role, Mapping[ResourceType, frozenset[Action]]] = MappingProxyType(
            {
                Role(role): MappingProxyType(
                    {ResourceType(resource): frozenset(Action(a) for a in actions) for resource, actions in row.items()}
                )
                for role, row in matrix.items()
            }
        )

    def authorize(self, role: Role | str, resource_type: ResourceType | str, action: Action | str) -> bool:
        """Return True iff action is in policy[role][resource_type]. Unknown values are denied."""
        try:
            role, resource_type, action = Role(role), ResourceType(resource_type), Action(action)
        except ValueError:
            return False
        return action in self._matrix.get(role, {}).get(resource_type, frozenset())

    def permissions(self, role: Role | str, resource_type: ResourceType | str) -> frozenset[Action]:
        try:
            return self._matrix.get(Role(role), {}).get(ResourceType(resource_type), frozenset())
        except ValueError:
            return frozenset()

    def as_dict(self) -> dict[str, dict[str, list[str]]]:
        """Serializable view for GET /system/acl and the CLI. Every role x resource cell is present."""
        return {
            role.value: {
                resource.value: sorted(a.value for a in self.permissions(role, resource)) for resource in ResourceType
            }
            for role in Role
        }


DEFAULT_POLICY = AccessPolicy(
    {
        Role.SUBMITTER: {
            ResourceType.SUBMISSION: {Action.CREATE, Action.READ},
            ResourceType.GRADE: {Action.READ},
        },
        Role.REVIEWER: {
            ResourceType.SUBMISSION: {Action.READ, Action.UPDATE},
            ResourceType.GRADE: {Action.CREATE, Action.READ, Action.UPDATE},
            ResourceType.AUDIT_LOG: {Action.READ},
        },
        Role.AUDITOR: {
            ResourceType.SUBMISSION: {Action.READ, Action.DELETE},
            ResourceType.GRADE: {Action.READ},
            ResourceType.AUDIT_LOG: {Action.READ, Action.DELETE},
        },
    }
)
