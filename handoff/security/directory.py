"""Role, department and project lookups consumed by the access evaluator."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Set

SUPERADMIN_ROLE = "superadmin"


class Directory(Protocol):
    """Capability lookups provided by the surrounding application."""

    async def is_superadmin(self, user_id: str) -> bool:
        """Return ``True`` if the user bypasses all workflow checks."""

    async def user_has_role(self, user_id: str, role_id: str) -> bool:
        """Return ``True`` if the user holds ``role_id``."""

    async def user_department_ids(self, user_id: str) -> List[str]:
        """Departments of every role the user holds."""

    async def user_project_ids(self, user_id: str) -> List[str]:
        """Projects the user is assigned to."""

    async def users_with_role(self, role_id: str) -> List[str]:
        """Users holding ``role_id``."""

    async def users_in_department(self, department_id: str) -> List[str]:
        """Users holding any role in ``department_id``."""

    async def assign_to_project(self, user_id: str, project_id: str) -> None:
        """Add the user to the project roster."""


class InMemoryDirectory(Directory):
    """Directory kept in process memory, for tests and embedding."""

    def __init__(self) -> None:
        self._superadmins: Set[str] = set()
        self._user_roles: Dict[str, Set[str]] = {}
        self._role_departments: Dict[str, str] = {}
        self._role_names: Dict[str, str] = {}
        self._user_projects: Dict[str, Set[str]] = {}

    # ------------------------------------------------------------------
    # Setup
    def add_role(
        self, role_id: str, department_id: Optional[str] = None, name: Optional[str] = None
    ) -> None:
        if department_id:
            self._role_departments[role_id] = department_id
        if name:
            self._role_names[role_id] = name

    def add_user(
        self,
        user_id: str,
        roles: Iterable[str] = (),
        projects: Iterable[str] = (),
        superadmin: bool = False,
    ) -> None:
        self._user_roles.setdefault(user_id, set()).update(roles)
        self._user_projects.setdefault(user_id, set()).update(projects)
        if superadmin:
            self._superadmins.add(user_id)

    def role_user_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {role: 0 for role in self._role_departments}
        counts.update({role: 0 for role in self._role_names})
        for roles in self._user_roles.values():
            for role in roles:
                counts[role] = counts.get(role, 0) + 1
        return counts

    # ------------------------------------------------------------------
    # Directory API
    async def is_superadmin(self, user_id: str) -> bool:
        if user_id in self._superadmins:
            return True
        return any(
            self._role_names.get(role, role).lower() == SUPERADMIN_ROLE
            for role in self._user_roles.get(user_id, ())
        )

    async def user_has_role(self, user_id: str, role_id: str) -> bool:
        return role_id in self._user_roles.get(user_id, ())

    async def user_department_ids(self, user_id: str) -> List[str]:
        departments = {
            self._role_departments[role]
            for role in self._user_roles.get(user_id, ())
            if role in self._role_departments
        }
        return sorted(departments)

    async def user_project_ids(self, user_id: str) -> List[str]:
        return sorted(self._user_projects.get(user_id, ()))

    async def users_with_role(self, role_id: str) -> List[str]:
        return sorted(u for u, roles in self._user_roles.items() if role_id in roles)

    async def users_in_department(self, department_id: str) -> List[str]:
        roles = {r for r, d in self._role_departments.items() if d == department_id}
        return sorted(u for u, held in self._user_roles.items() if held & roles)

    async def assign_to_project(self, user_id: str, project_id: str) -> None:
        self._user_projects.setdefault(user_id, set()).add(project_id)


__all__ = ["Directory", "InMemoryDirectory", "SUPERADMIN_ROLE"]
