"""
org/models.py -- Domain dataclasses for the organization model.

Pattern: Data class (pure data container, zero logic beyond role parsing).
The store owns persistence, org/policy.py owns visibility rules, and the
workflows in org/service.py and auth/service.py do the work.

Relations are id-based: a User knows the ids of the teams it manages, a Team
knows the ids of its employees and managers. Nothing embeds another entity,
so the admin -> manager -> team -> manager cycle never becomes an object graph.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from core.errors import InvalidRole


class Role(str, Enum):
    """Closed set of roles. Hierarchy: admin > manager > employee."""

    employee = "employee"
    manager = "manager"
    admin = "admin"

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """Return the Role for value, raising InvalidRole for anything else."""
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidRole() from exc


@dataclass
class User:
    """A member of the organization.

    team_id is the single team an employee belongs to. team_ids is the
    manager-team set and is only meaningful for managers. refresh_token and
    refresh_expires_at hold the one live refresh token, overwritten on every
    login and refresh.

    id is None before the record is written to the database.
    """

    email: str
    first_name: str
    last_name: str
    role: Role = Role.employee
    id: int | None = None
    password_hash: str = ""
    phone_number: str = ""
    created_by_id: int | None = None
    team_id: int | None = None
    team_ids: list[int] = field(default_factory=list)
    refresh_token: str | None = None
    refresh_expires_at: str | None = None  # ISO 8601
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Team:
    """A group of employees led by zero or more managers.

    employee_ids and manager_ids are resolved by the store and list only
    non-deleted users.
    """

    name: str
    created_by_id: int
    description: str = ""
    id: int | None = None
    employee_ids: list[int] = field(default_factory=list)
    manager_ids: list[int] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
