"""
org/policy.py -- Visibility and authorization engine.

Pure decision logic: no store access, no I/O, no logging. Every function
takes an Actor (the authenticated user's id, role and team affiliation) plus
the target record or nothing, and either returns a decision or raises a
typed error from core/errors.py.

Rules (admin > manager > employee; no role sees a role above it):

  actor     users visible                            teams visible
  admin     everyone                                 every team
  manager   self + employees of the managed teams    the managed teams
  employee  self + employees of the same team        the employee's own team

Writes on users and teams (create, update, delete, manager assignment) are
admin-only. Registration before any admin exists is handled by the
registration workflow, not here.

Listings are expressed as UserScope / TeamScope values that org/store.py
translates into SQL, so the visibility rule lives in exactly one place and
the store never needs to know about roles beyond the filter it is handed.

Every role branch ends with an explicit fallthrough that raises, so adding a
Role member without updating this module fails loudly instead of granting or
denying access silently.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.errors import Forbidden
from org.models import Role, Team, User


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as far as access decisions are concerned."""

    id: int
    role: Role
    team_id: int | None = None
    team_ids: frozenset[int] = frozenset()

    @classmethod
    def from_user(cls, user: User) -> Actor:
        return cls(
            id=user.id,
            role=user.role,
            team_id=user.team_id,
            team_ids=frozenset(user.team_ids),
        )


@dataclass(frozen=True)
class UserScope:
    """Filter for user listings.

    everyone=True disables filtering. Otherwise a user is visible when its
    id is in user_ids, or when it is an employee whose team_id is in
    employee_team_ids.
    """

    everyone: bool = False
    user_ids: frozenset[int] = frozenset()
    employee_team_ids: frozenset[int] = frozenset()


@dataclass(frozen=True)
class TeamScope:
    """Filter for team listings. everyone=True disables filtering."""

    everyone: bool = False
    team_ids: frozenset[int] = frozenset()


class Action(str, Enum):
    """Admin-only writes. The value completes "seul un admin peut ..."."""

    create_user = "créer des utilisateurs"
    update_user = "modifier des utilisateurs"
    delete_user = "supprimer des utilisateurs"
    create_team = "créer des teams"
    update_team = "modifier des teams"
    delete_team = "supprimer des teams"
    add_manager = "affecter des managers"
    remove_manager = "retirer des managers"


def _unknown_role(role) -> ValueError:
    return ValueError(f"unhandled role {role!r}")


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def user_scope(actor: Actor) -> UserScope:
    """Return the filter selecting the users actor may list."""
    if actor.role is Role.admin:
        return UserScope(everyone=True)
    if actor.role is Role.manager:
        return UserScope(user_ids=frozenset({actor.id}), employee_team_ids=actor.team_ids)
    if actor.role is Role.employee:
        team_ids = frozenset({actor.team_id}) if actor.team_id is not None else frozenset()
        return UserScope(user_ids=frozenset({actor.id}), employee_team_ids=team_ids)
    raise _unknown_role(actor.role)


def team_scope(actor: Actor) -> TeamScope:
    """Return the filter selecting the teams actor may list."""
    if actor.role is Role.admin:
        return TeamScope(everyone=True)
    if actor.role is Role.manager:
        return TeamScope(team_ids=actor.team_ids)
    if actor.role is Role.employee:
        if actor.team_id is None:
            return TeamScope()
        return TeamScope(team_ids=frozenset({actor.team_id}))
    raise _unknown_role(actor.role)


def can_see_user(actor: Actor, target: User) -> bool:
    """Apply user_scope(actor) to a single record."""
    scope = user_scope(actor)
    if scope.everyone or target.id in scope.user_ids:
        return True
    return target.role is Role.employee and target.team_id in scope.employee_team_ids


def can_see_team(actor: Actor, team: Team) -> bool:
    """Apply team_scope(actor) to a single record."""
    scope = team_scope(actor)
    return scope.everyone or team.id in scope.team_ids


# ---------------------------------------------------------------------------
# Single-record reads
# ---------------------------------------------------------------------------


def check_read_user(actor: Actor, target: User) -> None:
    """Raise Forbidden unless actor may read target by id.

    Employees may read themselves and employees of their own team. Managers
    may read anyone except an admin. Admins read everyone.
    """
    if actor.role is Role.admin:
        return
    if actor.role is Role.manager:
        if target.role is Role.admin:
            raise Forbidden()
        return
    if actor.role is Role.employee:
        if target.id == actor.id:
            return
        same_team = actor.team_id is not None and target.team_id == actor.team_id
        if target.role is not Role.employee or not same_team:
            raise Forbidden()
        return
    raise _unknown_role(actor.role)


def check_read_team(actor: Actor, team: Team) -> None:
    """Raise Forbidden unless team is in the actor's visible team set."""
    if not can_see_team(actor, team):
        raise Forbidden()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def can_write(actor: Actor) -> bool:
    if actor.role is Role.admin:
        return True
    if actor.role in (Role.manager, Role.employee):
        return False
    raise _unknown_role(actor.role)


def ensure_can_write(actor: Actor, action: Action) -> None:
    """Raise Forbidden("seul un admin peut <action>") for non-admin actors."""
    if not can_write(actor):
        raise Forbidden(f"seul un admin peut {action.value}")


# ---------------------------------------------------------------------------
# Role assignment
# ---------------------------------------------------------------------------


def resolve_role(requested: str | Role | None) -> Role:
    """Default an unspecified role to employee; reject anything unknown."""
    if requested is None or requested == "":
        return Role.employee
    return Role.parse(requested)


def check_role_assignment(role: Role, creator: User | None) -> None:
    """Only an admin creator may hand out the admin or manager role.

    creator is None during bootstrap (no admin exists yet), which the
    registration workflow handles before calling this.
    """
    if role is Role.employee:
        return
    if role in (Role.manager, Role.admin):
        if creator is None or creator.role is not Role.admin:
            raise Forbidden("seul un admin peut créer des admins ou managers")
        return
    raise _unknown_role(role)
