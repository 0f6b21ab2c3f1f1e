"""
org/service.py -- User and team administration workflows.

Every public method takes the acting user's Actor first and routes through
org/policy.py before touching the store: reads are filtered or checked
against the visibility rules, writes are admin-only.

Update semantics: methods receive only the fields the caller actually sent
(**changes). A key that is absent leaves the stored value untouched. Whether
an empty string is acceptable is decided by the API schema, not here: names
and emails reject it, phone_number and description treat it as "clear".
team_id=None in changes explicitly detaches a user from their team.

Only employees belong to a team: a team_id on a manager or admin is
rejected, and promoting an employee detaches them. The last live admin can
be neither demoted nor deleted.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.tokens import hash_password
from core.errors import Conflict, NotFound, ValidationError
from org.models import Role, Team, User
from org.policy import (
    Action,
    Actor,
    check_read_team,
    check_read_user,
    ensure_can_write,
    team_scope,
    user_scope,
)
from org.store import OrgStore

logger = logging.getLogger("teamgate.org")

_USER_NOT_FOUND = "utilisateur non trouvé"
_TEAM_NOT_FOUND = "team non trouvée"
_TEAM_EMPLOYEES_ONLY = "seuls les employés appartiennent à une team"


class UserService:
    """Read and administer user accounts. Creation lives in AuthService.register."""

    def __init__(self, store: OrgStore) -> None:
        self.store = store

    def get_profile(self, actor: Actor) -> User:
        user = self.store.get_user(actor.id)
        if user is None:
            raise NotFound(_USER_NOT_FOUND)
        return user

    def get_user(self, actor: Actor, user_id: int) -> User:
        target = self.store.get_user(user_id)
        if target is None:
            raise NotFound(_USER_NOT_FOUND)
        check_read_user(actor, target)
        return target

    def list_users(self, actor: Actor) -> list[User]:
        return self.store.list_users(user_scope(actor))

    def update_user(self, actor: Actor, user_id: int, **changes) -> User:
        """Apply a partial update to a user. Admin only.

        Accepted keys: first_name, last_name, phone_number, email, password,
        role, team_id. password is hashed before storage. Moving a user off the
        manager role drops their manager-team links; moving a user off the
        employee role clears their team_id.
        """
        ensure_can_write(actor, Action.update_user)
        target = self.store.get_user(user_id)
        if target is None:
            raise NotFound(_USER_NOT_FOUND)

        fields = dict(changes)
        if "role" in fields:
            fields["role"] = Role.parse(fields["role"])
            if target.role is Role.admin and fields["role"] is not Role.admin:
                self._ensure_not_last_admin(target)
        role = fields.get("role", target.role)
        if role is not Role.employee:
            if fields.get("team_id") is not None:
                raise ValidationError(_TEAM_EMPLOYEES_ONLY)
            if target.team_id is not None:
                fields["team_id"] = None
        if fields.get("team_id") is not None and self.store.get_team(fields["team_id"]) is None:
            raise NotFound(_TEAM_NOT_FOUND)
        if "password" in fields:
            try:
                fields["password_hash"] = hash_password(fields.pop("password"))
            except ValueError as exc:
                raise ValidationError("mot de passe invalide") from exc
        if not fields:
            return target

        try:
            self.store.update_user(user_id, **fields)
        except IntegrityError as exc:
            raise Conflict("email déjà utilisé") from exc

        if target.role is Role.manager and fields.get("role", Role.manager) is not Role.manager:
            for team_id in target.team_ids:
                self.store.remove_team_manager(team_id, user_id)

        logger.info("User id=%s updated by id=%s (fields=%s)", user_id, actor.id, sorted(changes))
        updated = self.store.get_user(user_id)
        if updated is None:
            raise NotFound(_USER_NOT_FOUND)
        return updated

    def delete_user(self, actor: Actor, user_id: int) -> None:
        """Soft-delete a user. Admin only. A second delete raises NotFound."""
        ensure_can_write(actor, Action.delete_user)
        if user_id == actor.id:
            raise ValidationError("vous ne pouvez pas supprimer votre propre compte")
        target = self.store.get_user(user_id)
        if target is None:
            raise NotFound(_USER_NOT_FOUND)
        if target.role is Role.admin:
            self._ensure_not_last_admin(target)
        if not self.store.soft_delete_user(user_id):
            raise NotFound(_USER_NOT_FOUND)
        logger.info("User id=%s deleted by id=%s", user_id, actor.id)

    def _ensure_not_last_admin(self, target: User) -> None:
        # With no live admin left, registration would fall back to bootstrap.
        if self.store.count_admins() <= 1:
            logger.warning("Refused to remove the last admin id=%s", target.id)
            raise ValidationError("impossible de retirer le dernier admin")


class TeamService:
    """Read and administer teams and their manager assignments."""

    def __init__(self, store: OrgStore) -> None:
        self.store = store

    def create_team(self, actor: Actor, name: str, description: str = "") -> Team:
        ensure_can_write(actor, Action.create_team)
        team_id = self.store.create_team(Team(name=name, description=description or "", created_by_id=actor.id))
        logger.info("Team id=%s created by id=%s", team_id, actor.id)
        return self._load(team_id)

    def get_team(self, actor: Actor, team_id: int) -> Team:
        team = self._load(team_id)
        check_read_team(actor, team)
        return team

    def list_teams(self, actor: Actor) -> list[Team]:
        return self.store.list_teams(team_scope(actor))

    def update_team(self, actor: Actor, team_id: int, **changes) -> Team:
        """Apply a partial update (name, description). Admin only."""
        ensure_can_write(actor, Action.update_team)
        team = self._load(team_id)
        if not changes:
            return team
        self.store.update_team(team_id, **changes)
        logger.info("Team id=%s updated by id=%s (fields=%s)", team_id, actor.id, sorted(changes))
        return self._load(team_id)

    def delete_team(self, actor: Actor, team_id: int) -> None:
        ensure_can_write(actor, Action.delete_team)
        if not self.store.soft_delete_team(team_id):
            raise NotFound(_TEAM_NOT_FOUND)
        logger.info("Team id=%s deleted by id=%s", team_id, actor.id)

    def add_manager(self, actor: Actor, team_id: int, manager_id: int) -> Team:
        """Attach a manager to a team. Attaching twice is a no-op."""
        ensure_can_write(actor, Action.add_manager)
        manager = self.store.get_user(manager_id)
        if manager is None:
            raise NotFound("manager non trouvé")
        if manager.role is not Role.manager:
            raise ValidationError("l'utilisateur n'est pas un manager")
        self._load(team_id)
        if self.store.add_team_manager(team_id, manager_id):
            logger.info("Manager id=%s added to team id=%s by id=%s", manager_id, team_id, actor.id)
        return self._load(team_id)

    def remove_manager(self, actor: Actor, team_id: int, manager_id: int) -> Team:
        """Detach a manager from a team. Detaching an absent link is a no-op."""
        ensure_can_write(actor, Action.remove_manager)
        if self.store.get_user(manager_id) is None:
            raise NotFound("manager non trouvé")
        self._load(team_id)
        if self.store.remove_team_manager(team_id, manager_id):
            logger.info("Manager id=%s removed from team id=%s by id=%s", manager_id, team_id, actor.id)
        return self._load(team_id)

    def _load(self, team_id: int) -> Team:
        team = self.store.get_team(team_id)
        if team is None:
            raise NotFound(_TEAM_NOT_FOUND)
        return team
