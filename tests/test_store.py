"""Unit tests for org/store.py -- OrgStore persistence and relation loading.

Covers:
- soft-deleted users and teams vanish from lookups, listings and membership
- list_users() / list_teams() honour UserScope / TeamScope
- manager-team links are idempotent in both directions
- rotate_refresh_token() is a compare-and-swap on the stored token
- unique email and update field whitelisting
"""

import pytest
from sqlalchemy.exc import IntegrityError

from org.models import Role, Team, User
from org.policy import TeamScope, UserScope
from org.store import OrgStore


class TestUsers:
    def test_create_and_get(self, store: OrgStore, add_user) -> None:
        uid = add_user("ada@acme.io", Role.manager)
        user = store.get_user(uid)
        assert user is not None
        assert user.email == "ada@acme.io"
        assert user.role is Role.manager
        assert user.created_at
        assert store.get_user_by_email("ada@acme.io").id == uid

    def test_duplicate_email_raises(self, store: OrgStore, add_user) -> None:
        add_user("dup@acme.io")
        with pytest.raises(IntegrityError):
            add_user("dup@acme.io")

    def test_soft_delete_hides_user(self, store: OrgStore, add_user) -> None:
        uid = add_user("gone@acme.io")
        assert store.soft_delete_user(uid) is True
        assert store.get_user(uid) is None
        assert store.get_user_by_email("gone@acme.io") is None
        assert uid not in [u.id for u in store.list_users(UserScope(everyone=True))]

    def test_second_soft_delete_returns_false(self, store: OrgStore, add_user) -> None:
        uid = add_user("twice@acme.io")
        assert store.soft_delete_user(uid) is True
        assert store.soft_delete_user(uid) is False

    def test_update_user(self, store: OrgStore, add_user) -> None:
        uid = add_user("upd@acme.io")
        assert store.update_user(uid, first_name="Grace", role=Role.manager) is True
        user = store.get_user(uid)
        assert user.first_name == "Grace"
        assert user.role is Role.manager

    def test_update_user_rejects_unknown_fields(self, store: OrgStore, add_user) -> None:
        uid = add_user("upd@acme.io")
        with pytest.raises(ValueError):
            store.update_user(uid, deleted_at="2024-01-01")

    def test_count_admins_ignores_deleted(self, store: OrgStore, add_user) -> None:
        assert store.count_admins() == 0
        uid = add_user("root@acme.io", Role.admin)
        assert store.count_admins() == 1
        store.soft_delete_user(uid)
        assert store.count_admins() == 0


class TestScopes:
    def test_list_users_scope(self, store: OrgStore, org) -> None:
        """Employees of listed teams plus explicit ids; managers in those teams are not pulled in."""
        scope = UserScope(user_ids=frozenset({org.manager_a}), employee_team_ids=frozenset({org.team_a}))
        ids = [u.id for u in store.list_users(scope)]
        assert ids == sorted([org.manager_a, org.alice, org.bob])

    def test_empty_scope_lists_nobody(self, store: OrgStore, org) -> None:
        assert store.list_users(UserScope()) == []
        assert store.list_teams(TeamScope()) == []

    def test_list_teams_scope(self, store: OrgStore, org) -> None:
        teams = store.list_teams(TeamScope(team_ids=frozenset({org.team_b})))
        assert [t.id for t in teams] == [org.team_b]
        assert len(store.list_teams(TeamScope(everyone=True))) == 2


class TestTeams:
    def test_team_members(self, store: OrgStore, org) -> None:
        team = store.get_team(org.team_a)
        assert team.employee_ids == [org.alice, org.bob]
        assert team.manager_ids == [org.manager_a]

    def test_manager_team_ids_loaded(self, store: OrgStore, org) -> None:
        assert store.get_user(org.manager_a).team_ids == [org.team_a]
        assert store.get_user(org.manager_x).team_ids == []

    def test_deleted_member_leaves_team(self, store: OrgStore, org) -> None:
        store.soft_delete_user(org.bob)
        store.soft_delete_user(org.manager_a)
        team = store.get_team(org.team_a)
        assert team.employee_ids == [org.alice]
        assert team.manager_ids == []

    def test_soft_delete_team(self, store: OrgStore, org) -> None:
        assert store.soft_delete_team(org.team_b) is True
        assert store.get_team(org.team_b) is None
        assert store.soft_delete_team(org.team_b) is False
        assert store.get_user(org.manager_b).team_ids == []

    def test_soft_delete_team_detaches_employees(self, store: OrgStore, org) -> None:
        store.soft_delete_team(org.team_a)
        assert store.get_user(org.alice).team_id is None
        assert store.get_user(org.bob).team_id is None
        assert store.get_user(org.carol).team_id == org.team_b
        assert store.list_users(UserScope(employee_team_ids=frozenset({org.team_a}))) == []

    def test_update_team(self, store: OrgStore, org) -> None:
        assert store.update_team(org.team_a, description="Infra") is True
        team = store.get_team(org.team_a)
        assert team.name == "Platform"
        assert team.description == "Infra"

    def test_add_manager_is_idempotent(self, store: OrgStore, org) -> None:
        """The second insert hits the unique link constraint and reports False instead of raising."""
        assert store.add_team_manager(org.team_b, org.manager_x) is True
        assert store.add_team_manager(org.team_b, org.manager_x) is False
        assert store.get_team(org.team_b).manager_ids == [org.manager_b, org.manager_x]

    def test_remove_manager_is_idempotent(self, store: OrgStore, org) -> None:
        assert store.remove_team_manager(org.team_a, org.manager_a) is True
        assert store.remove_team_manager(org.team_a, org.manager_a) is False
        assert store.get_team(org.team_a).manager_ids == []

    def test_create_team_defaults(self, store: OrgStore, org) -> None:
        tid = store.create_team(Team(name="Empty", created_by_id=org.admin))
        team = store.get_team(tid)
        assert team.description == ""
        assert team.employee_ids == []
        assert team.manager_ids == []


class TestRefreshTokens:
    def test_store_and_clear(self, store: OrgStore, add_user) -> None:
        uid = add_user("tok@acme.io")
        assert store.store_refresh_token(uid, "r1", "2099-01-01T00:00:00+00:00") is True
        assert store.get_user(uid).refresh_token == "r1"
        store.clear_refresh_token(uid)
        user = store.get_user(uid)
        assert user.refresh_token is None
        assert user.refresh_expires_at is None

    def test_rotate_is_compare_and_swap(self, store: OrgStore, add_user) -> None:
        """Only the caller presenting the currently stored token wins the swap."""
        uid = add_user("tok@acme.io")
        store.store_refresh_token(uid, "r1", "2099-01-01T00:00:00+00:00")
        assert store.rotate_refresh_token(uid, "r1", "r2", "2099-01-01T00:00:00+00:00") is True
        assert store.rotate_refresh_token(uid, "r1", "r3", "2099-01-01T00:00:00+00:00") is False
        assert store.get_user(uid).refresh_token == "r2"

    def test_soft_delete_clears_refresh_token(self, store: OrgStore, add_user) -> None:
        uid = add_user("tok@acme.io")
        store.store_refresh_token(uid, "r1", "2099-01-01T00:00:00+00:00")
        store.soft_delete_user(uid)
        assert store.store_refresh_token(uid, "r2", "2099-01-01T00:00:00+00:00") is False


def test_ping(store: OrgStore) -> None:
    assert store.ping() is True


def test_user_dataclass_defaults() -> None:
    user = User(email="x@acme.io", first_name="Xa", last_name="Vier")
    assert user.role is Role.employee
    assert user.team_ids == []
