"""
org/store.py -- SQLAlchemy Core persistence layer for users and teams.

Pattern: Repository + Data Mapper. OrgStore is the repository;
_row_to_user / _row_to_team are the mappers. Workflows never touch SQL
directly, and receive the store at construction time instead of reaching
for a module-level handle, so tests can hand them an in-memory instance.

Soft delete: users and teams carry a nullable deleted_at timestamp. Every
read filters on deleted_at IS NULL, so a tombstoned record disappears from
lookups, listings and team membership at once. Nothing is physically removed.

Relations:
  users.team_id          -- the single team of an employee
  users.created_by_id    -- weak back-reference to the creating admin
  manager_teams          -- many-to-many manager <-> team, UNIQUE(user_id, team_id)

Security:
  All queries use bound parameters. No f-strings in SQL.
  users.email is UNIQUE; duplicates surface as sqlalchemy IntegrityError and
  the workflows translate that into Conflict.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from org.models import Role, Team, User
from org.policy import TeamScope, UserScope

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'teamgate.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("phone_number", String(20), nullable=False, server_default=""),
    Column("role", String(20), nullable=False, server_default="employee"),
    Column("created_by_id", Integer, index=True),
    Column("team_id", Integer, index=True),
    Column("refresh_token", Text),
    Column("refresh_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32), index=True),
)

_teams = Table(
    "teams",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("description", String(500), nullable=False, server_default=""),
    Column("created_by_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32), index=True),
)

_manager_teams = Table(
    "manager_teams",
    metadata,
    Column("user_id", Integer, nullable=False),
    Column("team_id", Integer, nullable=False),
    UniqueConstraint("user_id", "team_id", name="uq_manager_team"),
)

# Columns a caller may change through update_user / update_team. Anything
# else (ids, timestamps, refresh material) has a dedicated method.
_USER_MUTABLE = {"email", "password_hash", "first_name", "last_name", "phone_number", "role", "team_id"}
_TEAM_MUTABLE = {"name", "description"}


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_live_users = _users.c.deleted_at.is_(None)
_live_teams = _teams.c.deleted_at.is_(None)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrgStore:
    """Repository for User and Team entities.

    Usage:
        store = OrgStore("sqlite:///:memory:")
        uid = store.create_user(User(email="a@b.io", first_name="Ada", last_name="L", role=Role.admin))
        team_id = store.create_team(Team(name="Platform", created_by_id=uid))
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            return False
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def count_admins(self) -> int:
        """Return the number of live admin users (bootstrap detection)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_live_users & (_users.c.role == Role.admin.value))
            ).scalar()
        return result or 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    password_hash=user.password_hash,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    phone_number=user.phone_number or "",
                    role=Role.parse(user.role).value,
                    created_by_id=user.created_by_id,
                    team_id=user.team_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_user(self, user_id: int) -> User | None:
        """Look up a live user by id. Returns None if absent or soft-deleted."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where((_users.c.id == user_id) & _live_users)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._managed_team_ids(conn, [row.id]))

    def get_user_by_email(self, email: str) -> User | None:
        """Look up a live user by exact email match."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where((_users.c.email == email) & _live_users)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._managed_team_ids(conn, [row.id]))

    def list_users(self, scope: UserScope) -> list[User]:
        """Return live users matching scope, ordered by id."""
        query = _users.select().where(_live_users)
        if not scope.everyone:
            query = query.where(
                or_(
                    _users.c.id.in_(sorted(scope.user_ids)),
                    and_(
                        _users.c.role == Role.employee.value,
                        _users.c.team_id.in_(sorted(scope.employee_team_ids)),
                    ),
                )
            )
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_users.c.id)).fetchall()
            managed = self._managed_team_ids(conn, [r.id for r in rows])
        return [_row_to_user(r, managed) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on a live user.

        Accepted fields: email, password_hash, first_name, last_name,
        phone_number, role, team_id. Unknown keys raise ValueError.

        Returns True if a row was updated, False if the user was not found.
        Raises IntegrityError if the new email is already taken.
        """
        unknown = set(fields) - _USER_MUTABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "role" in fields:
            fields["role"] = Role.parse(fields["role"]).value
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where((_users.c.id == user_id) & _live_users).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def soft_delete_user(self, user_id: int) -> bool:
        """Tombstone a live user. Returns False if already deleted or absent.

        The refresh token is cleared in the same statement and the user's
        manager-team links are dropped.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & _live_users)
                .values(deleted_at=now, updated_at=now, refresh_token=None, refresh_expires_at=None)
            )
            if result.rowcount > 0:
                conn.execute(_manager_teams.delete().where(_manager_teams.c.user_id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def store_refresh_token(self, user_id: int, token: str, expires_at: str) -> bool:
        """Replace the user's refresh token. Returns False if the user is gone."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & _live_users)
                .values(refresh_token=token, refresh_expires_at=expires_at)
            )
            conn.commit()
        return result.rowcount > 0

    def rotate_refresh_token(self, user_id: int, old_token: str, new_token: str, expires_at: str) -> bool:
        """Swap old_token for new_token only if old_token is still the stored one.

        The WHERE clause makes this a compare-and-swap: when two refreshes race
        with the same token, exactly one UPDATE matches and the other gets
        rowcount 0.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & _live_users & (_users.c.refresh_token == old_token))
                .values(refresh_token=new_token, refresh_expires_at=expires_at)
            )
            conn.commit()
        return result.rowcount > 0

    def clear_refresh_token(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(refresh_token=None, refresh_expires_at=None)
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, team: Team) -> int:
        """Insert a new team and return its id."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _teams.insert().values(
                    name=team.name,
                    description=team.description or "",
                    created_by_id=team.created_by_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_team(self, team_id: int) -> Team | None:
        """Look up a live team by id, with its live employees and managers."""
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where((_teams.c.id == team_id) & _live_teams)).fetchone()
            if row is None:
                return None
            employees, managers = self._members(conn, [row.id])
        return _row_to_team(row, employees, managers)

    def list_teams(self, scope: TeamScope) -> list[Team]:
        """Return live teams matching scope, ordered by id."""
        query = _teams.select().where(_live_teams)
        if not scope.everyone:
            query = query.where(_teams.c.id.in_(sorted(scope.team_ids)))
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_teams.c.id)).fetchall()
            employees, managers = self._members(conn, [r.id for r in rows])
        return [_row_to_team(r, employees, managers) for r in rows]

    def update_team(self, team_id: int, **fields) -> bool:
        """Update name and/or description of a live team."""
        unknown = set(fields) - _TEAM_MUTABLE
        if unknown:
            raise ValueError(f"Unknown team fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_teams.update().where((_teams.c.id == team_id) & _live_teams).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def soft_delete_team(self, team_id: int) -> bool:
        """Tombstone a live team, drop its manager links and detach its employees.

        Detaching clears users.team_id in the same transaction, so former
        teammates stop seeing each other at once.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _teams.update().where((_teams.c.id == team_id) & _live_teams).values(deleted_at=now, updated_at=now)
            )
            if result.rowcount > 0:
                conn.execute(_manager_teams.delete().where(_manager_teams.c.team_id == team_id))
                conn.execute(_users.update().where(_users.c.team_id == team_id).values(team_id=None, updated_at=now))
            conn.commit()
        return result.rowcount > 0

    def add_team_manager(self, team_id: int, user_id: int) -> bool:
        """Link a manager to a team. Returns False if the link already existed.

        The UNIQUE(user_id, team_id) constraint decides, so two concurrent
        calls for the same pair yield one True and one False.
        """
        with self.engine.connect() as conn:
            try:
                conn.execute(_manager_teams.insert().values(team_id=team_id, user_id=user_id))
                conn.commit()
            except IntegrityError:
                conn.rollback()
                return False
        return True

    def remove_team_manager(self, team_id: int, user_id: int) -> bool:
        """Unlink a manager from a team. Returns False if there was no link."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _manager_teams.delete().where((_manager_teams.c.team_id == team_id) & (_manager_teams.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Relation loading
    # ------------------------------------------------------------------

    def _managed_team_ids(self, conn, user_ids: list[int]) -> dict[int, list[int]]:
        """Map user id -> ids of the live teams that user manages."""
        if not user_ids:
            return {}
        rows = conn.execute(
            select(_manager_teams.c.user_id, _manager_teams.c.team_id)
            .join(_teams, _teams.c.id == _manager_teams.c.team_id)
            .where(_manager_teams.c.user_id.in_(user_ids) & _live_teams)
            .order_by(_manager_teams.c.team_id)
        ).fetchall()
        result: dict[int, list[int]] = {}
        for user_id, team_id in rows:
            result.setdefault(user_id, []).append(team_id)
        return result

    def _members(self, conn, team_ids: list[int]) -> tuple[dict[int, list[int]], dict[int, list[int]]]:
        """Map team id -> live employee ids, and team id -> live manager ids."""
        if not team_ids:
            return {}, {}
        employees: dict[int, list[int]] = {}
        for user_id, team_id in conn.execute(
            select(_users.c.id, _users.c.team_id)
            .where(_users.c.team_id.in_(team_ids) & _live_users & (_users.c.role == Role.employee.value))
            .order_by(_users.c.id)
        ):
            employees.setdefault(team_id, []).append(user_id)
        managers: dict[int, list[int]] = {}
        for user_id, team_id in conn.execute(
            select(_manager_teams.c.user_id, _manager_teams.c.team_id)
            .join(_users, _users.c.id == _manager_teams.c.user_id)
            .where(_manager_teams.c.team_id.in_(team_ids) & _live_users)
            .order_by(_manager_teams.c.user_id)
        ):
            managers.setdefault(team_id, []).append(user_id)
        return employees, managers


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, managed: dict[int, list[int]]) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        phone_number=row.phone_number or "",
        role=Role(row.role),
        created_by_id=row.created_by_id,
        team_id=row.team_id,
        team_ids=list(managed.get(row.id, [])),
        refresh_token=row.refresh_token,
        refresh_expires_at=row.refresh_expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_team(row, employees: dict[int, list[int]], managers: dict[int, list[int]]) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        description=row.description or "",
        created_by_id=row.created_by_id,
        employee_ids=list(employees.get(row.id, [])),
        manager_ids=list(managers.get(row.id, [])),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
