"""
auth/service.py -- Registration, login, refresh-token lifecycle.

AuthService orchestrates the password hasher, the token functions and the
OrgStore. It raises typed errors from core/errors.py; api/ maps them to HTTP.

Bootstrap: while no admin exists, the first registration needs no creator
and always produces an admin. Once an admin exists every registration must
come from an authenticated admin.

Refresh rotation: every successful refresh() mints a new access/refresh pair
and replaces the stored refresh token through a compare-and-swap on the old
value, so a refresh token is good for exactly one use even when two requests
race with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from auth.tokens import (
    burn_password_check,
    hash_password,
    issue_access_token,
    issue_refresh_token,
    parse_token,
    verify_password,
)
from core.config import Settings
from core.errors import Conflict, Forbidden, InternalError, InvalidToken, NotFound, Unauthorized, ValidationError
from org.models import Role, User
from org.policy import Action, Actor, check_role_assignment, ensure_can_write, resolve_role
from org.store import OrgStore

logger = logging.getLogger("teamgate.auth")

_INVALID_CREDENTIALS = "identifiants invalides"
_INVALID_REFRESH = "refresh token invalide ou révoqué"


@dataclass
class RegisterData:
    """Input for AuthService.register. created_by_id is the authenticated caller, if any."""

    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str = ""
    role: str | Role | None = None
    created_by_id: int | None = None
    team_id: int | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    user: User


class AuthService:
    """Account creation and session management.

    Usage:
        auth = AuthService(store, get_settings())
        admin = auth.register(RegisterData(email="root@acme.io", password="...", first_name="Ro", last_name="Ot"))
        result = auth.login("root@acme.io", "...")
        pair = auth.refresh(result.tokens.refresh_token)
    """

    def __init__(self, store: OrgStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, data: RegisterData) -> User:
        role = resolve_role(data.role)
        creator: User | None = None
        if data.created_by_id is not None:
            creator = self.store.get_user(data.created_by_id)
            if creator is None:
                raise NotFound("créateur non trouvé")

        if self.store.count_admins() > 0:
            if creator is None:
                raise Forbidden("seul un admin peut créer des utilisateurs")
            ensure_can_write(Actor.from_user(creator), Action.create_user)
            check_role_assignment(role, creator)
        else:
            # Bootstrap: the first account of the organization is its admin.
            if role is not Role.admin:
                logger.info("No admin yet, promoting bootstrap registration %s to admin", data.email)
            role = Role.admin

        if data.team_id is not None:
            if role is not Role.employee:
                raise ValidationError("seuls les employés appartiennent à une team")
            if self.store.get_team(data.team_id) is None:
                raise NotFound("team non trouvée")

        try:
            password_hash = hash_password(data.password)
        except ValueError as exc:
            # bcrypt rejects input it cannot hash (over 72 bytes, NUL bytes).
            raise ValidationError("mot de passe invalide") from exc

        user = User(
            email=data.email,
            password_hash=password_hash,
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number or "",
            role=role,
            created_by_id=data.created_by_id,
            team_id=data.team_id,
        )
        try:
            user_id = self.store.create_user(user)
        except IntegrityError as exc:
            raise Conflict("email déjà utilisé") from exc

        created = self.store.get_user(user_id)
        if created is None:
            raise InternalError("utilisateur introuvable après création")
        logger.info("Registered user id=%s role=%s created_by=%s", user_id, role.value, data.created_by_id)
        return created

    # ------------------------------------------------------------------
    # Login / refresh / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate by email and password and open a session.

        Unknown email and wrong password raise the same Unauthorized message,
        and both paths run one bcrypt comparison so timing does not tell them
        apart either.
        """
        user = self.store.get_user_by_email(email)
        if user is None:
            burn_password_check(password)
            logger.warning("Failed login (unknown email)")
            raise Unauthorized(_INVALID_CREDENTIALS)
        if not verify_password(user.password_hash, password):
            logger.warning("Failed login for user id=%s", user.id)
            raise Unauthorized(_INVALID_CREDENTIALS)

        tokens = self._issue_pair(user.id)
        logger.info("User id=%s logged in", user.id)
        # Reload so the returned projection reflects the stored session state.
        return LoginResult(tokens=tokens, user=self.store.get_user(user.id) or user)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair.

        Bad signature, expiry, a token that is no longer the stored one and a
        lost rotation race all produce the same Unauthorized error.
        """
        try:
            claims = parse_token(refresh_token, self.settings.jwt_secret)
        except InvalidToken as exc:
            logger.warning("Rejected refresh token (unparseable or expired)")
            raise Unauthorized(_INVALID_REFRESH) from exc

        if not self.validate_refresh_token(claims.uid, refresh_token):
            logger.warning("Rejected refresh token for user id=%s", claims.uid)
            raise Unauthorized(_INVALID_REFRESH)

        access = issue_access_token(claims.uid, self.settings.jwt_secret, self.settings.jwt_ttl)
        new_refresh = issue_refresh_token(claims.uid, self.settings.jwt_secret, self.settings.refresh_token_ttl)
        expires_at = (datetime.now(timezone.utc) + self.settings.refresh_token_ttl).isoformat()
        if not self.store.rotate_refresh_token(claims.uid, refresh_token, new_refresh, expires_at):
            logger.warning("Refresh rotation lost a race for user id=%s", claims.uid)
            raise Unauthorized(_INVALID_REFRESH)
        logger.info("Rotated refresh token for user id=%s", claims.uid)
        return TokenPair(access_token=access, refresh_token=new_refresh)

    def validate_refresh_token(self, user_id: int, token: str) -> bool:
        """Return True if token is the user's stored, unexpired refresh token."""
        user = self.store.get_user(user_id)
        if user is None or not user.refresh_token:
            return False
        if user.refresh_token != token:
            return False
        if not user.refresh_expires_at:
            return False
        expires_at = datetime.fromisoformat(user.refresh_expires_at)
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) < expires_at

    def store_refresh_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        """Persist token as the single live refresh token of user_id."""
        if not self.store.store_refresh_token(user_id, token, expires_at.isoformat()):
            raise NotFound("utilisateur non trouvé")

    def logout(self, user_id: int) -> None:
        """Revoke the stored refresh token. Safe to call repeatedly."""
        self.store.clear_refresh_token(user_id)
        logger.info("User id=%s logged out", user_id)

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def authenticate(self, access_token: str) -> Actor:
        """Resolve a bearer access token to the live Actor it was issued for."""
        claims = parse_token(access_token, self.settings.jwt_secret)
        user = self.store.get_user(claims.uid)
        if user is None:
            raise Unauthorized("utilisateur non trouvé")
        return Actor.from_user(user)

    def _issue_pair(self, user_id: int) -> TokenPair:
        access = issue_access_token(user_id, self.settings.jwt_secret, self.settings.jwt_ttl)
        refresh = issue_refresh_token(user_id, self.settings.jwt_secret, self.settings.refresh_token_ttl)
        self.store_refresh_token(user_id, refresh, datetime.now(timezone.utc) + self.settings.refresh_token_ttl)
        return TokenPair(access_token=access, refresh_token=refresh)
