"""
API request and response models for Teamgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in org/models.py, which own the
internal domain representation. Route handlers map between the two, and the
from_domain() factories are the only place a password hash could leak -- they
never copy it.

Patch models (UserPatch, TeamPatch) rely on model_fields_set: a field the
client did not send is absent from the patch, a field sent as null is
ignored, except team_id where an explicit null detaches the user.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from org.models import Role, Team, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt hashes at most 72 bytes; longer input is rejected rather than truncated.
BCRYPT_MAX_BYTES = 72


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"password must be at most {BCRYPT_MAX_BYTES} bytes in UTF-8")
    return value


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /register.

    No whitespace stripping on models that carry a password: the password
    must reach the hasher exactly as typed.
    """

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=2, max_length=100)
    last_name: str = Field(min_length=2, max_length=100)
    phone_number: str = Field(default="", max_length=20)
    # Left as a plain string so an unknown role reaches the workflow and
    # comes back as invalid_role rather than a generic schema error.
    role: Optional[str] = None
    team_id: Optional[int] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /refresh."""

    refresh_token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Users -- requests
# ---------------------------------------------------------------------------


class UserPatch(BaseModel):
    """Request body for PUT /users/{id}. Every field is optional."""

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    role: Optional[str] = None
    team_id: Optional[int] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)

    def changes(self) -> dict:
        """Return only the fields the client sent, ready for UserService.update_user."""
        result = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name != "team_id":
                continue
            result[name] = value
        return result


# ---------------------------------------------------------------------------
# Teams -- requests
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    """Request body for POST /teams."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    description: str = Field(default="", max_length=500)


class TeamPatch(BaseModel):
    """Request body for PUT /teams/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set if getattr(self, name) is not None}


class ManagerAssign(BaseModel):
    """Request body for POST /teams/{id}/managers."""

    manager_id: int


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public projection of a user. Never includes the password hash or refresh token."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone_number: str
    role: Role
    team_id: Optional[int]
    team_ids: list[int]
    created_by_id: Optional[int]
    created_at: str

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone_number=user.phone_number,
            role=user.role,
            team_id=user.team_id,
            team_ids=list(user.team_ids),
            created_by_id=user.created_by_id,
            created_at=user.created_at,
        )


class TeamResponse(BaseModel):
    """Team with member ids. Members are resolved by id, not embedded."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    created_by_id: int
    employee_ids: list[int]
    manager_ids: list[int]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, team: Team) -> "TeamResponse":
        return cls(
            id=team.id,
            name=team.name,
            description=team.description,
            created_by_id=team.created_by_id,
            employee_ids=list(team.employee_ids),
            manager_ids=list(team.manager_ids),
            created_at=team.created_at,
            updated_at=team.updated_at,
        )


class TokenPairResponse(BaseModel):
    """Response for POST /refresh."""

    model_config = ConfigDict(frozen=True)

    token: str
    refresh_token: str


class LoginResponse(BaseModel):
    """Response for POST /login."""

    model_config = ConfigDict(frozen=True)

    token: str
    refresh_token: str
    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
