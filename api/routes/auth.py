"""
api/routes/auth.py -- Registration, session and profile endpoints.

Routes:
  POST /register   -- create an account (bootstrap admin, then admin-only)
  POST /login      -- email/password login; returns access + refresh token
  POST /refresh    -- rotate a refresh token into a new pair
  POST /logout     -- revoke the caller's refresh token (requires auth)
  GET  /me         -- current user projection (requires auth)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Unknown email and wrong password return the same 401 body.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_current_actor, get_optional_actor
from auth.service import AuthService, RegisterData
from core.config import get_settings
from org.policy import Actor
from org.service import UserService

# Auth policy:
# - POST /register: optional auth -- anonymous only while no admin exists
# - POST /login:    public, rate limited
# - POST /refresh:  public -- the refresh token is the credential
# - POST /logout:   requires auth (get_current_actor)
# - GET  /me:       requires auth (get_current_actor)
router = APIRouter()

_settings = get_settings()


@router.post("/register", response_model=UserResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    actor: Actor | None = Depends(get_optional_actor),
) -> UserResponse:
    """Create an account. The authenticated caller, if any, becomes created_by."""
    auth: AuthService = request.app.state.auth_service
    user = auth.register(
        RegisterData(
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            phone_number=body.phone_number,
            role=body.role,
            created_by_id=actor.id if actor is not None else None,
            team_id=body.team_id,
        )
    )
    return UserResponse.from_domain(user)


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Failures raise Unauthorized("identifiants invalides") from the workflow and
    are rendered by the AppError handler, so both failure modes share one body.
    """
    auth: AuthService = request.app.state.auth_service
    result = auth.login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            user=UserResponse.from_domain(result.user),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/refresh", response_model=TokenPairResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The old refresh token stops working."""
    auth: AuthService = request.app.state.auth_service
    pair = auth.refresh(body.refresh_token)
    resp = JSONResponse(
        status_code=200,
        content=TokenPairResponse(token=pair.access_token, refresh_token=pair.refresh_token).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, actor: Actor = Depends(get_current_actor)) -> MessageResponse:
    """Revoke the caller's refresh token. The access token lives until it expires."""
    auth: AuthService = request.app.state.auth_service
    auth.logout(actor.id)
    return MessageResponse(message="déconnecté")


@router.get("/me", response_model=UserResponse)
def me(request: Request, actor: Actor = Depends(get_current_actor)) -> UserResponse:
    """Return the current user's projection."""
    users: UserService = request.app.state.user_service
    return UserResponse.from_domain(users.get_profile(actor))
