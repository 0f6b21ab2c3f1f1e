"""
api/routes/users.py -- User read and administration endpoints.

Routes:
  GET    /users        -- users visible to the caller (role-filtered)
  GET    /users/{id}   -- one user, subject to the single-record read rules
  PUT    /users/{id}   -- partial update (admin only)
  DELETE /users/{id}   -- soft delete (admin only)

Account creation is POST /register (api/routes/auth.py).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, UserPatch, UserResponse
from auth.dependencies import get_current_actor
from org.policy import Actor
from org.service import UserService

# Every route requires authentication; role checks happen in UserService.
router = APIRouter()


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, actor: Actor = Depends(get_current_actor)) -> list[UserResponse]:
    users: UserService = request.app.state.user_service
    return [UserResponse.from_domain(u) for u in users.list_users(actor)]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, actor: Actor = Depends(get_current_actor)) -> UserResponse:
    users: UserService = request.app.state.user_service
    return UserResponse.from_domain(users.get_user(actor, user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    actor: Actor = Depends(get_current_actor),
) -> UserResponse:
    """Update the fields present in the body; omitted fields are left unchanged."""
    users: UserService = request.app.state.user_service
    return UserResponse.from_domain(users.update_user(actor, user_id, **body.changes()))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(request: Request, user_id: int, actor: Actor = Depends(get_current_actor)) -> MessageResponse:
    users: UserService = request.app.state.user_service
    users.delete_user(actor, user_id)
    return MessageResponse(message="utilisateur supprimé avec succès")
