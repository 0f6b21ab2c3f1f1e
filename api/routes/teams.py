"""
api/routes/teams.py -- Team read and administration endpoints.

Routes:
  GET    /teams                              -- teams visible to the caller
  POST   /teams                              -- create (admin only)
  GET    /teams/{id}                         -- one visible team
  PUT    /teams/{id}                         -- partial update (admin only)
  DELETE /teams/{id}                         -- soft delete (admin only)
  POST   /teams/{id}/managers                -- attach a manager (admin only)
  DELETE /teams/{id}/managers/{manager_id}   -- detach a manager (admin only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ManagerAssign, MessageResponse, TeamCreate, TeamPatch, TeamResponse
from auth.dependencies import get_current_actor
from org.policy import Actor
from org.service import TeamService

router = APIRouter()


@router.get("/teams", response_model=list[TeamResponse])
def list_teams(request: Request, actor: Actor = Depends(get_current_actor)) -> list[TeamResponse]:
    teams: TeamService = request.app.state.team_service
    return [TeamResponse.from_domain(t) for t in teams.list_teams(actor)]


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(request: Request, body: TeamCreate, actor: Actor = Depends(get_current_actor)) -> TeamResponse:
    teams: TeamService = request.app.state.team_service
    return TeamResponse.from_domain(teams.create_team(actor, body.name, body.description))


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(request: Request, team_id: int, actor: Actor = Depends(get_current_actor)) -> TeamResponse:
    teams: TeamService = request.app.state.team_service
    return TeamResponse.from_domain(teams.get_team(actor, team_id))


@router.put("/teams/{team_id}", response_model=TeamResponse)
def update_team(
    request: Request,
    team_id: int,
    body: TeamPatch,
    actor: Actor = Depends(get_current_actor),
) -> TeamResponse:
    teams: TeamService = request.app.state.team_service
    return TeamResponse.from_domain(teams.update_team(actor, team_id, **body.changes()))


@router.delete("/teams/{team_id}", response_model=MessageResponse)
def delete_team(request: Request, team_id: int, actor: Actor = Depends(get_current_actor)) -> MessageResponse:
    teams: TeamService = request.app.state.team_service
    teams.delete_team(actor, team_id)
    return MessageResponse(message="team supprimée avec succès")


@router.post("/teams/{team_id}/managers", response_model=TeamResponse)
def add_manager(
    request: Request,
    team_id: int,
    body: ManagerAssign,
    actor: Actor = Depends(get_current_actor),
) -> TeamResponse:
    teams: TeamService = request.app.state.team_service
    return TeamResponse.from_domain(teams.add_manager(actor, team_id, body.manager_id))


@router.delete("/teams/{team_id}/managers/{manager_id}", response_model=TeamResponse)
def remove_manager(
    request: Request,
    team_id: int,
    manager_id: int,
    actor: Actor = Depends(get_current_actor),
) -> TeamResponse:
    teams: TeamService = request.app.state.team_service
    return TeamResponse.from_domain(teams.remove_manager(actor, team_id, manager_id))
