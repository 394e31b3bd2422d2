from fastapi import APIRouter, Depends

from ..models.user import Actor
from ..rbac import Resource, default_evaluator
from ..schemas.user import ActorResponse, PermissionsResponse
from .auth import require_actor

router = APIRouter(prefix="/api/me", tags=["users"])


@router.get("", response_model=ActorResponse)
def get_me(actor: Actor = Depends(require_actor)):
    return ActorResponse(
        user_id=actor.user_id,
        user_name=actor.user_name,
        role=actor.role.value,
        is_admin=actor.is_admin,
    )


@router.get("/permissions", response_model=PermissionsResponse)
def get_my_permissions(actor: Actor = Depends(require_actor)):
    permissions = {
        resource.value: sorted(default_evaluator.get_allowed_actions(actor.role, resource))
        for resource in Resource
    }
    return PermissionsResponse(user=get_me(actor), permissions=permissions)
