from typing import Dict, List
from pydantic import BaseModel


class ActorResponse(BaseModel):
    user_id: str
    user_name: str
    role: str
    is_admin: bool

    class Config:
        from_attributes = True


class PermissionsResponse(BaseModel):
    user: ActorResponse
    # resource -> sorted list of allowed actions
    permissions: Dict[str, List[str]]
