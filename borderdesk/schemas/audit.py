from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: int
    action: str
    module: str
    resource_id: str
    resource_type: str
    application_id: Optional[str]
    previous_state: Optional[str]
    new_state: Optional[str]
    performed_by_user_id: str
    performed_by_user_name: str
    performed_by_user_role: str
    reason: Optional[str]
    notes: Optional[str]
    metadata_json: Optional[Dict[str, Any]]
    timestamp: datetime

    class Config:
        from_attributes = True
