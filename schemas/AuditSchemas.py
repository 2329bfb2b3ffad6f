from datetime import datetime

from pydantic import BaseModel

from models.AuditTrail import AuditEntityEnum


class AuditTrailOut(BaseModel):
    id: int
    entity_id: str
    entity_type: AuditEntityEnum
    description: str
    user_name: str
    timestamp: datetime

    class Config:
        from_attributes = True
