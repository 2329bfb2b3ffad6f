from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models.AuditTrail import AuditTrail, AuditEntityEnum
from schemas.AuditSchemas import AuditTrailOut
from schemas.PaginatedResponseSchemas import PaginatedResponse

router = APIRouter()


@router.get("", response_model=PaginatedResponse[AuditTrailOut])
def get_audit_trails(
        entity_type: Optional[AuditEntityEnum] = None,
        entity_id: Optional[str] = None,
        user_name: Optional[str] = None,
        limit: int = Query(50, le=1000),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db)
):
    query = db.query(AuditTrail)

    if entity_type:
        query = query.filter(AuditTrail.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditTrail.entity_id == entity_id)
    if user_name:
        query = query.filter(AuditTrail.user_name.ilike(f"%{user_name}%"))

    total = query.count()
    items = query.order_by(AuditTrail.timestamp.desc(), AuditTrail.id.desc()).offset(offset).limit(limit).all()
    return {"data": items, "total": total}
