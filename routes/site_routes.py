from datetime import datetime, date, time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status
from starlette.exceptions import HTTPException

from database import get_db
from models.AuditTrail import AuditEntityEnum
from models.ConstructionSite import ConstructionSite
from schemas.ActorSchemas import Actor
from schemas.PaginatedResponseSchemas import PaginatedResponse
from schemas.SiteSchemas import SiteOut, SiteCreate, SiteUpdate, SiteOverviewResponse
from services.audit_services import AuditService
from services.overview_services import SiteOverviewService
from utils import get_current_actor, soft_delete_record

router = APIRouter()


@router.get("", response_model=PaginatedResponse[SiteOut])
def get_all_sites(
        db: Session = Depends(get_db),
        skip: int = 0,
        limit: int = 10,
        is_active: Optional[bool] = None,
        contains_deleted: Optional[bool] = False,
        search: Optional[str] = Query(None, description="Search site by name"),
        to_date: Optional[date] = Query(None, description="Filter by date"),
        from_date: Optional[date] = Query(None, description="Filter by date")
):
    query = db.query(ConstructionSite)
    if contains_deleted is False:
        query = query.filter(ConstructionSite.is_deleted == False)

    if is_active is not None:
        query = query.filter(ConstructionSite.is_active == is_active)

    if search:
        query = query.filter(ConstructionSite.name.ilike(f"%{search}%"))

    if from_date and to_date:
        query = query.filter(
            ConstructionSite.created_at.between(
                datetime.combine(from_date, time.min),
                datetime.combine(to_date, time.max),
            )
        )
    elif from_date:
        query = query.filter(ConstructionSite.created_at >= datetime.combine(from_date, time.min))
    elif to_date:
        query = query.filter(ConstructionSite.created_at <= datetime.combine(to_date, time.max))

    total_count = query.count()
    paginated_data = query.order_by(ConstructionSite.name).offset(skip).limit(limit).all()

    return {
        "data": paginated_data,
        "total": total_count
    }


@router.get("/{site_id}", response_model=SiteOut)
def get_site(site_id: int, db: Session = Depends(get_db)):
    site = db.query(ConstructionSite).filter(ConstructionSite.id == site_id, ConstructionSite.is_deleted == False).first()
    if not site:
        raise HTTPException(status_code=404, detail="Construction site not found")
    return site


@router.get("/{site_id}/overview", response_model=SiteOverviewResponse)
def get_site_overview(site_id: int, db: Session = Depends(get_db)):
    """Stock value, low-stock alerts, rented and loan counts and the latest movements of a site"""
    return SiteOverviewService(db).build(site_id)


@router.post("", response_model=SiteOut, status_code=status.HTTP_201_CREATED)
def create_site(site_data: SiteCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    site = ConstructionSite(**site_data.model_dump())
    db.add(site)
    db.flush()
    AuditService(db).default_log(
        entity_id=site.id,
        entity_type=AuditEntityEnum.CONSTRUCTION_SITE,
        description=f"Site {site.name} created",
        user_name=actor.name,
    )
    db.commit()
    db.refresh(site)
    return site


@router.put("/{site_id}", response_model=SiteOut)
def update_site(
        site_id: int,
        site_data: SiteUpdate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    site = db.query(ConstructionSite).filter(ConstructionSite.id == site_id, ConstructionSite.is_deleted == False).first()
    if not site:
        raise HTTPException(status_code=404, detail="Construction site not found")

    for field, value in site_data.model_dump(exclude_unset=True).items():
        setattr(site, field, value)

    AuditService(db).default_log(
        entity_id=site.id,
        entity_type=AuditEntityEnum.CONSTRUCTION_SITE,
        description=f"Site {site.name} updated",
        user_name=actor.name,
    )
    db.commit()
    db.refresh(site)
    return site


@router.delete("/{site_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_site(site_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    soft_delete_record(db, ConstructionSite, site_id)
    AuditService(db).default_log(
        entity_id=site_id,
        entity_type=AuditEntityEnum.CONSTRUCTION_SITE,
        description=f"Site {site_id} deleted",
        user_name=actor.name,
    )
    db.commit()
    return None
