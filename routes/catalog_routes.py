from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status
from starlette.exceptions import HTTPException

from database import get_db
from models.AuditTrail import AuditEntityEnum
from models.CatalogItem import CatalogItem
from schemas.ActorSchemas import Actor
from schemas.CatalogSchemas import CatalogItemCreate, CatalogItemUpdate, CatalogItemOut
from schemas.PaginatedResponseSchemas import PaginatedResponse
from services.audit_services import AuditService
from services.catalog_services import get_catalog_item
from utils import generate_incremental_id, get_current_actor, soft_delete_record

router = APIRouter()


@router.get("", response_model=PaginatedResponse[CatalogItemOut])
def get_catalog_items(
        db: Session = Depends(get_db),
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = Query(None, description="Search by name or code"),
):
    query = db.query(CatalogItem).filter(CatalogItem.is_deleted == False)

    if category:
        query = query.filter(CatalogItem.category == category)
    if is_active is not None:
        query = query.filter(CatalogItem.is_active == is_active)
    if search:
        query = query.filter(
            CatalogItem.name.ilike(f"%{search}%") | CatalogItem.code.ilike(f"%{search}%")
        )

    total = query.count()
    items = query.order_by(CatalogItem.name).offset(skip).limit(limit).all()
    return {"data": items, "total": total}


@router.get("/{catalog_item_id}", response_model=CatalogItemOut)
def get_catalog_item_by_id(catalog_item_id: int, db: Session = Depends(get_db)):
    return get_catalog_item(db, catalog_item_id)


@router.post("", response_model=CatalogItemOut, status_code=status.HTTP_201_CREATED)
def create_catalog_item(
        item_data: CatalogItemCreate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    item = CatalogItem(**item_data.model_dump())
    if not item.code:
        item.code = generate_incremental_id(db, CatalogItem)
    elif db.query(CatalogItem.id).filter(CatalogItem.code == item.code).first():
        raise HTTPException(status_code=409, detail=f"Catalog code {item.code} already exists")

    db.add(item)
    db.flush()
    AuditService(db).default_log(
        entity_id=item.id,
        entity_type=AuditEntityEnum.CATALOG_ITEM,
        description=f"Catalog item {item.code} - {item.name} created",
        user_name=actor.name,
    )
    db.commit()
    db.refresh(item)
    return item


@router.put("/{catalog_item_id}", response_model=CatalogItemOut)
def update_catalog_item(
        catalog_item_id: int,
        item_data: CatalogItemUpdate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    """Site balances keep their own copies of name/unit/category; they are not touched here."""
    item = get_catalog_item(db, catalog_item_id)

    for field, value in item_data.model_dump(exclude_unset=True).items():
        if field == "code" and not value:
            continue
        setattr(item, field, value)

    AuditService(db).default_log(
        entity_id=item.id,
        entity_type=AuditEntityEnum.CATALOG_ITEM,
        description=f"Catalog item {item.code} updated",
        user_name=actor.name,
    )
    db.commit()
    db.refresh(item)
    return item


@router.delete("/{catalog_item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_catalog_item(catalog_item_id: int, db: Session = Depends(get_db)):
    soft_delete_record(db, CatalogItem, catalog_item_id)
    return None
