from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from database import get_db
from schemas.ActorSchemas import Actor
from schemas.PaginatedResponseSchemas import PaginatedResponse
from schemas.SiteInventorySchemas import (
    SiteInventoryCreate,
    SiteInventoryUpdate,
    SiteInventoryResponse,
    ConsistencyResponse,
)
from schemas.StockMovementSchemas import StockMovementCreate, StockMovementResponse, SiteMovementRow
from services.ledger_services import LedgerService
from services.site_inventory_services import SiteInventoryService, UNSET
from utils import get_current_actor

router = APIRouter()


@router.get("/{site_id}/inventory", response_model=PaginatedResponse[SiteInventoryResponse])
def get_site_inventory(
        site_id: int,
        search: Optional[str] = Query(None, description="Search by item name"),
        category: Optional[str] = None,
        low_stock_only: bool = False,
        db: Session = Depends(get_db),
):
    items = SiteInventoryService(db).list_inventory(site_id, search=search, category=category, low_stock_only=low_stock_only)
    return {"data": items, "total": len(items)}


@router.get("/{site_id}/inventory/low-stock", response_model=List[SiteInventoryResponse])
def get_low_stock_items(site_id: int, db: Session = Depends(get_db)):
    return SiteInventoryService(db).list_inventory(site_id, low_stock_only=True)


@router.post("/{site_id}/inventory", response_model=SiteInventoryResponse, status_code=status.HTTP_201_CREATED)
def attach_catalog_item(
        site_id: int,
        payload: SiteInventoryCreate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    """Attach a catalog material to the site, optionally with an opening balance"""
    service = SiteInventoryService(db)
    item = service.attach_item(
        site_id,
        payload.catalog_item_id,
        actor,
        quantity=payload.quantity,
        min_threshold=payload.min_threshold,
        average_price=payload.average_price,
        is_tool=payload.is_tool,
    )
    return service.get_item_view(site_id, item.id)


@router.get("/{site_id}/inventory/{item_id}", response_model=SiteInventoryResponse)
def get_site_inventory_item(site_id: int, item_id: int, db: Session = Depends(get_db)):
    return SiteInventoryService(db).get_item_view(site_id, item_id)


@router.put("/{site_id}/inventory/{item_id}", response_model=SiteInventoryResponse)
def update_site_inventory_item(
        site_id: int,
        item_id: int,
        payload: SiteInventoryUpdate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    service = SiteInventoryService(db)
    service.update_item(
        site_id,
        item_id,
        actor,
        quantity=payload.quantity,
        min_threshold=payload.min_threshold,
        average_price=payload.average_price,
        # is_tool: null clears the flag, absent leaves it alone
        is_tool=payload.is_tool if "is_tool" in payload.model_fields_set else UNSET,
        reason=payload.reason,
    )
    return service.get_item_view(site_id, item_id)


@router.post("/{site_id}/inventory/{item_id}/resync", response_model=SiteInventoryResponse)
def resync_site_inventory_item(
        site_id: int,
        item_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    service = SiteInventoryService(db)
    service.resync_from_catalog(site_id, item_id, actor)
    return service.get_item_view(site_id, item_id)


@router.delete("/{site_id}/inventory/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_site_inventory_item(
        site_id: int,
        item_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    SiteInventoryService(db).remove_item(site_id, item_id, actor)
    return None


@router.post(
    "/{site_id}/inventory/{item_id}/movements",
    response_model=StockMovementResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_movement(
        site_id: int,
        item_id: int,
        payload: StockMovementCreate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    """Post an IN or OUT movement; an OUT larger than the balance is rejected"""
    return LedgerService(db).apply_movement(
        item_id,
        payload.movement_type,
        payload.quantity,
        actor=actor,
        reason=payload.reason,
        notes=payload.notes,
        site_id=site_id,
    )


@router.get("/{site_id}/inventory/{item_id}/movements", response_model=PaginatedResponse[StockMovementResponse])
def get_item_movements(
        site_id: int,
        item_id: int,
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
        db: Session = Depends(get_db),
):
    movements, total = LedgerService(db).list_movements(item_id, skip=skip, limit=limit, site_id=site_id)
    return {"data": movements, "total": total}


@router.get("/{site_id}/inventory/{item_id}/consistency", response_model=ConsistencyResponse)
def check_item_consistency(site_id: int, item_id: int, db: Session = Depends(get_db)):
    ledger = LedgerService(db)
    ledger.get_balance(item_id, site_id)
    return ledger.verify_consistency(item_id)


@router.get("/{site_id}/movements", response_model=PaginatedResponse[SiteMovementRow])
def get_site_movements(
        site_id: int,
        include_rented: bool = True,
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
        db: Session = Depends(get_db),
):
    rows, total = LedgerService(db).list_site_movements(site_id, include_rented=include_rented, skip=skip, limit=limit)
    return {"data": rows, "total": total}
