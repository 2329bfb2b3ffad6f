from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from database import get_db
from schemas.ActorSchemas import Actor
from schemas.PaginatedResponseSchemas import PaginatedResponse
from schemas.SiteInventorySchemas import SiteInventoryResponse
from schemas.StockMovementSchemas import EpiWithdrawalCreate, EpiWithdrawalResponse, StockMovementResponse
from services.epi_services import EpiService

router = APIRouter()


@router.get("/{site_id}/epi/items", response_model=List[SiteInventoryResponse])
def get_epi_items(site_id: int, db: Session = Depends(get_db)):
    return EpiService(db).list_epi_items(site_id)


@router.post("/{site_id}/epi/withdrawals", response_model=StockMovementResponse, status_code=status.HTTP_201_CREATED)
def register_epi_withdrawal(site_id: int, payload: EpiWithdrawalCreate, db: Session = Depends(get_db)):
    collaborator = Actor(id=payload.collaborator_id, name=payload.collaborator_name)
    return EpiService(db).register_withdrawal(
        site_id,
        payload.site_inventory_id,
        collaborator,
        payload.quantity,
        notes=payload.notes,
        withdrawal_date=payload.date,
    )


@router.get("/{site_id}/epi/withdrawals", response_model=PaginatedResponse[EpiWithdrawalResponse])
def get_epi_withdrawals(site_id: int, collaborator_id: Optional[str] = None, db: Session = Depends(get_db)):
    rows = EpiService(db).list_withdrawals(site_id, collaborator_id=collaborator_id)
    return {"data": rows, "total": len(rows)}
