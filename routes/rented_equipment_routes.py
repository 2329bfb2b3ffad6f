from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from database import get_db
from models.RentedEquipment import RentedEquipmentStatusEnum
from schemas.ActorSchemas import Actor
from schemas.PaginatedResponseSchemas import PaginatedResponse
from schemas.RentedEquipmentSchemas import (
    RentedEquipmentEntry,
    RentedEquipmentExit,
    RentedEquipmentResponse,
    ToolFlagUpdate,
)
from services.rented_equipment_services import RentedEquipmentService
from utils import get_current_actor

router = APIRouter()


@router.get("/{site_id}/rented-equipment", response_model=PaginatedResponse[RentedEquipmentResponse])
def get_rented_equipment(
        site_id: int,
        status: Optional[str] = Query(None, pattern="^(ACTIVE|RETURNED|ALL)$", description="ACTIVE, RETURNED or ALL"),
        db: Session = Depends(get_db),
):
    status_enum = RentedEquipmentStatusEnum(status) if status and status != "ALL" else None
    rows = RentedEquipmentService(db).list_equipment(site_id, status=status_enum)
    return {"data": rows, "total": len(rows)}


@router.post("/{site_id}/rented-equipment", response_model=RentedEquipmentResponse, status_code=status.HTTP_201_CREATED)
def register_entry(
        site_id: int,
        payload: RentedEquipmentEntry,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    service = RentedEquipmentService(db)
    eq = service.register_entry(site_id, actor, **payload.model_dump())
    return service.get_equipment_view(site_id, eq.id)


@router.get("/{site_id}/rented-equipment/{equipment_id}", response_model=RentedEquipmentResponse)
def get_rented_equipment_by_id(site_id: int, equipment_id: int, db: Session = Depends(get_db)):
    return RentedEquipmentService(db).get_equipment_view(site_id, equipment_id)


@router.post("/{site_id}/rented-equipment/{equipment_id}/exit", response_model=RentedEquipmentResponse)
def register_exit(
        site_id: int,
        equipment_id: int,
        payload: RentedEquipmentExit,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    service = RentedEquipmentService(db)
    service.register_exit(site_id, equipment_id, actor, exit_date=payload.exit_date, exit_photos=payload.exit_photos)
    return service.get_equipment_view(site_id, equipment_id)


@router.put("/{site_id}/rented-equipment/{equipment_id}/tool-flag", response_model=RentedEquipmentResponse)
def update_tool_flag(
        site_id: int,
        equipment_id: int,
        payload: ToolFlagUpdate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    service = RentedEquipmentService(db)
    service.set_tool_flag(site_id, equipment_id, actor, payload.is_tool)
    return service.get_equipment_view(site_id, equipment_id)
