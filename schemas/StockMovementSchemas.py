from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from models.StockMovement import MovementTypeEnum, MovementCategoryEnum


class StockMovementCreate(BaseModel):
    movement_type: MovementTypeEnum = Field(..., description="IN or OUT")
    quantity: Decimal = Field(gt=0, decimal_places=4, description="Quantity must be greater than 0")
    reason: Optional[str] = None
    notes: Optional[str] = None


class StockMovementResponse(BaseModel):
    id: int
    site_inventory_id: int
    movement_type: MovementTypeEnum
    category: MovementCategoryEnum
    quantity: float
    movement_date: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None

    class Config:
        from_attributes = True


class SiteMovementRow(BaseModel):
    id: str
    movement_id: Optional[int] = None
    site_inventory_id: Optional[int] = None
    movement_type: MovementTypeEnum
    category: MovementCategoryEnum
    quantity: float
    movement_date: datetime
    reason: Optional[str] = None
    actor_name: Optional[str] = None
    item_name: str
    item_unit: str
    is_rented: bool


class EpiWithdrawalCreate(BaseModel):
    site_inventory_id: int
    collaborator_id: str
    collaborator_name: str
    quantity: Decimal = Field(gt=0, decimal_places=4)
    notes: Optional[str] = None
    date: Optional[datetime] = None


class EpiWithdrawalResponse(BaseModel):
    id: int
    site_id: int
    site_inventory_id: int
    item_name: str
    item_unit: str
    collaborator_id: Optional[str] = None
    collaborator_name: Optional[str] = None
    quantity: float
    date: datetime
    notes: Optional[str] = None
