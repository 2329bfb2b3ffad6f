from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from models.RentedEquipment import RentedEquipmentStatusEnum


class RentedEquipmentEntry(BaseModel):
    name: str = Field(min_length=1)
    supplier: str = Field(min_length=1)
    category: str
    unit: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0, decimal_places=4)
    entry_date: Optional[datetime] = None
    entry_photos: List[str] = []
    description: Optional[str] = None
    is_tool: Optional[bool] = None


class RentedEquipmentExit(BaseModel):
    exit_date: Optional[datetime] = None
    exit_photos: List[str] = []


class ToolFlagUpdate(BaseModel):
    is_tool: Optional[bool] = Field(default=None, description="null clears the flag and falls back to the category")


class RentedEquipmentResponse(BaseModel):
    id: int
    site_id: int
    name: str
    supplier: str
    description: Optional[str] = None
    category: str
    unit: str
    quantity: float
    entry_date: datetime
    exit_date: Optional[datetime] = None
    status: RentedEquipmentStatusEnum
    is_tool: Optional[bool] = None
    is_tool_resolved: bool
    entry_photos: List[str] = []
    exit_photos: List[str] = []
    committed_quantity: float
    available_quantity: float
    updated_at: Optional[datetime] = None
