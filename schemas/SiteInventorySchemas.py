from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class SiteInventoryCreate(BaseModel):
    catalog_item_id: int
    quantity: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4, description="Initial quantity, booked as an IN movement")
    min_threshold: Optional[Decimal] = Field(default=None, ge=0, decimal_places=4, description="Defaults to the catalog threshold")
    average_price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=4, description="Defaults to the catalog unit value")
    is_tool: Optional[bool] = None


class SiteInventoryUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(default=None, ge=0, decimal_places=4, description="New balance; the difference is booked as an ADJUSTMENT movement")
    min_threshold: Optional[Decimal] = Field(default=None, ge=0, decimal_places=4)
    average_price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=4)
    is_tool: Optional[bool] = None
    reason: Optional[str] = None


class SiteInventoryResponse(BaseModel):
    id: int
    site_id: int
    catalog_item_id: int
    name: str
    unit: str
    category: str
    quantity: float
    average_price: float
    min_threshold: float
    is_tool: Optional[bool] = None
    is_tool_resolved: bool
    committed_quantity: float
    available_quantity: float
    is_low_stock: bool
    updated_at: datetime


class ConsistencyResponse(BaseModel):
    site_inventory_id: int
    quantity: float
    ledger_quantity: float
    consistent: bool
