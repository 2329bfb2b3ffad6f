from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CatalogItemBase(BaseModel):
    name: str
    unit: str
    category: str = ""
    cost_type: Optional[str] = None
    unit_value: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    min_threshold: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    stock_control: bool = True
    is_active: bool = True


class CatalogItemCreate(CatalogItemBase):
    code: Optional[str] = None


class CatalogItemUpdate(CatalogItemBase):
    code: Optional[str] = None


class CatalogItemOut(BaseModel):
    id: int
    code: Optional[str] = None
    name: str
    unit: str
    category: str
    cost_type: Optional[str] = None
    unit_value: float
    min_threshold: float
    stock_control: bool
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
