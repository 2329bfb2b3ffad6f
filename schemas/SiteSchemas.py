from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from schemas.SiteInventorySchemas import SiteInventoryResponse
from schemas.StockMovementSchemas import SiteMovementRow


class SiteBase(BaseModel):
    name: str
    address: Optional[str] = None
    is_active: Optional[bool] = True


class SiteCreate(SiteBase):
    pass


class SiteUpdate(SiteBase):
    pass


class SiteOut(SiteBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class SiteOverviewResponse(BaseModel):
    site_id: int
    site_name: str
    item_count: int
    stock_value: float
    low_stock_count: int
    low_stock_items: List[SiteInventoryResponse]
    active_rented_count: int
    open_loan_count: int
    overdue_loan_count: int
    recent_movements: List[SiteMovementRow]
