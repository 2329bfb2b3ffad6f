from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from models.ToolLoan import ItemOriginEnum, LoanStatusEnum


class ToolLoanCreate(BaseModel):
    site_inventory_id: Optional[int] = None
    rented_equipment_id: Optional[int] = None
    borrower_name: str = Field(min_length=1)
    borrower_id: Optional[str] = None
    quantity: Decimal = Field(gt=0, decimal_places=4)
    notes: Optional[str] = None
    loan_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_single_source(self):
        if (self.site_inventory_id is None) == (self.rented_equipment_id is None):
            raise ValueError("Provide exactly one of site_inventory_id or rented_equipment_id")
        return self


class ToolLoanReturn(BaseModel):
    return_date: Optional[datetime] = None
    return_notes: Optional[str] = None


class ToolLoanResponse(BaseModel):
    id: int
    site_id: int
    item_origin: ItemOriginEnum
    site_inventory_id: Optional[int] = None
    rented_equipment_id: Optional[int] = None
    item_name: str
    borrower_name: str
    borrower_id: Optional[str] = None
    quantity: float
    loan_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatusEnum
    notes: Optional[str] = None
    return_notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ToolAvailabilityResponse(BaseModel):
    item_origin: ItemOriginEnum
    item_id: int
    name: str
    unit: str
    category: str
    is_tool: Optional[bool] = None
    quantity: float
    committed_quantity: float
    available_quantity: float
