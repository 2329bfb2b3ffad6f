from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from database import get_db
from models.ToolLoan import LoanStatusEnum
from schemas.ActorSchemas import Actor
from schemas.PaginatedResponseSchemas import PaginatedResponse
from schemas.ToolLoanSchemas import ToolLoanCreate, ToolLoanReturn, ToolLoanResponse, ToolAvailabilityResponse
from services.loan_services import LoanService
from services.site_inventory_services import get_site
from utils import get_current_actor

router = APIRouter()


@router.get("/{site_id}/tools", response_model=List[ToolAvailabilityResponse])
def get_site_tools(site_id: int, db: Session = Depends(get_db)):
    """Owned and rented items that classify as tools, with current availability"""
    get_site(db, site_id)
    return LoanService(db).list_tools(site_id)


@router.post("/{site_id}/loans", response_model=ToolLoanResponse, status_code=status.HTTP_201_CREATED)
def create_loan(
        site_id: int,
        payload: ToolLoanCreate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    get_site(db, site_id)
    return LoanService(db).create_loan(
        site_id,
        actor,
        borrower_name=payload.borrower_name,
        quantity=payload.quantity,
        site_inventory_id=payload.site_inventory_id,
        rented_equipment_id=payload.rented_equipment_id,
        borrower_id=payload.borrower_id,
        notes=payload.notes,
        loan_date=payload.loan_date,
    )


@router.get("/{site_id}/loans", response_model=PaginatedResponse[ToolLoanResponse])
def get_loans(
        site_id: int,
        status: Optional[str] = Query(None, pattern="^(OPEN|RETURNED|ALL)$", description="OPEN, RETURNED or ALL"),
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
        db: Session = Depends(get_db),
):
    get_site(db, site_id)
    status_enum = LoanStatusEnum(status) if status and status != "ALL" else None
    loans, total = LoanService(db).list_history(site_id, status=status_enum, skip=skip, limit=limit)
    return {"data": loans, "total": total}


@router.get("/{site_id}/loans/overdue", response_model=List[ToolLoanResponse])
def get_overdue_loans(site_id: int, db: Session = Depends(get_db)):
    get_site(db, site_id)
    return LoanService(db).list_overdue(site_id)


@router.get("/{site_id}/loans/{loan_id}", response_model=ToolLoanResponse)
def get_loan(site_id: int, loan_id: int, db: Session = Depends(get_db)):
    return LoanService(db).get_loan(site_id, loan_id)


@router.post("/{site_id}/loans/{loan_id}/return", response_model=ToolLoanResponse)
def return_loan(
        site_id: int,
        loan_id: int,
        payload: Optional[ToolLoanReturn] = None,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
):
    payload = payload or ToolLoanReturn()
    return LoanService(db).return_loan(
        site_id,
        loan_id,
        actor,
        return_date=payload.return_date,
        return_notes=payload.return_notes,
    )
