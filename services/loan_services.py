from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

import config
from models.AuditTrail import AuditEntityEnum
from models.ConstructionSite import ConstructionSite
from models.RentedEquipment import RentedEquipment, RentedEquipmentStatusEnum
from models.SiteInventory import SiteInventoryItem
from models.ToolLoan import ToolLoan, ItemOriginEnum, LoanStatusEnum
from schemas.ActorSchemas import Actor
from services import availability
from services.audit_services import AuditService
from services.errors import InsufficientStockError, InvalidTransitionError, LedgerError, NotFoundError
from utils import get_local_now, to_local_naive

logger = logging.getLogger(__name__)


def _reference_column(origin: ItemOriginEnum):
    if origin == ItemOriginEnum.RENTED:
        return ToolLoan.rented_equipment_id
    return ToolLoan.site_inventory_id


def open_loan_totals(db: Session, site_id: int, origin: ItemOriginEnum) -> Dict[int, Decimal]:
    """Quantity currently lent out per balance (OWNED) or rented batch (RENTED) at a site."""
    ref = _reference_column(origin)
    rows = (
        db.query(ref, func.sum(ToolLoan.quantity))
        .filter(
            ToolLoan.site_id == site_id,
            ToolLoan.item_origin == origin,
            ToolLoan.status == LoanStatusEnum.OPEN,
            ref.isnot(None),
        )
        .group_by(ref)
        .all()
    )
    return {item_id: availability.to_decimal(total) for item_id, total in rows}


def open_loan_quantities(db: Session, origin: ItemOriginEnum, item_id: int) -> List[Decimal]:
    ref = _reference_column(origin)
    rows = (
        db.query(ToolLoan.quantity)
        .filter(
            ToolLoan.item_origin == origin,
            ref == item_id,
            ToolLoan.status == LoanStatusEnum.OPEN,
        )
        .all()
    )
    return [availability.to_decimal(q) for (q,) in rows]


class LoanService:
    """
    Tool loans shadow availability; they never write to a balance. A loan goes
    OPEN -> RETURNED exactly once.
    """

    def __init__(self, db: Session):
        self.db = db
        self.audit_service = AuditService(db)

    def available_for(self, origin: ItemOriginEnum, item_id: int) -> Decimal:
        source = self._get_source(origin, item_id)
        return availability.available(source.quantity, open_loan_quantities(self.db, origin, item_id))

    def _get_source(self, origin: ItemOriginEnum, item_id: int, site_id: Optional[int] = None, lock: bool = False):
        model = RentedEquipment if origin == ItemOriginEnum.RENTED else SiteInventoryItem
        query = self.db.query(model).filter(model.id == item_id)
        if site_id is not None:
            query = query.join(ConstructionSite, ConstructionSite.id == model.site_id).filter(
                model.site_id == site_id, ConstructionSite.is_deleted == False
            )
        if lock:
            # Serialises loan creation per item on databases with row locks
            query = query.with_for_update(of=model)
        source = query.first()
        if not source:
            label = "Rented equipment" if origin == ItemOriginEnum.RENTED else "Site inventory item"
            raise NotFoundError(label, item_id)
        return source

    def create_loan(
            self,
            site_id: int,
            actor: Actor,
            borrower_name: str,
            quantity,
            site_inventory_id: Optional[int] = None,
            rented_equipment_id: Optional[int] = None,
            borrower_id: Optional[str] = None,
            notes: Optional[str] = None,
            loan_date: Optional[datetime] = None,
    ) -> ToolLoan:
        if (site_inventory_id is None) == (rented_equipment_id is None):
            raise LedgerError("A loan must reference exactly one of site_inventory_id or rented_equipment_id")
        qty = availability.to_quantity(quantity)
        if qty <= 0:
            raise LedgerError("Quantity must be greater than zero")
        if not borrower_name or not borrower_name.strip():
            raise LedgerError("Borrower name is required")

        origin = ItemOriginEnum.RENTED if rented_equipment_id is not None else ItemOriginEnum.OWNED
        item_id = rented_equipment_id if origin == ItemOriginEnum.RENTED else site_inventory_id

        try:
            source = self._get_source(origin, item_id, site_id=site_id, lock=True)
            if origin == ItemOriginEnum.RENTED and source.status != RentedEquipmentStatusEnum.ACTIVE:
                raise InvalidTransitionError(
                    f"Rented equipment {source.name} was already returned to {source.supplier} and cannot be lent"
                )

            free = availability.available(source.quantity, open_loan_quantities(self.db, origin, item_id))
            if qty > free:
                logger.warning("Loan of %s x %s refused: only %s available", qty, source.name, free)
                raise InsufficientStockError(source.name, free, qty)

            loan = ToolLoan(
                site_id=site_id,
                item_origin=origin,
                site_inventory_id=site_inventory_id,
                rented_equipment_id=rented_equipment_id,
                item_name=source.name,
                borrower_name=borrower_name.strip(),
                borrower_id=borrower_id,
                quantity=qty,
                loan_date=to_local_naive(loan_date) or get_local_now(),
                status=LoanStatusEnum.OPEN,
                notes=notes,
            )
            self.db.add(loan)
            self.db.flush()

            self.audit_service.default_log(
                entity_id=loan.id,
                entity_type=AuditEntityEnum.TOOL_LOAN,
                description=f"{qty} x {source.name} lent to {loan.borrower_name}",
                user_name=actor.name,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(loan)
        logger.info("Loan %s opened: %s x %s to %s", loan.id, qty, loan.item_name, loan.borrower_name)
        return loan

    def get_loan(self, site_id: int, loan_id: int) -> ToolLoan:
        loan = (
            self.db.query(ToolLoan)
            .join(ConstructionSite, ConstructionSite.id == ToolLoan.site_id)
            .filter(ToolLoan.id == loan_id, ToolLoan.site_id == site_id, ConstructionSite.is_deleted == False)
            .first()
        )
        if not loan:
            raise NotFoundError("Tool loan", loan_id)
        return loan

    def return_loan(
            self,
            site_id: int,
            loan_id: int,
            actor: Actor,
            return_date: Optional[datetime] = None,
            return_notes: Optional[str] = None,
    ) -> ToolLoan:
        loan = self.get_loan(site_id, loan_id)
        if loan.status != LoanStatusEnum.OPEN:
            raise InvalidTransitionError(
                f"Loan {loan_id} was already returned; register a new loan to correct it"
            )

        returned_at = to_local_naive(return_date) or get_local_now()
        if returned_at < loan.loan_date:
            raise InvalidTransitionError(
                f"Return date {returned_at.isoformat()} is before loan date {loan.loan_date.isoformat()}"
            )

        loan.status = LoanStatusEnum.RETURNED
        loan.return_date = returned_at
        if return_notes:
            loan.return_notes = return_notes

        self.audit_service.default_log(
            entity_id=loan.id,
            entity_type=AuditEntityEnum.TOOL_LOAN,
            description=f"{loan.quantity} x {loan.item_name} returned by {loan.borrower_name}",
            user_name=actor.name,
        )
        self.db.commit()
        self.db.refresh(loan)
        logger.info("Loan %s returned", loan.id)
        return loan

    def list_open_loans(self, site_id: int) -> List[ToolLoan]:
        return (
            self.db.query(ToolLoan)
            .filter(ToolLoan.site_id == site_id, ToolLoan.status == LoanStatusEnum.OPEN)
            .order_by(ToolLoan.loan_date.desc(), ToolLoan.id.desc())
            .all()
        )

    def list_history(self, site_id: int, status: Optional[LoanStatusEnum] = None,
                     skip: int = 0, limit: int = 100) -> Tuple[List[ToolLoan], int]:
        query = self.db.query(ToolLoan).filter(ToolLoan.site_id == site_id)
        if status is not None:
            query = query.filter(ToolLoan.status == status)
        total = query.count()
        loans = (
            query.order_by(ToolLoan.updated_at.desc(), ToolLoan.loan_date.desc(), ToolLoan.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return loans, total

    def list_overdue(self, site_id: int, now: Optional[datetime] = None,
                     overdue_days: int = config.LOAN_OVERDUE_DAYS) -> List[ToolLoan]:
        now = to_local_naive(now) or get_local_now()
        return [
            loan for loan in self.list_open_loans(site_id)
            if availability.is_overdue(loan.loan_date, now, overdue_days)
        ]

    def list_tools(self, site_id: int) -> List[Dict]:
        """Everything at the site that classifies as a tool, with what is free to lend right now."""
        owned_committed = open_loan_totals(self.db, site_id, ItemOriginEnum.OWNED)
        rented_committed = open_loan_totals(self.db, site_id, ItemOriginEnum.RENTED)

        tools: List[Dict] = []
        balances = (
            self.db.query(SiteInventoryItem)
            .filter(SiteInventoryItem.site_id == site_id)
            .order_by(SiteInventoryItem.name, SiteInventoryItem.id)
            .all()
        )
        for item in balances:
            if not availability.is_tool(item.is_tool, item.category):
                continue
            committed = owned_committed.get(item.id, availability.ZERO)
            tools.append({
                "item_origin": ItemOriginEnum.OWNED,
                "item_id": item.id,
                "name": item.name,
                "unit": item.unit,
                "category": item.category,
                "is_tool": item.is_tool,
                "quantity": item.quantity,
                "committed_quantity": committed,
                "available_quantity": availability.available(item.quantity, [committed]),
            })

        equipments = (
            self.db.query(RentedEquipment)
            .filter(RentedEquipment.site_id == site_id, RentedEquipment.status == RentedEquipmentStatusEnum.ACTIVE)
            .order_by(RentedEquipment.name, RentedEquipment.id)
            .all()
        )
        for eq in equipments:
            if not availability.is_tool(eq.is_tool, eq.category):
                continue
            committed = rented_committed.get(eq.id, availability.ZERO)
            tools.append({
                "item_origin": ItemOriginEnum.RENTED,
                "item_id": eq.id,
                "name": eq.name,
                "unit": eq.unit,
                "category": eq.category,
                "is_tool": eq.is_tool,
                "quantity": eq.quantity,
                "committed_quantity": committed,
                "available_quantity": availability.available(eq.quantity, [committed]),
            })
        return tools
