from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from models.AuditTrail import AuditEntityEnum
from models.ConstructionSite import ConstructionSite
from models.RentedEquipment import (
    RentedEquipment, RentedEquipmentPhoto, RentedEquipmentStatusEnum, PhotoPhaseEnum
)
from models.ToolLoan import ItemOriginEnum
from schemas.ActorSchemas import Actor
from services import availability
from services.audit_services import AuditService
from services.errors import InvalidTransitionError, LedgerError, NotFoundError
from services.loan_services import open_loan_totals
from services.site_inventory_services import get_site
from utils import get_local_now, to_local_naive

logger = logging.getLogger(__name__)


def equipment_view(eq: RentedEquipment, committed=availability.ZERO) -> Dict:
    loanable = eq.status == RentedEquipmentStatusEnum.ACTIVE
    return {
        "id": eq.id,
        "site_id": eq.site_id,
        "name": eq.name,
        "supplier": eq.supplier,
        "description": eq.description,
        "category": eq.category,
        "unit": eq.unit,
        "quantity": eq.quantity,
        "entry_date": eq.entry_date,
        "exit_date": eq.exit_date,
        "status": eq.status,
        "is_tool": eq.is_tool,
        "is_tool_resolved": availability.is_tool(eq.is_tool, eq.category),
        "entry_photos": eq.entry_photos,
        "exit_photos": eq.exit_photos,
        "committed_quantity": committed,
        # Returned batches are no longer offered for new loans
        "available_quantity": availability.available(eq.quantity, [committed]) if loanable else availability.ZERO,
        "updated_at": eq.updated_at,
    }


class RentedEquipmentService:
    """Rented batches move ACTIVE -> RETURNED once; only ACTIVE batches can be lent."""

    def __init__(self, db: Session):
        self.db = db
        self.audit_service = AuditService(db)

    def get_equipment(self, site_id: int, equipment_id: int) -> RentedEquipment:
        eq = (
            self.db.query(RentedEquipment)
            .options(selectinload(RentedEquipment.photos))
            .join(ConstructionSite, ConstructionSite.id == RentedEquipment.site_id)
            .filter(
                RentedEquipment.id == equipment_id,
                RentedEquipment.site_id == site_id,
                ConstructionSite.is_deleted == False,
            )
            .first()
        )
        if not eq:
            raise NotFoundError("Rented equipment", equipment_id)
        return eq

    def get_equipment_view(self, site_id: int, equipment_id: int) -> Dict:
        eq = self.get_equipment(site_id, equipment_id)
        committed = open_loan_totals(self.db, site_id, ItemOriginEnum.RENTED)
        return equipment_view(eq, committed.get(eq.id, availability.ZERO))

    def list_equipment(self, site_id: int, status: Optional[RentedEquipmentStatusEnum] = None) -> List[Dict]:
        get_site(self.db, site_id)
        query = (
            self.db.query(RentedEquipment)
            .options(selectinload(RentedEquipment.photos))
            .filter(RentedEquipment.site_id == site_id)
        )
        if status is not None:
            query = query.filter(RentedEquipment.status == status)
        equipments = query.order_by(RentedEquipment.entry_date.desc(), RentedEquipment.id.desc()).all()

        committed = open_loan_totals(self.db, site_id, ItemOriginEnum.RENTED)
        return [equipment_view(eq, committed.get(eq.id, availability.ZERO)) for eq in equipments]

    def register_entry(
            self,
            site_id: int,
            actor: Actor,
            name: str,
            supplier: str,
            category: str,
            unit: str,
            quantity,
            entry_date: Optional[datetime] = None,
            entry_photos: Sequence[str] = (),
            description: Optional[str] = None,
            is_tool: Optional[bool] = None,
    ) -> RentedEquipment:
        get_site(self.db, site_id)
        qty = availability.to_quantity(quantity)
        if qty <= 0:
            raise LedgerError("Quantity must be greater than zero")

        eq = RentedEquipment(
            site_id=site_id,
            name=name,
            supplier=supplier,
            description=description,
            category=category or "",
            unit=unit,
            quantity=qty,
            entry_date=to_local_naive(entry_date) or get_local_now(),
            status=RentedEquipmentStatusEnum.ACTIVE,
            is_tool=is_tool,
        )
        for path in entry_photos:
            eq.photos.append(RentedEquipmentPhoto(phase=PhotoPhaseEnum.ENTRY, file_path=path))
        if not entry_photos:
            logger.warning("Rented equipment %s registered without entry photos", name)

        self.db.add(eq)
        self.db.flush()
        self.audit_service.default_log(
            entity_id=eq.id,
            entity_type=AuditEntityEnum.RENTED_EQUIPMENT,
            description=f"Entry of {qty} {unit} {name} rented from {supplier}",
            user_name=actor.name,
        )
        self.db.commit()
        self.db.refresh(eq)
        return eq

    def register_exit(
            self,
            site_id: int,
            equipment_id: int,
            actor: Actor,
            exit_date: Optional[datetime] = None,
            exit_photos: Sequence[str] = (),
    ) -> RentedEquipment:
        """
        Return the batch to its supplier. Open loans against it stay open until
        returned individually; the batch just stops being offered for new ones.
        """
        eq = self.get_equipment(site_id, equipment_id)
        if eq.status != RentedEquipmentStatusEnum.ACTIVE:
            raise InvalidTransitionError(f"Rented equipment {eq.name} was already returned")

        exited_at = to_local_naive(exit_date) or get_local_now()
        if exited_at < eq.entry_date:
            raise InvalidTransitionError(
                f"Exit date {exited_at.isoformat()} is before entry date {eq.entry_date.isoformat()}"
            )

        eq.status = RentedEquipmentStatusEnum.RETURNED
        eq.exit_date = exited_at
        for path in exit_photos:
            eq.photos.append(RentedEquipmentPhoto(phase=PhotoPhaseEnum.EXIT, file_path=path))

        open_loans = open_loan_totals(self.db, site_id, ItemOriginEnum.RENTED).get(eq.id)
        if open_loans:
            logger.warning("Rented equipment %s returned with %s units still on loan", eq.id, open_loans)

        self.audit_service.default_log(
            entity_id=eq.id,
            entity_type=AuditEntityEnum.RENTED_EQUIPMENT,
            description=f"Exit of {eq.quantity} {eq.unit} {eq.name} back to {eq.supplier}",
            user_name=actor.name,
        )
        self.db.commit()
        self.db.refresh(eq)
        return eq

    def set_tool_flag(self, site_id: int, equipment_id: int, actor: Actor, is_tool: Optional[bool]) -> RentedEquipment:
        eq = self.get_equipment(site_id, equipment_id)
        eq.is_tool = is_tool
        self.audit_service.default_log(
            entity_id=eq.id,
            entity_type=AuditEntityEnum.RENTED_EQUIPMENT,
            description=f"Tool flag of {eq.name} set to {is_tool}",
            user_name=actor.name,
        )
        self.db.commit()
        self.db.refresh(eq)
        return eq
