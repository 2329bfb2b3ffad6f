from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from models.SiteInventory import SiteInventoryItem
from models.StockMovement import StockMovement, MovementTypeEnum, MovementCategoryEnum
from models.ToolLoan import ItemOriginEnum
from schemas.ActorSchemas import Actor
from services import availability
from services.ledger_services import LedgerService
from services.loan_services import open_loan_totals
from services.site_inventory_services import balance_view, get_site

# Display text only; withdrawals are identified by MovementCategoryEnum.EPI_WITHDRAWAL
EPI_WITHDRAWAL_REASON = "Retirada de EPI"


class EpiService:
    """
    Protective equipment handed to a collaborator. A withdrawal is an OUT
    movement tagged EPI_WITHDRAWAL, with the collaborator as the actor.
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)

    def list_epi_items(self, site_id: int) -> List[Dict]:
        get_site(self.db, site_id)
        items = (
            self.db.query(SiteInventoryItem)
            .filter(SiteInventoryItem.site_id == site_id)
            .order_by(SiteInventoryItem.name, SiteInventoryItem.id)
            .all()
        )
        committed = open_loan_totals(self.db, site_id, ItemOriginEnum.OWNED)
        return [
            balance_view(item, committed.get(item.id, availability.ZERO))
            for item in items
            if availability.category_suggests_epi(item.category)
        ]

    def register_withdrawal(
            self,
            site_id: int,
            site_inventory_id: int,
            collaborator: Actor,
            quantity,
            notes: Optional[str] = None,
            withdrawal_date: Optional[datetime] = None,
    ) -> StockMovement:
        return self.ledger.apply_movement(
            site_inventory_id,
            MovementTypeEnum.OUT,
            quantity,
            actor=collaborator,
            reason=EPI_WITHDRAWAL_REASON,
            category=MovementCategoryEnum.EPI_WITHDRAWAL,
            notes=notes,
            movement_date=withdrawal_date,
            site_id=site_id,
        )

    def list_withdrawals(self, site_id: int, collaborator_id: Optional[str] = None) -> List[Dict]:
        get_site(self.db, site_id)
        query = (
            select(StockMovement, SiteInventoryItem.name, SiteInventoryItem.unit)
            .join(SiteInventoryItem, SiteInventoryItem.id == StockMovement.site_inventory_id)
            .where(
                SiteInventoryItem.site_id == site_id,
                StockMovement.category == MovementCategoryEnum.EPI_WITHDRAWAL,
            )
        )
        if collaborator_id is not None:
            query = query.where(StockMovement.actor_id == collaborator_id)
        rows = self.db.execute(
            query.order_by(desc(StockMovement.movement_date), desc(StockMovement.id))
        ).all()

        return [
            {
                "id": movement.id,
                "site_id": site_id,
                "site_inventory_id": movement.site_inventory_id,
                "item_name": item_name,
                "item_unit": item_unit,
                "collaborator_id": movement.actor_id,
                "collaborator_name": movement.actor_name,
                "quantity": movement.quantity,
                "date": movement.movement_date,
                "notes": movement.notes,
            }
            for movement, item_name, item_unit in rows
        ]
