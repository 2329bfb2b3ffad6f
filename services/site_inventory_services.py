from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.AuditTrail import AuditEntityEnum
from models.ConstructionSite import ConstructionSite
from models.SiteInventory import SiteInventoryItem
from models.StockMovement import StockMovement, MovementTypeEnum, MovementCategoryEnum
from models.ToolLoan import ItemOriginEnum
from schemas.ActorSchemas import Actor
from services import availability
from services.audit_services import AuditService
from services.catalog_services import get_catalog_item
from services.errors import DuplicateAttachmentError, LedgerError, NotFoundError
from services.ledger_services import LedgerService
from services.loan_services import open_loan_totals
from utils import get_local_now

logger = logging.getLogger(__name__)

INITIAL_REASON = "Cadastro Inicial"
ADJUSTMENT_REASON = "Ajuste de saldo"

# Marks "field not sent" for tri-state values where None is meaningful
UNSET = object()


def get_site(db: Session, site_id: int) -> ConstructionSite:
    site = db.query(ConstructionSite).filter(
        ConstructionSite.id == site_id,
        ConstructionSite.is_deleted == False
    ).first()
    if not site:
        raise NotFoundError("Construction site", site_id)
    return site


def balance_view(item: SiteInventoryItem, committed: Decimal = availability.ZERO) -> Dict:
    """Balance row decorated with the read-time derivations shown by inventory screens."""
    return {
        "id": item.id,
        "site_id": item.site_id,
        "catalog_item_id": item.catalog_item_id,
        "name": item.name,
        "unit": item.unit,
        "category": item.category,
        "quantity": item.quantity,
        "average_price": item.average_price,
        "min_threshold": item.min_threshold,
        "is_tool": item.is_tool,
        "is_tool_resolved": availability.is_tool(item.is_tool, item.category),
        "committed_quantity": committed,
        "available_quantity": availability.available(item.quantity, [committed]),
        "is_low_stock": availability.is_low_stock(item.quantity, item.min_threshold),
        "updated_at": item.updated_at,
    }


class SiteInventoryService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.audit_service = AuditService(db)

    def list_inventory(
            self,
            site_id: int,
            search: Optional[str] = None,
            category: Optional[str] = None,
            low_stock_only: bool = False,
    ) -> List[Dict]:
        get_site(self.db, site_id)

        query = self.db.query(SiteInventoryItem).filter(SiteInventoryItem.site_id == site_id)
        if search:
            query = query.filter(SiteInventoryItem.name.ilike(f"%{search}%"))
        if category:
            query = query.filter(SiteInventoryItem.category == category)
        items = query.order_by(SiteInventoryItem.name, SiteInventoryItem.id).all()

        committed = open_loan_totals(self.db, site_id, ItemOriginEnum.OWNED)
        views = [balance_view(item, committed.get(item.id, availability.ZERO)) for item in items]
        if low_stock_only:
            views = [v for v in views if v["is_low_stock"]]
        return views

    def get_item_view(self, site_id: int, balance_id: int) -> Dict:
        item = self.ledger.get_balance(balance_id, site_id)
        committed = open_loan_totals(self.db, site_id, ItemOriginEnum.OWNED)
        return balance_view(item, committed.get(item.id, availability.ZERO))

    def attach_item(
            self,
            site_id: int,
            catalog_item_id: int,
            actor: Actor,
            quantity=0,
            min_threshold=None,
            average_price=None,
            is_tool: Optional[bool] = None,
    ) -> SiteInventoryItem:
        """
        Attach a catalog material to a site. Name, unit and category are copied
        from the catalog once, here; an initial quantity is booked as an IN movement.
        """
        get_site(self.db, site_id)
        catalog_item = get_catalog_item(self.db, catalog_item_id)

        exists = self.db.query(SiteInventoryItem.id).filter(
            SiteInventoryItem.site_id == site_id,
            SiteInventoryItem.catalog_item_id == catalog_item_id
        ).first()
        if exists:
            raise DuplicateAttachmentError(site_id, catalog_item_id)

        initial_qty = availability.to_quantity(quantity)
        if initial_qty < 0:
            raise LedgerError("Initial quantity cannot be negative")

        item = SiteInventoryItem(
            site_id=site_id,
            catalog_item_id=catalog_item.id,
            name=catalog_item.name,
            unit=catalog_item.unit,
            category=catalog_item.category or "",
            quantity=initial_qty,
            average_price=availability.to_quantity(
                average_price if average_price is not None else catalog_item.unit_value
            ),
            min_threshold=availability.to_quantity(
                min_threshold if min_threshold is not None else catalog_item.min_threshold
            ),
            is_tool=is_tool,
            updated_at=get_local_now(),
        )
        if initial_qty > 0:
            item.movements.append(StockMovement(
                movement_type=MovementTypeEnum.IN,
                category=MovementCategoryEnum.GENERIC,
                quantity=initial_qty,
                movement_date=get_local_now(),
                reason=INITIAL_REASON,
                actor_id=actor.id,
                actor_name=actor.name,
            ))
        self.db.add(item)

        try:
            self.db.flush()
        except IntegrityError:
            # Lost a race against another attach of the same material
            self.db.rollback()
            raise DuplicateAttachmentError(site_id, catalog_item_id)

        self.audit_service.default_log(
            entity_id=item.id,
            entity_type=AuditEntityEnum.SITE_INVENTORY,
            description=f"{item.name} attached to site {site_id} with {initial_qty} {item.unit}",
            user_name=actor.name,
        )
        self.db.commit()
        self.db.refresh(item)
        logger.info("Catalog item %s attached to site %s as balance %s", catalog_item_id, site_id, item.id)
        return item

    def update_item(
            self,
            site_id: int,
            balance_id: int,
            actor: Actor,
            quantity=None,
            min_threshold=None,
            average_price=None,
            is_tool=UNSET,
            reason: Optional[str] = None,
    ) -> SiteInventoryItem:
        """
        Administrative edit of a balance. A changed quantity is never written
        directly: the difference is booked as an ADJUSTMENT movement so the
        balance keeps matching its ledger.
        """
        target = availability.to_quantity(quantity) if quantity is not None else None
        if target is not None and target < 0:
            raise LedgerError("Quantity cannot be negative")

        def _edit(balance: SiteInventoryItem):
            changes = []
            if min_threshold is not None:
                balance.min_threshold = availability.to_quantity(min_threshold)
                changes.append(f"min_threshold={balance.min_threshold}")
            if average_price is not None:
                balance.average_price = availability.to_quantity(average_price)
                changes.append(f"average_price={balance.average_price}")
            if is_tool is not UNSET:
                balance.is_tool = is_tool
                changes.append(f"is_tool={is_tool}")

            current = availability.to_decimal(balance.quantity)
            new_quantity = current
            movement = None
            if target is not None and target != current:
                delta = target - current
                movement = StockMovement(
                    movement_type=MovementTypeEnum.IN if delta > 0 else MovementTypeEnum.OUT,
                    category=MovementCategoryEnum.ADJUSTMENT,
                    quantity=abs(delta),
                    movement_date=get_local_now(),
                    reason=reason or ADJUSTMENT_REASON,
                    actor_id=actor.id,
                    actor_name=actor.name,
                )
                new_quantity = target
                changes.append(f"quantity {current} -> {target}")

            self.audit_service.default_log(
                entity_id=balance.id,
                entity_type=AuditEntityEnum.SITE_INVENTORY,
                description=f"{balance.name} updated: {', '.join(changes) if changes else 'no changes'}",
                user_name=actor.name,
            )
            return new_quantity, movement

        balance, _ = self.ledger.with_transaction(balance_id, _edit, site_id=site_id)
        return balance

    def resync_from_catalog(self, site_id: int, balance_id: int, actor: Actor) -> SiteInventoryItem:
        """Explicitly re-copy name, unit and category from the catalog."""
        def _resync(balance: SiteInventoryItem):
            catalog_item = get_catalog_item(self.db, balance.catalog_item_id)
            old = (balance.name, balance.unit, balance.category)
            balance.name = catalog_item.name
            balance.unit = catalog_item.unit
            balance.category = catalog_item.category or ""
            self.audit_service.default_log(
                entity_id=balance.id,
                entity_type=AuditEntityEnum.SITE_INVENTORY,
                description=f"Catalog fields resynced: {old} -> {(balance.name, balance.unit, balance.category)}",
                user_name=actor.name,
            )
            return availability.to_decimal(balance.quantity), None

        balance, _ = self.ledger.with_transaction(balance_id, _resync, site_id=site_id)
        return balance

    def remove_item(self, site_id: int, balance_id: int, actor: Actor) -> None:
        """Remove a material from the site. Its movement history goes with it."""
        item = self.ledger.get_balance(balance_id, site_id)
        self.audit_service.default_log(
            entity_id=item.id,
            entity_type=AuditEntityEnum.SITE_INVENTORY,
            description=f"{item.name} removed from site {site_id} (quantity was {item.quantity} {item.unit})",
            user_name=actor.name,
        )
        self.db.delete(item)
        self.db.commit()
        logger.info("Balance %s removed from site %s", balance_id, site_id)
