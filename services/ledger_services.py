from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import and_, case, desc, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

import config
from models.AuditTrail import AuditEntityEnum
from models.ConstructionSite import ConstructionSite
from models.RentedEquipment import RentedEquipment
from models.SiteInventory import SiteInventoryItem
from models.StockMovement import StockMovement, MovementTypeEnum, MovementCategoryEnum
from schemas.ActorSchemas import Actor, SYSTEM_ACTOR
from services.audit_services import AuditService
from services.availability import QUANTUM, to_decimal, to_quantity
from services.errors import (
    ConcurrentModificationError, InsufficientStockError, LedgerError, NotFoundError
)
from utils import get_local_now, to_local_naive

logger = logging.getLogger(__name__)

RENTED_ENTRY_REASON = "Locação: {supplier}"
RENTED_EXIT_REASON = "Devolução Locação"

# fn(balance) -> (new_quantity, movement or None)
TransactionFn = Callable[[SiteInventoryItem], Tuple[Decimal, Optional[StockMovement]]]


class LedgerService:
    """
    The only writer of SiteInventoryItem.quantity.

    Every write goes through `with_transaction`, which re-reads the balance,
    lets the caller compute the new quantity and ledger event, and flushes both
    in one database transaction. The UPDATE is conditional on the row's
    `version` (compare-and-swap); a concurrent writer makes it match zero rows,
    in which case the unit is rolled back and retried from a fresh read.
    """

    def __init__(self, db: Session, max_retries: int = config.LEDGER_MAX_RETRIES):
        self.db = db
        self.max_retries = max_retries
        self.audit_service = AuditService(db)

    def get_balance(self, balance_id: int, site_id: Optional[int] = None) -> SiteInventoryItem:
        query = self.db.query(SiteInventoryItem).filter(SiteInventoryItem.id == balance_id)
        if site_id is not None:
            query = query.filter(SiteInventoryItem.site_id == site_id)
            # Balances of a deleted site are gone as far as callers are concerned
            query = query.join(ConstructionSite, ConstructionSite.id == SiteInventoryItem.site_id).filter(
                ConstructionSite.is_deleted == False
            )
        balance = query.populate_existing().first()
        if not balance:
            raise NotFoundError("Site inventory item", balance_id)
        return balance

    def with_transaction(self, balance_id: int, fn: TransactionFn,
                         site_id: Optional[int] = None) -> Tuple[SiteInventoryItem, Optional[StockMovement]]:
        attempts = 0
        while True:
            attempts += 1
            try:
                balance = self.get_balance(balance_id, site_id)
                new_quantity, movement = fn(balance)
                if new_quantity < 0:
                    raise InsufficientStockError(balance.name, to_decimal(balance.quantity), to_decimal(balance.quantity) - new_quantity)

                balance.quantity = new_quantity
                balance.updated_at = get_local_now()
                if movement is not None:
                    movement.site_inventory_id = balance.id
                    self.db.add(movement)

                self.db.flush()
                self.db.commit()
            except StaleDataError:
                self.db.rollback()
                logger.warning("Balance %s changed concurrently (attempt %s/%s)", balance_id, attempts, self.max_retries)
                if attempts >= self.max_retries:
                    raise ConcurrentModificationError(balance_id, attempts)
                continue
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(balance)
            if movement is not None:
                self.db.refresh(movement)
            return balance, movement

    def apply_movement(
            self,
            balance_id: int,
            movement_type: MovementTypeEnum,
            quantity,
            actor: Optional[Actor] = None,
            reason: Optional[str] = None,
            category: MovementCategoryEnum = MovementCategoryEnum.GENERIC,
            notes: Optional[str] = None,
            movement_date: Optional[datetime] = None,
            site_id: Optional[int] = None,
    ) -> StockMovement:
        actor = actor or SYSTEM_ACTOR
        qty = to_quantity(quantity)
        if qty <= 0:
            raise LedgerError(f"Quantity must be greater than zero at a scale of {QUANTUM}, got {quantity}")
        movement_type = MovementTypeEnum(movement_type)

        def _post(balance: SiteInventoryItem):
            current = to_decimal(balance.quantity)
            if movement_type == MovementTypeEnum.IN:
                new_quantity = current + qty
            else:
                new_quantity = current - qty
                if new_quantity < 0:
                    logger.warning(
                        "Rejected OUT of %s from balance %s (%s): only %s on hand",
                        qty, balance.id, balance.name, current,
                    )
                    raise InsufficientStockError(balance.name, current, qty)

            movement = StockMovement(
                movement_type=movement_type,
                category=category,
                quantity=qty,
                movement_date=to_local_naive(movement_date) or get_local_now(),
                reason=reason,
                notes=notes,
                actor_id=actor.id,
                actor_name=actor.name,
            )
            self.audit_service.default_log(
                entity_id=balance.id,
                entity_type=AuditEntityEnum.STOCK_MOVEMENT,
                description=(
                    f"{movement_type.value} {qty} {balance.unit} of {balance.name} "
                    f"({current} -> {new_quantity}){f' - {reason}' if reason else ''}"
                ),
                user_name=actor.name,
            )
            return new_quantity, movement

        _, movement = self.with_transaction(balance_id, _post, site_id=site_id)
        logger.info(
            "%s %s on balance %s by %s (%s)",
            movement.movement_type.value, movement.quantity, balance_id, actor.name, category.value,
        )
        return movement

    # ------------------------------------------------------------------
    # History (read-only)
    # ------------------------------------------------------------------

    def _movement_query(self, balance_id: int):
        return select(StockMovement).where(StockMovement.site_inventory_id == balance_id)

    def list_movements(self, balance_id: int, skip: int = 0, limit: int = 100,
                       site_id: Optional[int] = None) -> Tuple[List[StockMovement], int]:
        """Movements of one balance, newest first."""
        self.get_balance(balance_id, site_id)

        total = self.db.execute(
            select(func.count()).select_from(StockMovement).where(StockMovement.site_inventory_id == balance_id)
        ).scalar() or 0
        rows = self.db.execute(
            self._movement_query(balance_id)
            .order_by(desc(StockMovement.movement_date), desc(StockMovement.id))
            .offset(skip)
            .limit(limit)
        ).scalars().all()
        return list(rows), total

    def iter_movements(self, balance_id: int, page_size: int = 100) -> Iterator[StockMovement]:
        """Lazily walk the whole history, newest first, one keyset page at a time."""
        self.get_balance(balance_id)

        last: Optional[StockMovement] = None
        while True:
            query = self._movement_query(balance_id)
            if last is not None:
                query = query.where(
                    or_(
                        StockMovement.movement_date < last.movement_date,
                        and_(StockMovement.movement_date == last.movement_date, StockMovement.id < last.id),
                    )
                )
            page = self.db.execute(
                query.order_by(desc(StockMovement.movement_date), desc(StockMovement.id)).limit(page_size)
            ).scalars().all()
            if not page:
                return
            yield from page
            if len(page) < page_size:
                return
            last = page[-1]

    def replay_quantity(self, balance_id: int) -> Decimal:
        """Signed sum of every movement recorded for the balance."""
        self.get_balance(balance_id)
        signed = case(
            (StockMovement.movement_type == MovementTypeEnum.IN, StockMovement.quantity),
            else_=-StockMovement.quantity,
        )
        total = self.db.execute(
            select(func.coalesce(func.sum(signed), 0)).where(StockMovement.site_inventory_id == balance_id)
        ).scalar()
        return to_decimal(total)

    def verify_consistency(self, balance_id: int) -> Dict:
        balance = self.get_balance(balance_id)
        replayed = self.replay_quantity(balance_id)
        stored = to_decimal(balance.quantity)
        return {
            "site_inventory_id": balance.id,
            "quantity": stored,
            "ledger_quantity": replayed,
            "consistent": stored == replayed,
        }

    def list_site_movements(self, site_id: int, include_rented: bool = True,
                            skip: int = 0, limit: int = 100) -> Tuple[List[Dict], int]:
        """
        Every movement at a site, newest first, merged with the entry/exit
        events of rented equipment batches (which have no ledger of their own).
        """
        site = self.db.query(ConstructionSite).filter(
            ConstructionSite.id == site_id, ConstructionSite.is_deleted == False
        ).first()
        if not site:
            raise NotFoundError("Construction site", site_id)

        rows = self.db.execute(
            select(StockMovement, SiteInventoryItem.name, SiteInventoryItem.unit)
            .join(SiteInventoryItem, SiteInventoryItem.id == StockMovement.site_inventory_id)
            .where(SiteInventoryItem.site_id == site_id)
        ).all()

        merged: List[Dict] = [
            {
                "id": f"mov_{movement.id}",
                "movement_id": movement.id,
                "site_inventory_id": movement.site_inventory_id,
                "movement_type": movement.movement_type,
                "category": movement.category,
                "quantity": movement.quantity,
                "movement_date": movement.movement_date,
                "reason": movement.reason,
                "actor_name": movement.actor_name or SYSTEM_ACTOR.name,
                "item_name": item_name,
                "item_unit": item_unit,
                "is_rented": False,
            }
            for movement, item_name, item_unit in rows
        ]

        if include_rented:
            equipments = self.db.query(RentedEquipment).filter(RentedEquipment.site_id == site_id).all()
            for eq in equipments:
                merged.append({
                    "id": f"rent_in_{eq.id}",
                    "movement_id": None,
                    "site_inventory_id": None,
                    "movement_type": MovementTypeEnum.IN,
                    "category": MovementCategoryEnum.GENERIC,
                    "quantity": eq.quantity,
                    "movement_date": eq.entry_date,
                    "reason": RENTED_ENTRY_REASON.format(supplier=eq.supplier),
                    "actor_name": SYSTEM_ACTOR.name,
                    "item_name": eq.name,
                    "item_unit": eq.unit,
                    "is_rented": True,
                })
                if eq.exit_date:
                    merged.append({
                        "id": f"rent_out_{eq.id}",
                        "movement_id": None,
                        "site_inventory_id": None,
                        "movement_type": MovementTypeEnum.OUT,
                        "category": MovementCategoryEnum.GENERIC,
                        "quantity": eq.quantity,
                        "movement_date": eq.exit_date,
                        "reason": RENTED_EXIT_REASON,
                        "actor_name": SYSTEM_ACTOR.name,
                        "item_name": eq.name,
                        "item_unit": eq.unit,
                        "is_rented": True,
                    })

        merged.sort(key=lambda m: (m["movement_date"], m["movement_id"] or 0), reverse=True)
        return merged[skip:skip + limit], len(merged)
