from typing import Dict

from sqlalchemy.orm import Session

from models.RentedEquipment import RentedEquipmentStatusEnum
from services import availability
from services.ledger_services import LedgerService
from services.loan_services import LoanService
from services.rented_equipment_services import RentedEquipmentService
from services.site_inventory_services import SiteInventoryService, get_site

RECENT_MOVEMENTS = 7


class SiteOverviewService:
    """Dashboard figures for one site, derived from the same listings the site pages use."""

    def __init__(self, db: Session):
        self.db = db

    def build(self, site_id: int) -> Dict:
        site = get_site(self.db, site_id)

        inventory = SiteInventoryService(self.db).list_inventory(site_id)
        low_stock = [item for item in inventory if item["is_low_stock"]]
        stock_value = sum(
            (availability.to_decimal(item["quantity"]) * availability.to_decimal(item["average_price"])
             for item in inventory),
            availability.ZERO,
        )

        active_rented = RentedEquipmentService(self.db).list_equipment(
            site_id, status=RentedEquipmentStatusEnum.ACTIVE
        )
        loans = LoanService(self.db)
        open_loans = loans.list_open_loans(site_id)
        recent, _ = LedgerService(self.db).list_site_movements(site_id, limit=RECENT_MOVEMENTS)

        return {
            "site_id": site.id,
            "site_name": site.name,
            "item_count": len(inventory),
            "stock_value": availability.to_quantity(stock_value),
            "low_stock_count": len(low_stock),
            "low_stock_items": low_stock,
            "active_rented_count": len(active_rented),
            "open_loan_count": len(open_loans),
            "overdue_loan_count": len(loans.list_overdue(site_id)),
            "recent_movements": recent,
        }
