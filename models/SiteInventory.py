from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from database import Base
from utils import get_local_now


class SiteInventoryItem(Base):
    """
    Balance record: how much of one catalog material exists at one construction site.

    `quantity` is only ever changed through LedgerService, so it always equals
    the signed sum of `movements`. `version` is the compare-and-swap counter
    SQLAlchemy checks on every UPDATE of this row.
    """
    __tablename__ = "site_inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("construction_sites.id", ondelete="CASCADE"), nullable=False, index=True)
    catalog_item_id = Column(Integer, ForeignKey("catalog_items.id"), nullable=False)

    # Copied from the catalog at attach time, not kept in sync
    name = Column(String(150), nullable=False)
    unit = Column(String(30), nullable=False)
    category = Column(String(100), nullable=False, default="")

    quantity = Column(Numeric(20, 4), nullable=False, default=Decimal("0"))
    average_price = Column(Numeric(20, 4), nullable=False, default=Decimal("0"))
    min_threshold = Column(Numeric(20, 4), nullable=False, default=Decimal("0"))

    # None means "infer from category"
    is_tool = Column(Boolean, nullable=True)

    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=get_local_now, nullable=False)

    site_rel = relationship("ConstructionSite", back_populates="inventory_items")
    catalog_rel = relationship("CatalogItem")
    movements = relationship(
        "StockMovement",
        back_populates="site_inventory_rel",
        cascade="all, delete-orphan",
        order_by="desc(StockMovement.movement_date), desc(StockMovement.id)",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("site_id", "catalog_item_id", name="uq_site_inventory_site_catalog"),
        Index("ix_site_inventory_site_name", "site_id", "name"),
    )
