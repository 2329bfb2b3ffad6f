import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, Enum as SAEnum, Index, event
from sqlalchemy.orm import relationship

from database import Base
from utils import get_local_now


class MovementTypeEnum(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class MovementCategoryEnum(str, enum.Enum):
    GENERIC = "GENERIC"
    EPI_WITHDRAWAL = "EPI_WITHDRAWAL"
    # Synthetic movement emitted when an administrator edits a balance directly
    ADJUSTMENT = "ADJUSTMENT"


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_inventory_id = Column(
        Integer, ForeignKey("site_inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )

    movement_type = Column(SAEnum(MovementTypeEnum), nullable=False)
    category = Column(SAEnum(MovementCategoryEnum), nullable=False, default=MovementCategoryEnum.GENERIC, index=True)
    quantity = Column(Numeric(20, 4), nullable=False)
    movement_date = Column(DateTime, nullable=False, default=get_local_now)

    reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    actor_id = Column(String(64), nullable=True, index=True)
    actor_name = Column(String(150), nullable=True)

    site_inventory_rel = relationship("SiteInventoryItem", back_populates="movements")

    __table_args__ = (
        Index("ix_movement_item_date", "site_inventory_id", "movement_date", "id"),
    )


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ValueError(f"Stock movement {target.id} is append-only and cannot be modified")
