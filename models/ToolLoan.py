import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, Enum as SAEnum, Index
from sqlalchemy.orm import relationship

from database import Base
from utils import get_local_now


class ItemOriginEnum(str, enum.Enum):
    OWNED = "OWNED"
    RENTED = "RENTED"


class LoanStatusEnum(str, enum.Enum):
    OPEN = "OPEN"
    RETURNED = "RETURNED"


class ToolLoan(Base):
    """
    Who currently has custody of a tool. Open loans shadow availability of the
    balance (OWNED) or rented batch (RENTED) they point at, without touching it.
    """
    __tablename__ = "tool_loans"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("construction_sites.id", ondelete="CASCADE"), nullable=False, index=True)

    item_origin = Column(SAEnum(ItemOriginEnum), nullable=False, default=ItemOriginEnum.OWNED)
    site_inventory_id = Column(
        Integer, ForeignKey("site_inventory_items.id", ondelete="SET NULL"), nullable=True, index=True
    )
    rented_equipment_id = Column(
        Integer, ForeignKey("rented_equipments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    item_name = Column(String(150), nullable=False)

    borrower_name = Column(String(150), nullable=False)
    borrower_id = Column(String(64), nullable=True)
    quantity = Column(Numeric(20, 4), nullable=False)

    loan_date = Column(DateTime, nullable=False, default=get_local_now)
    return_date = Column(DateTime, nullable=True)
    status = Column(SAEnum(LoanStatusEnum), nullable=False, default=LoanStatusEnum.OPEN, index=True)

    notes = Column(Text, nullable=True)
    return_notes = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=get_local_now, onupdate=get_local_now, nullable=False)

    site_rel = relationship("ConstructionSite", back_populates="tool_loans")

    __table_args__ = (
        Index("ix_tool_loan_site_status", "site_id", "status"),
    )
