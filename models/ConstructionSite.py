from sqlalchemy import Column, Integer, String, Boolean, Text, DateTime
from sqlalchemy.orm import relationship

from database import Base
from models.mixin.SoftDeleteMixin import SoftDeleteMixin
from utils import get_local_now


class ConstructionSite(Base, SoftDeleteMixin):
    __tablename__ = "construction_sites"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=get_local_now, nullable=False)

    inventory_items = relationship("SiteInventoryItem", back_populates="site_rel", cascade="all, delete-orphan")
    rented_equipments = relationship("RentedEquipment", back_populates="site_rel", cascade="all, delete-orphan")
    tool_loans = relationship("ToolLoan", back_populates="site_rel", cascade="all, delete-orphan")
