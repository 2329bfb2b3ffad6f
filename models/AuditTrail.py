import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum

from database import Base
from utils import get_local_now


class AuditEntityEnum(enum.Enum):
    CONSTRUCTION_SITE = "CONSTRUCTION_SITE"
    CATALOG_ITEM = "CATALOG_ITEM"
    SITE_INVENTORY = "SITE_INVENTORY"
    STOCK_MOVEMENT = "STOCK_MOVEMENT"
    TOOL_LOAN = "TOOL_LOAN"
    RENTED_EQUIPMENT = "RENTED_EQUIPMENT"


class AuditTrail(Base):
    __tablename__ = "audit_trails"

    id = Column(Integer, primary_key=True, index=True)
    entity_id = Column(String(100), nullable=False)  # ID of the thing being tracked
    entity_type = Column(Enum(AuditEntityEnum), nullable=False)  # Type of entity
    description = Column(Text, nullable=False)  # What happened (human-readable)
    user_name = Column(String(100), nullable=False)  # Who did it
    timestamp = Column(DateTime, default=get_local_now, nullable=False)
