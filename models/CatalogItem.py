from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime

from database import Base
from models.mixin.SoftDeleteMixin import SoftDeleteMixin
from utils import get_local_now


class CatalogItem(Base, SoftDeleteMixin):
    """Global material definition. Site balances copy name/unit/category from here once, at attach time."""
    __tablename__ = "catalog_items"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=True)
    name = Column(String(150), nullable=False, index=True)
    unit = Column(String(30), nullable=False)
    category = Column(String(100), nullable=False, default="")
    cost_type = Column(String(50), nullable=True)
    unit_value = Column(Numeric(20, 4), default=0, nullable=False)
    min_threshold = Column(Numeric(20, 4), default=0, nullable=False)
    stock_control = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=get_local_now, nullable=False)
    updated_at = Column(DateTime, default=get_local_now, onupdate=get_local_now, nullable=False)
