import enum

from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, Text, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import relationship

from database import Base
from utils import get_local_now


class RentedEquipmentStatusEnum(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"


class PhotoPhaseEnum(str, enum.Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"


class RentedEquipment(Base):
    """A batch of identical rented units, tracked by entry/exit rather than by ledger quantity."""
    __tablename__ = "rented_equipments"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("construction_sites.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(150), nullable=False)
    supplier = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="")
    unit = Column(String(30), nullable=False)
    quantity = Column(Numeric(20, 4), nullable=False)

    entry_date = Column(DateTime, nullable=False)
    exit_date = Column(DateTime, nullable=True)
    status = Column(
        SAEnum(RentedEquipmentStatusEnum), nullable=False, default=RentedEquipmentStatusEnum.ACTIVE, index=True
    )
    is_tool = Column(Boolean, nullable=True)
    updated_at = Column(DateTime, default=get_local_now, onupdate=get_local_now, nullable=False)

    site_rel = relationship("ConstructionSite", back_populates="rented_equipments")
    photos = relationship(
        "RentedEquipmentPhoto",
        back_populates="equipment_rel",
        cascade="all, delete-orphan",
        order_by="RentedEquipmentPhoto.id",
    )

    @property
    def entry_photos(self):
        return [p.file_path for p in self.photos if p.phase == PhotoPhaseEnum.ENTRY]

    @property
    def exit_photos(self):
        return [p.file_path for p in self.photos if p.phase == PhotoPhaseEnum.EXIT]


class RentedEquipmentPhoto(Base):
    __tablename__ = "rented_equipment_photos"

    id = Column(Integer, primary_key=True, index=True)
    rented_equipment_id = Column(
        Integer, ForeignKey("rented_equipments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase = Column(SAEnum(PhotoPhaseEnum), nullable=False)
    file_path = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=get_local_now)

    equipment_rel = relationship("RentedEquipment", back_populates="photos")
