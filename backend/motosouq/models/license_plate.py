from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from motosouq.db.base_class import Base
import uuid

class LicensePlate(Base):
    __tablename__ = "license_plates"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String, ForeignKey("listings.id", ondelete="CASCADE"), nullable=True)
    city_name = Column(String, nullable=False)
    plate_format = Column(String, nullable=True)
    image_path = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    values = relationship(
        "LicensePlateValue",
        back_populates="license_plate",
        cascade="all, delete-orphan",
        order_by="LicensePlateValue.position",
    )

    __table_args__ = (
        Index('idx_license_plate_listing', 'listing_id'),
    )

    def display_text(self) -> str:
        return " ".join(v.field_value for v in self.values if v.field_value)


class LicensePlateValue(Base):
    __tablename__ = "license_plate_values"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    license_plate_id = Column(String, ForeignKey("license_plates.id", ondelete="CASCADE"), nullable=False)
    field_name = Column(String, nullable=False)
    field_value = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    license_plate = relationship("LicensePlate", back_populates="values")
