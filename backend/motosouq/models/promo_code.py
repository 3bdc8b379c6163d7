from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Float, Index, CheckConstraint
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from motosouq.core.utils import as_utc, utcnow
from motosouq.db.base_class import Base
import uuid

DISCOUNT_TYPES = ("percentage", "fixed")
PROMO_STATUSES = ("active", "inactive")

class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    code = Column(String, unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)
    discount_type = Column(String, nullable=False, default="percentage")  # percentage, fixed
    discount_value = Column(Float, nullable=False)
    max_discount = Column(Float, nullable=True)
    min_listing_price = Column(Float, nullable=True)
    status = Column(String, default="active")  # active, inactive
    max_uses = Column(Integer, nullable=True)  # None = ilimitado
    used_count = Column(Integer, default=0, nullable=False)
    per_user_limit = Column(Integer, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    usages = relationship("PromoCodeUsage", back_populates="promo_code", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('discount_value >= 0', name='ck_promo_discount_non_negative'),
        Index('idx_promo_status', 'status'),
    )

    @validates("code")
    def _normalize_code(self, key, value):
        return value.strip().upper() if isinstance(value, str) else value

    def is_within_dates(self, now: Optional[datetime] = None) -> bool:
        now = as_utc(now or utcnow())
        start, end = as_utc(self.start_date), as_utc(self.end_date)
        if start is not None and now < start:
            return False
        if end is not None and now > end:
            return False
        return True

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and (self.used_count or 0) >= self.max_uses

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.status == "active" and not self.is_exhausted() and self.is_within_dates(now)

    def calculate_discount(self, total_price: float) -> float:
        if self.discount_type == "percentage":
            discount = total_price * self.discount_value / 100
            if self.max_discount is not None:
                discount = min(discount, self.max_discount)
        else:
            discount = self.discount_value
        # El precio final nunca baja de cero
        return round(min(discount, total_price), 2)


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    promo_code_id = Column(String, ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    listing_id = Column(String, ForeignKey("listings.id", ondelete="SET NULL"), nullable=True)
    original_price = Column(Float, nullable=False)
    discount_amount = Column(Float, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    promo_code = relationship("PromoCode", back_populates="usages")

    __table_args__ = (
        Index('idx_promo_usage_code_user', 'promo_code_id', 'user_id'),
    )
