from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Float, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from motosouq.core.utils import as_utc, utcnow
from motosouq.db.base_class import Base
import uuid

class AuctionHistory(Base):
    """
    Registro de una puja aceptada y, opcionalmente, validada como venta.
    Si validated es True, validated_at no es nulo y no es anterior a bid_date.
    """
    __tablename__ = "auction_histories"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String, ForeignKey("listings.id"), nullable=False)
    # Único: una venta validada por SOOM, aunque dos validaciones lleguen a la vez
    submission_id = Column(String, ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True, unique=True)
    seller_id = Column(String, ForeignKey("users.id"), nullable=False)
    buyer_id = Column(String, ForeignKey("users.id"), nullable=True)
    bid_amount = Column(Float, nullable=False)
    bid_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    validated = Column(Boolean, default=False, nullable=False)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validator_id = Column(String, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relaciones
    listing = relationship("Listing", back_populates="auction_histories")
    seller = relationship("User", foreign_keys=[seller_id])
    buyer = relationship("User", foreign_keys=[buyer_id])
    validator = relationship("User", foreign_keys=[validator_id])

    __table_args__ = (
        Index('idx_auction_seller_validated', 'seller_id', 'validated'),
        Index('idx_auction_buyer_validated', 'buyer_id', 'validated'),
        Index('idx_auction_validated_at', 'validated_at'),
    )

    def mark_validated(self, validator_id: str, at: Optional[datetime] = None) -> None:
        at = as_utc(at or utcnow())
        bid_date = as_utc(self.bid_date)
        if bid_date is not None and at < bid_date:
            raise ValueError("validated_at no puede ser anterior a bid_date")
        self.validated = True
        self.validated_at = at
        self.validator_id = validator_id

    def clear_validation(self) -> None:
        self.validated = False
        self.validated_at = None
        self.validator_id = None
