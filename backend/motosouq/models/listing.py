from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Float, Index, CheckConstraint
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from motosouq.db.base_class import Base
import uuid

LISTING_STATUSES = ("draft", "published", "sold", "inactive", "closed")
PRICE_TYPES = ("fixed", "auction")

class Listing(Base):
    __tablename__ = "listings"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Float, nullable=False, default=0)
    price_type = Column(String, default="fixed")  # fixed, auction
    currency = Column(String, default="SAR")
    seller_id = Column(String, ForeignKey("users.id"), nullable=False)
    status = Column(String, default="published")  # draft, published, sold, inactive, closed
    auction_enabled = Column(Boolean, default=False)
    minimum_bid = Column(Float, nullable=True)
    allow_submission = Column(Boolean, default=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closing_reason = Column(String, nullable=True)
    reopened_at = Column(DateTime(timezone=True), nullable=True)
    reopening_notes = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relaciones
    seller = relationship("User", back_populates="listings")
    submissions = relationship("Submission", back_populates="listing", cascade="all, delete-orphan")
    auction_histories = relationship("AuctionHistory", back_populates="listing", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('price >= 0', name='ck_listing_price_non_negative'),
        Index('idx_listing_status', 'status'),
        Index('idx_listing_seller_status', 'seller_id', 'status'),
        Index('idx_listing_created_at', 'created_at'),
    )

    @validates("title")
    def _strip_title(self, key, value):
        return value.strip() if isinstance(value, str) else value

    @validates("price", "minimum_bid")
    def _non_negative(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} no puede ser negativo")
        return value

    def accepts_sooms(self) -> bool:
        return bool(self.allow_submission) and self.status == "published"

    def minimum_soom_amount(self, highest_amount=None, increment: float = 1.0) -> float:
        """
        Monto mínimo para un nuevo SOOM: el minimum_bid del anuncio,
        o el SOOM más alto más el incremento si ya hay alguno.
        """
        minimum = self.minimum_bid or 0.0
        if highest_amount is not None:
            minimum = max(minimum, highest_amount + increment)
        return float(minimum)
