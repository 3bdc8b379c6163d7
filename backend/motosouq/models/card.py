from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from motosouq.db.base_class import Base
import uuid

class CardType(Base):
    __tablename__ = "card_types"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    cards = relationship("BankCard", back_populates="card_type")

class BankCard(Base):
    # Solo se guarda el token del procesador de pagos, nunca el PAN ni el CVV
    __tablename__ = "bank_cards"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    card_type_id = Column(String, ForeignKey("card_types.id"), nullable=True)
    holder_name = Column(String, nullable=True)
    payment_token = Column(String, nullable=False)
    last_four = Column(String(4), nullable=False)
    brand = Column(String(20), nullable=True)
    expiry_month = Column(String(2), nullable=False)
    expiry_year = Column(Integer, nullable=False)
    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relaciones
    user = relationship("User", back_populates="bank_cards")
    card_type = relationship("CardType", back_populates="cards")

    __table_args__ = (
        Index('idx_bank_card_user', 'user_id'),
    )
