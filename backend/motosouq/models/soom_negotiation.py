from sqlalchemy import Column, String, DateTime, ForeignKey, Float, Index
from sqlalchemy.orm import relationship
from motosouq.core.utils import utcnow
from motosouq.db.base_class import Base
import uuid

class SoomNegotiation(Base):
    """Ronda de contraoferta entre comprador y vendedor sobre un SOOM."""
    __tablename__ = "soom_negotiations"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    submission_id = Column(String, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String, ForeignKey("users.id"), nullable=False)
    offer_amount = Column(Float, nullable=False)
    message = Column(String, nullable=True)
    response = Column(String, nullable=True)  # None hasta que se responde; accepted, rejected
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relaciones
    submission = relationship("Submission", back_populates="negotiations")

    __table_args__ = (
        Index('idx_negotiation_submission', 'submission_id', 'response'),
        Index('idx_negotiation_receiver', 'receiver_id'),
    )

    @property
    def is_answered(self) -> bool:
        return self.response is not None
