from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from motosouq.core.utils import utcnow
from motosouq.db.base_class import Base
import uuid

RESPONSE_VALUES = ("accepted", "rejected")

class SubmissionResponse(Base):
    __tablename__ = "submission_responses"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    submission_id = Column(String, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    buyer_id = Column(String, ForeignKey("users.id"), nullable=False)
    response = Column(String, nullable=False)  # accepted, rejected
    reason = Column(String, nullable=True)
    response_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relaciones
    submission = relationship("Submission", back_populates="responses")

    __table_args__ = (
        Index('idx_submission_response_submission', 'submission_id'),
    )
