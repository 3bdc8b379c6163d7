from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Float, Index, and_
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from motosouq.core.config import settings
from motosouq.core.utils import as_utc, normalize_datetime_comparison, utcnow
from motosouq.db.base_class import Base
import uuid

SUBMISSION_STATUSES = ("pending", "accepted", "rejected")

def validation_window() -> timedelta:
    return timedelta(days=settings.SOOM_VALIDATION_DAYS)

class Submission(Base):
    """
    SOOM: oferta negociada de un comprador sobre un anuncio.

    Ciclo de vida: pending -> accepted | rejected. Una vez aceptado se abre
    una ventana de validación (5 días por defecto) durante la cual el vendedor
    confirma la venta. La expiración se calcula al leer, no hay tarea que la marque.
    """
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(String, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    amount = Column(Float, nullable=False)
    min_soom = Column(Float, nullable=False, default=0)
    status = Column(String, default="pending")  # pending, accepted, rejected
    submission_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    acceptance_date = Column(DateTime(timezone=True), nullable=True)
    sale_validated = Column(Boolean, default=False, nullable=False)
    sale_validation_date = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    version = Column(Integer, default=1, nullable=False)  # Para control de concurrencia optimista

    # Relaciones
    listing = relationship("Listing", back_populates="submissions")
    user = relationship("User", back_populates="submissions")
    responses = relationship(
        "SubmissionResponse",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionResponse.response_date",
    )
    negotiations = relationship(
        "SoomNegotiation",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SoomNegotiation.created_at",
    )

    __table_args__ = (
        Index('idx_submission_listing_status', 'listing_id', 'status'),
        Index('idx_submission_listing_amount', 'listing_id', 'amount'),
        Index('idx_submission_user_status', 'user_id', 'status'),
        Index('idx_submission_status_validated', 'status', 'sale_validated'),
        Index('idx_submission_acceptance_date', 'acceptance_date'),
    )

    # Filtros reutilizables: db.query(Submission).filter(Submission.pending_validation())
    @classmethod
    def pending(cls):
        return cls.status == "pending"

    @classmethod
    def accepted(cls):
        return cls.status == "accepted"

    @classmethod
    def rejected(cls):
        return cls.status == "rejected"

    @classmethod
    def validated(cls):
        return cls.sale_validated.is_(True)

    @classmethod
    def pending_validation(cls):
        return and_(cls.status == "accepted", cls.sale_validated.is_(False))

    @property
    def validation_deadline(self) -> Optional[datetime]:
        if self.acceptance_date is None:
            return None
        return as_utc(self.acceptance_date) + validation_window()

    def is_validation_expired(self, now: Optional[datetime] = None) -> bool:
        deadline = self.validation_deadline
        if deadline is None:
            return False
        now, deadline = normalize_datetime_comparison(now or utcnow(), deadline)
        return now > deadline

    def can_be_validated(self, now: Optional[datetime] = None) -> bool:
        return (
            self.status == "accepted"
            and not self.sale_validated
            and not self.is_validation_expired(now)
        )

    def expires_within(self, delta: timedelta, now: Optional[datetime] = None) -> bool:
        """True si la ventana sigue abierta pero cierra dentro de `delta`."""
        deadline = self.validation_deadline
        if deadline is None:
            return False
        now, deadline = normalize_datetime_comparison(now or utcnow(), deadline)
        return now <= deadline <= now + delta

    def accept(self, now: Optional[datetime] = None) -> None:
        self.status = "accepted"
        self.acceptance_date = now or utcnow()
        self.version = (self.version or 1) + 1

    def reject(self, reason: Optional[str] = None) -> None:
        self.status = "rejected"
        if reason:
            self.rejection_reason = reason
        self.version = (self.version or 1) + 1
