"""Consultas y transiciones de SOOM compartidas entre endpoints y tareas."""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from motosouq.core.config import settings
from motosouq.models.listing import Listing
from motosouq.models.submission import Submission

logger = logging.getLogger(__name__)


def highest_amount(db: Session, listing_id: str, exclude_id: Optional[str] = None) -> Optional[float]:
    query = db.query(func.max(Submission.amount)).filter(Submission.listing_id == listing_id)
    if exclude_id:
        query = query.filter(Submission.id != exclude_id)
    return query.scalar()


def minimum_for_listing(
    db: Session, listing: Listing, exclude_id: Optional[str] = None
) -> Tuple[float, Optional[float]]:
    """Devuelve (monto mínimo para un nuevo SOOM, SOOM más alto actual)."""
    highest = highest_amount(db, listing.id, exclude_id=exclude_id)
    return listing.minimum_soom_amount(highest, settings.SOOM_MIN_INCREMENT), highest


def reject_pending_for_listing(
    db: Session, listing_id: str, reason: str, exclude_id: Optional[str] = None
) -> List[Submission]:
    """Rechaza los SOOM pendientes de un anuncio dentro de la transacción en curso."""
    query = db.query(Submission).filter(
        Submission.listing_id == listing_id,
        Submission.pending(),
    )
    if exclude_id:
        query = query.filter(Submission.id != exclude_id)

    rejected = query.with_for_update().all()
    for submission in rejected:
        submission.reject(reason)
    if rejected:
        logger.info(f"{len(rejected)} SOOM pendientes rechazados en el anuncio {listing_id}")
    return rejected


def has_validated_sale(db: Session, listing_id: str) -> bool:
    """Un anuncio admite una sola venta validada."""
    return db.query(Submission.id).filter(
        Submission.listing_id == listing_id,
        Submission.validated(),
    ).first() is not None


def claim_sale_validation(db: Session, submission: Submission, now: datetime) -> bool:
    """
    Marca la venta como validada con un UPDATE condicionado a la versión leída.
    Devuelve False si otra petición modificó el SOOM antes.
    """
    result = db.execute(
        update(Submission)
        .where(
            Submission.id == submission.id,
            Submission.version == submission.version,
            Submission.sale_validated.is_(False),
        )
        .values(
            sale_validated=True,
            sale_validation_date=now,
            version=Submission.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    db.refresh(submission)
    return True


def _status_counts(query) -> Dict[str, int]:
    rows = query.with_entities(Submission.status, func.count(Submission.id)).group_by(Submission.status).all()
    counts = {"pending": 0, "accepted": 0, "rejected": 0}
    counts.update({status: count for status, count in rows})
    return counts


def seller_stats(db: Session, user_id: str) -> Dict[str, int]:
    base = db.query(Submission).join(Listing, Submission.listing_id == Listing.id).filter(Listing.seller_id == user_id)
    counts = _status_counts(base)
    return {
        "total_received": sum(counts.values()),
        "pending": counts["pending"],
        "accepted": counts["accepted"],
        "rejected": counts["rejected"],
        "validated_sales": base.filter(Submission.validated()).count(),
        "pending_validation": base.filter(Submission.pending_validation()).count(),
    }


def buyer_stats(db: Session, user_id: str) -> Dict[str, int]:
    base = db.query(Submission).filter(Submission.user_id == user_id)
    counts = _status_counts(base)
    return {
        "total_sent": sum(counts.values()),
        "pending": counts["pending"],
        "accepted": counts["accepted"],
        "rejected": counts["rejected"],
        "validated_purchases": base.filter(Submission.validated()).count(),
    }
