from celery import shared_task
import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from motosouq.core.utils import utcnow
from motosouq.models.listing import Listing
from motosouq.tasks.notifications import send_notification

logger = logging.getLogger(__name__)

SOLD_VIA_SOOM = "sold_via_soom"

# Conexión a base de datos para tareas de Celery
def get_db_session() -> Session:
    from motosouq.core.config import settings
    from motosouq.db import session as db_session

    if not db_session._is_initialized:
        db_session.configure_engine(db_session.build_engine(str(settings.DATABASE_URL)))
    return db_session.SessionLocal()

@shared_task(name="motosouq.tasks.sooms.notify_soom_created_task")
def notify_soom_created_task(submission_id: str, listing_id: str, listing_title: str,
                             buyer_id: str, buyer_name: str, seller_id: str,
                             amount: float, submission_date: str):
    """Avisa al vendedor de un nuevo SOOM sobre su anuncio"""
    send_notification.delay(seller_id, "soom", "created", {
        "id": submission_id,
        "listing_id": listing_id,
        "listing_title": listing_title,
        "buyer_id": buyer_id,
        "buyer_name": buyer_name,
        "amount": amount,
        "submission_date": submission_date,
    })
    return True

@shared_task(name="motosouq.tasks.sooms.notify_soom_accepted_task")
def notify_soom_accepted_task(submission_id: str, listing_id: str, seller_id: str,
                              buyer_id: str, amount: float, validation_deadline: str):
    """Avisa a comprador y vendedor de la aceptación y del plazo de validación"""
    data = {
        "id": submission_id,
        "listing_id": listing_id,
        "amount": amount,
        "validation_deadline": validation_deadline,
    }
    send_notification.delay(buyer_id, "soom", "accepted", data)
    send_notification.delay(seller_id, "soom", "validation_required", data)
    return True

@shared_task(name="motosouq.tasks.sooms.notify_soom_rejected_task")
def notify_soom_rejected_task(submission_id: str, listing_id: str, buyer_id: str,
                              reason: Optional[str] = None):
    send_notification.delay(buyer_id, "soom", "rejected", {
        "id": submission_id,
        "listing_id": listing_id,
        "reason": reason,
    })
    return True

@shared_task(name="motosouq.tasks.sooms.notify_sale_validated_task")
def notify_sale_validated_task(submission_id: str, listing_id: str, buyer_id: str,
                               amount: float, rejected_buyer_ids: List[str]):
    """Confirma la venta al comprador y avisa a los demás compradores rechazados"""
    send_notification.delay(buyer_id, "soom", "sale_validated", {
        "id": submission_id,
        "listing_id": listing_id,
        "amount": amount,
    })
    for other_buyer_id in set(rejected_buyer_ids):
        send_notification.delay(other_buyer_id, "soom", "rejected", {
            "listing_id": listing_id,
            "reason": "El anuncio se ha vendido a otro comprador",
        })
    return True

@shared_task(name="motosouq.tasks.sooms.notify_negotiation_task")
def notify_negotiation_task(negotiation_id: str, submission_id: str, receiver_id: str,
                            action: str, offer_amount: float):
    send_notification.delay(receiver_id, "negotiation", action, {
        "id": negotiation_id,
        "submission_id": submission_id,
        "offer_amount": offer_amount,
    })
    return True

@shared_task(name="motosouq.tasks.sooms.close_listing_after_sale_task")
def close_listing_after_sale_task(listing_id: str) -> bool:
    """
    Cierra el anuncio unos días después de validar la venta.
    No hace nada si el anuncio ya no existe o ya fue cerrado.
    """
    db = get_db_session()
    try:
        listing = db.query(Listing).filter(Listing.id == listing_id).first()
        if listing is None or (listing.status == "sold" and listing.closed_at is not None):
            logger.info(f"Anuncio {listing_id} no cerrado: no existe o ya estaba vendido y cerrado")
            return False

        listing.status = "sold"
        listing.allow_submission = False
        listing.closed_at = utcnow()
        listing.closing_reason = SOLD_VIA_SOOM
        db.commit()
        logger.info(f"Anuncio {listing_id} cerrado automáticamente tras la validación de la venta")
        return True
    except Exception as e:
        db.rollback()
        logger.error(f"Error al cerrar el anuncio {listing_id} en la tarea diferida: {e}")
        return False
    finally:
        db.close()
