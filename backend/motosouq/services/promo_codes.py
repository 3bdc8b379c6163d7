"""Validación y canje de códigos promocionales."""
import logging
from datetime import datetime
from typing import Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from motosouq.core.utils import utcnow
from motosouq.models.promo_code import PromoCode, PromoCodeUsage
from motosouq.models.user import User

logger = logging.getLogger(__name__)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def check_promo_code(
    db: Session,
    code: str,
    user: User,
    total_price: float,
    now: Optional[datetime] = None,
    lock: bool = False,
) -> Tuple[PromoCode, float]:
    """
    Comprueba que el código sea aplicable por `user` a `total_price`.
    Devuelve el código y el descuento calculado.
    """
    query = db.query(PromoCode).filter(PromoCode.code == code.strip().upper())
    if lock:
        query = query.with_for_update()
    promo = query.first()

    if promo is None or promo.status != "active":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Código promocional no encontrado")

    now = now or utcnow()
    if not promo.is_within_dates(now):
        raise _forbidden("El código promocional no está vigente")

    if promo.is_exhausted():
        raise _forbidden("El código promocional ha alcanzado su límite de usos")

    if promo.min_listing_price is not None and total_price < promo.min_listing_price:
        raise _forbidden(f"El precio mínimo para usar este código es {promo.min_listing_price}")

    if promo.per_user_limit is not None:
        used_by_user = db.query(PromoCodeUsage).filter(
            PromoCodeUsage.promo_code_id == promo.id,
            PromoCodeUsage.user_id == user.id,
        ).count()
        if used_by_user >= promo.per_user_limit:
            raise _forbidden("Ya has usado este código el número máximo de veces")

    return promo, promo.calculate_discount(total_price)


def apply_promo_code(
    db: Session,
    code: str,
    user: User,
    total_price: float,
    listing_id: Optional[str] = None,
) -> Tuple[PromoCode, float]:
    """Valida y registra el uso. El llamador confirma la transacción."""
    promo, discount = check_promo_code(db, code, user, total_price, lock=True)

    db.add(PromoCodeUsage(
        promo_code_id=promo.id,
        user_id=user.id,
        listing_id=listing_id,
        original_price=total_price,
        discount_amount=discount,
        used_at=utcnow(),
    ))
    promo.used_count = (promo.used_count or 0) + 1
    logger.info(f"Código {promo.code} aplicado por {user.id}: descuento {discount}")

    return promo, discount
