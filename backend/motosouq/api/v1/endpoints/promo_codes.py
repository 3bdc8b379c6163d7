from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Any, List

from motosouq.api import deps
from motosouq.db.session import transaction_scope
from motosouq.models.promo_code import PromoCode
from motosouq.models.user import User
from motosouq.schemas.promo_code import (
    PromoCodeCheck,
    PromoCodeCreate,
    PromoCodeQuote,
    PromoCodeResponse,
    PromoCodeUpdate,
)
from motosouq.services.promo_codes import apply_promo_code, check_promo_code

router = APIRouter()

def _quote(promo: PromoCode, total_price: float, discount: float) -> dict:
    return {
        "code": promo.code,
        "original_price": total_price,
        "discount_amount": discount,
        "final_price": round(max(total_price - discount, 0), 2),
    }

@router.post("/validate", response_model=PromoCodeQuote)
def validate_promo_code(
    *,
    db: Session = Depends(deps.get_db),
    body: PromoCodeCheck,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Calcular el descuento sin consumir el código.
    """
    promo, discount = check_promo_code(db, body.code, current_user, body.total_price)
    return _quote(promo, body.total_price, discount)

@router.post("/apply", response_model=PromoCodeQuote)
def apply_code(
    *,
    db: Session = Depends(deps.get_db),
    body: PromoCodeCheck,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    with transaction_scope(db):
        promo, discount = apply_promo_code(db, body.code, current_user, body.total_price, body.listing_id)
    return _quote(promo, body.total_price, discount)

# --- Administración ---

def _get_promo_or_404(db: Session, promo_id: str) -> PromoCode:
    promo = db.query(PromoCode).filter(PromoCode.id == promo_id).first()
    if not promo:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Código promocional no encontrado")
    return promo

@router.get("/", response_model=List[PromoCodeResponse])
def list_promo_codes(
    db: Session = Depends(deps.get_db),
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    return db.query(PromoCode).order_by(PromoCode.created_at.desc()).all()

@router.post("/", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
def create_promo_code(
    *,
    db: Session = Depends(deps.get_db),
    promo_in: PromoCodeCreate,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    code = promo_in.code.strip().upper()
    if db.query(PromoCode.id).filter(PromoCode.code == code).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ya existe un código promocional con ese nombre",
        )

    promo = PromoCode(**promo_in.model_dump())
    db.add(promo)
    db.commit()
    db.refresh(promo)
    return promo

@router.get("/{promo_id}", response_model=PromoCodeResponse)
def get_promo_code(
    promo_id: str,
    db: Session = Depends(deps.get_db),
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    return _get_promo_or_404(db, promo_id)

@router.patch("/{promo_id}", response_model=PromoCodeResponse)
def update_promo_code(
    *,
    db: Session = Depends(deps.get_db),
    promo_id: str,
    promo_in: PromoCodeUpdate,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    promo = _get_promo_or_404(db, promo_id)
    with transaction_scope(db):
        for key, value in promo_in.model_dump(exclude_unset=True).items():
            setattr(promo, key, value)
    db.refresh(promo)
    return promo

@router.delete("/{promo_id}")
def delete_promo_code(
    *,
    db: Session = Depends(deps.get_db),
    promo_id: str,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    promo = _get_promo_or_404(db, promo_id)
    db.delete(promo)
    db.commit()
    return {"message": "Código promocional eliminado"}
