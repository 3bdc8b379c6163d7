from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from motosouq.api import deps
from motosouq.api.v1.endpoints.listings import get_listing_or_404
from motosouq.core.utils import utcnow
from motosouq.db.session import transaction_scope
from motosouq.models.auction_history import AuctionHistory
from motosouq.models.user import User
from motosouq.schemas.auction_history import (
    AuctionHistoryCreate,
    AuctionHistoryOut,
    AuctionHistoryUpdate,
)

router = APIRouter()

def _get_history_or_404(db: Session, history_id: str) -> AuctionHistory:
    history = db.query(AuctionHistory).filter(AuctionHistory.id == history_id).first()
    if not history:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Registro de subasta no encontrado",
        )
    return history

def _involves(user: User):
    return or_(AuctionHistory.seller_id == user.id, AuctionHistory.buyer_id == user.id)

@router.get("/", response_model=List[AuctionHistoryOut])
def list_auction_histories(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    listing_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> Any:
    """
    Historial de subastas. Los administradores ven todo; el resto,
    solo los registros donde son vendedor o comprador.
    """
    query = db.query(AuctionHistory)
    if not current_user.is_admin:
        query = query.filter(_involves(current_user))
    if listing_id:
        query = query.filter(AuctionHistory.listing_id == listing_id)
    return query.order_by(AuctionHistory.bid_date.desc()).offset(skip).limit(limit).all()

@router.get("/validated-sales")
def validated_sales(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Ventas validadas donde el usuario es vendedor o comprador.
    """
    base = db.query(AuctionHistory).filter(
        AuctionHistory.validated.is_(True),
        _involves(current_user),
    )
    sales = base.order_by(AuctionHistory.validated_at.desc()).all()
    total_amount = base.with_entities(func.coalesce(func.sum(AuctionHistory.bid_amount), 0)).scalar()

    return {
        "sales": [AuctionHistoryOut.model_validate(s) for s in sales],
        "stats": {
            "total_sales": len(sales),
            "as_seller": sum(1 for s in sales if s.seller_id == current_user.id),
            "as_buyer": sum(1 for s in sales if s.buyer_id == current_user.id),
            "total_amount": float(total_amount or 0),
        },
    }

@router.post("/", response_model=AuctionHistoryOut, status_code=status.HTTP_201_CREATED)
def create_auction_history(
    *,
    db: Session = Depends(deps.get_db),
    history_in: AuctionHistoryCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    listing = get_listing_or_404(db, history_in.listing_id)
    if listing.seller_id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo el vendedor puede registrar pujas en su anuncio",
        )

    with transaction_scope(db):
        history = AuctionHistory(
            listing_id=listing.id,
            seller_id=listing.seller_id,
            buyer_id=history_in.buyer_id,
            bid_amount=history_in.bid_amount,
            bid_date=history_in.bid_date or utcnow(),
        )
        db.add(history)

    db.refresh(history)
    return history

@router.get("/{history_id}", response_model=AuctionHistoryOut)
def get_auction_history(
    *,
    db: Session = Depends(deps.get_db),
    history_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    history = _get_history_or_404(db, history_id)
    if current_user.id not in (history.seller_id, history.buyer_id) and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permiso para ver este registro",
        )
    return history

@router.patch("/{history_id}", response_model=AuctionHistoryOut)
def update_auction_history(
    *,
    db: Session = Depends(deps.get_db),
    history_id: str,
    history_in: AuctionHistoryUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Actualizar un registro. Validar exige validated_at >= bid_date;
    desvalidar borra validated_at.
    """
    history = _get_history_or_404(db, history_id)
    if history.seller_id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo el vendedor puede modificar este registro",
        )

    data = history_in.model_dump(exclude_unset=True)
    with transaction_scope(db):
        if "bid_amount" in data:
            history.bid_amount = data["bid_amount"]

        # Revalidar sin validated_at conserva la fecha y el validador originales
        restamp = "validated_at" in data and history.validated and data.get("validated") is not False
        if (data.get("validated") is True and not history.validated) or restamp:
            try:
                history.mark_validated(current_user.id, data.get("validated_at"))
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
        elif data.get("validated") is False:
            history.clear_validation()

    db.refresh(history)
    return history

@router.delete("/{history_id}")
def delete_auction_history(
    *,
    db: Session = Depends(deps.get_db),
    history_id: str,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    history = _get_history_or_404(db, history_id)
    db.delete(history)
    db.commit()
    return {"message": "Registro de subasta eliminado"}
