from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Any, List, Optional
import logging

from motosouq.api import deps
from motosouq.core.utils import utcnow
from motosouq.db.session import transaction_scope
from motosouq.models.auction_history import AuctionHistory
from motosouq.models.listing import Listing
from motosouq.models.user import User
from motosouq.schemas.listing import (
    ListingClose,
    ListingCreate,
    ListingReopen,
    ListingResponse,
    ListingUpdate,
    ListingWithAuctionCreate,
)
from motosouq.services import soom_service
from motosouq.tasks import dispatch
from motosouq.tasks.sooms import notify_soom_rejected_task

logger = logging.getLogger(__name__)

router = APIRouter()

def get_listing_or_404(db: Session, listing_id: str, lock: bool = False) -> Listing:
    query = db.query(Listing).filter(Listing.id == listing_id)
    if lock:
        query = query.with_for_update()
    listing = query.first()
    if not listing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Anuncio no encontrado",
        )
    return listing

def _check_owner(listing: Listing, user: User) -> None:
    if listing.seller_id != user.id and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permiso para modificar este anuncio",
        )

def _notify_rejected(rejected, listing_id: str, reason: str) -> None:
    for submission in rejected:
        dispatch.enqueue(notify_soom_rejected_task, submission.id, listing_id, submission.user_id, reason)

@router.get("/", response_model=List[ListingResponse])
def list_listings(
    *,
    db: Session = Depends(deps.get_db),
    status_filter: Optional[str] = Query("published", alias="status"),
    seller_id: Optional[str] = None,
    auction_enabled: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    """
    Listar anuncios con filtros (por defecto solo publicados).
    """
    query = db.query(Listing)
    if status_filter:
        query = query.filter(Listing.status == status_filter)
    if seller_id:
        query = query.filter(Listing.seller_id == seller_id)
    if auction_enabled is not None:
        query = query.filter(Listing.auction_enabled.is_(auction_enabled))

    return query.order_by(Listing.created_at.desc()).offset(skip).limit(limit).all()

@router.post("/", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
def create_listing(
    *,
    db: Session = Depends(deps.get_db),
    listing_in: ListingCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Crear un anuncio.
    """
    listing = Listing(seller_id=current_user.id, **listing_in.model_dump())
    if listing.status == "published":
        listing.published_at = utcnow()

    db.add(listing)
    db.commit()
    db.refresh(listing)
    logger.info(f"Anuncio {listing.id} creado por {current_user.id}")

    return listing

@router.get("/mine", response_model=List[ListingResponse])
def my_listings(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> Any:
    query = db.query(Listing).filter(Listing.seller_id == current_user.id)
    if status_filter:
        query = query.filter(Listing.status == status_filter)
    return query.order_by(Listing.created_at.desc()).all()

@router.post("/with-auction", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
def create_listing_with_auction(
    *,
    db: Session = Depends(deps.get_db),
    listing_in: ListingWithAuctionCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Crear un anuncio de subasta y su registro inicial en el historial.
    """
    data = listing_in.model_dump(exclude={"initial_bid"})
    initial_bid = listing_in.initial_bid or listing_in.minimum_bid or listing_in.price

    with transaction_scope(db):
        listing = Listing(seller_id=current_user.id, status="published", published_at=utcnow(), **data)
        db.add(listing)
        db.flush()
        if initial_bid:
            db.add(AuctionHistory(
                listing_id=listing.id,
                seller_id=current_user.id,
                bid_amount=initial_bid,
                bid_date=utcnow(),
            ))

    db.refresh(listing)
    return listing

@router.get("/{listing_id}", response_model=ListingResponse)
def get_listing(
    listing_id: str,
    db: Session = Depends(deps.get_db),
) -> Any:
    return get_listing_or_404(db, listing_id)

@router.put("/{listing_id}", response_model=ListingResponse)
def update_listing(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    listing_in: ListingUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Actualizar un anuncio (vendedor o administrador).
    Los cambios de estado de ciclo de vida van por sold/close/reopen.
    """
    listing = get_listing_or_404(db, listing_id)
    _check_owner(listing, current_user)

    update_data = listing_in.model_dump(exclude_unset=True)
    new_status = update_data.get("status")
    if new_status is not None and new_status not in ("draft", "published", "inactive"):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Usa los endpoints sold, close o reopen para ese cambio de estado",
        )
    if listing.status in ("sold", "closed") and update_data:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"No se puede modificar un anuncio con estado '{listing.status}'",
        )

    with transaction_scope(db):
        try:
            for key, value in update_data.items():
                setattr(listing, key, value)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        if new_status == "published" and listing.published_at is None:
            listing.published_at = utcnow()

    db.refresh(listing)
    return listing

@router.delete("/{listing_id}")
def delete_listing(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    listing = get_listing_or_404(db, listing_id)
    _check_owner(listing, current_user)

    if listing.status == "sold":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No se puede eliminar un anuncio vendido",
        )

    db.delete(listing)
    db.commit()
    return {"message": "Anuncio eliminado correctamente"}

@router.post("/{listing_id}/sold", response_model=ListingResponse)
def mark_as_sold(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Marcar como vendido fuera de la plataforma. Rechaza los SOOM pendientes.
    """
    listing = get_listing_or_404(db, listing_id, lock=True)
    _check_owner(listing, current_user)

    if listing.status != "published":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Solo se pueden marcar como vendidos los anuncios publicados",
        )

    reason = "El anuncio se ha marcado como vendido"
    with transaction_scope(db):
        listing.status = "sold"
        listing.allow_submission = False
        rejected = soom_service.reject_pending_for_listing(db, listing.id, reason)

    db.refresh(listing)
    _notify_rejected(rejected, listing.id, reason)
    return listing

@router.post("/{listing_id}/close", response_model=ListingResponse)
def close_listing(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    body: Optional[ListingClose] = None,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    listing = get_listing_or_404(db, listing_id, lock=True)
    _check_owner(listing, current_user)

    if listing.status != "published":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Solo se pueden cerrar anuncios publicados",
        )

    reason = (body.closing_reason if body else None) or "El anuncio ha sido cerrado"
    with transaction_scope(db):
        listing.status = "closed"
        listing.allow_submission = False
        listing.closed_at = utcnow()
        listing.closing_reason = reason
        rejected = soom_service.reject_pending_for_listing(db, listing.id, reason)

    db.refresh(listing)
    _notify_rejected(rejected, listing.id, reason)
    return listing

@router.post("/{listing_id}/reopen", response_model=ListingResponse)
def reopen_listing(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    body: Optional[ListingReopen] = None,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    listing = get_listing_or_404(db, listing_id, lock=True)
    _check_owner(listing, current_user)

    if listing.status != "closed":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Solo se pueden reabrir anuncios cerrados",
        )

    with transaction_scope(db):
        listing.status = "published"
        listing.allow_submission = True
        listing.reopened_at = utcnow()
        listing.reopening_notes = body.reopening_notes if body else None

    db.refresh(listing)
    return listing
