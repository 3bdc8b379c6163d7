from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from datetime import timedelta
from typing import Any, List, Optional
import logging

from motosouq.api import deps
from motosouq.api.v1.endpoints.listings import get_listing_or_404
from motosouq.core.config import settings
from motosouq.core.utils import utcnow
from motosouq.db.session import transaction_scope
from motosouq.models.auction_history import AuctionHistory
from motosouq.models.listing import Listing
from motosouq.models.soom_negotiation import SoomNegotiation
from motosouq.models.submission import Submission
from motosouq.models.submission_response import SubmissionResponse
from motosouq.models.user import User
from motosouq.schemas.submission import (
    NegotiationCreate,
    NegotiationOut,
    NegotiationRespond,
    SubmissionCreate,
    SubmissionDetail,
    SubmissionOut,
    SubmissionReject,
    SubmissionUpdate,
    SubmissionValidate,
)
from motosouq.services import soom_service
from motosouq.tasks import dispatch
from motosouq.tasks.sooms import (
    close_listing_after_sale_task,
    notify_negotiation_task,
    notify_sale_validated_task,
    notify_soom_accepted_task,
    notify_soom_created_task,
    notify_soom_rejected_task,
)

logger = logging.getLogger(__name__)

router = APIRouter()

def _out(submission: Optional[Submission]) -> Optional[SubmissionOut]:
    return SubmissionOut.model_validate(submission) if submission is not None else None

def _get_submission_or_404(db: Session, submission_id: str, lock: bool = False) -> Submission:
    query = db.query(Submission).filter(Submission.id == submission_id)
    if lock:
        query = query.with_for_update()
    submission = query.first()
    if not submission:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="SOOM no encontrado",
        )
    return submission

def _check_seller(submission: Submission, user: User, action: str) -> Listing:
    listing = submission.listing
    if listing.seller_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Solo el vendedor puede {action} este SOOM",
        )
    return listing

def _check_party(submission: Submission, user: User) -> None:
    if user.id not in (submission.user_id, submission.listing.seller_id) and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permiso para ver este SOOM",
        )

# --- SOOM por anuncio ---

@router.get("/listings/{listing_id}/sooms")
def list_listing_sooms(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    SOOM de un anuncio, del más alto al más bajo.
    """
    get_listing_or_404(db, listing_id)
    sooms = db.query(Submission).filter(
        Submission.listing_id == listing_id
    ).order_by(Submission.amount.desc(), Submission.submission_date.asc()).all()

    return {
        "sooms": [_out(s) for s in sooms],
        "total": len(sooms),
        "highest": sooms[0].amount if sooms else None,
    }

@router.post("/listings/{listing_id}/sooms", status_code=status.HTTP_201_CREATED)
def create_soom(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    soom_in: SubmissionCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Enviar un SOOM sobre un anuncio.

    El monto debe alcanzar el minimum_bid del anuncio y superar
    el SOOM más alto en al menos SOOM_MIN_INCREMENT.
    """
    listing = get_listing_or_404(db, listing_id, lock=True)

    if not listing.accepts_sooms():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Este anuncio no acepta SOOM",
        )

    if listing.seller_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No puedes enviar un SOOM a tu propio anuncio",
        )

    minimum, highest = soom_service.minimum_for_listing(db, listing)
    if soom_in.amount < minimum:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": f"El monto mínimo para este anuncio es {minimum}",
                "minimum_required": minimum,
                "current_highest": highest,
            },
        )

    now = utcnow()
    with transaction_scope(db):
        submission = Submission(
            listing_id=listing.id,
            user_id=current_user.id,
            amount=soom_in.amount,
            min_soom=minimum,
            status="pending",
            submission_date=now,
            version=1,
        )
        db.add(submission)

    db.refresh(submission)
    logger.info(f"SOOM {submission.id} creado en el anuncio {listing.id} por {current_user.id}")

    dispatch.enqueue(
        notify_soom_created_task,
        submission.id,
        listing.id,
        listing.title,
        current_user.id,
        current_user.full_name,
        listing.seller_id,
        submission.amount,
        now.isoformat(),
    )

    return {"message": "SOOM enviado correctamente", "submission": _out(submission)}

@router.get("/listings/{listing_id}/minimum-soom")
def get_minimum_soom(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
) -> Any:
    listing = get_listing_or_404(db, listing_id)
    if not listing.accepts_sooms():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Este anuncio no acepta SOOM",
        )

    minimum, highest = soom_service.minimum_for_listing(db, listing)
    return {
        "minimum_soom": minimum,
        "current_highest": highest,
        "minimum_bid": listing.minimum_bid,
    }

@router.get("/listings/{listing_id}/last-soom")
def get_last_soom(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: str,
    current_user: Optional[User] = Depends(deps.get_current_user_optional),
) -> Any:
    """
    Último SOOM de un anuncio. La autenticación es opcional.
    """
    listing = get_listing_or_404(db, listing_id)
    base = db.query(Submission).filter(Submission.listing_id == listing_id)
    last = base.order_by(Submission.submission_date.desc()).first()
    minimum, _ = soom_service.minimum_for_listing(db, listing)

    my_pending = None
    if current_user is not None:
        my_pending = base.filter(
            Submission.user_id == current_user.id,
            Submission.pending(),
        ).order_by(Submission.submission_date.desc()).first()

    return {
        "last_soom": _out(last),
        "total_sooms": base.count(),
        "minimum_next_soom": minimum,
        "is_seller": current_user is not None and current_user.id == listing.seller_id,
        "my_pending_soom": _out(my_pending),
    }

# --- Paneles del usuario ---

@router.get("/sooms/mine")
def my_sooms(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> Any:
    """
    SOOM enviados por el usuario actual.
    """
    query = db.query(Submission).filter(Submission.user_id == current_user.id)
    if status_filter:
        query = query.filter(Submission.status == status_filter)
    sooms = query.order_by(Submission.submission_date.desc()).all()

    stats = soom_service.buyer_stats(db, current_user.id)
    return {
        "sooms": [_out(s) for s in sooms],
        "stats": {
            "total": stats["total_sent"],
            "pending": stats["pending"],
            "accepted": stats["accepted"],
            "rejected": stats["rejected"],
        },
    }

@router.get("/sooms/received")
def received_sooms(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    status_filter: Optional[str] = Query(None, alias="status"),
    listing_id: Optional[str] = None,
) -> Any:
    """
    SOOM recibidos en los anuncios del usuario actual.
    """
    query = db.query(Submission).join(Listing, Submission.listing_id == Listing.id).filter(
        Listing.seller_id == current_user.id
    )
    if status_filter:
        query = query.filter(Submission.status == status_filter)
    if listing_id:
        query = query.filter(Submission.listing_id == listing_id)
    sooms = query.order_by(Submission.submission_date.desc()).all()

    stats = soom_service.seller_stats(db, current_user.id)
    return {
        "sooms": [_out(s) for s in sooms],
        "stats": {
            "total": stats["total_received"],
            "pending": stats["pending"],
            "accepted": stats["accepted"],
            "rejected": stats["rejected"],
            "pending_validation": stats["pending_validation"],
        },
    }

@router.get("/sooms/pending-validations")
def pending_validations(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    SOOM aceptados pendientes de validar por el vendedor,
    del más antiguo al más reciente.
    """
    sooms = db.query(Submission).join(Listing, Submission.listing_id == Listing.id).filter(
        Listing.seller_id == current_user.id,
        Submission.pending_validation(),
    ).order_by(Submission.acceptance_date.asc()).all()

    now = utcnow()
    soon = timedelta(hours=settings.SOOM_EXPIRING_SOON_HOURS)
    return {
        "sooms": [_out(s) for s in sooms],
        "total": len(sooms),
        "expiring_soon": sum(1 for s in sooms if s.expires_within(soon, now)),
        "expired": sum(1 for s in sooms if s.is_validation_expired(now)),
    }

@router.get("/sooms/stats")
def soom_stats(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return {
        "as_seller": soom_service.seller_stats(db, current_user.id),
        "as_buyer": soom_service.buyer_stats(db, current_user.id),
    }

# --- SOOM individual ---

@router.get("/sooms/{submission_id}", response_model=SubmissionDetail)
def get_soom(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    submission = _get_submission_or_404(db, submission_id)
    _check_party(submission, current_user)
    return submission

@router.put("/sooms/{submission_id}")
def update_soom(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    soom_in: SubmissionUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Modificar el monto de un SOOM pendiente (solo el comprador).
    Si se envía `version`, debe coincidir con la actual.
    """
    submission = _get_submission_or_404(db, submission_id, lock=True)

    if submission.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo el comprador puede modificar este SOOM",
        )

    if submission.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"No se puede modificar un SOOM con estado '{submission.status}'",
        )

    if soom_in.version is not None and soom_in.version != submission.version:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"El SOOM ha sido modificado. Versión actual: {submission.version}. Recarga y vuelve a intentar.",
        )

    listing = submission.listing
    if not listing.accepts_sooms():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Este anuncio ya no acepta SOOM",
        )

    minimum, highest = soom_service.minimum_for_listing(db, listing, exclude_id=submission.id)
    if soom_in.amount < minimum:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": f"El monto mínimo para este anuncio es {minimum}",
                "minimum_required": minimum,
                "current_highest": highest,
            },
        )

    with transaction_scope(db):
        submission.amount = soom_in.amount
        submission.min_soom = minimum
        submission.submission_date = utcnow()
        submission.version += 1

    db.refresh(submission)
    return {"message": "SOOM actualizado correctamente", "submission": _out(submission)}

@router.delete("/sooms/{submission_id}")
def cancel_soom(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Cancelar un SOOM pendiente (solo el comprador).
    """
    submission = _get_submission_or_404(db, submission_id, lock=True)

    if submission.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo el comprador puede cancelar este SOOM",
        )

    if submission.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"No se puede cancelar un SOOM con estado '{submission.status}'",
        )

    with transaction_scope(db):
        db.delete(submission)

    return {"message": "SOOM cancelado correctamente"}

@router.post("/sooms/{submission_id}/accept")
def accept_soom(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Aceptar un SOOM. Abre la ventana de validación de la venta;
    los demás SOOM pendientes siguen pendientes.
    """
    submission = _get_submission_or_404(db, submission_id, lock=True)
    listing = _check_seller(submission, current_user, "aceptar")

    if submission.status in ("accepted", "rejected"):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"El SOOM ya fue {'aceptado' if submission.status == 'accepted' else 'rechazado'}",
        )

    now = utcnow()
    with transaction_scope(db):
        submission.accept(now)
        db.add(SubmissionResponse(
            submission_id=submission.id,
            buyer_id=submission.user_id,
            response="accepted",
            response_date=now,
        ))

    db.refresh(submission)
    pending_count = db.query(Submission).filter(
        Submission.listing_id == listing.id,
        Submission.pending(),
    ).count()
    deadline = submission.validation_deadline

    dispatch.enqueue(
        notify_soom_accepted_task,
        submission.id,
        listing.id,
        listing.seller_id,
        submission.user_id,
        submission.amount,
        deadline.isoformat(),
    )

    return {
        "message": "SOOM aceptado. Valida la venta antes de que venza el plazo.",
        "submission": _out(submission),
        "validation_deadline": deadline,
        "pending_sooms_count": pending_count,
    }

@router.post("/sooms/{submission_id}/reject")
def reject_soom(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    body: Optional[SubmissionReject] = None,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    submission = _get_submission_or_404(db, submission_id, lock=True)
    listing = _check_seller(submission, current_user, "rechazar")

    if submission.status == "rejected":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="El SOOM ya fue rechazado",
        )

    if submission.status == "accepted" and submission.sale_validated:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No se puede rechazar un SOOM con la venta ya validada",
        )

    reason = body.reason if body else None
    with transaction_scope(db):
        submission.reject(reason)
        db.add(SubmissionResponse(
            submission_id=submission.id,
            buyer_id=submission.user_id,
            response="rejected",
            reason=reason,
            response_date=utcnow(),
        ))

    db.refresh(submission)
    dispatch.enqueue(notify_soom_rejected_task, submission.id, listing.id, submission.user_id, reason)

    return {"message": "SOOM rechazado", "submission": _out(submission)}

@router.post("/sooms/{submission_id}/validate-sale")
def validate_sale(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    body: Optional[SubmissionValidate] = None,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Validar la venta de un SOOM aceptado.

    Rechaza el resto de SOOM pendientes, registra la venta en el historial
    de subastas, marca el anuncio como vendido y programa su cierre.
    Dos validaciones simultáneas: solo una gana, la otra recibe 409.
    """
    submission = _get_submission_or_404(db, submission_id, lock=True)
    listing = _check_seller(submission, current_user, "validar la venta de")

    if submission.status != "accepted":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "Solo se pueden validar SOOM aceptados",
                "current_status": submission.status,
            },
        )

    if submission.sale_validated:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="La venta ya fue validada",
        )

    now = utcnow()
    if submission.is_validation_expired(now):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "El plazo para validar la venta ha vencido",
                "acceptance_date": submission.acceptance_date.isoformat(),
                "validation_deadline": submission.validation_deadline.isoformat(),
            },
        )

    if body is not None and body.version is not None and body.version != submission.version:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"El SOOM ha sido modificado. Versión actual: {submission.version}. Recarga y vuelve a intentar.",
        )

    with transaction_scope(db):
        listing = get_listing_or_404(db, listing.id, lock=True)
        if listing.status in ("sold", "closed") or soom_service.has_validated_sale(db, listing.id):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": "El anuncio ya está vendido o cerrado",
                    "listing_status": listing.status,
                },
            )

        if not soom_service.claim_sale_validation(db, submission, now):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="La venta está siendo validada por otra petición",
            )

        rejected = soom_service.reject_pending_for_listing(
            db, listing.id, "El anuncio se ha vendido a otro comprador", exclude_id=submission.id
        )

        history = AuctionHistory(
            listing_id=listing.id,
            submission_id=submission.id,
            seller_id=listing.seller_id,
            buyer_id=submission.user_id,
            bid_amount=submission.amount,
            bid_date=submission.submission_date,
        )
        history.mark_validated(current_user.id, now)
        db.add(history)

        listing.status = "sold"
        listing.allow_submission = False

    db.refresh(submission)
    db.refresh(history)
    logger.info(f"Venta validada: SOOM {submission.id}, anuncio {listing.id}")

    dispatch.enqueue(
        close_listing_after_sale_task,
        listing.id,
        countdown=settings.LISTING_AUTO_CLOSE_DAYS * 86400,
    )
    dispatch.enqueue(
        notify_sale_validated_task,
        submission.id,
        listing.id,
        submission.user_id,
        submission.amount,
        [s.user_id for s in rejected],
    )

    return {
        "message": "Venta validada correctamente",
        "submission": _out(submission),
        "auction_history_id": history.id,
        "rejected_sooms_count": len(rejected),
    }

# --- Negociación ---

@router.get("/sooms/{submission_id}/negotiations", response_model=List[NegotiationOut])
def list_negotiations(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    submission = _get_submission_or_404(db, submission_id)
    _check_party(submission, current_user)
    return submission.negotiations

@router.post("/sooms/{submission_id}/negotiations", response_model=NegotiationOut, status_code=status.HTTP_201_CREATED)
def create_negotiation(
    *,
    db: Session = Depends(deps.get_db),
    submission_id: str,
    negotiation_in: NegotiationCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Enviar una contraoferta. El receptor es siempre la otra parte
    y solo puede haber una ronda sin responder.
    """
    submission = _get_submission_or_404(db, submission_id, lock=True)
    seller_id = submission.listing.seller_id

    if current_user.id == submission.user_id:
        receiver_id = seller_id
    elif current_user.id == seller_id:
        receiver_id = submission.user_id
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo el comprador o el vendedor pueden negociar este SOOM",
        )

    if submission.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Solo se puede negociar un SOOM pendiente",
        )

    open_round = db.query(SoomNegotiation.id).filter(
        SoomNegotiation.submission_id == submission.id,
        SoomNegotiation.response.is_(None),
    ).first()
    if open_round:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Ya hay una contraoferta sin responder",
        )

    with transaction_scope(db):
        negotiation = SoomNegotiation(
            submission_id=submission.id,
            sender_id=current_user.id,
            receiver_id=receiver_id,
            offer_amount=negotiation_in.offer_amount,
            message=negotiation_in.message,
            created_at=utcnow(),
        )
        db.add(negotiation)

    db.refresh(negotiation)
    dispatch.enqueue(
        notify_negotiation_task,
        negotiation.id,
        submission.id,
        receiver_id,
        "created",
        negotiation.offer_amount,
    )
    return negotiation

@router.post("/sooms/negotiations/{negotiation_id}/respond", response_model=NegotiationOut)
def respond_negotiation(
    *,
    db: Session = Depends(deps.get_db),
    negotiation_id: str,
    body: NegotiationRespond,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Responder a una contraoferta. Si se acepta, el monto del SOOM pasa a ser el ofertado.
    """
    negotiation = db.query(SoomNegotiation).filter(SoomNegotiation.id == negotiation_id).with_for_update().first()
    if not negotiation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contraoferta no encontrada",
        )

    if negotiation.receiver_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo el receptor puede responder esta contraoferta",
        )

    if negotiation.is_answered:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="La contraoferta ya fue respondida",
        )

    submission = negotiation.submission
    if body.response == "accepted" and submission.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="El SOOM ya no está pendiente",
        )

    with transaction_scope(db):
        negotiation.response = body.response
        negotiation.responded_at = utcnow()
        if body.response == "accepted":
            submission.amount = negotiation.offer_amount
            submission.version += 1

    db.refresh(negotiation)
    dispatch.enqueue(
        notify_negotiation_task,
        negotiation.id,
        submission.id,
        negotiation.sender_id,
        body.response,
        negotiation.offer_amount,
    )
    return negotiation
