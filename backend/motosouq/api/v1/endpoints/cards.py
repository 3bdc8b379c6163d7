from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Any, List

from motosouq.api import deps
from motosouq.db.session import transaction_scope
from motosouq.schemas.card import (
    BankCardCreate,
    BankCardResponse,
    BankCardUpdate,
    CardTypeCreate,
    CardTypeResponse,
)
from motosouq.models.card import BankCard, CardType
from motosouq.models.user import User

router = APIRouter()

# --- Tipos de tarjeta ---

@router.get("/card-types", response_model=List[CardTypeResponse])
def list_card_types(db: Session = Depends(deps.get_db)) -> Any:
    return db.query(CardType).order_by(CardType.name).all()

@router.post("/card-types", response_model=CardTypeResponse, status_code=status.HTTP_201_CREATED)
def create_card_type(
    *,
    db: Session = Depends(deps.get_db),
    card_type_in: CardTypeCreate,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    if db.query(CardType).filter(CardType.name == card_type_in.name).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El tipo de tarjeta ya existe",
        )
    card_type = CardType(name=card_type_in.name)
    db.add(card_type)
    db.commit()
    db.refresh(card_type)
    return card_type

@router.put("/card-types/{card_type_id}", response_model=CardTypeResponse)
def update_card_type(
    *,
    db: Session = Depends(deps.get_db),
    card_type_id: str,
    card_type_in: CardTypeCreate,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    card_type = db.query(CardType).filter(CardType.id == card_type_id).first()
    if not card_type:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tipo de tarjeta no encontrado")
    with transaction_scope(db):
        card_type.name = card_type_in.name
    db.refresh(card_type)
    return card_type

@router.delete("/card-types/{card_type_id}")
def delete_card_type(
    *,
    db: Session = Depends(deps.get_db),
    card_type_id: str,
    admin: User = Depends(deps.get_current_admin),
) -> Any:
    card_type = db.query(CardType).filter(CardType.id == card_type_id).first()
    if not card_type:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tipo de tarjeta no encontrado")
    if db.query(BankCard.id).filter(BankCard.card_type_id == card_type_id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El tipo de tarjeta está en uso",
        )
    db.delete(card_type)
    db.commit()
    return {"message": "Tipo de tarjeta eliminado"}

# --- Tarjetas del usuario ---

def _get_own_card(db: Session, card_id: str, user: User) -> BankCard:
    card = db.query(BankCard).filter(BankCard.id == card_id).first()
    # Una tarjeta ajena se reporta como inexistente
    if not card or card.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tarjeta no encontrada")
    return card

def _unset_other_defaults(db: Session, user: User, keep_id: str = None) -> None:
    query = db.query(BankCard).filter(BankCard.user_id == user.id, BankCard.is_default.is_(True))
    if keep_id:
        query = query.filter(BankCard.id != keep_id)
    for card in query.all():
        card.is_default = False

@router.get("/cards", response_model=List[BankCardResponse])
def list_my_cards(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return db.query(BankCard).filter(BankCard.user_id == current_user.id).order_by(BankCard.created_at.desc()).all()

@router.post("/cards", response_model=BankCardResponse, status_code=status.HTTP_201_CREATED)
def create_card(
    *,
    db: Session = Depends(deps.get_db),
    card_in: BankCardCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Registrar una tarjeta ya tokenizada por el procesador de pagos.
    """
    if card_in.card_type_id and not db.query(CardType.id).filter(CardType.id == card_in.card_type_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tipo de tarjeta no encontrado")

    with transaction_scope(db):
        data = card_in.model_dump(exclude={"payment_token"})
        card = BankCard(user_id=current_user.id, payment_token=card_in.payment_token, **data)
        db.add(card)
        db.flush()
        if card.is_default:
            _unset_other_defaults(db, current_user, keep_id=card.id)

    db.refresh(card)
    return card

@router.get("/cards/{card_id}", response_model=BankCardResponse)
def get_card(
    card_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return _get_own_card(db, card_id, current_user)

@router.patch("/cards/{card_id}", response_model=BankCardResponse)
def update_card(
    *,
    db: Session = Depends(deps.get_db),
    card_id: str,
    card_in: BankCardUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    card = _get_own_card(db, card_id, current_user)
    with transaction_scope(db):
        for key, value in card_in.model_dump(exclude_unset=True).items():
            setattr(card, key, value)
        if card.is_default:
            _unset_other_defaults(db, current_user, keep_id=card.id)
    db.refresh(card)
    return card

@router.delete("/cards/{card_id}")
def delete_card(
    *,
    db: Session = Depends(deps.get_db),
    card_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    card = _get_own_card(db, card_id, current_user)
    db.delete(card)
    db.commit()
    return {"message": "Tarjeta eliminada"}
