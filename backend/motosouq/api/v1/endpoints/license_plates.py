from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, List, Optional
import logging

from motosouq.api import deps
from motosouq.api.v1.endpoints.listings import get_listing_or_404
from motosouq.db.session import transaction_scope
from motosouq.models.license_plate import LicensePlate, LicensePlateValue
from motosouq.models.user import User
from motosouq.schemas.license_plate import LicensePlateCreate, LicensePlateResponse
from motosouq.services import plate_images

logger = logging.getLogger(__name__)

router = APIRouter()

def _get_plate_or_404(db: Session, plate_id: str) -> LicensePlate:
    plate = db.query(LicensePlate).filter(LicensePlate.id == plate_id).first()
    if not plate:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Matrícula no encontrada")
    return plate

def _check_listing_owner(db: Session, listing_id: Optional[str], user: User) -> None:
    if not listing_id:
        return
    listing = get_listing_or_404(db, listing_id)
    if listing.seller_id != user.id and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permiso para modificar este anuncio",
        )

@router.post("/", response_model=LicensePlateResponse, status_code=status.HTTP_201_CREATED)
def create_license_plate(
    *,
    db: Session = Depends(deps.get_db),
    plate_in: LicensePlateCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Crear una matrícula con sus valores ordenados.
    Tras guardarla se intenta generar su imagen; si falla, la matrícula queda sin imagen.
    """
    _check_listing_owner(db, plate_in.listing_id, current_user)

    with transaction_scope(db):
        plate = LicensePlate(
            listing_id=plate_in.listing_id,
            city_name=plate_in.city_name,
            plate_format=plate_in.plate_format,
        )
        for index, value in enumerate(plate_in.values):
            plate.values.append(LicensePlateValue(
                field_name=value.field_name,
                field_value=value.field_value,
                position=value.position if value.position is not None else index,
            ))
        db.add(plate)

    db.refresh(plate)

    image_path = plate_images.render_plate_image(plate)
    if image_path:
        try:
            plate.image_path = image_path
            db.commit()
        except SQLAlchemyError as e:
            # La matrícula ya está guardada: se devuelve sin imagen
            db.rollback()
            logger.error(f"No se pudo guardar la imagen de la matrícula {plate.id}: {e}")
        db.refresh(plate)

    return plate

@router.get("/", response_model=List[LicensePlateResponse])
def list_license_plates(
    *,
    db: Session = Depends(deps.get_db),
    listing_id: Optional[str] = None,
) -> Any:
    query = db.query(LicensePlate)
    if listing_id:
        query = query.filter(LicensePlate.listing_id == listing_id)
    return query.order_by(LicensePlate.created_at.desc()).all()

@router.get("/{plate_id}", response_model=LicensePlateResponse)
def get_license_plate(
    plate_id: str,
    db: Session = Depends(deps.get_db),
) -> Any:
    return _get_plate_or_404(db, plate_id)

@router.delete("/{plate_id}")
def delete_license_plate(
    *,
    db: Session = Depends(deps.get_db),
    plate_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    plate = _get_plate_or_404(db, plate_id)
    if plate.listing_id:
        _check_listing_owner(db, plate.listing_id, current_user)
    elif not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo un administrador puede eliminar matrículas sin anuncio",
        )
    db.delete(plate)
    db.commit()
    return {"message": "Matrícula eliminada"}
