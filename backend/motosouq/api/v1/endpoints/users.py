from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Any, List

from motosouq.api import deps
from motosouq.core.security import get_password_hash
from motosouq.schemas.user import UserResponse, UserUpdate
from motosouq.models.user import User

router = APIRouter()

def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Usuario no encontrado",
        )
    return user

def _check_self_or_admin(user: User, current_user: User) -> None:
    if user.id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permiso para modificar este usuario",
        )

@router.get("/", response_model=List[UserResponse])
def list_users(
    *,
    db: Session = Depends(deps.get_db),
    admin: User = Depends(deps.get_current_admin),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> Any:
    """
    Listar usuarios (solo administradores).
    """
    return db.query(User).order_by(User.created_at.desc()).offset(skip).limit(limit).all()

@router.get("/{user_id}", response_model=UserResponse)
def get_user_by_id(
    user_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Obtener información de un usuario por su ID.
    """
    user = _get_user_or_404(db, user_id)

    # Los usuarios inactivos solo son visibles para administradores
    if not user.is_active and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Usuario no encontrado",
        )

    return user

@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    *,
    db: Session = Depends(deps.get_db),
    user_id: str,
    user_in: UserUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Actualizar un usuario (el propio usuario o un administrador).
    """
    user = _get_user_or_404(db, user_id)
    _check_self_or_admin(user, current_user)

    update_data = user_in.model_dump(exclude_unset=True)
    if "is_active" in update_data and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo un administrador puede cambiar el estado de la cuenta",
        )

    password = update_data.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)

    for key, value in update_data.items():
        setattr(user, key, value)

    db.add(user)
    db.commit()
    db.refresh(user)

    return user

@router.delete("/{user_id}")
def delete_user(
    *,
    db: Session = Depends(deps.get_db),
    user_id: str,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Desactivar una cuenta. Los datos se conservan por el historial de ventas.
    """
    user = _get_user_or_404(db, user_id)
    _check_self_or_admin(user, current_user)

    user.is_active = False
    db.add(user)
    db.commit()

    return {"message": "Usuario desactivado correctamente"}
