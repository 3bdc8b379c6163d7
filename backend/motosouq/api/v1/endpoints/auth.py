from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from typing import Any
import logging

from motosouq.api import deps
from motosouq.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_jwt_token,
    get_password_hash,
    token_expiration,
    verify_password,
)
from motosouq.schemas.user import UserCreate, UserResponse, Token, RefreshRequest
from motosouq.models.user import User, RevokedToken

logger = logging.getLogger(__name__)

router = APIRouter()

def _issue_tokens(user: User) -> dict:
    return {
        "access_token": create_access_token(data={"sub": user.id}),
        "refresh_token": create_refresh_token(data={"sub": user.id}),
        "token_type": "bearer",
        "user_id": user.id,
        "is_admin": bool(user.is_admin),
    }

def _revoke(db: Session, payload: dict) -> None:
    jti = payload.get("jti")
    if not jti:
        return
    if db.query(RevokedToken.id).filter(RevokedToken.jti == jti).first():
        return
    db.add(RevokedToken(
        jti=jti,
        user_id=payload.get("sub"),
        expires_at=token_expiration(payload),
    ))

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    *,
    db: Session = Depends(deps.get_db),
    user_in: UserCreate,
) -> Any:
    """
    Crear un nuevo usuario.
    """
    # Verificar si el email ya existe
    user = db.query(User).filter(User.email == user_in.email).first()
    if user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El correo electrónico ya está registrado",
        )

    user_data = user_in.model_dump(exclude={"password"})
    user_data["hashed_password"] = get_password_hash(user_in.password)
    db_user = User(**user_data)

    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Usuario registrado: {db_user.id}")

    return db_user

@router.post("/login", response_model=Token)
def login(
    db: Session = Depends(deps.get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> Any:
    """
    Obtener tokens de acceso y de refresco.
    """
    user = db.query(User).filter(User.email == form_data.username).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email o contraseña incorrectos",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Usuario inactivo",
        )

    return _issue_tokens(user)

@router.post("/refresh", response_model=Token)
def refresh(
    *,
    db: Session = Depends(deps.get_db),
    body: RefreshRequest,
) -> Any:
    """
    Canjear un token de refresco por un nuevo par de tokens.
    El token de refresco usado queda revocado.
    """
    payload = decode_jwt_token(body.refresh_token, expected_type=REFRESH_TOKEN_TYPE)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de refresco inválido",
        )

    if db.query(RevokedToken.id).filter(RevokedToken.jti == payload.get("jti")).first():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token revocado",
        )

    user = db.query(User).filter(User.id == payload["sub"], User.is_active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario no encontrado",
        )

    _revoke(db, payload)
    db.commit()

    return _issue_tokens(user)

@router.post("/logout")
def logout(
    db: Session = Depends(deps.get_db),
    token: str = Depends(deps.oauth2_scheme),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Revocar el token de acceso actual.
    """
    payload = decode_jwt_token(token)
    _revoke(db, payload or {})
    db.commit()
    logger.info(f"Usuario {current_user.id} cerró sesión")

    return {"message": "Sesión cerrada correctamente"}

@router.get("/me", response_model=UserResponse)
def me(
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Obtener información del usuario autenticado.
    """
    return current_user
