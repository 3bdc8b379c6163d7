from typing import Generator, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from motosouq.core.security import decode_jwt_token
from motosouq.models.user import User, RevokedToken
from motosouq.core.config import settings
import logging

logger = logging.getLogger(__name__)

# Token URL (requerido para OAuth2PasswordBearer)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)

def get_db() -> Generator[Session, None, None]:
    """
    Dependency para obtener una sesión de base de datos sincrónica.
    """
    # Importamos aquí para leer el estado actual del módulo
    from motosouq.db import session as db_session

    if not db_session._is_initialized:
        logger.warning("Conexión a base de datos no inicializada en get_db, inicializando...")
        try:
            db_session.configure_engine(db_session.build_engine(str(settings.DATABASE_URL)))
            logger.info("Conexión a base de datos inicializada de forma sincrónica")
        except Exception as e:
            logger.error(f"Error al inicializar conexión de forma sincrónica: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="No se pudo conectar a la base de datos",
            )

    if db_session.SessionLocal is None:
        logger.error("SessionLocal es None a pesar de la inicialización")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Error de configuración de base de datos"
        )

    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()

def _credentials_exception(detail: str = "No se pudo validar las credenciales") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

def _user_from_token(db: Session, token: str) -> User:
    payload = decode_jwt_token(token)
    if not payload:
        raise _credentials_exception()

    user_id = payload.get("sub")
    if not user_id:
        raise _credentials_exception()

    jti = payload.get("jti")
    if jti and db.query(RevokedToken.id).filter(RevokedToken.jti == jti).first():
        raise _credentials_exception("Token revocado")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _credentials_exception("Usuario no encontrado")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Usuario inactivo",
        )

    return user

def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """
    Dependency para obtener el usuario actual autenticado.
    """
    return _user_from_token(db, token)

def get_current_user_optional(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(optional_oauth2_scheme),
) -> Optional[User]:
    """
    Igual que get_current_user, pero devuelve None para peticiones anónimas
    o con token inválido.
    """
    if not token:
        return None
    try:
        return _user_from_token(db, token)
    except HTTPException:
        return None

def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Dependency para verificar que el usuario es administrador.
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="El usuario no tiene permisos de administrador",
        )

    return current_user
