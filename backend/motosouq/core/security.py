from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import uuid
from jose import jwt, JWTError
from passlib.context import CryptContext
from motosouq.core.config import settings

# Configuración para hash de contraseñas
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.SECURITY_BCRYPT_ROUNDS,
)

# Algoritmo para JWT
ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({
        "exp": expire,
        "type": token_type,
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)

def create_access_token(data: Dict[str, Any]) -> str:
    """
    Crear un token JWT de acceso para un usuario.
    """
    return _create_token(
        data,
        ACCESS_TOKEN_TYPE,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

def create_refresh_token(data: Dict[str, Any]) -> str:
    """
    Crear un token JWT de refresco (larga duración).
    """
    return _create_token(
        data,
        REFRESH_TOKEN_TYPE,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )

def decode_jwt_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> Optional[Dict[str, Any]]:
    """
    Decodificar y verificar un token JWT.
    Devuelve None si la firma, la expiración o el tipo no son válidos.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != expected_type:
        return None
    return payload

def token_expiration(payload: Dict[str, Any]) -> Optional[datetime]:
    exp = payload.get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verificar que una contraseña coincida con el hash almacenado.
    """
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """
    Crear hash para una contraseña.
    """
    return pwd_context.hash(password)
