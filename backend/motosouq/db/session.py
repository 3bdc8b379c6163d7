from contextlib import contextmanager
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from motosouq.core.config import settings
import logging
import asyncio

logger = logging.getLogger(__name__)

# Inicialización de engine con None
engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None

# Control de inicialización
_is_initialized = False

def build_engine(url: str) -> Engine:
    """Crea el engine con opciones de pool adecuadas para el driver."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=settings.DEBUG,
        )
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=60,
        pool_recycle=1800,  # Reciclar conexiones cada 30 minutos
        pool_pre_ping=True,  # Verificar conexiones
        echo=settings.DEBUG,
    )

def configure_engine(new_engine: Engine) -> None:
    """Registra un engine ya creado (usado también por las pruebas)."""
    global engine, SessionLocal, _is_initialized
    engine = new_engine
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=new_engine)
    _is_initialized = True

async def init_db_connection(max_retries=5, initial_delay=1):
    """Inicializa la conexión a la base de datos con reintentos."""
    if _is_initialized:
        return True

    retry_count = 0
    last_exception = None

    while retry_count < max_retries:
        try:
            candidate = build_engine(str(settings.DATABASE_URL))

            # Probar la conexión
            with candidate.connect() as conn:
                conn.execute(text("SELECT 1"))

            configure_engine(candidate)
            logger.info(f"Conexión a la base de datos establecida (intento {retry_count + 1})")
            return True

        except Exception as e:
            retry_count += 1
            last_exception = e
            wait_time = initial_delay * (2 ** (retry_count - 1))  # Exponential backoff

            logger.warning(f"Intento {retry_count}/{max_retries} fallido para conectar a la base de datos: {e}")
            if retry_count < max_retries:
                logger.warning(f"Reintentando en {wait_time} segundos...")
                await asyncio.sleep(wait_time)

    logger.error(f"No se pudo conectar a la base de datos después de {max_retries} intentos: {last_exception}")
    return False

def create_tables() -> None:
    """Crea las tablas que falten (no destruye datos existentes)."""
    from motosouq.db.base import Base

    if engine is None:
        raise RuntimeError("Base de datos no inicializada")
    Base.metadata.create_all(bind=engine)
    logger.info("Tablas de base de datos creadas/verificadas")

def dispose_engine() -> None:
    global engine, SessionLocal, _is_initialized
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None
    _is_initialized = False

@contextmanager
def transaction_scope(db: Session):
    """Proporciona un contexto transaccional."""
    try:
        yield
        db.commit()
    except HTTPException:
        # Errores de negocio: deshacer y propagar tal cual
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error de integridad en transacción: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Error de integridad en la operación. Por favor, inténtalo de nuevo."
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Error en transacción: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error interno del servidor durante la transacción"
        )
