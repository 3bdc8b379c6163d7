from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.openapi.docs import get_swagger_ui_html
import logging
import os
from contextlib import asynccontextmanager

from motosouq.api.api import api_router
from motosouq.core.config import settings
from motosouq.middleware.security import setup_security_middleware
from motosouq.worker import celery  # noqa: F401  registra la app Celery para .delay()

# Configurar logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    from motosouq.db import session as db_session

    logger.info(f"Iniciando la aplicación en entorno: {settings.ENVIRONMENT}")
    if await db_session.init_db_connection(max_retries=5, initial_delay=2):
        db_session.create_tables()
    else:
        logger.error("No se pudo inicializar la conexión a la base de datos antes del lifespan")

    yield

    logger.info("Deteniendo la aplicación...")
    db_session.dispose_engine()
    logger.info("Conexiones a base de datos cerradas")

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API del marketplace de motos: anuncios, SOOM y validación de ventas",
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json" if not settings.ENVIRONMENT == "production" else None,
    docs_url=None,  # Desactivamos endpoint de docs por defecto
    redoc_url=None,
    lifespan=lifespan,
)

setup_security_middleware(app)

# Archivos estáticos (imágenes de matrículas)
static_dir = "static"
os.makedirs(static_dir, exist_ok=True)
app.mount("/static", StaticFiles(directory=static_dir), name="static")

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}

@app.get("/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    """
    Documentación Swagger servida desde CDN.
    """
    return get_swagger_ui_html(
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        title=f"{settings.PROJECT_NAME} - API Documentation",
        swagger_js_url="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5.12.0/swagger-ui-bundle.js",
        swagger_css_url="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5.12.0/swagger-ui.css",
        swagger_ui_parameters={"persistAuthorization": True}
    )
