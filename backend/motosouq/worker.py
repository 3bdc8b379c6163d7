from celery import Celery
from motosouq.core.config import settings

celery = Celery(
    "motosouq",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["motosouq.tasks.notifications", "motosouq.tasks.sooms"]
)

# Configuración
celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutos máximo por tarea
    worker_max_tasks_per_child=1000,
    # Configuración de reintentos
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_retry_delay=60,  # 1 minuto entre reintentos
    task_max_retries=3,  # Máximo 3 reintentos
    # El cierre diferido de anuncios usa countdown de varios días
    broker_transport_options={"visibility_timeout": 60 * 60 * 24 * 7},
)
