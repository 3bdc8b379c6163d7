import logging
from typing import Optional

logger = logging.getLogger(__name__)

def enqueue(task, *args, countdown: Optional[int] = None, **kwargs) -> bool:
    """
    Encola una tarea Celery sin bloquear la petición.
    Un broker caído se registra en el log y la petición sigue adelante.
    """
    try:
        if countdown is not None:
            task.apply_async(args=args, kwargs=kwargs, countdown=countdown)
        else:
            task.delay(*args, **kwargs)
        return True
    except Exception as e:
        logger.error(f"No se pudo encolar la tarea {getattr(task, 'name', task)}: {e}")
        return False
