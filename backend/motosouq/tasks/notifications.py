from celery import shared_task
import redis
import json
import logging
from motosouq.core.config import settings

logger = logging.getLogger(__name__)

PENDING_TTL_SECONDS = 86400 * 7  # 7 días

def get_redis_connection():
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

@shared_task(bind=True, max_retries=5, name="motosouq.tasks.notifications.send_notification")
def send_notification(self, user_id, notification_type, action, data):
    """
    Envía una notificación a un usuario específico
    """
    notification = {
        "type": notification_type,
        "action": action,
        "data": data
    }

    try:
        r = get_redis_connection()

        # Verificar si el usuario está conectado
        is_online = r.get(f"user:{user_id}:status") == "online"

        if is_online:
            # Publicar en el canal del usuario
            result = r.publish(f"user:{user_id}:notifications", json.dumps(notification))

            # Si nadie recibió la publicación, guardar como pendiente
            if result == 0:
                logger.warning(f"Usuario {user_id} aparece online pero nadie recibió la notificación")
                _save_pending_message(r, user_id, notification)
        else:
            _save_pending_message(r, user_id, notification)

        return True

    except redis.RedisError as e:
        logger.error(f"Error al enviar notificación: {str(e)}")
        # Reintento con backoff exponencial
        retry_delay = 60 * (2 ** self.request.retries)
        raise self.retry(exc=e, countdown=retry_delay)

def _save_pending_message(redis_conn, user_id, message):
    """Almacena un mensaje pendiente para entrega posterior"""
    try:
        message_data = json.dumps(message)

        redis_conn.lpush(f"user:{user_id}:pending_messages", message_data)
        redis_conn.expire(f"user:{user_id}:pending_messages", PENDING_TTL_SECONDS)

        redis_conn.incr(f"user:{user_id}:pending_count")
        redis_conn.expire(f"user:{user_id}:pending_count", PENDING_TTL_SECONDS)

        logger.info(f"Mensaje guardado para entrega posterior a {user_id}")
        return True
    except redis.RedisError as e:
        logger.error(f"Error al guardar mensaje pendiente: {e}")
        return False
