from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.status import HTTP_429_TOO_MANY_REQUESTS, HTTP_403_FORBIDDEN
import time
import re
import redis.asyncio as redis
import logging
import json
from typing import Dict, List, Optional, Tuple, Callable, Any
from motosouq.core.config import settings

logger = logging.getLogger(__name__)

DOC_PATHS = ("/docs", "/redoc", "/openapi.json", "/static/")

class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Middleware de seguridad:
    - Añade encabezados de seguridad
    - Limita la tasa de peticiones por cliente (Redis)
    - Bloquea clientes con peticiones sospechosas repetidas
    """

    def __init__(
        self,
        app: FastAPI,
        redis_url: Optional[str] = None,
        exclude_paths: Optional[List[str]] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)
        self.redis_url = redis_url or settings.REDIS_URL
        self.exclude_paths = exclude_paths or list(DOC_PATHS)
        self.redis_pool = None
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled

        self.default_limit = settings.RATE_LIMIT_DEFAULT_LIMIT
        self.default_period = settings.RATE_LIMIT_DEFAULT_PERIOD
        self.rate_limit_by_ip = settings.RATE_LIMIT_BY_IP

        api = settings.API_V1_STR
        # Rutas con límites específicos: (peticiones, periodo en segundos)
        self.path_limits: Dict[str, Tuple[int, int]] = {
            f"{api}/auth/login": (20, 3600),
            f"{api}/auth/register": (10, 3600),
            f"{api}/auth/refresh": (60, 3600),
            f"{api}/promo-codes/validate": (60, 3600),
        }

        self.block_after_violations = 5
        self.block_duration = 86400  # 24 horas

        # Bloqueos en memoria: ip -> instante de expiración
        self.blocked_ips: Dict[str, float] = {}

        self.malicious_patterns = [
            re.compile(p, re.IGNORECASE) for p in (
                r"\.\./\.\./",
                r"\.\./etc/passwd",
                r"SELECT.+FROM",
                r"UNION.+SELECT",
                r"eval\(",
                r"<script",
                r"javascript:",
                r"onload=",
                r"alert\(",
            )
        ]

    async def get_redis(self) -> redis.Redis:
        if self.redis_pool is None:
            self.redis_pool = redis.ConnectionPool.from_url(
                self.redis_url, decode_responses=True
            )
        return redis.Redis(connection_pool=self.redis_pool)

    def is_path_excluded(self, path: str) -> bool:
        return any(path.startswith(excluded) for excluded in self.exclude_paths)

    def get_client_identifier(self, request: Request) -> str:
        client_ip = request.client.host if request.client else "unknown"
        if self.rate_limit_by_ip:
            return f"ip:{client_ip}"

        # Sin validar el token: solo sirve para repartir cuotas
        auth_header = request.headers.get("Authorization", "")
        token_hint = auth_header[-16:] if auth_header.startswith("Bearer ") else "anonymous"
        return f"ip:{client_ip}:token:{token_hint}"

    async def is_blocked(self, client_id: str) -> bool:
        ip = client_id.split(":")[1]
        if ip in self.blocked_ips:
            if time.time() > self.blocked_ips[ip]:
                del self.blocked_ips[ip]
                return False
            return True

        try:
            r = await self.get_redis()
            return bool(await r.get(f"block:{client_id}"))
        except redis.RedisError as e:
            # Sin Redis, confiar solo en los bloqueos en memoria
            logger.error(f"Error al consultar bloqueos: {e}")
            return False

    async def increment_violation(self, client_id: str) -> int:
        try:
            r = await self.get_redis()
            violations_key = f"violations:{client_id}"
            violations = await r.incr(violations_key)
            if violations == 1:
                await r.expire(violations_key, 86400)

            if violations >= self.block_after_violations:
                await r.set(f"block:{client_id}", "1", ex=self.block_duration)
                self.blocked_ips[client_id.split(":")[1]] = time.time() + self.block_duration
                logger.warning(f"Cliente bloqueado por exceso de violaciones: {client_id}")

            return violations
        except redis.RedisError as e:
            logger.error(f"Error al incrementar violaciones: {str(e)}")
            return 0

    async def is_rate_limited(self, client_id: str, path: str) -> Tuple[bool, int, int, int]:
        """
        Retorna: (limitado, actual, límite, reset)
        """
        path_key = next((p for p in self.path_limits if path.startswith(p)), None)
        limit, period = self.path_limits[path_key] if path_key else (self.default_limit, self.default_period)

        try:
            r = await self.get_redis()
            redis_key = f"ratelimit:{client_id}:{path_key or path}"

            count = await r.get(redis_key)
            count = int(count) if count else 0
            ttl = await r.ttl(redis_key)
            reset_time = int(time.time() + (ttl if ttl > 0 else period))

            if count >= limit:
                return True, count, limit, reset_time

            pipe = r.pipeline()
            pipe.incr(redis_key)
            if count == 0:
                pipe.expire(redis_key, period)
            await pipe.execute()

            return False, count + 1, limit, reset_time

        except redis.RedisError as e:
            logger.error(f"Error en rate limiting: {str(e)}")
            # Si Redis falla, se permite la petición
            return False, 0, limit, int(time.time() + period)

    def detect_malicious_request(self, request: Request) -> bool:
        candidates = [("uri", request.url.path)]
        candidates.extend((f"query {k}", v) for k, v in request.query_params.items())
        candidates.extend(
            (f"header {k}", v) for k, v in request.headers.items() if k.lower() != "authorization"
        )

        for source, value in candidates:
            if any(p.search(value) for p in self.malicious_patterns):
                logger.warning(f"Patrón malicioso detectado en {source}: {value}")
                return True
        return False

    def add_security_headers(self, response: Response, path: str) -> None:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), camera=(), microphone=()"

        if path.startswith(DOC_PATHS):
            # La documentación carga recursos desde CDN
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
            if "Content-Security-Policy" in response.headers:
                del response.headers["Content-Security-Policy"]
        else:
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self'; "
                "style-src 'self'; "
                "img-src 'self' data:; "
                "font-src 'self'; "
                "connect-src 'self'"
            )

        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    def _json_response(self, detail: str, status_code: int, headers: Optional[Dict[str, str]] = None) -> Response:
        return Response(
            content=json.dumps({"detail": detail}),
            status_code=status_code,
            headers=headers,
            media_type="application/json",
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        start_time = time.time()
        path = request.url.path
        checked = self.enabled and not self.is_path_excluded(path)
        limit = current = reset = 0

        if checked:
            client_id = self.get_client_identifier(request)

            if await self.is_blocked(client_id):
                return self._json_response(
                    "Tu acceso ha sido bloqueado temporalmente debido a actividad sospechosa",
                    HTTP_403_FORBIDDEN,
                )

            if self.detect_malicious_request(request):
                await self.increment_violation(client_id)
                return self._json_response("Solicitud denegada por motivos de seguridad", HTTP_403_FORBIDDEN)

            limited, current, limit, reset = await self.is_rate_limited(client_id, path)
            if limited:
                await self.increment_violation(client_id)
                return self._json_response(
                    "Demasiadas solicitudes. Por favor, inténtalo de nuevo más tarde.",
                    HTTP_429_TOO_MANY_REQUESTS,
                    headers={
                        "X-RateLimit-Limit": str(limit),
                        "X-RateLimit-Remaining": "0",
                        "X-RateLimit-Reset": str(reset),
                        "Retry-After": str(max(0, reset - int(time.time()))),
                    },
                )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"Error no manejado: {str(e)}")
            response = self._json_response("Error interno del servidor", 500)

        self.add_security_headers(response, path)

        if checked:
            response.headers["X-RateLimit-Limit"] = str(limit)
            response.headers["X-RateLimit-Remaining"] = str(max(0, limit - current))
            response.headers["X-RateLimit-Reset"] = str(reset)

        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

def setup_security_middleware(app: FastAPI) -> None:
    """Configura los middlewares de seguridad para la aplicación"""
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=[
                "X-RateLimit-Limit",
                "X-RateLimit-Remaining",
                "X-RateLimit-Reset",
                "X-Process-Time"
            ],
        )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY,
        max_age=3600,  # 1 hora
    )

    app.add_middleware(
        SecurityMiddleware,
        redis_url=settings.REDIS_URL,
        exclude_paths=list(DOC_PATHS),
    )

    logger.info("Middlewares de seguridad configurados")
