# authgate/core/logging_middleware.py
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Awaitable, Callable, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from authgate.core.config import settings

CALL_NEXT_TYPE = Callable[[Request], Awaitable[Response]]

SENSITIVE_FIELDS = {
    "password", "currentpassword", "secret", "token", "authorization",
    "code", "backupcodes", "backup_codes", "manualentrykey", "qrcodeurl",
    "otp", "2fa", "recovery", "api_key", "key",
}
SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie", "x-csrf-token", "x-api-key"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            "client_ip": getattr(record, "client_ip", None),
            "method": getattr(record, "method", None),
            "path": getattr(record, "path", None),
            "status_code": getattr(record, "status_code", None),
            "response_time": getattr(record, "response_time", None),
            "user_agent": getattr(record, "user_agent", None),
            "error": getattr(record, "error", None),
        }
        return json.dumps(log_data)


def configure_logging() -> logging.Logger:
    """
    Configura o logger "api": console sempre, arquivo rotativo quando LOG_TO_FILE estiver ativo.
    Chamadas repetidas não duplicam handlers.
    """
    logger = logging.getLogger("api")
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    if settings.LOG_FORMAT == "json":
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        log_dir = "logs"
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, settings.LOG_FILE),
                maxBytes=settings.LOG_MAX_SIZE,
                backupCount=settings.LOG_BACKUP_COUNT,
            )
            if settings.LOG_FORMAT == "json":
                file_handler.setFormatter(JsonFormatter())
            else:
                file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning("Não foi possível configurar log em arquivo: %s", e)

    return logger


logger = configure_logging()


def sanitize_data(data: Any) -> Any:
    """Remove campos sensíveis (segredos, códigos, senhas) antes de logar."""
    if isinstance(data, list):
        return [sanitize_data(item) for item in data]
    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        if str(key).lower() in SENSITIVE_FIELDS:
            sanitized[key] = "***REDACTED***"
        else:
            sanitized[key] = sanitize_data(value)
    return sanitized


def sanitize_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS}


class ApiLoggingMiddleware(BaseHTTPMiddleware):
    """
    Registra início, fim e falha de cada requisição com um request id.
    O corpo da requisição não é lido aqui; rotas logam apenas dados já sanitizados.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: CALL_NEXT_TYPE) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        client_ip = request.client.host if request.client else "unknown"
        extra = {
            "request_id": request_id,
            "client_ip": client_ip,
            "method": request.method,
            "path": request.url.path,
            "user_agent": request.headers.get("user-agent", ""),
        }

        if settings.API_LOGGING_ENABLED:
            logger.debug(
                "Request started %s %s query=%s headers=%s",
                request.method,
                request.url.path,
                sanitize_data(dict(request.query_params)),
                sanitize_headers(dict(request.headers)),
                extra=extra,
            )

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed %s %s",
                request.method,
                request.url.path,
                extra={**extra, "status_code": 500, "response_time": time.time() - start_time, "error": str(e)},
                exc_info=True,
            )
            raise

        response_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id

        if settings.API_LOGGING_ENABLED:
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                level,
                "Request completed %s %s -> %s (%.2f ms)",
                request.method,
                request.url.path,
                response.status_code,
                response_time * 1000,
                extra={**extra, "status_code": response.status_code, "response_time": response_time},
            )
        return response
