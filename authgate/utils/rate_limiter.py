import logging
import math
import threading
import time
from typing import Optional

from fastapi import Request
from limits.storage import MemoryStorage, Storage, storage_from_string
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded as SlowApiRateLimitExceeded
from slowapi.util import get_remote_address

from authgate.core.config import settings
from authgate.core.errors import error_response

logger = logging.getLogger("api.rate_limiter")

# Limite padrão por IP para toda a API; os limites por e-mail do 2FA ficam no AttemptLimiter.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)


def rate_limit_exceeded_handler(request: Request, exc: SlowApiRateLimitExceeded):
    logger.warning("Limite padrão excedido para %s em %s", get_remote_address(request), request.url.path)
    return error_response(429, "Too many requests. Please try again later.")


class AttemptLimiter:
    """
    Contador de tentativas em janela fixa por chave arbitrária (ex.: "2fa_generate:<email>").

    A janela começa na primeira tentativa e reinicia quando window_ms expira; ela
    não desliza com as tentativas seguintes. Chamadas que excederem max_attempts
    são negadas. Incremento e leitura do contador acontecem sob o mesmo lock,
    então chamadas concorrentes nunca passam juntas do limite. O storage do
    `limits` descarta contadores expirados, então chaves antigas não acumulam.
    """

    KEY_PREFIX = "2fa-attempts"

    def __init__(self, storage: Optional[Storage] = None, storage_uri: Optional[str] = None):
        self.storage = storage or storage_from_string(storage_uri or settings.RATE_LIMIT_STORAGE_URI)
        self.lock = threading.Lock()

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}/{key}"

    def check(self, key: str, max_attempts: int = 5, window_ms: int = 300000) -> bool:
        """
        Registra uma tentativa e retorna se ela é permitida.
        """
        if max_attempts <= 0:
            return False
        window_seconds = window_ms / 1000
        if not isinstance(self.storage, MemoryStorage):
            # Redis e afins só aceitam expiração em segundos inteiros
            window_seconds = max(1, math.ceil(window_seconds))
        with self.lock:
            attempts = self.storage.incr(self._key(key), window_seconds)
        if attempts > max_attempts:
            logger.warning("Limite de tentativas de 2FA excedido para %s (%d/%d)", key, attempts, max_attempts)
            return False
        return True

    def attempts(self, key: str) -> int:
        return int(self.storage.get(self._key(key)) or 0)

    def retry_after(self, key: str) -> int:
        """Segundos até a janela atual da chave reiniciar (0 se não há janela aberta)."""
        if not self.attempts(key):
            return 0
        return max(0, math.ceil(self.storage.get_expiry(self._key(key)) - time.time()))

    def reset(self, key: str) -> None:
        with self.lock:
            self.storage.clear(self._key(key))

    def close(self) -> None:
        self.storage.reset()
