import hashlib
import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from authgate.core.config import settings
from authgate.models.device import RequestMetadata, RiskAssessment, TrustedDevice, TrustStatistics

logger = logging.getLogger("api.device_trust")


class TrustedDeviceStore:
    """
    Armazena dispositivos confiáveis em memória, indexados por (user_id, fingerprint).
    Toda leitura e escrita passa pelo mesmo lock.
    """
    def __init__(self):
        self._devices: Dict[Tuple[str, str], TrustedDevice] = {}
        self.lock = threading.RLock()

    def get(self, user_id: str, fingerprint: str) -> Optional[TrustedDevice]:
        with self.lock:
            return self._devices.get((user_id, fingerprint))

    def put(self, device: TrustedDevice) -> None:
        with self.lock:
            self._devices[(device.user_id, device.fingerprint)] = device

    def delete(self, user_id: str, fingerprint: str) -> Optional[TrustedDevice]:
        with self.lock:
            return self._devices.pop((user_id, fingerprint), None)

    def all(self) -> List[TrustedDevice]:
        with self.lock:
            return list(self._devices.values())

    def __len__(self) -> int:
        with self.lock:
            return len(self._devices)

    def clear(self) -> None:
        with self.lock:
            self._devices.clear()


class DeviceTrustService:
    """
    Decide se uma tentativa de login pode dispensar o desafio TOTP
    ("lembrar este dispositivo" por 30 dias + heurísticas de risco)
    """
    def __init__(
        self,
        store: Optional[TrustedDeviceStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store or TrustedDeviceStore()
        self.clock = clock
        self.trust_duration = timedelta(days=settings.DEVICE_TRUST_DAYS)
        self.fingerprint_length = settings.FINGERPRINT_LENGTH
        self.unusual_hour_start = settings.UNUSUAL_HOUR_START
        self.unusual_hour_end = settings.UNUSUAL_HOUR_END
        self.long_absence = timedelta(days=settings.LONG_ABSENCE_DAYS)

    def fingerprint(self, metadata: RequestMetadata) -> str:
        """
        Gera a impressão digital do dispositivo a partir dos cabeçalhos e do IP.
        Mesmos atributos geram sempre o mesmo valor; qualquer mudança gera outro.
        """
        components = [
            metadata.user_agent,
            metadata.accept_language,
            metadata.accept_encoding,
            metadata.ip_address,
            metadata.accept,
        ]
        digest = hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
        return digest[:self.fingerprint_length]

    @staticmethod
    def describe_device(user_agent: str) -> str:
        """Nome amigável a partir do User-Agent."""
        device_name = "Unknown Device"

        if "Chrome" in user_agent:
            device_name = "Chrome Browser"
        elif "Firefox" in user_agent:
            device_name = "Firefox Browser"
        elif "Safari" in user_agent:
            device_name = "Safari Browser"
        elif "Edge" in user_agent:
            device_name = "Edge Browser"

        # Sistemas móveis substituem o nome inteiro
        if "Windows" in user_agent:
            device_name += " on Windows"
        elif "Mac" in user_agent:
            device_name += " on macOS"
        elif "iPhone" in user_agent:
            device_name = "iPhone"
        elif "Android" in user_agent:
            device_name = "Android Device"

        return device_name

    def is_trusted(self, user_id: str, fingerprint: str) -> bool:
        with self.store.lock:
            device = self.store.get(user_id, fingerprint)
            if device is None:
                logger.debug("Dispositivo não encontrado na lista de confiáveis")
                return False

            now = self.clock()
            if device.is_expired(now):
                logger.info("Confiança do dispositivo %s expirou; removendo", device.id)
                self.store.delete(user_id, fingerprint)
                return False

            # Só o último uso muda; a expiração continua fixa
            device.last_used = now
            return True

    def trust(self, user_id: str, fingerprint: str, metadata: RequestMetadata) -> str:
        """
        Marca o dispositivo como confiável após um desafio 2FA bem-sucedido
        """
        now = self.clock()
        device = TrustedDevice(
            id=secrets.token_hex(16),
            user_id=user_id,
            fingerprint=fingerprint,
            name=self.describe_device(metadata.user_agent),
            created_at=now,
            last_used=now,
            expires_at=now + self.trust_duration,
            ip_address=metadata.ip_address or "unknown",
            user_agent=metadata.user_agent,
        )
        self.store.put(device)
        logger.info("Dispositivo confiável por %d dias: %s", self.trust_duration.days, device.name)
        return device.id

    def remove(self, user_id: str, device_id: str) -> bool:
        with self.store.lock:
            for device in self.store.all():
                if device.user_id == user_id and device.id == device_id:
                    self.store.delete(device.user_id, device.fingerprint)
                    logger.info("Dispositivo confiável removido: %s", device.name)
                    return True
        return False

    def list(self, user_id: str) -> List[TrustedDevice]:
        """
        Dispositivos ainda válidos do usuário, do uso mais recente ao mais antigo.
        Registros expirados ficam de fora mesmo antes da varredura.
        """
        now = self.clock()
        devices = [
            device for device in self.store.all()
            if device.user_id == user_id and not device.is_expired(now)
        ]
        return sorted(devices, key=lambda device: device.last_used, reverse=True)

    def sweep_expired(self) -> int:
        now = self.clock()
        removed = 0
        with self.store.lock:
            for device in self.store.all():
                if device.is_expired(now):
                    self.store.delete(device.user_id, device.fingerprint)
                    removed += 1
        if removed:
            logger.info("Dispositivos confiáveis expirados removidos: %d", removed)
        return removed

    def assess_risk(
        self,
        user_id: str,
        metadata: RequestMetadata,
        last_login: Optional[datetime],
    ) -> RiskAssessment:
        """
        Decide se o desafio 2FA é necessário. Heurística grosseira, não é garantia de segurança.
        last_login vem do registro do usuário; None significa que não há login registrado.
        """
        self.sweep_expired()

        fingerprint = self.fingerprint(metadata)
        if self.is_trusted(user_id, fingerprint):
            return RiskAssessment(
                required=False,
                reason=f"Trusted device within {self.trust_duration.days}-day window",
                risk_level="low",
            )

        now = self.clock()
        is_unusual_time = now.hour < self.unusual_hour_start or now.hour > self.unusual_hour_end
        is_long_absence = last_login is not None and (now - last_login) > self.long_absence

        if is_unusual_time:
            return RiskAssessment(required=True, reason="Login attempt during unusual hours", risk_level="high")
        if is_long_absence:
            return RiskAssessment(required=True, reason="Long time since last login", risk_level="high")
        return RiskAssessment(required=True, reason="New device detected", risk_level="medium")

    def statistics(self) -> TrustStatistics:
        now = self.clock()
        devices = self.store.all()
        active = sum(1 for device in devices if not device.is_expired(now))
        return TrustStatistics(
            total_trusted_devices=len(devices),
            active_devices=active,
            expired_devices=len(devices) - active,
        )


# Instância global do serviço
device_trust_service = DeviceTrustService()
