import base64
import hashlib
import io
import logging
import re
import secrets
from datetime import datetime
from typing import Callable, List, Optional, Union
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import pyotp
import qrcode

from authgate.core.config import settings
from authgate.core.errors import GenerationError, RateLimitExceeded
from authgate.models.two_factor import BackupCodeVerification, EnrollmentData, SetupValidation
from authgate.utils.rate_limiter import AttemptLimiter
from authgate.utils.security import constant_time_equals

logger = logging.getLogger("api.two_factor")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
BASE32_PATTERN = re.compile(r"^[A-Z2-7]+=*$", re.IGNORECASE)
CODE_PATTERN = re.compile(r"^\d{6}$", re.ASCII)
WHITESPACE = re.compile(r"\s+")

BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class TwoFactorService:
    """
    Serviço de autenticação de dois fatores (TOTP, RFC 6238)
    """
    def __init__(
        self,
        attempt_limiter: Optional[AttemptLimiter] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.issuer_name = settings.TOTP_ISSUER
        self.algorithm = settings.TOTP_ALGORITHM.upper()
        self.digest = getattr(hashlib, self.algorithm.lower())
        self.totp_digits = settings.TOTP_DIGITS
        self.totp_interval = settings.TOTP_INTERVAL  # segundos
        self.totp_window = settings.TOTP_WINDOW  # compensa dessincronização de relógio
        self.secret_length = settings.TOTP_SECRET_LENGTH
        self.backup_codes_count = settings.BACKUP_CODES_COUNT
        self.attempt_limiter = attempt_limiter or AttemptLimiter()
        self.clock = clock

    def _totp(self, secret: str, identity: Optional[str] = None) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret,
            digits=self.totp_digits,
            digest=self.digest,
            interval=self.totp_interval,
            name=identity,
            issuer=self.issuer_name,
        )

    def generate_secret(self) -> str:
        """
        Gera um segredo base32 de 160 bits (20 bytes) como recomendado pela RFC 6238
        """
        return pyotp.random_base32(length=self.secret_length)

    def build_provisioning_uri(self, identity: str, secret: str) -> str:
        """
        Monta a URI otpauth:// para apps autenticadores.
        O pyotp omite algoritmo, dígitos e período quando são os valores padrão;
        aqui eles sempre vão explícitos na URI.
        """
        uri = self._totp(secret).provisioning_uri(name=identity, issuer_name=self.issuer_name)
        parts = urlsplit(uri)
        params = dict(parse_qsl(parts.query))
        params.setdefault("algorithm", self.algorithm)
        params.setdefault("digits", str(self.totp_digits))
        params.setdefault("period", str(self.totp_interval))
        return urlunsplit(parts._replace(query=urlencode(params, quote_via=quote)))

    def render_qr_code(self, data: str) -> str:
        """
        Renderiza o conteúdo como PNG e devolve uma data URL
        """
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffered = io.BytesIO()
        img.save(buffered)
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"

    def generate_backup_codes(self, count: Optional[int] = None) -> List[str]:
        """
        Gera códigos de recuperação no formato XXXX-XXXX
        """
        codes = []
        for _ in range(count if count is not None else self.backup_codes_count):
            raw = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(8))
            codes.append(f"{raw[:4]}-{raw[4:]}")
        return codes

    @staticmethod
    def format_manual_entry_key(secret: str) -> str:
        return " ".join(secret[i:i + 4] for i in range(0, len(secret), 4))

    def generate_enrollment_data(self, identity: str) -> EnrollmentData:
        """
        Gera todo o material de cadastro: segredo, QR code, códigos de backup e chave manual
        """
        try:
            secret = self.generate_secret()
            qr_code_url = self.render_qr_code(self.build_provisioning_uri(identity, secret))
            backup_codes = self.generate_backup_codes()
        except Exception as e:
            logger.error("Falha ao gerar dados de cadastro 2FA: %s", e, exc_info=True)
            raise GenerationError("Failed to generate 2FA enrollment data") from e

        logger.info("Dados de cadastro 2FA gerados para %s", identity)
        return EnrollmentData(
            secret=secret,
            qr_code_url=qr_code_url,
            backup_codes=backup_codes,
            manual_entry_key=self.format_manual_entry_key(secret),
        )

    def verify_code(
        self,
        secret: str,
        submitted_code: str,
        tolerance_window: Optional[int] = None,
        for_time: Optional[Union[datetime, int]] = None,
    ) -> bool:
        """
        Verifica um código TOTP no passo atual e em ±tolerance_window passos.
        Qualquer falha (formato, segredo inválido) resulta em False.
        """
        if not isinstance(submitted_code, str) or not isinstance(secret, str):
            return False

        clean_code = WHITESPACE.sub("", submitted_code)
        if not CODE_PATTERN.match(clean_code):
            logger.debug("Formato de código TOTP inválido")
            return False

        window = self.totp_window if tolerance_window is None else max(0, tolerance_window)
        moment = for_time if for_time is not None else self.clock()

        try:
            result = self._totp(secret).verify(clean_code, for_time=moment, valid_window=window)
        except (ValueError, TypeError) as e:
            logger.warning("Erro ao verificar código TOTP: %s", e)
            return False

        if not result:
            logger.info("Código TOTP rejeitado")
        return result

    def validate_setup(self, identity: str, secret: str, submitted_code: str) -> SetupValidation:
        """
        Valida e-mail, formato do segredo e o código, parando na primeira falha
        """
        if not identity or not EMAIL_PATTERN.match(identity):
            return SetupValidation(valid=False, error="Invalid email format")

        if not secret or not BASE32_PATTERN.match(secret):
            return SetupValidation(valid=False, error="Invalid secret format")

        if not self.verify_code(secret, submitted_code):
            return SetupValidation(valid=False, error="Invalid verification code")

        logger.info("Configuração 2FA validada para %s", identity)
        return SetupValidation(valid=True)

    def verify_backup_code(self, remaining_codes: List[str], submitted_code: str) -> BackupCodeVerification:
        """
        Verifica um código de backup. Em caso de acerto o código sai do conjunto (uso único).
        """
        codes = list(remaining_codes)
        if not isinstance(submitted_code, str):
            return BackupCodeVerification(valid=False, remaining_codes=codes)

        clean_code = WHITESPACE.sub("", submitted_code).upper()
        match_index = None
        for index, code in enumerate(codes):
            if constant_time_equals(code, clean_code) and match_index is None:
                match_index = index

        if match_index is None:
            logger.info("Código de backup inválido")
            return BackupCodeVerification(valid=False, remaining_codes=codes)

        del codes[match_index]
        logger.info("Código de backup utilizado; restam %d", len(codes))
        return BackupCodeVerification(valid=True, remaining_codes=codes)

    @staticmethod
    def is_valid_email(identity: str) -> bool:
        return bool(identity) and bool(EMAIL_PATTERN.match(identity))

    @staticmethod
    def is_valid_secret(secret: str) -> bool:
        return bool(secret) and bool(BASE32_PATTERN.match(secret))

    def check_rate_limit(self, key: str, max_attempts: int = 5, window_ms: int = 300000) -> bool:
        return self.attempt_limiter.check(key, max_attempts, window_ms)

    def reset_rate_limit(self, key: str) -> None:
        self.attempt_limiter.reset(key)

    def enforce_rate_limit(self, key: str, max_attempts: int, window_ms: int, message: str) -> None:
        """
        Como check_rate_limit, mas levanta RateLimitExceeded com o tempo de espera
        """
        if self.check_rate_limit(key, max_attempts, window_ms):
            return
        retry_after = self.attempt_limiter.retry_after(key)
        minutes = max(1, round(window_ms / 60000))
        raise RateLimitExceeded(f"{message} Please wait {minutes} minutes.", retry_after=retry_after)


# Instância global do serviço
two_factor_service = TwoFactorService()
