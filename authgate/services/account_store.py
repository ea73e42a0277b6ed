import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from authgate.core.config import settings
from authgate.core.errors import ValidationError
from authgate.models.two_factor import BackupCodeVerification, TwoFactorAccount, TwoFactorStatus
from authgate.utils.encryption import SecretCipher
from authgate.utils.security import constant_time_equals

logger = logging.getLogger("api.account_store")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class TwoFactorAccountStore:
    """
    Estado de 2FA por usuário: DISABLED -> ENROLLING -> ACTIVE -> DISABLED.

    Um novo cadastro não invalida o segredo já confirmado; o segredo pendente
    só passa a valer em activate(). Cadastros abandonados expiram após
    ENROLLMENT_TTL_MINUTES.
    """
    def __init__(
        self,
        cipher: Optional[SecretCipher] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._accounts: Dict[str, TwoFactorAccount] = {}
        self.lock = threading.RLock()
        self.cipher = cipher or SecretCipher()
        self.clock = clock
        self.enrollment_ttl = timedelta(minutes=settings.ENROLLMENT_TTL_MINUTES)

    def get(self, email: str) -> Optional[TwoFactorAccount]:
        with self.lock:
            account = self._accounts.get(normalize_email(email))
            return account.model_copy(deep=True) if account else None

    def status(self, email: str) -> TwoFactorStatus:
        account = self.get(email)
        return account.status if account else TwoFactorStatus.DISABLED

    def _get_or_create(self, email: str) -> TwoFactorAccount:
        key = normalize_email(email)
        account = self._accounts.get(key)
        if account is None:
            account = TwoFactorAccount(email=key)
            self._accounts[key] = account
        return account

    def start_enrollment(self, email: str, secret: str) -> TwoFactorAccount:
        with self.lock:
            account = self._get_or_create(email)
            account.encrypted_pending_secret = self.cipher.encrypt(secret)
            account.pending_expires_at = self.clock() + self.enrollment_ttl
            if account.status != TwoFactorStatus.ACTIVE:
                account.status = TwoFactorStatus.ENROLLING
            logger.info("Cadastro 2FA iniciado para %s", account.email)
            return account.model_copy(deep=True)

    def activate(self, email: str, secret: str, backup_codes: List[str]) -> TwoFactorAccount:
        with self.lock:
            account = self._get_or_create(email)
            account.encrypted_secret = self.cipher.encrypt(secret)
            account.encrypted_pending_secret = None
            account.pending_expires_at = None
            account.backup_codes = [code.strip().upper() for code in backup_codes]
            account.status = TwoFactorStatus.ACTIVE
            account.enabled_at = self.clock()
            logger.info("2FA ativado para %s", account.email)
            return account.model_copy(deep=True)

    def active_secret(self, email: str) -> Optional[str]:
        with self.lock:
            account = self._accounts.get(normalize_email(email))
            if account is None or account.status != TwoFactorStatus.ACTIVE or not account.encrypted_secret:
                return None
            return self.cipher.decrypt(account.encrypted_secret)

    def pending_secret(self, email: str) -> Optional[str]:
        with self.lock:
            account = self._accounts.get(normalize_email(email))
            if account is None or not account.encrypted_pending_secret:
                return None
            if account.pending_expires_at and account.pending_expires_at < self.clock():
                return None
            return self.cipher.decrypt(account.encrypted_pending_secret)

    def consume_backup_code(
        self,
        email: str,
        submitted_code: str,
        verify: Callable[[List[str], str], BackupCodeVerification],
    ) -> BackupCodeVerification:
        """
        Confere e remove o código de backup numa única seção crítica:
        duas requisições com o mesmo código nunca passam as duas.
        """
        with self.lock:
            account = self._accounts.get(normalize_email(email))
            if account is None or account.status != TwoFactorStatus.ACTIVE:
                raise ValidationError("Two-factor authentication is not enabled for this account")
            result = verify(account.backup_codes, submitted_code)
            if result.valid:
                account.backup_codes = list(result.remaining_codes)
            return result

    def matches_pending_secret(self, email: str, secret: str) -> bool:
        pending = self.pending_secret(email)
        return pending is not None and constant_time_equals(pending.upper(), secret.strip().upper())

    def record_login(self, email: str) -> None:
        with self.lock:
            account = self._accounts.get(normalize_email(email))
            if account is not None:
                account.last_login_at = self.clock()

    def last_login(self, email: str) -> Optional[datetime]:
        account = self.get(email)
        return account.last_login_at if account else None

    def disable(self, email: str) -> bool:
        """
        Desativa o 2FA e destrói segredo e códigos de backup
        """
        with self.lock:
            account = self._accounts.get(normalize_email(email))
            if account is None or account.status == TwoFactorStatus.DISABLED:
                return False
            account.status = TwoFactorStatus.DISABLED
            account.encrypted_secret = None
            account.encrypted_pending_secret = None
            account.pending_expires_at = None
            account.backup_codes = []
            account.enabled_at = None
            logger.info("2FA desativado para %s", account.email)
            return True

    def sweep_abandoned_enrollments(self) -> int:
        """
        Descarta cadastros pendentes vencidos. Contas em ENROLLING voltam a DISABLED.
        """
        now = self.clock()
        removed = 0
        with self.lock:
            for account in self._accounts.values():
                if account.pending_expires_at is None or account.pending_expires_at >= now:
                    continue
                account.encrypted_pending_secret = None
                account.pending_expires_at = None
                if account.status == TwoFactorStatus.ENROLLING:
                    account.status = TwoFactorStatus.DISABLED
                removed += 1
        if removed:
            logger.info("Cadastros 2FA abandonados descartados: %d", removed)
        return removed

    def clear(self) -> None:
        with self.lock:
            self._accounts.clear()


# Instância global do store
account_store = TwoFactorAccountStore()
