import json
import logging
import threading
from typing import Callable, Dict, Optional

from authgate.core.config import settings
from authgate.services.account_store import normalize_email
from authgate.utils.security import get_password_hash, verify_password

logger = logging.getLogger("api.credentials")

PasswordVerifier = Callable[[str, str], bool]


class CredentialService:
    """
    Confere a senha atual antes de operações sensíveis (ex.: desativar 2FA).

    As senhas vêm de uma de duas fontes:
    - um verificador fornecido pela aplicação hospedeira (verifier(email, senha) -> bool);
    - hashes passlib carregados de CREDENTIALS_FILE ou registrados com set_password.
    Com verificador configurado, os hashes locais são ignorados.
    """
    def __init__(self, verifier: Optional[PasswordVerifier] = None, credentials_file: Optional[str] = None):
        self._password_hashes: Dict[str, str] = {}
        self.lock = threading.Lock()
        self.verifier = verifier

        path = credentials_file or settings.CREDENTIALS_FILE
        if path:
            self.load_file(path)

    def set_verifier(self, verifier: Optional[PasswordVerifier]) -> None:
        self.verifier = verifier

    def load_file(self, path: str) -> int:
        """
        Carrega {email: hash} de um arquivo JSON. Retorna quantas credenciais foram carregadas.
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict) or not all(
            isinstance(email, str) and isinstance(hashed, str) for email, hashed in data.items()
        ):
            raise ValueError(f"Arquivo de credenciais inválido: {path}")

        with self.lock:
            for email, hashed in data.items():
                self._password_hashes[normalize_email(email)] = hashed
        logger.info("Credenciais carregadas de %s: %d", path, len(data))
        return len(data)

    def set_password(self, email: str, password: str) -> None:
        hashed = get_password_hash(password)
        with self.lock:
            self._password_hashes[normalize_email(email)] = hashed

    def verify_password(self, email: str, password: str) -> bool:
        if not password:
            return False

        if self.verifier is not None:
            return bool(self.verifier(normalize_email(email), password))

        with self.lock:
            hashed = self._password_hashes.get(normalize_email(email))
        if not hashed:
            return False
        try:
            return verify_password(password, hashed)
        except ValueError as e:
            logger.warning("Hash de senha inválido para %s: %s", email, e)
            return False

    def clear(self) -> None:
        with self.lock:
            self._password_hashes.clear()


credential_service = CredentialService()
