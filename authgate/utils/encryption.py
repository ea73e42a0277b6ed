import base64
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from authgate.core.config import settings

logger = logging.getLogger("api.encryption")


class SecretCipher:
    """
    Criptografa segredos TOTP mantidos em memória usando Fernet
    com derivação de chave (PBKDF2HMAC) a partir de ENCRYPTION_KEY.
    """

    SALT = b"authgate_totp_secret_salt"

    def __init__(self, key: Optional[str] = None):
        self.key = key or settings.ENCRYPTION_KEY
        if not self.key:
            # Sem chave configurada os segredos só valem enquanto o processo viver
            self.key = base64.urlsafe_b64encode(os.urandom(32)).decode()
            logger.warning("ENCRYPTION_KEY não configurada; usando uma chave efêmera para este processo")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.SALT,
            iterations=100000,
        )
        self.fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(self.key.encode())))

    def encrypt(self, value: str) -> str:
        return self.fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self.fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise ValueError("Segredo criptografado inválido") from e
