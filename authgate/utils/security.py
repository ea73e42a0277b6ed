# authgate/utils/security.py
import hmac

from passlib.context import CryptContext

# pbkdf2_sha256 é implementado pelo próprio passlib, sem depender do backend bcrypt
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica uma senha plana contra um hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Gera um hash para uma senha."""
    return pwd_context.hash(password)


def constant_time_equals(a: str, b: str) -> bool:
    """Compara dois códigos sem vazar tempo de comparação."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
