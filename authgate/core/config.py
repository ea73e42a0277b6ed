from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Aplicação
    APP_NAME: str = "AuthGate"
    APP_DESCRIPTION: str = "Two-factor authentication and device trust API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    API_V1_STR: str = "/api/v1"

    # TOTP
    TOTP_ISSUER: str = "SalesKik"
    TOTP_ALGORITHM: str = "SHA1"
    TOTP_DIGITS: int = 6
    TOTP_INTERVAL: int = 30  # segundos
    TOTP_WINDOW: int = 1  # passos aceitos antes/depois do atual
    TOTP_SECRET_LENGTH: int = 32  # caracteres base32 = 160 bits
    BACKUP_CODES_COUNT: int = 8
    ENROLLMENT_TTL_MINUTES: int = 15

    # Dispositivos confiáveis
    DEVICE_TRUST_DAYS: int = 30
    FINGERPRINT_LENGTH: int = 32
    UNUSUAL_HOUR_START: int = 6
    UNUSUAL_HOUR_END: int = 22
    LONG_ABSENCE_DAYS: int = 7

    # Rate limiting
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_DEFAULT: str = "200/minute"
    GENERATE_MAX_ATTEMPTS: int = 3
    GENERATE_WINDOW_MS: int = 300000
    VERIFY_SETUP_MAX_ATTEMPTS: int = 5
    VERIFY_SETUP_WINDOW_MS: int = 300000
    LOGIN_VERIFY_MAX_ATTEMPTS: int = 10
    LOGIN_VERIFY_WINDOW_MS: int = 900000

    # Criptografia dos segredos em memória
    ENCRYPTION_KEY: Optional[str] = None

    # Logging
    API_LOGGING_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "api.log"
    LOG_MAX_SIZE: int = 10 * 1024 * 1024  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    LOG_FORMAT: str = "text"  # "text" ou "json"
    LOG_TO_FILE: bool = False

    # CORS
    CORS_ORIGINS: str = "*"
    CORS_MAX_AGE: int = 3600

    SECURITY_EVENTS_MAX: int = 100

    # Hashes de senha (JSON {email: hash passlib}) usados por /2fa/disable
    CREDENTIALS_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()

# Ajustes por ambiente
if settings.ENVIRONMENT == "production":
    settings.DEBUG = False
    settings.API_LOGGING_ENABLED = True
elif settings.ENVIRONMENT == "staging":
    settings.DEBUG = False
elif settings.ENVIRONMENT == "development":
    settings.DEBUG = True
    settings.CORS_ORIGINS = "*"
