from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authgate.core.config import settings


def get_cors_origins() -> List[str]:
    """
    Origens permitidas para CORS. Em produção "*" não é aceito e vira lista vazia,
    forçando configuração explícita.
    """
    if settings.CORS_ORIGINS == "*":
        if settings.ENVIRONMENT == "production":
            return []
        return ["*"]

    return [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]


def setup_cors(app: FastAPI) -> FastAPI:
    origins = get_cors_origins()

    if settings.ENVIRONMENT == "production":
        allowed_methods = ["GET", "POST", "DELETE", "OPTIONS"]
        allowed_headers = ["Content-Type", "Accept", "Origin", "X-Requested-With"]
    else:
        allowed_methods = ["*"]
        allowed_headers = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=allowed_methods,
        allow_headers=allowed_headers,
        expose_headers=["X-Request-ID", "Retry-After"],
        max_age=settings.CORS_MAX_AGE,
    )
    return app
