import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from slowapi.errors import RateLimitExceeded as SlowApiRateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from authgate.core.config import settings
from authgate.core.cors_manager import setup_cors
from authgate.core.errors import register_exception_handlers
from authgate.core.logging_middleware import ApiLoggingMiddleware, configure_logging
from authgate.core.security_headers import SecurityHeadersMiddleware
from authgate.routers import device_router, two_factor_router
from authgate.services.account_store import account_store
from authgate.services.device_trust_service import device_trust_service
from authgate.services.two_factor_service import two_factor_service
from authgate.utils.rate_limiter import limiter, rate_limit_exceeded_handler

logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Aplicação '%s' iniciando (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    yield
    # Estado de 2FA é só de processo: limpa tudo no desligamento
    two_factor_service.attempt_limiter.close()
    device_trust_service.store.clear()
    account_store.clear()
    logger.info("Aplicação '%s' finalizando", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
    docs_url=None if settings.ENVIRONMENT == "production" else "/docs",
    redoc_url=None if settings.ENVIRONMENT == "production" else "/redoc",
)

app.add_middleware(SecurityHeadersMiddleware)
setup_cors(app)
app.add_middleware(ApiLoggingMiddleware)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_exception_handler(SlowApiRateLimitExceeded, rate_limit_exceeded_handler)
register_exception_handlers(app)

# As rotas de 2FA respondem em /2fa/... e também sob o prefixo versionado
app.include_router(two_factor_router)
app.include_router(device_router)
app.include_router(two_factor_router, prefix=settings.API_V1_STR)
app.include_router(device_router, prefix=settings.API_V1_STR)


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": f"Bem-vindo à API: {settings.APP_NAME}"}


@app.get("/health", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "two_factor": "ok",
            "device_trust": "ok",
            "trusted_devices": len(device_trust_service.store),
        },
        "timestamp": time.time(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
