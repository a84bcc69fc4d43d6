import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router
from .clients.account_store import AccountStore, ImagingApiAccountStore
from .config import Settings, load_settings
from .core.face_detection import EmbeddingProvider, FaceRecognitionProvider
from .core.verification import VerificationService
from .errors import VerificationError
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[EmbeddingProvider] = None,
    account_store: Optional[AccountStore] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the FastAPI application.

    The embedding provider is loaded once in the lifespan hook; if that
    fails the exception propagates and the server never starts serving.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging(settings.log_dir, settings.log_level)

        face_provider = provider
        if face_provider is None:
            face_provider = FaceRecognitionProvider()
            face_provider.warm_up()

        store = account_store
        owned_store = None
        if store is None:
            owned_store = store = ImagingApiAccountStore(
                settings.account_api_url,
                timeout=settings.account_api_timeout,
                max_bytes=settings.account_api_max_bytes,
                cookie=settings.account_api_cookie,
            )

        service = app.state.service = VerificationService(face_provider, store, settings)
        logger.info("Verification service ready (provider=%s)", face_provider.name)
        try:
            yield
        finally:
            service.close()
            if owned_store is not None:
                await owned_store.aclose()

    app = FastAPI(title="Identity Verification API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "HTTP %s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000.0,
        )
        return response

    @app.exception_handler(VerificationError)
    async def verification_error_handler(request: Request, exc: VerificationError):
        logger.warning("%s on %s: %s", exc.kind, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        missing = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        message = f"Invalid or missing fields: {', '.join(missing)}"
        logger.warning("Bad request on %s: %s", request.url.path, message)
        return JSONResponse(status_code=400, content={"error": {"kind": "BadRequest", "message": message}})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": {"kind": "InternalError", "message": str(exc)}},
        )

    # Mount routes
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "7007")))


if __name__ == "__main__":
    run()
