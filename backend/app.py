import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.application import configure_initialization_service
from backend.core.credentials import CredentialCipher
from backend.core.errors import InitializationError
from backend.core.logging import configure_logging
from backend.infrastructure import (
    DuckDBLogLedger,
    HttpStorageBackend,
    InMemoryConnectionRegistry,
    InMemoryLogLedger,
    InMemoryStorageBackend,
    load_connections_file,
)
from backend.routes import connections, initialization

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FORMAT", "json"))
    app = FastAPI(title="Tenant Data Initialization API", version="0.1.0")

    ledger_path = os.getenv("LEDGER_DATABASE_PATH")
    ledger = DuckDBLogLedger(ledger_path) if ledger_path else InMemoryLogLedger()

    storage_base = os.getenv("STORAGE_API_BASE")
    if storage_base:
        storage = HttpStorageBackend(
            storage_base,
            token=os.getenv("STORAGE_API_TOKEN"),
            timeout=float(os.getenv("STORAGE_API_TIMEOUT") or 30.0),
        )
    else:
        storage = InMemoryStorageBackend()

    registry = InMemoryConnectionRegistry(CredentialCipher(os.getenv("CREDENTIAL_ENCRYPTION_KEY")))
    connections_file = os.getenv("CONNECTIONS_FILE")
    if connections_file:
        loaded = load_connections_file(registry, Path(connections_file))
        logger.info("connections loaded", extra={"path": connections_file, "count": len(loaded)})

    configure_initialization_service(ledger=ledger, registry=registry, storage=storage)
    logger.info(
        "initialization service configured",
        extra={"ledger": type(ledger).__name__, "storage": type(storage).__name__},
    )

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
            messages.append(f"{location or 'request'}: {error.get('msg')}")
        return JSONResponse(
            {"success": False, "error": "; ".join(messages), "error_type": "validation_error", "logs": []},
            status_code=400,
        )

    @app.exception_handler(InitializationError)
    async def initialization_error_handler(request: Request, exc: InitializationError) -> JSONResponse:
        status_code = initialization.STATUS_CODES.get(exc.code, 500)
        return JSONResponse({"success": False, "error": str(exc), "error_type": exc.code}, status_code=status_code)

    app.include_router(initialization.router, prefix="/api")
    app.include_router(connections.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Tenant Data Initialization API",
                "docs": "/docs",
                "health": "/api/data-init/logs",
            }
        )

    return app


app = create_app()
