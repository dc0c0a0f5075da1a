"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lawyerzen import auth_routes, dashboard_routes, document_routes, routes
from lawyerzen.activity import log_activity_after_response
from lawyerzen.auth import Unauthenticated, unauthenticated_handler
from lawyerzen.config import Settings, get_settings
from lawyerzen.db import DocumentNotFoundError, DocumentService, DocumentStore, StoreError
from lawyerzen.dependencies import build_document_store, build_storage_client
from lawyerzen.storage import StorageClient

logger = logging.getLogger(__name__)


def _not_found_handler(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Not found"})


def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "Store error on %s %s (collection=%s): %s",
        request.method,
        request.url.path,
        exc.collection,
        exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Database operation failed"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    storage: Optional[StorageClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Lawyer Zen API", version="0.1.0")
    app.state.settings = settings
    app.state.documents = DocumentService(store or build_document_store(settings))
    app.state.storage = storage or build_storage_client(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[routes.INDEX_FALLBACK_HEADER],
    )
    app.middleware("http")(log_activity_after_response)

    app.add_exception_handler(Unauthenticated, unauthenticated_handler)
    app.add_exception_handler(DocumentNotFoundError, _not_found_handler)
    app.add_exception_handler(StoreError, _store_error_handler)

    @app.get(f"{settings.api_prefix}/health")
    def health():
        return {"ok": True, "service": "lawyer-zen-api"}

    app.include_router(auth_routes.router, prefix=settings.api_prefix)
    app.include_router(routes.router, prefix=settings.api_prefix)
    app.include_router(document_routes.router, prefix=settings.api_prefix)
    app.include_router(dashboard_routes.router, prefix=settings.api_prefix)
    return app


app = create_app()
