from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from monetization.core.settings import S
from monetization.errors import MonetizationError
from monetization.metrics import metrics_endpoint, metrics_middleware, set_app_info
from monetization.routers.checkout import router as checkout_router
from monetization.routers.creator import router as creator_router
from monetization.routers.credits import router as credits_router
from monetization.routers.support import router as support_router
from monetization.routers.webhook import router as webhook_router

log = logging.getLogger(__name__)


async def monetization_error_handler(request: Request, exc: MonetizationError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    headers = {"Retry-After": "5"} if getattr(exc, "retryable", False) else None
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def create_app() -> FastAPI:
    app = FastAPI(title="Creator Monetization Ledger", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(MonetizationError, monetization_error_handler)
    if S.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.include_router(credits_router)
    app.include_router(checkout_router)
    app.include_router(webhook_router)
    app.include_router(creator_router)
    app.include_router(support_router)

    return app

app = create_app()
