"""
Main FastAPI application for the Serenade song service.
Serves health, customisations, checkout, webhook, generation, orders, songs, share, gift email,
unsubscribe, admin and metrics.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from serenade.core.config import settings
from serenade.core.logging import configure_logging
from serenade.api.routes import (
    admin,
    checkout,
    customizations,
    email,
    generation,
    health,
    orders,
    share,
    songs,
    unsubscribe,
    webhook,
)
from serenade.services.errors import DomainError
from serenade.utils.metrics import router as metrics_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Serenade API",
    description="Personalised song ordering, generation and sharing",
    version="1.0.0",
)

# CORS
origins = settings.cors_origins_list
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:80"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "method": request.method, "error": exc.message})
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_unhandled_error", extra={"path": request.url.path, "method": request.method})
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(customizations.router)
app.include_router(checkout.router)
app.include_router(webhook.router)
app.include_router(generation.router)
app.include_router(orders.router)
app.include_router(songs.router)
app.include_router(share.router)
app.include_router(email.router)
app.include_router(unsubscribe.router)
app.include_router(admin.router)
app.include_router(metrics_router)
