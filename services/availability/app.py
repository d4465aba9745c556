# ============================================================
# app.py — Point d'entrée du service Availability
# ------------------------------------------------------------
# create_app() construit l'application FastAPI :
#   - construit les services une seule fois (store, sessions,
#     lookup, nonce, publisher) et les range dans app.state
#   - crée les tables au démarrage
#   - démarre le consumer RabbitMQ si EVENTS_ENABLED
#   - middleware de chronométrage + délai maximal par requête
#   - rend toutes les erreurs en JSON {kind, message, fields}
#
# Le délai borne la réponse, pas le travail : une route sync
# continue dans le threadpool après le 504, et une écriture
# peut encore être validée en base.
#
# Lancement : uvicorn app:create_app --factory
# ============================================================
import asyncio
import logging
import threading
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel, create_engine

import models  # noqa: F401  (enregistre les tables)
from api import router as codes_router
from checker import router as checker_router
from consumer import CheckoutConsumer
from deps import Services
from errors import AvailabilityError
from lookup import LookupService
from publisher import EventPublisher
from repository import CodeStore
from security import AdminGuard, NonceSigner
from sessions import build_session_results
from settings import Settings

logger = logging.getLogger("availability")


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(level)


def build_services(settings: Settings, engine) -> Services:
    store = CodeStore(engine)
    session_results = build_session_results(settings.redis_url, settings.check_result_ttl)
    return Services(
        settings=settings,
        store=store,
        session_results=session_results,
        lookup=LookupService(store, session_results),
        admin_guard=AdminGuard(settings.admin_tokens),
        nonces=NonceSigner(settings.nonce_secret, settings.nonce_ttl),
        publisher=EventPublisher(settings.rabbitmq_host, enabled=settings.events_enabled),
    )


def create_app(settings: Settings = None, engine=None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    engine = engine or create_engine(settings.database_url, pool_pre_ping=True)

    app = FastAPI(title="Availability Service")
    app.state.services = build_services(settings, engine)

    # 1️. Crée les tables SQL.
    # 2️. Lance le consumer dans un thread secondaire sans bloquer l'API.
    @app.on_event("startup")
    def start():
        SQLModel.metadata.create_all(engine)
        if settings.events_enabled:
            consumer = CheckoutConsumer(settings.rabbitmq_host, app.state.services.session_results)
            app.state.consumer = consumer
            threading.Thread(target=consumer.run, daemon=True).start()
        logger.info("availability service started (events=%s)", settings.events_enabled)

    @app.on_event("shutdown")
    def stop():
        consumer = getattr(app.state, "consumer", None)
        if consumer is not None:
            consumer.stop()

    # Chronométrage + délai maximal côté serveur
    @app.middleware("http")
    async def deadline_and_timing(request: Request, call_next):
        started = time.time()
        try:
            response = await asyncio.wait_for(call_next(request), timeout=settings.request_timeout)
        except asyncio.TimeoutError:
            logger.error("TIMEOUT: %s %s exceeded %ss", request.method, request.url.path, settings.request_timeout)
            return JSONResponse(
                {"kind": "timeout", "message": "The request took too long. Please try again."},
                status_code=504,
            )
        elapsed = (time.time() - started) * 1000
        if elapsed > settings.slow_request_ms:
            logger.warning("SLOW REQUEST: %s %s took %.2fms - Status: %s",
                           request.method, request.url.path, elapsed, response.status_code)
        else:
            logger.debug("%s %s took %.2fms - Status: %s",
                         request.method, request.url.path, elapsed, response.status_code)
        return response

    @app.exception_handler(AvailabilityError)
    def handle_availability_error(request: Request, e: AvailabilityError):
        if e.status_code >= 500:
            logger.error("%s on %s %s: %s", e.kind, request.method, request.url.path, e.message)
        return JSONResponse(e.to_dict(), status_code=e.status_code)

    # Erreurs de parsing FastAPI rendues comme nos erreurs de validation
    @app.exception_handler(RequestValidationError)
    def handle_request_validation(request: Request, e: RequestValidationError):
        fields = {}
        for err in e.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
            fields[".".join(loc) or "body"] = err.get("msg", "invalid")
        return JSONResponse(
            {"kind": "validation_error", "message": "Invalid request parameters.", "fields": fields},
            status_code=400,
        )

    @app.exception_handler(Exception)
    def handle_exception(request: Request, e: Exception):
        logger.error("Unhandled exception: %s", e, exc_info=True)
        return JSONResponse(
            {"kind": "internal_error", "message": "Internal server error. Please try again."},
            status_code=500,
        )

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(checker_router)
    app.include_router(codes_router)
    return app
