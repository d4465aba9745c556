# ============================================================
# deps.py — Registre des services + dépendances FastAPI
# ------------------------------------------------------------
# Les services sont construits une fois dans create_app() et
# rangés dans app.state.services ; les routes les reçoivent
# par Depends(), jamais via un registre global.
# ============================================================
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from lookup import LookupService
from publisher import EventPublisher
from repository import CodeStore
from security import AdminGuard, NonceSigner
from settings import Settings


@dataclass
class Services:
    settings: Settings
    store: CodeStore
    session_results: object
    lookup: LookupService
    admin_guard: AdminGuard
    nonces: NonceSigner
    publisher: EventPublisher


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_store(services: Services = Depends(get_services)) -> CodeStore:
    return services.store


def get_publisher(services: Services = Depends(get_services)) -> EventPublisher:
    return services.publisher


def get_lookup(services: Services = Depends(get_services)) -> LookupService:
    return services.lookup


# Exécuté avant toute route admin : en cas d'échec, 403 sans accès au store
def require_admin(
    services: Services = Depends(get_services),
    authorization: Optional[str] = Header(default=None),
    x_admin_token: Optional[str] = Header(default=None),
) -> None:
    services.admin_guard.require(authorization, x_admin_token)
