# ============================================================
# checker.py — Endpoints publics de la fiche produit
# ------------------------------------------------------------
#   GET  /v1/availability/nonce   : cookie de session + nonce
#   POST /v1/availability/check   : vérification d'un code (form)
#   GET  /v1/availability/status  : dernier résultat de la session
# Pas d'authentification ; le check exige un nonce valide lié
# à la session, sinon 403 sans aucune recherche.
# ============================================================
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request, Response

from deps import Services, get_lookup, get_services
from lookup import LookupService

router = APIRouter()


def _session_id(request: Request, services: Services) -> Optional[str]:
    return request.cookies.get(services.settings.session_cookie)


# Émet le nonce ; crée le cookie de session s'il n'existe pas encore
@router.get("/v1/availability/nonce")
def issue_nonce(request: Request, response: Response, services: Services = Depends(get_services)):
    session_id = _session_id(request, services)
    if not session_id:
        session_id = uuid.uuid4().hex
        response.set_cookie(
            services.settings.session_cookie,
            session_id,
            httponly=True,
            samesite="lax",
        )
    return {"nonce": services.nonces.issue(session_id), "expires_in": services.nonces.ttl}


@router.post("/v1/availability/check")
def check_availability(
    request: Request,
    code: str = Form(default=""),
    item_id: str = Form(default=""),
    nonce: str = Form(default=""),
    services: Services = Depends(get_services),
    lookup: LookupService = Depends(get_lookup),
):
    session_id = _session_id(request, services)
    services.nonces.verify(nonce, session_id)
    return lookup.check(code, item_id, session_id)


# Consulté avant l'ajout au panier / au checkout
@router.get("/v1/availability/status")
def check_status(
    request: Request,
    item_id: Optional[str] = None,
    services: Services = Depends(get_services),
    lookup: LookupService = Depends(get_lookup),
):
    return lookup.status(_session_id(request, services), item_id)
