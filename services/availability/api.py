# ============================================================
# Codes API Router (admin)
# ------------------------------------------------------------
# Expose la collection REST des codes postaux :
#   GET/POST /v1/codes, GET/PUT/DELETE /v1/codes/{id},
#   POST /v1/codes/import
# Toutes les routes exigent la capacité admin (require_admin).
# Les écritures publient un événement RabbitMQ.
# ============================================================
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from deps import Services, get_publisher, get_services, get_store, require_admin
from models import CodeCreate, CodeImport, CodeRecord, CodeUpdate
from publisher import EventPublisher
from repository import CodeStore

router = APIRouter(dependencies=[Depends(require_admin)])


# On convertit un datetime stocké (UTC) en affichage local
def to_local(dt: datetime, tz: ZoneInfo) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).isoformat()


def serialize(record: CodeRecord, tz: ZoneInfo) -> dict:
    return {
        "id": record.id,
        "code": record.code,
        "availability": record.availability,
        "message": record.message,
        "created_at": to_local(record.created_at, tz),
        "updated_at": to_local(record.updated_at, tz),
    }


def _tz(services: Services) -> ZoneInfo:
    return ZoneInfo(services.settings.local_tz)


# ------------------------------------------------------------
# GET /v1/codes — Liste filtrée, triée, paginée
# ------------------------------------------------------------
# Les totaux partent dans les en-têtes X-Total / X-Total-Pages
# ------------------------------------------------------------
@router.get("/v1/codes")
def list_codes(
    page: int = 1,
    per_page: int = 10,
    search: str = "",
    availability: str = "",
    orderby: str = "id",
    order: str = "DESC",
    services: Services = Depends(get_services),
    store: CodeStore = Depends(get_store),
):
    result = store.list(
        search=search,
        availability=availability,
        orderby=orderby,
        order=order,
        page=page,
        per_page=per_page,
    )
    tz = _tz(services)
    return JSONResponse(
        [serialize(r, tz) for r in result.items],
        headers={"X-Total": str(result.total), "X-Total-Pages": str(result.page_count)},
    )


@router.post("/v1/codes", status_code=201)
def create_code(
    body: CodeCreate,
    services: Services = Depends(get_services),
    store: CodeStore = Depends(get_store),
    publisher: EventPublisher = Depends(get_publisher),
):
    created = store.create(body.model_dump())
    publisher.publish("CodeCreated", {
        "codeId": created.id,
        "code": created.code,
        "availability": created.availability,
    })
    return serialize(created, _tz(services))


# ------------------------------------------------------------
# POST /v1/codes/import — Import en masse
# ------------------------------------------------------------
@router.post("/v1/codes/import")
def import_codes(
    body: CodeImport,
    store: CodeStore = Depends(get_store),
    publisher: EventPublisher = Depends(get_publisher),
):
    counts = store.import_records(body.codes, overwrite=body.overwrite)
    publisher.publish("CodesImported", dict(counts, overwrite=body.overwrite))
    return counts


@router.get("/v1/codes/{code_id}")
def get_code(
    code_id: int,
    services: Services = Depends(get_services),
    store: CodeStore = Depends(get_store),
):
    return serialize(store.get_by_id(code_id), _tz(services))


# Mise à jour partielle : seuls les champs présents dans le corps
@router.put("/v1/codes/{code_id}")
def update_code(
    code_id: int,
    body: CodeUpdate,
    services: Services = Depends(get_services),
    store: CodeStore = Depends(get_store),
    publisher: EventPublisher = Depends(get_publisher),
):
    changes = body.model_dump(exclude_unset=True)
    updated = store.update(code_id, changes)
    publisher.publish("CodeUpdated", {
        "codeId": updated.id,
        "code": updated.code,
        "availability": updated.availability,
        "fields": sorted(changes),
    })
    return serialize(updated, _tz(services))


@router.delete("/v1/codes/{code_id}")
def delete_code(
    code_id: int,
    store: CodeStore = Depends(get_store),
    publisher: EventPublisher = Depends(get_publisher),
):
    store.delete(code_id)
    publisher.publish("CodeDeleted", {"codeId": code_id})
    return {"deleted": True, "message": f"Code with ID {code_id} has been deleted."}
