"""Service de vérification de disponibilité (côté boutique).

Une absence de correspondance vaut "indisponible" : la politique est
fermée par défaut.
"""
import logging
import time

from errors import BadRequest
from models import AVAILABLE, UNAVAILABLE, CheckResult
from validation import normalize_code

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Delivery not available in your area."
DEFAULT_MESSAGES = {
    AVAILABLE: "Available for delivery in your area.",
    UNAVAILABLE: "Not available for delivery in your area.",
}


class LookupService:
    def __init__(self, store, session_results, clock=time.time):
        self.store = store
        self.session_results = session_results
        self._clock = clock

    def check(self, raw_code, item_id, session_id: str) -> dict:
        if raw_code is None or not str(raw_code).strip():
            raise BadRequest("Zip code is required.", {"code": "required"})
        if item_id is None or not str(item_id).strip():
            raise BadRequest("Item ID is required.", {"item_id": "required"})
        code = normalize_code(raw_code)
        item_id = str(item_id).strip()

        record = self.store.get_by_code(code)
        if record is None:
            availability, message = UNAVAILABLE, NOT_CONFIGURED_MESSAGE
        else:
            availability = record.availability
            message = record.message or DEFAULT_MESSAGES[availability]

        if session_id:
            self.session_results.put(session_id, CheckResult(
                availability=availability,
                item_id=item_id,
                code=code,
                timestamp=self._clock(),
            ))
        logger.info("check code=%s item=%s -> %s (configured=%s)",
                    code, item_id, availability, record is not None)
        return {"availability": availability, "message": message, "code": code}

    def status(self, session_id: str, item_id=None) -> dict:
        """Dernier résultat de la session, pour bloquer l'ajout au panier."""
        result = self.session_results.get(session_id) if session_id else None
        if result is None:
            return {"checked": False, "deliverable": False}
        same_item = item_id is None or str(item_id).strip() == result.item_id
        body = result.to_dict()
        body["checked"] = True
        body["deliverable"] = same_item and result.availability == AVAILABLE
        return body
