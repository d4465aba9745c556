# ============================================================
# errors.py — Taxonomie des erreurs du service
# ------------------------------------------------------------
# Chaque erreur porte un statut HTTP, un "kind" lisible par
# machine, un message et éventuellement des messages par champ.
# Les erreurs remontent telles quelles jusqu'à l'API où
# app.py les rend en JSON.
# ============================================================
from typing import Dict, Optional


class AvailabilityError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "message": self.message}
        if self.fields:
            body["fields"] = self.fields
        return body


# Champ manquant ou mal formé
class ValidationError(AvailabilityError):
    status_code = 400
    kind = "validation_error"


# Code postal déjà présent
class ConflictError(AvailabilityError):
    status_code = 409
    kind = "conflict"


class NotFound(AvailabilityError):
    status_code = 404
    kind = "not_found"


# Capacité d'administration absente
class Forbidden(AvailabilityError):
    status_code = 403
    kind = "forbidden"


# Nonce absent, invalide ou expiré (endpoint public)
class InvalidNonce(Forbidden):
    kind = "invalid_nonce"


# Échec d'écriture en base
class StorageError(AvailabilityError):
    status_code = 500
    kind = "storage_error"


# Entrée invalide sur le check public
class BadRequest(AvailabilityError):
    status_code = 400
    kind = "bad_request"
