# ============================================================
# models.py — Modèles de données SQLModel (Availability Service)
# ------------------------------------------------------------
#   1️. CodeRecord : association code postal → disponibilité → message
#   2️. CodeCreate / CodeUpdate : corps des requêtes admin
#   3️. CheckResult : dernier résultat de vérification d'une session
# ============================================================
from sqlmodel import SQLModel, Field
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import List, Optional

AVAILABLE = "available"
UNAVAILABLE = "unavailable"
AVAILABILITY_VALUES = (AVAILABLE, UNAVAILABLE)


# Horodatages toujours en UTC avec tzinfo.
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# SQLite ne conserve pas le fuseau : une valeur relue naïve est de l'UTC
def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ------------------------------------------------------------
# CodeRecord
# ------------------------------------------------------------
#  - `code` est stocké normalisé (trim + majuscules) et unique
#  - `id` vient d'une séquence : jamais réutilisé après suppression
# ------------------------------------------------------------
class CodeRecord(SQLModel, table=True):
    __tablename__ = "availability_codes"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True, max_length=10)
    availability: str
    message: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CodeCreate(SQLModel):
    code: Optional[str] = None
    availability: Optional[str] = None
    message: Optional[str] = None


# Mise à jour partielle : seuls les champs envoyés sont appliqués
class CodeUpdate(SQLModel):
    code: Optional[str] = None
    availability: Optional[str] = None
    message: Optional[str] = None


class CodeImport(SQLModel):
    codes: List[dict] = []
    overwrite: bool = False


@dataclass
class CheckResult:
    availability: str
    item_id: str
    code: str
    timestamp: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CheckResult":
        return cls(
            availability=data["availability"],
            item_id=str(data["item_id"]),
            code=data["code"],
            timestamp=float(data["timestamp"]),
        )


@dataclass
class Page:
    items: list
    total: int
    page_count: int
    page: int
    per_page: int
