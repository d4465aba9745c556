# ============================================================
# repository.py — Accès aux données CodeRecord
# ------------------------------------------------------------
# Implémente le design pattern "Repository" pour la table des
# codes. Le CodeStore est construit une seule fois au démarrage
# (app.py) puis injecté dans les handlers ; aucun autre module
# ne modifie les enregistrements directement.
#
# Concurrence : les écritures passent par un verrou unique
# (faible volume d'écriture). Deux mises à jour concurrentes
# sur le même id : la dernière écrite gagne, sans fusion.
# ============================================================
import logging
import math
import threading
from datetime import timedelta

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from errors import ConflictError, NotFound, StorageError, ValidationError
from models import CodeRecord, Page, as_utc, utcnow
from validation import (
    check_availability,
    check_code,
    check_list_params,
    clean_message,
    is_valid_availability,
    is_valid_code,
    normalize_code,
)

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "id": CodeRecord.id,
    "code": CodeRecord.code,
    "availability": CodeRecord.availability,
    "created_at": CodeRecord.created_at,
}


class CodeStore:
    def __init__(self, engine):
        self.engine = engine
        self._write_lock = threading.Lock()

    # --------------------------------------------------------
    # Création
    # --------------------------------------------------------
    def create(self, data: dict) -> CodeRecord:
        code = check_code(data.get("code"))
        availability = check_availability(data.get("availability"))
        message = clean_message(data.get("message"))

        with self._write_lock, Session(self.engine) as s:
            if self._find_code(s, code) is not None:
                raise ConflictError(f'Zip code "{code}" already exists.', {"code": "duplicate"})
            now = utcnow()
            record = CodeRecord(
                code=code,
                availability=availability,
                message=message,
                created_at=now,
                updated_at=now,
            )
            s.add(record)
            self._commit(s, code)
            s.refresh(record)
            logger.info("code %s created (id=%s)", record.code, record.id)
            return record

    # --------------------------------------------------------
    # Lecture
    # --------------------------------------------------------
    def get_by_id(self, code_id: int) -> CodeRecord:
        with Session(self.engine) as s:
            record = s.get(CodeRecord, code_id)
            if record is None:
                raise NotFound(f"Code with ID {code_id} not found.")
            return record

    # Absence = aucune politique configurée, ce n'est pas une erreur
    def get_by_code(self, code: str):
        normalized = normalize_code(code)
        if not normalized:
            return None
        with Session(self.engine) as s:
            return self._find_code(s, normalized)

    def list(self, search: str = "", availability: str = "", orderby: str = "id",
             order: str = "desc", page: int = 1, per_page: int = 10) -> Page:
        orderby, order = check_list_params(orderby, order, page, per_page)
        if availability and not is_valid_availability(availability):
            raise ValidationError(
                'Availability must be either "available" or "unavailable".',
                {"availability": "invalid_choice"},
            )

        query = select(CodeRecord)
        count_query = select(func.count()).select_from(CodeRecord)
        conditions = []
        term = (search or "").strip().lower()
        if term:
            conditions.append(or_(
                func.lower(CodeRecord.code).contains(term, autoescape=True),
                func.lower(CodeRecord.message).contains(term, autoescape=True),
            ))
        if availability:
            conditions.append(CodeRecord.availability == availability)
        for cond in conditions:
            query = query.where(cond)
            count_query = count_query.where(cond)

        column = _SORT_COLUMNS[orderby]
        primary = column.asc() if order == "asc" else column.desc()
        # départage déterministe : id croissant
        query = query.order_by(primary, CodeRecord.id.asc())
        query = query.offset((page - 1) * per_page).limit(per_page)

        with Session(self.engine) as s:
            total = s.exec(count_query).one()
            items = list(s.exec(query).all())
        return Page(
            items=items,
            total=total,
            page_count=math.ceil(total / per_page),
            page=page,
            per_page=per_page,
        )

    # --------------------------------------------------------
    # Mise à jour partielle
    # --------------------------------------------------------
    def update(self, code_id: int, data: dict) -> CodeRecord:
        changes = {}
        if "code" in data:
            changes["code"] = check_code(data["code"])
        if "availability" in data:
            changes["availability"] = check_availability(data["availability"])
        if "message" in data:
            changes["message"] = clean_message(data["message"])

        with self._write_lock, Session(self.engine) as s:
            record = s.get(CodeRecord, code_id)
            if record is None:
                raise NotFound(f"Code with ID {code_id} not found.")
            new_code = changes.get("code")
            if new_code is not None and new_code != record.code:
                other = self._find_code(s, new_code)
                if other is not None and other.id != record.id:
                    raise ConflictError(f'Zip code "{new_code}" already exists.', {"code": "duplicate"})
            for key, value in changes.items():
                setattr(record, key, value)
            # updated_at strictement croissant, même à résolution d'horloge grossière
            now = utcnow()
            previous = as_utc(record.updated_at)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
            record.updated_at = now
            self._commit(s, record.code)
            s.refresh(record)
            logger.info("code id=%s updated (%s)", code_id, ", ".join(sorted(changes)) or "touch")
            return record

    def delete(self, code_id: int) -> bool:
        with self._write_lock, Session(self.engine) as s:
            record = s.get(CodeRecord, code_id)
            if record is None:
                raise NotFound(f"Code with ID {code_id} not found.")
            s.delete(record)
            self._commit(s)
            logger.info("code id=%s deleted", code_id)
            return True

    # --------------------------------------------------------
    # Import en masse / remise à zéro
    # --------------------------------------------------------
    # Les lignes incomplètes ou invalides sont ignorées. Sans
    # overwrite, un code existant est ignoré ; avec overwrite la
    # collection est entièrement remplacée.
    # --------------------------------------------------------
    def import_records(self, rows, overwrite: bool = False) -> dict:
        imported = skipped = 0
        with self._write_lock, Session(self.engine) as s:
            if overwrite:
                self._delete_all(s)
            seen = set()
            for row in rows:
                if not isinstance(row, dict):
                    skipped += 1
                    continue
                raw_code, availability = row.get("code"), row.get("availability")
                if not is_valid_code(raw_code) or not is_valid_availability(availability):
                    skipped += 1
                    continue
                code = normalize_code(raw_code)
                if code in seen or (not overwrite and self._find_code(s, code) is not None):
                    skipped += 1
                    continue
                seen.add(code)
                now = utcnow()
                s.add(CodeRecord(
                    code=code,
                    availability=availability,
                    message=clean_message(row.get("message")),
                    created_at=now,
                    updated_at=now,
                ))
                imported += 1
            self._commit(s)
        logger.info("import done: %d imported, %d skipped (overwrite=%s)", imported, skipped, overwrite)
        return {"imported": imported, "skipped": skipped}

    def clear(self) -> int:
        with self._write_lock, Session(self.engine) as s:
            removed = self._delete_all(s)
            self._commit(s)
            logger.info("cleared %d codes", removed)
            return removed

    # --------------------------------------------------------
    # Utilitaires internes
    # --------------------------------------------------------
    @staticmethod
    def _delete_all(s: Session) -> int:
        rows = s.exec(select(CodeRecord)).all()
        for row in rows:
            s.delete(row)
        # les suppressions doivent partir avant de réinsérer les mêmes codes
        s.flush()
        return len(rows)

    @staticmethod
    def _find_code(s: Session, normalized: str):
        return s.exec(select(CodeRecord).where(CodeRecord.code == normalized)).first()

    @staticmethod
    def _commit(s: Session, code: str = ""):
        try:
            s.commit()
        except IntegrityError as e:
            s.rollback()
            # course sur l'index unique entre deux processus
            raise ConflictError(f'Zip code "{code}" already exists.', {"code": "duplicate"}) from e
        except SQLAlchemyError as e:
            s.rollback()
            logger.error("storage write failed: %s", e)
            raise StorageError("Failed to save code data.") from e
