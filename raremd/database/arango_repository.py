"""
Durable repository adapter backed by ArangoDB.

Records are stored as JSON documents keyed by their integer id. Ids come
from per-collection counters in the `counters` collection, and analytics
live in a single `analytics/global` document updated with AQL UPSERTs.
"""

from typing import Any

from arango.database import StandardDatabase
from arango.exceptions import (
    ArangoError,
    DocumentDeleteError,
    DocumentInsertError,
    DocumentReplaceError,
)
from pydantic import BaseModel

from raremd.config.config import Settings
from raremd.config.logging_config import get_logger
from raremd.database.database import (
    ANALYTICS,
    CASES,
    DISEASES,
    PHYSICIANS,
    get_database,
    get_document,
    query_documents,
)
from raremd.database.repository import (
    DuplicateDiseaseError,
    Repository,
    RepositoryError,
    apply_case_update,
    apply_physician_update,
    new_case_counters,
    updated_case_counters,
)
from raremd.models.clinical_models import Disease, DiseaseCreate, utcnow
from raremd.models.record_models import (
    Analytics,
    CaseCreate,
    CaseUpdate,
    PatientCase,
    Physician,
    PhysicianCreate,
    PhysicianUpdate,
)

logger = get_logger(__name__)

ANALYTICS_KEY = "global"

# ArangoDB error number for a unique constraint violation
UNIQUE_CONSTRAINT_VIOLATED = 1210

NEXT_ID_AQL = """
UPSERT { _key: @name }
INSERT { _key: @name, value: 1 }
UPDATE { value: OLD.value + 1 }
IN counters
RETURN NEW.value
"""

BUMP_ANALYTICS_AQL = """
UPSERT { _key: @key }
INSERT MERGE({ _key: @key }, @deltas, { last_updated: @now })
UPDATE MERGE(
    MERGE(FOR field IN ATTRIBUTES(@deltas) RETURN { [field]: (OLD[field] || 0) + @deltas[field] }),
    { last_updated: @now }
)
IN analytics
"""

LIST_NEWEST_FIRST_AQL = "FOR doc IN @@collection SORT doc.created_at DESC, doc.id DESC RETURN doc"
LIST_BY_ID_AQL = "FOR doc IN @@collection SORT doc.id ASC RETURN doc"
FIND_BY_FIELD_AQL = "FOR doc IN @@collection FILTER doc[@field] == @value LIMIT 1 RETURN doc"


def _to_document(record: BaseModel) -> dict[str, Any]:
    document = record.model_dump(mode="json")
    document["_key"] = str(document["id"])
    return document


class ArangoRepository(Repository):
    """
    Repository adapter persisting to ArangoDB.

    Args:
        settings: Connection settings used when no database handle is given.
        db: An existing database handle.
    """

    backend_name = "arango"

    def __init__(self, settings: Settings | None = None, db: StandardDatabase | None = None):
        self._db = db if db is not None else get_database(settings)

    # Internals
    def _next_id(self, collection: str) -> int:
        return int(query_documents(self._db, NEXT_ID_AQL, {"name": collection})[0])

    def _bump(self, counters: dict[str, int]) -> None:
        query_documents(
            self._db,
            BUMP_ANALYTICS_AQL,
            {"key": ANALYTICS_KEY, "deltas": counters, "now": utcnow().isoformat()},
        )

    def _insert(self, collection: str, record: BaseModel) -> None:
        self._db.collection(collection).insert(_to_document(record))
        logger.debug("Document inserted", collection=collection, key=str(record.id))

    def _replace(self, collection: str, record: BaseModel) -> None:
        try:
            self._db.collection(collection).replace(_to_document(record))
        except DocumentReplaceError as e:
            raise RepositoryError(f"Failed to update {collection}/{record.id}: {e}") from e

    def _find_one(self, collection: str, field: str, value: Any) -> dict[str, Any] | None:
        rows = query_documents(
            self._db,
            FIND_BY_FIELD_AQL,
            {"@collection": collection, "field": field, "value": value},
        )
        return rows[0] if rows else None

    def _list(self, collection: str, aql: str) -> list[dict[str, Any]]:
        return query_documents(self._db, aql, {"@collection": collection})

    # Cases
    def get_case(self, case_id: int) -> PatientCase | None:
        document = get_document(self._db, CASES, str(case_id))
        return PatientCase.model_validate(document) if document else None

    def list_cases(self) -> list[PatientCase]:
        return [PatientCase.model_validate(d) for d in self._list(CASES, LIST_NEWEST_FIRST_AQL)]

    def create_case(self, data: CaseCreate) -> PatientCase:
        case = PatientCase(id=self._next_id(CASES), **data.model_dump())
        self._insert(CASES, case)
        self._bump(new_case_counters(case))
        return case

    def update_case(self, case_id: int, data: CaseUpdate) -> PatientCase | None:
        existing = self.get_case(case_id)
        if existing is None:
            return None
        updated = apply_case_update(existing, data)
        self._replace(CASES, updated)
        self._bump(updated_case_counters(existing, updated))
        return updated

    def delete_case(self, case_id: int) -> bool:
        try:
            return bool(self._db.collection(CASES).delete(str(case_id), ignore_missing=True))
        except DocumentDeleteError as e:
            raise RepositoryError(f"Failed to delete case {case_id}: {e}") from e

    # Diseases
    def get_disease(self, disease_id: int) -> Disease | None:
        document = get_document(self._db, DISEASES, str(disease_id))
        return Disease.model_validate(document) if document else None

    def get_disease_by_code(self, orpha_code: str) -> Disease | None:
        document = self._find_one(DISEASES, "orpha_code", orpha_code)
        return Disease.model_validate(document) if document else None

    def list_diseases(self) -> list[Disease]:
        return [Disease.model_validate(d) for d in self._list(DISEASES, LIST_BY_ID_AQL)]

    def create_disease(self, data: DiseaseCreate) -> Disease:
        if self.get_disease_by_code(data.orpha_code) is not None:
            raise DuplicateDiseaseError(data.orpha_code)
        disease = Disease(id=self._next_id(DISEASES), **data.model_dump())
        try:
            self._insert(DISEASES, disease)
        except DocumentInsertError as e:
            # Lost a race with a concurrent insert of the same code
            if e.error_code == UNIQUE_CONSTRAINT_VIOLATED:
                raise DuplicateDiseaseError(data.orpha_code) from e
            raise
        self._bump({"knowledge_base_size": 1})
        return disease

    # Physicians
    def list_physicians(self) -> list[Physician]:
        return [Physician.model_validate(d) for d in self._list(PHYSICIANS, LIST_NEWEST_FIRST_AQL)]

    def get_physician(self, physician_id: int) -> Physician | None:
        document = get_document(self._db, PHYSICIANS, str(physician_id))
        return Physician.model_validate(document) if document else None

    def get_physician_by_user_id(self, user_id: str) -> Physician | None:
        document = self._find_one(PHYSICIANS, "user_id", user_id)
        return Physician.model_validate(document) if document else None

    def create_physician(self, data: PhysicianCreate) -> Physician:
        physician = Physician(id=self._next_id(PHYSICIANS), **data.model_dump())
        self._insert(PHYSICIANS, physician)
        return physician

    def update_physician(self, physician_id: int, data: PhysicianUpdate) -> Physician | None:
        existing = self.get_physician(physician_id)
        if existing is None:
            return None
        updated = apply_physician_update(existing, data)
        self._replace(PHYSICIANS, updated)
        return updated

    # Analytics
    def get_analytics(self) -> Analytics:
        document = get_document(self._db, ANALYTICS, ANALYTICS_KEY)
        return Analytics.model_validate(document) if document else Analytics()

    def is_available(self) -> bool:
        try:
            self._db.version()
        except (ArangoError, OSError) as e:
            logger.warning("ArangoDB unavailable", error=str(e))
            return False
        return True
