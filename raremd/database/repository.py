"""
Storage abstraction for cases, diseases, physician profiles and analytics.

Repository defines the contract; InMemoryRepository is the adapter used in
development and tests. The durable adapter lives in arango_repository.
"""

from abc import ABC, abstractmethod
from itertools import count

from raremd.config.config import Settings
from raremd.config.logging_config import get_logger
from raremd.models.clinical_models import Disease, DiseaseCreate, utcnow
from raremd.models.record_models import (
    Analytics,
    CaseCreate,
    CaseStatus,
    CaseUpdate,
    PatientCase,
    Physician,
    PhysicianCreate,
    PhysicianUpdate,
)
from raremd.services.scoring import MEDIUM_PRIORITY_MIN_SCORE

logger = get_logger(__name__)


class RepositoryError(Exception):
    """Base class for storage errors."""


class RecordNotFoundError(RepositoryError):
    """Raised when a referenced record does not exist."""


class DuplicateDiseaseError(RepositoryError):
    """Raised when a disease with the same ORPHA code already exists."""

    def __init__(self, orpha_code: str):
        super().__init__(f"Disease {orpha_code} already exists")
        self.orpha_code = orpha_code


# ============================================================================
# Analytics bookkeeping (shared by all adapters)
# ============================================================================

def new_case_counters(case: PatientCase) -> dict[str, int]:
    """Analytics increments caused by creating a case."""
    return {
        "total_cases": 1,
        # A case recorded with a medium-or-higher score counts as an alert
        "alerts_generated": int(case.score is not None and case.score >= MEDIUM_PRIORITY_MIN_SCORE),
        "diagnosed_cases": int(case.status == CaseStatus.DIAGNOSED),
    }


def updated_case_counters(before: PatientCase, after: PatientCase) -> dict[str, int]:
    """Analytics increments caused by updating a case."""
    became_diagnosed = (
        after.status == CaseStatus.DIAGNOSED and before.status != CaseStatus.DIAGNOSED
    )
    return {"diagnosed_cases": int(became_diagnosed)}


# Fields that may not be cleared by an explicit null in a partial update
_CASE_REQUIRED_FIELDS = frozenset({"patient_id", "symptoms", "status"})


def _merge_changes(current: dict, changes: dict, required: frozenset[str] = frozenset()) -> dict:
    for field, value in changes.items():
        if value is None and field in required:
            continue
        current[field] = value
    current["updated_at"] = utcnow()
    return current


def apply_case_update(case: PatientCase, update: CaseUpdate) -> PatientCase:
    """Merge the fields explicitly set on `update` into `case`."""
    merged = _merge_changes(
        case.model_dump(), update.model_dump(exclude_unset=True), _CASE_REQUIRED_FIELDS
    )
    return PatientCase.model_validate(merged)


def apply_physician_update(physician: Physician, update: PhysicianUpdate) -> Physician:
    """Merge the fields explicitly set on `update` into `physician`."""
    changes = {
        field: ([] if value is None and isinstance(getattr(physician, field), list) else value)
        for field, value in update.model_dump(exclude_unset=True).items()
    }
    return Physician.model_validate(_merge_changes(physician.model_dump(), changes))


# ============================================================================
# Contract
# ============================================================================

class Repository(ABC):
    """Storage contract used by the services and API routes."""

    backend_name: str = "abstract"

    # Cases
    @abstractmethod
    def get_case(self, case_id: int) -> PatientCase | None: ...

    @abstractmethod
    def list_cases(self) -> list[PatientCase]:
        """Return all cases, newest first."""

    @abstractmethod
    def create_case(self, data: CaseCreate) -> PatientCase: ...

    @abstractmethod
    def update_case(self, case_id: int, data: CaseUpdate) -> PatientCase | None: ...

    @abstractmethod
    def delete_case(self, case_id: int) -> bool: ...

    # Diseases
    @abstractmethod
    def get_disease(self, disease_id: int) -> Disease | None: ...

    @abstractmethod
    def get_disease_by_code(self, orpha_code: str) -> Disease | None: ...

    @abstractmethod
    def list_diseases(self) -> list[Disease]:
        """Return all diseases in insertion order."""

    @abstractmethod
    def create_disease(self, data: DiseaseCreate) -> Disease:
        """Insert a disease. Raises DuplicateDiseaseError if the code exists."""

    # Physicians
    @abstractmethod
    def list_physicians(self) -> list[Physician]:
        """Return all physician profiles, newest first."""

    @abstractmethod
    def get_physician(self, physician_id: int) -> Physician | None: ...

    @abstractmethod
    def get_physician_by_user_id(self, user_id: str) -> Physician | None: ...

    @abstractmethod
    def create_physician(self, data: PhysicianCreate) -> Physician: ...

    @abstractmethod
    def update_physician(self, physician_id: int, data: PhysicianUpdate) -> Physician | None: ...

    # Analytics
    @abstractmethod
    def get_analytics(self) -> Analytics: ...

    def is_available(self) -> bool:
        """Whether the backing store is reachable."""
        return True


# ============================================================================
# In-memory adapter
# ============================================================================

class InMemoryRepository(Repository):
    """
    Process-local repository backed by dictionaries.

    Keys are auto-incrementing integers per record type. Nothing survives
    a restart.
    """

    backend_name = "memory"

    def __init__(self):
        self._cases: dict[int, PatientCase] = {}
        self._diseases: dict[int, Disease] = {}
        self._physicians: dict[int, Physician] = {}
        self._analytics = Analytics()
        self._case_ids = count(1)
        self._disease_ids = count(1)
        self._physician_ids = count(1)

    def _bump(self, counters: dict[str, int]) -> None:
        data = self._analytics.model_dump()
        for field, delta in counters.items():
            data[field] += delta
        data["last_updated"] = utcnow()
        self._analytics = Analytics.model_validate(data)

    # Cases
    def get_case(self, case_id: int) -> PatientCase | None:
        return self._cases.get(case_id)

    def list_cases(self) -> list[PatientCase]:
        return sorted(self._cases.values(), key=lambda c: (c.created_at, c.id), reverse=True)

    def create_case(self, data: CaseCreate) -> PatientCase:
        case = PatientCase(id=next(self._case_ids), **data.model_dump())
        self._cases[case.id] = case
        self._bump(new_case_counters(case))
        logger.debug("Case created", case_id=case.id)
        return case

    def update_case(self, case_id: int, data: CaseUpdate) -> PatientCase | None:
        existing = self._cases.get(case_id)
        if existing is None:
            return None
        updated = apply_case_update(existing, data)
        self._cases[case_id] = updated
        self._bump(updated_case_counters(existing, updated))
        return updated

    def delete_case(self, case_id: int) -> bool:
        return self._cases.pop(case_id, None) is not None

    # Diseases
    def get_disease(self, disease_id: int) -> Disease | None:
        return self._diseases.get(disease_id)

    def get_disease_by_code(self, orpha_code: str) -> Disease | None:
        return next((d for d in self._diseases.values() if d.orpha_code == orpha_code), None)

    def list_diseases(self) -> list[Disease]:
        return list(self._diseases.values())

    def create_disease(self, data: DiseaseCreate) -> Disease:
        if self.get_disease_by_code(data.orpha_code) is not None:
            raise DuplicateDiseaseError(data.orpha_code)
        disease = Disease(id=next(self._disease_ids), **data.model_dump())
        self._diseases[disease.id] = disease
        self._bump({"knowledge_base_size": 1})
        return disease

    # Physicians
    def list_physicians(self) -> list[Physician]:
        return sorted(self._physicians.values(), key=lambda p: (p.created_at, p.id), reverse=True)

    def get_physician(self, physician_id: int) -> Physician | None:
        return self._physicians.get(physician_id)

    def get_physician_by_user_id(self, user_id: str) -> Physician | None:
        return next((p for p in self._physicians.values() if p.user_id == user_id), None)

    def create_physician(self, data: PhysicianCreate) -> Physician:
        physician = Physician(id=next(self._physician_ids), **data.model_dump())
        self._physicians[physician.id] = physician
        return physician

    def update_physician(self, physician_id: int, data: PhysicianUpdate) -> Physician | None:
        existing = self._physicians.get(physician_id)
        if existing is None:
            return None
        updated = apply_physician_update(existing, data)
        self._physicians[physician_id] = updated
        return updated

    # Analytics
    def get_analytics(self) -> Analytics:
        return self._analytics


def build_repository(settings: Settings) -> Repository:
    """Create the repository adapter selected by `storage_backend`."""
    if settings.storage_backend == "arango":
        # Deferred: arango_repository imports this module
        from raremd.database.arango_repository import ArangoRepository

        return ArangoRepository(settings)
    return InMemoryRepository()
