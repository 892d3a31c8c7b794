"""
Pydantic models for case records, physician profiles, analytics,
practice cases and referral documents.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import Field, field_validator

from raremd.models.clinical_models import (
    CamelModel,
    PhenotypeObservation,
    Priority,
    RecommendedTest,
    utcnow,
)


# ============================================================================
# Patient cases
# ============================================================================

def clean_patient_id(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Patient ID cannot be empty")
    return cleaned


class CaseStatus(str, Enum):
    """Lifecycle of a patient case."""
    ACTIVE = "active"
    DIAGNOSED = "diagnosed"
    CLOSED = "closed"


class CaseCreate(CamelModel):
    """
    Request body for a new patient case.

    Attributes:
        patient_id: De-identified patient identifier.
        symptoms: Observed phenotypes.
        diagnosis: Chosen diagnosis name, if any.
        orpha_code: ORPHA code of the chosen diagnosis.
        score: Match score of the chosen diagnosis.
    """
    patient_id: str = Field(..., min_length=1, description="De-identified patient ID")
    age: int | None = Field(default=None, ge=0, le=150, description="Patient age")
    sex: str | None = Field(default=None, description="Patient sex")
    symptoms: list[PhenotypeObservation] = Field(..., description="Observed phenotypes")
    diagnosis: str | None = Field(default=None, description="Chosen diagnosis")
    orpha_code: str | None = Field(default=None, description="ORPHA code of the diagnosis")
    score: float | None = Field(default=None, ge=0, description="Match score of the diagnosis")
    status: CaseStatus = Field(default=CaseStatus.ACTIVE, description="Case status")

    @field_validator("patient_id")
    @classmethod
    def validate_patient_id(cls, v: str) -> str:
        return clean_patient_id(v)


class CaseUpdate(CamelModel):
    """Partial update of a patient case. Only fields that are set are applied."""
    patient_id: str | None = Field(default=None, min_length=1)
    age: int | None = Field(default=None, ge=0, le=150)
    sex: str | None = None
    symptoms: list[PhenotypeObservation] | None = None
    diagnosis: str | None = None
    orpha_code: str | None = None
    score: float | None = Field(default=None, ge=0)
    status: CaseStatus | None = None

    @field_validator("patient_id")
    @classmethod
    def validate_patient_id(cls, v: str | None) -> str | None:
        return None if v is None else clean_patient_id(v)


class PatientCase(CaseCreate):
    """Stored patient case."""
    id: int = Field(..., ge=1, description="Storage key")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Physician profiles
# ============================================================================

class PhysicianCreate(CamelModel):
    """Physician profile and affiliations."""
    user_id: str | None = None
    full_name: str | None = None
    license_number: str | None = None
    specialty: str | None = None
    sub_specialty: str | None = None
    hospital_affiliation: str | None = None
    clinic_name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    years_of_experience: int | None = Field(default=None, ge=0)
    board_certifications: list[str] = Field(default_factory=list)
    research_interests: list[str] = Field(default_factory=list)
    publications: list[str] = Field(default_factory=list)
    professional_memberships: list[str] = Field(default_factory=list)
    emergency_contact: str | None = None
    preferred_referral_centers: list[str] = Field(default_factory=list)
    genetics_training: str | None = None
    rare_disease_focus: list[str] = Field(default_factory=list)


class PhysicianUpdate(CamelModel):
    """Partial update of a physician profile."""
    user_id: str | None = None
    full_name: str | None = None
    license_number: str | None = None
    specialty: str | None = None
    sub_specialty: str | None = None
    hospital_affiliation: str | None = None
    clinic_name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    years_of_experience: int | None = Field(default=None, ge=0)
    board_certifications: list[str] | None = None
    research_interests: list[str] | None = None
    publications: list[str] | None = None
    professional_memberships: list[str] | None = None
    emergency_contact: str | None = None
    preferred_referral_centers: list[str] | None = None
    genetics_training: str | None = None
    rare_disease_focus: list[str] | None = None


class Physician(PhysicianCreate):
    """Stored physician profile."""
    id: int = Field(..., ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Analytics
# ============================================================================

class Analytics(CamelModel):
    """Dashboard counters maintained by the repository."""
    total_cases: int = Field(default=0, ge=0)
    alerts_generated: int = Field(default=0, ge=0)
    diagnosed_cases: int = Field(default=0, ge=0)
    knowledge_base_size: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=utcnow)


# ============================================================================
# Practice cases
# ============================================================================

Difficulty = Literal["easy", "medium", "hard"]


class PracticePatient(CamelModel):
    age: int = Field(..., ge=0)
    sex: Literal["male", "female"]
    demographics: str


class PracticeCase(CamelModel):
    """A worked case study with a known diagnosis."""
    id: str = Field(..., description="Case identifier (e.g., 'case-001')")
    title: str
    description: str
    patient: PracticePatient
    symptoms: list[PhenotypeObservation]
    expected_diagnosis: str
    orpha_code: str
    difficulty: Difficulty
    clinical_notes: str
    recommendations: list[str] = Field(default_factory=list)


# ============================================================================
# Referral documents
# ============================================================================

class ReferralPatientInfo(CamelModel):
    patient_id: str
    age: int | None = None
    sex: str | None = None


class ReferralDiagnosis(CamelModel):
    name: str
    orpha_code: str
    score: float
    icd10_code: str


class ReferralInfo(CamelModel):
    date: str = Field(..., description="ISO date of the referral")
    referring_physician: str
    urgency_level: Priority


class ReferralDocument(CamelModel):
    """Structured content of a referral report."""
    patient_info: ReferralPatientInfo
    symptoms: list[PhenotypeObservation] = Field(default_factory=list)
    diagnosis: ReferralDiagnosis | None = None
    recommended_tests: list[RecommendedTest] | None = None
    referral_info: ReferralInfo
