"""
Pydantic models for phenotypes, diseases and scored matches.

Python attributes are snake_case; the JSON wire format is camelCase
(hpoId, orphaCode, keyMatches). Both spellings are accepted on input.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialising to camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Enumerations
# ============================================================================

class FrequencyClass(str, Enum):
    """Orphanet frequency classes for a phenotype within a disease population."""
    OBLIGATE = "obligate"
    VERY_FREQUENT = "very_frequent"
    FREQUENT = "frequent"
    OCCASIONAL = "occasional"
    VERY_RARE = "very_rare"


class Priority(str, Enum):
    """Actionable priority tier derived from a match score."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ============================================================================
# Phenotypes
# ============================================================================

class PhenotypeObservation(CamelModel):
    """
    A symptom reported for a patient, encoded as an HPO term.

    Attributes:
        hpo_id: HPO identifier (e.g., 'HP:0001250').
        label: Human-readable term label.
        frequency: Optional frequency annotation carried over from the catalog.
    """
    hpo_id: str = Field(..., min_length=1, description="HPO identifier")
    label: str = Field(..., description="Term label")
    frequency: str | None = Field(default=None, description="Frequency annotation")


class HpoTerm(CamelModel):
    """A phenotype catalog entry."""
    id: str = Field(..., description="HPO identifier")
    label: str = Field(..., description="Term label")
    definition: str | None = Field(default=None, description="Term definition")
    synonyms: list[str] = Field(default_factory=list, description="Alternative labels")
    is_obsolete: bool = Field(default=False, description="Whether the term is obsolete")


# ============================================================================
# Diseases
# ============================================================================

class DiseasePhenotypeLink(CamelModel):
    """
    A phenotype associated with a disease.

    Frequency is kept as free text: values outside FrequencyClass are
    accepted and score as supporting symptoms.
    """
    hpo_id: str = Field(..., min_length=1, description="HPO identifier")
    label: str = Field(..., description="Term label")
    frequency: str = Field(..., description="Frequency class (e.g., 'very_frequent')")


class RecommendedTest(CamelModel):
    """Confirmatory test suggested for a disease."""
    test: str = Field(..., description="Test name")
    description: str = Field(..., description="What the test establishes")


class DiseaseCreate(CamelModel):
    """Disease record as ingested into the knowledge base."""
    orpha_code: str = Field(..., min_length=1, description="ORPHA code (e.g., 'ORPHA:355')")
    name: str = Field(..., min_length=1, description="Disease name")
    definition: str | None = Field(default=None, description="Free-text definition")
    prevalence: str | None = Field(default=None, description="Prevalence class")
    inheritance: str | None = Field(default=None, description="Inheritance modes")
    phenotypes: list[DiseasePhenotypeLink] = Field(
        default_factory=list, description="Associated phenotypes"
    )
    gene_reviews_url: str | None = Field(default=None, description="GeneReviews link")
    omim_id: str | None = Field(default=None, description="OMIM identifier")
    recommended_tests: list[RecommendedTest] | None = Field(
        default=None, description="Confirmatory tests"
    )

    @field_validator("phenotypes", mode="before")
    @classmethod
    def coerce_missing_phenotypes(cls, v):
        """A missing phenotype collection means no phenotypes."""
        return [] if v is None else v


class Disease(DiseaseCreate):
    """Stored disease record."""
    id: int = Field(..., ge=1, description="Storage key")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")
    updated_at: datetime = Field(default_factory=utcnow, description="Last update time")


# ============================================================================
# Scoring
# ============================================================================

class ScoredMatch(CamelModel):
    """
    A disease candidate produced by the ranking engine.

    Attributes:
        disease: The candidate disease.
        score: 2 x key_matches + supporting_matches.
        key_matches: Matched phenotypes with a key frequency class.
        supporting_matches: Other matched phenotypes.
        priority: Tier derived from the score.
    """
    disease: Disease
    score: int = Field(..., ge=0, description="Match score")
    key_matches: int = Field(..., ge=0, description="Key phenotype matches")
    supporting_matches: int = Field(..., ge=0, description="Supporting phenotype matches")
    priority: Priority = Field(..., description="Priority tier")


# ============================================================================
# Orphadata source records
# ============================================================================

class OrphadataPhenotype(BaseModel):
    """Phenotype annotation as published by Orphadata."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hpo_id: str = Field(..., alias="HPOId")
    hpo_term: str = Field(..., alias="HPOTerm")
    hpo_frequency: str = Field(default="occasional", alias="HPOFrequency")


class OrphadataPrevalence(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prevalence_class: str | None = Field(default=None, alias="Class")
    mean_value: str | None = Field(default=None, alias="ValMoy")


class OrphadataDisease(BaseModel):
    """
    A clinical entity record in the Orphadata API shape.

    Unknown keys are ignored so that richer upstream payloads still parse.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    orpha_code: str = Field(..., alias="ORPHAcode")
    name: str = Field(..., alias="Name")
    definition: str | None = Field(default=None, alias="Definition")
    prevalence: OrphadataPrevalence | None = Field(default=None, alias="Prevalence")
    inheritance: list[str] = Field(default_factory=list, alias="Inheritance")
    phenotypes: list[OrphadataPhenotype] = Field(default_factory=list, alias="Phenotypes")
    gene_reviews: str | None = Field(default=None, alias="GeneReviews")
    omim: str | None = Field(default=None, alias="OMIM")
    recommended_tests: list[RecommendedTest] | None = Field(default=None, alias="RecommendedTests")

    @field_validator("orpha_code", mode="before")
    @classmethod
    def normalize_orpha_code(cls, v):
        """Upstream codes may be bare integers; store them as 'ORPHA:<n>'."""
        if isinstance(v, int) or (isinstance(v, str) and v.isdigit()):
            return f"ORPHA:{v}"
        return v

    @field_validator("inheritance", "phenotypes", mode="before")
    @classmethod
    def coerce_missing_lists(cls, v):
        return [] if v is None else v
