"""
Request and response envelopes for the HTTP layer.

Domain payloads live in clinical_models and record_models; this module only
holds the wrappers specific to individual endpoints plus the shared health
and error bodies.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from raremd.models.clinical_models import CamelModel, PhenotypeObservation, utcnow


class AnalyzeRequest(CamelModel):
    """
    Request to rank the knowledge base against a patient's phenotypes.

    Attributes:
        symptoms: Observed phenotypes. May be empty.
    """
    symptoms: list[PhenotypeObservation] = Field(..., description="Observed phenotypes")


class ReferralRequest(CamelModel):
    """
    Request for a referral document.

    Attributes:
        case_id: Case to refer.
        physician_id: Optional physician profile printed as the referrer.
    """
    case_id: int = Field(..., ge=1, description="Case ID")
    physician_id: int | None = Field(default=None, ge=1, description="Referring physician ID")


class SyncResponse(CamelModel):
    """Outcome of a knowledge-base sync."""
    synced: int = Field(..., ge=0, description="Diseases inserted")
    message: str = Field(..., description="Human-readable summary")


class HealthStatus(str, Enum):
    """Overall service state reported by /health."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Body of the /health endpoint.

    Attributes:
        status: Healthy when storage and the HPO catalog pass, degraded
            when either fails.
        version: Running release.
        environment: development, staging or production.
        checks: Pass/fail per component (api, storage, hpo_catalog, orphadata_configured).
    """
    status: HealthStatus = Field(..., description="Service state")
    version: str = Field(..., description="Release version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Per-component results")


class ErrorResponse(BaseModel):
    """
    JSON body returned for every non-2xx response.

    Attributes:
        error: Machine-readable code, e.g. VALIDATION_ERROR or HTTP_404.
        message: Explanation for the caller.
        details: Structured context such as field errors or the clashing ORPHA code.
        request_id: Matches the X-Request-ID response header.
    """
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Explanation")
    details: dict | None = Field(default=None, description="Structured context")
    request_id: str | None = Field(default=None, description="Request identifier")
    timestamp: datetime = Field(default_factory=utcnow, description="Error timestamp")
