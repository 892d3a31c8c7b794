"""
Orphadata API client.

Fetches rare-disease records from the Orphanet clinical entity API and maps
them onto knowledge-base records. Without an API key, or when the API fails,
the bundled sample catalog is served instead. Network errors never escape
this module.
"""

import json
from pathlib import Path
from typing import Any

import httpx

from raremd.config.config import Settings, get_settings
from raremd.config.logging_config import get_logger
from raremd.models.clinical_models import (
    DiseaseCreate,
    DiseasePhenotypeLink,
    OrphadataDisease,
    OrphadataPhenotype,
)

logger = get_logger(__name__)

SAMPLE_CATALOG_PATH = Path(__file__).parent.parent / "data" / "orphadata_sample.json"

ACTIVE_ADULT_ENTITIES_PATH = "/ClinicalEntity/orphacode/all/age/Adult/status/Active"


def load_sample_catalog() -> list[OrphadataDisease]:
    """Load the disease records shipped with the package."""
    with open(SAMPLE_CATALOG_PATH, "r", encoding="utf-8") as f:
        return [OrphadataDisease.model_validate(record) for record in json.load(f)]


def to_disease_create(record: OrphadataDisease) -> DiseaseCreate:
    """
    Map an Orphadata record onto a knowledge-base disease.

    Args:
        record: Source record.

    Returns:
        DiseaseCreate ready for insertion.
    """
    return DiseaseCreate(
        orpha_code=record.orpha_code,
        name=record.name,
        definition=record.definition,
        prevalence=record.prevalence.prevalence_class if record.prevalence else None,
        inheritance=", ".join(record.inheritance) or None,
        phenotypes=[
            DiseasePhenotypeLink(hpo_id=p.hpo_id, label=p.hpo_term, frequency=p.hpo_frequency)
            for p in record.phenotypes
        ],
        gene_reviews_url=record.gene_reviews,
        omim_id=record.omim,
        recommended_tests=record.recommended_tests,
    )


class OrphadataClient:
    """
    Async client for the Orphadata clinical entity API.

    Args:
        settings: Application settings (base URL, API key, timeout).
        transport: Optional httpx transport, used to stub the API.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def has_api_key(self) -> bool:
        return bool(self.settings.orphadata_api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.orphadata_base_url.rstrip("/"),
            timeout=self.settings.http_timeout_seconds,
            transport=self._transport,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self.settings.orphadata_api_key}",
            },
        )

    async def _get_json(self, path: str) -> Any:
        async with self._client() as client:
            response = await client.get(path)
            response.raise_for_status()
            return response.json()

    async def fetch_diseases(self) -> list[OrphadataDisease]:
        """
        Fetch all active adult clinical entities.

        Returns:
            Disease records. The bundled sample catalog is returned when no
            API key is configured, when the request fails, or when the API
            returns no records.
        """
        if not self.has_api_key:
            logger.info("No Orphadata API key configured, using sample catalog")
            return load_sample_catalog()

        try:
            payload = await self._get_json(ACTIVE_ADULT_ENTITIES_PATH)
            records = [OrphadataDisease.model_validate(r) for r in payload.get("diseases") or []]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Orphadata fetch failed, using sample catalog", error=str(e))
            return load_sample_catalog()

        if not records:
            logger.warning("Orphadata returned no diseases, using sample catalog")
            return load_sample_catalog()

        logger.info("Orphadata diseases fetched", count=len(records))
        return records

    async def fetch_disease_details(self, orpha_code: str) -> OrphadataDisease | None:
        """Fetch one clinical entity, or None on any failure."""
        try:
            payload = await self._get_json(f"/ClinicalEntity/orphacode/{orpha_code}")
            disease = payload.get("disease")
            return OrphadataDisease.model_validate(disease) if disease else None
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Orphadata detail fetch failed", orpha_code=orpha_code, error=str(e))
            return None

    async def fetch_phenotypes(self, orpha_code: str) -> list[OrphadataPhenotype]:
        """Fetch the HPO annotations of one clinical entity, or [] on any failure."""
        try:
            payload = await self._get_json(f"/ClinicalEntity/orphacode/{orpha_code}/phenotypes")
            return [OrphadataPhenotype.model_validate(p) for p in payload.get("phenotypes") or []]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Orphadata phenotype fetch failed", orpha_code=orpha_code, error=str(e))
            return []
