"""
Phenotype catalog backed by the Human Phenotype Ontology.

Terms are fetched once from the HPO API at startup and kept in memory.
When the API is disabled or unreachable the bundled term list is used.
"""

import json
from collections.abc import Iterable
from pathlib import Path

import httpx

from raremd.config.config import Settings, get_settings
from raremd.config.logging_config import get_logger
from raremd.models.clinical_models import HpoTerm

logger = get_logger(__name__)

BUNDLED_TERMS_PATH = Path(__file__).parent.parent / "data" / "hpo_terms.json"

MAX_SEARCH_RESULTS = 10


class PhenotypeCatalog:
    """
    In-memory index of HPO terms keyed by id.

    Args:
        settings: Application settings (HPO URL, timeout, remote toggle).
        transport: Optional httpx transport, used to stub the HPO API.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._terms: dict[str, HpoTerm] = {}
        self.source = "empty"

    def __len__(self) -> int:
        return len(self._terms)

    async def load(self) -> int:
        """
        Populate the catalog, preferring the remote HPO API.

        Returns:
            Number of terms loaded.
        """
        if self.settings.hpo_remote_enabled:
            terms = await self._fetch_remote_terms()
            if terms:
                self._replace_terms(terms)
                self.source = "remote"
                logger.info("HPO terms loaded", source=self.source, count=len(self._terms))
                return len(self._terms)

        return self.load_bundled_terms()

    def load_bundled_terms(self) -> int:
        """Load the term list shipped with the package."""
        with open(BUNDLED_TERMS_PATH, "r", encoding="utf-8") as f:
            raw_terms = json.load(f)
        self._replace_terms(HpoTerm.model_validate(t) for t in raw_terms)
        self.source = "bundled"
        logger.info("HPO terms loaded", source=self.source, count=len(self._terms))
        return len(self._terms)

    async def _fetch_remote_terms(self) -> list[HpoTerm]:
        url = f"{self.settings.hpo_api_url.rstrip('/')}/terms"
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.http_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                payload = response.json()
            return [HpoTerm.model_validate(t) for t in payload.get("terms") or []]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("HPO API unavailable, using bundled terms", url=url, error=str(e))
            return []

    def _replace_terms(self, terms: Iterable[HpoTerm]) -> None:
        self._terms = {term.id: term for term in terms}

    def search(self, query: str, limit: int = MAX_SEARCH_RESULTS) -> list[HpoTerm]:
        """
        Case-insensitive substring search over label, id and synonyms.

        Obsolete terms are skipped.

        Args:
            query: Free-text fragment.
            limit: Maximum number of terms returned.

        Returns:
            Matching terms in catalog order.
        """
        needle = query.lower()
        results: list[HpoTerm] = []
        for term in self._terms.values():
            if term.is_obsolete:
                continue
            haystacks = [term.label, term.id, *term.synonyms]
            if any(needle in text.lower() for text in haystacks):
                results.append(term)
                if len(results) >= limit:
                    break
        return results

    def get_by_id(self, hpo_id: str) -> HpoTerm | None:
        return self._terms.get(hpo_id)

    def get_all(self) -> list[HpoTerm]:
        """All non-obsolete terms."""
        return [term for term in self._terms.values() if not term.is_obsolete]
