"""
Disease knowledge base.

Thin service over the repository: disease lookups, insert-only Orphadata
sync, and ranking of the stored diseases against a patient's phenotypes.
"""

from raremd.config.logging_config import get_logger
from raremd.database.repository import DuplicateDiseaseError, Repository
from raremd.models.clinical_models import (
    Disease,
    DiseaseCreate,
    PhenotypeObservation,
    ScoredMatch,
)
from raremd.services.orphadata import OrphadataClient, to_disease_create
from raremd.services.scoring import rank

logger = get_logger(__name__)


class KnowledgeBaseService:
    """
    Disease catalog backed by a repository.

    Args:
        repository: Storage adapter holding the diseases.
        orphadata: Source used by sync_from_orphadata().
    """

    def __init__(self, repository: Repository, orphadata: OrphadataClient):
        self.repository = repository
        self.orphadata = orphadata

    def get_all_diseases(self) -> list[Disease]:
        return self.repository.list_diseases()

    def get_disease_by_code(self, orpha_code: str) -> Disease | None:
        return self.repository.get_disease_by_code(orpha_code)

    def create_disease(self, data: DiseaseCreate) -> Disease:
        """Insert a disease. Raises DuplicateDiseaseError if the code exists."""
        return self.repository.create_disease(data)

    async def sync_from_orphadata(self) -> int:
        """
        Insert Orphadata diseases that are not yet in the knowledge base.

        Existing records are never updated: a disease whose ORPHA code is
        already stored is skipped.

        Returns:
            Number of diseases inserted.
        """
        records = await self.orphadata.fetch_diseases()
        inserted = 0
        skipped = 0

        for record in records:
            if self.repository.get_disease_by_code(record.orpha_code) is not None:
                skipped += 1
                continue
            try:
                self.repository.create_disease(to_disease_create(record))
            except DuplicateDiseaseError:
                skipped += 1
                continue
            inserted += 1

        logger.info(
            "Orphadata sync complete",
            fetched=len(records),
            inserted=inserted,
            skipped=skipped,
        )
        return inserted

    def rank(self, symptoms: list[PhenotypeObservation]) -> list[ScoredMatch]:
        """Rank every stored disease against the observed phenotypes."""
        diseases = self.repository.list_diseases()
        matches = rank(symptoms, diseases)
        logger.info(
            "Ranking complete",
            phenotypes=len(symptoms),
            candidates=len(diseases),
            matches=len(matches),
            top_score=matches[0].score if matches else 0,
        )
        return matches
