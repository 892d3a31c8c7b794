import pytest
from fastapi.testclient import TestClient

from raremd.config.config import Settings
from raremd.database.repository import InMemoryRepository
from raremd.main import create_app
from raremd.models.clinical_models import Disease, DiseasePhenotypeLink, PhenotypeObservation


def make_disease(disease_id: int, links: list[tuple[str, str]], **kwargs) -> Disease:
    """
    Build a stored disease from (hpo_id, frequency) pairs.
    """
    return Disease(
        id=disease_id,
        orpha_code=kwargs.pop("orpha_code", f"ORPHA:{9000 + disease_id}"),
        name=kwargs.pop("name", f"Disease {disease_id}"),
        phenotypes=[
            DiseasePhenotypeLink(hpo_id=hpo_id, label=hpo_id, frequency=frequency)
            for hpo_id, frequency in links
        ],
        **kwargs,
    )


def observe(*hpo_ids: str) -> list[PhenotypeObservation]:
    return [PhenotypeObservation(hpo_id=hpo_id, label=hpo_id) for hpo_id in hpo_ids]


@pytest.fixture
def settings() -> Settings:
    """
    Offline settings: bundled HPO terms, sample Orphadata catalog, in-memory storage.
    """
    return Settings(
        hpo_remote_enabled=False,
        orphadata_api_key="",
        seed_knowledge_base=True,
        storage_backend="memory",
        default_referring_physician="Referring physician",
    )


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def client(settings: Settings, repository: InMemoryRepository):
    app = create_app(settings, repository=repository)
    with TestClient(app) as test_client:
        yield test_client
