"""
Library of practice cases for training and demonstration.

Each case is a worked clinical vignette with HPO-coded symptoms and a
known diagnosis drawn from the bundled knowledge base.
"""

import json
import random
from pathlib import Path

from raremd.config.logging_config import get_logger
from raremd.models.record_models import Difficulty, PracticeCase

logger = get_logger(__name__)

PRACTICE_CASES_PATH = Path(__file__).parent.parent / "data" / "practice_cases.json"


class PracticeCaseLibrary:
    """
    Read-only collection of practice cases.

    Args:
        cases: Cases to serve. Defaults to the bundled set.
        rng: Random source for get_random().
    """

    def __init__(
        self,
        cases: list[PracticeCase] | None = None,
        rng: random.Random | None = None,
    ):
        self._cases = cases if cases is not None else self._load_bundled()
        self._rng = rng or random.Random()

    @staticmethod
    def _load_bundled() -> list[PracticeCase]:
        with open(PRACTICE_CASES_PATH, "r", encoding="utf-8") as f:
            cases = [PracticeCase.model_validate(c) for c in json.load(f)]
        logger.info("Practice cases loaded", count=len(cases))
        return cases

    def get_all(self) -> list[PracticeCase]:
        return list(self._cases)

    def get_by_id(self, case_id: str) -> PracticeCase | None:
        return next((c for c in self._cases if c.id == case_id), None)

    def get_by_difficulty(self, difficulty: Difficulty) -> list[PracticeCase]:
        return [c for c in self._cases if c.difficulty == difficulty]

    def get_random(self) -> PracticeCase | None:
        """Pick one case uniformly at random, or None when the library is empty."""
        if not self._cases:
            return None
        return self._rng.choice(self._cases)
