"""
Phenotype-to-disease scoring and ranking.

Deterministic matching of a patient's HPO terms against the disease
knowledge base. Every function here is pure: no I/O, no shared state.

Scoring:
    score = 2 x (key phenotypes matched) + 1 x (supporting phenotypes matched)

A matched phenotype is "key" when the disease annotates it as obligate,
very frequent or frequent; any other annotation (including unknown) makes
it "supporting".
"""

from collections.abc import Iterable, Sequence

from raremd.models.clinical_models import (
    Disease,
    DiseasePhenotypeLink,
    FrequencyClass,
    PhenotypeObservation,
    Priority,
    ScoredMatch,
)

KEY_FREQUENCIES = frozenset({
    FrequencyClass.VERY_FREQUENT.value,
    FrequencyClass.OBLIGATE.value,
    FrequencyClass.FREQUENT.value,
})

KEY_MATCH_POINTS = 2
SUPPORTING_MATCH_POINTS = 1

HIGH_PRIORITY_MIN_SCORE = 7
MEDIUM_PRIORITY_MIN_SCORE = 5

MAX_RESULTS = 10
DEFAULT_SCORE_THRESHOLD = 3

# Alternate per-phenotype weights. Not used by rank().
FREQUENCY_WEIGHTS: dict[str, float] = {
    FrequencyClass.VERY_FREQUENT.value: 3,
    FrequencyClass.OBLIGATE.value: 3,
    FrequencyClass.FREQUENT.value: 2,
    FrequencyClass.OCCASIONAL.value: 1,
    FrequencyClass.VERY_RARE.value: 0.5,
}
DEFAULT_FREQUENCY_WEIGHT = 1.0


def is_key_symptom(frequency: str | None) -> bool:
    """Check whether a frequency class marks a key symptom (case-insensitive)."""
    if not frequency:
        return False
    return frequency.lower() in KEY_FREQUENCIES


def frequency_weight(frequency: str | None) -> float:
    """
    Numeric weight of a frequency class.

    This is an alternate scoring signal kept for callers that want graded
    weights. The ranking path uses the key/supporting split instead.
    """
    if not frequency:
        return DEFAULT_FREQUENCY_WEIGHT
    return FREQUENCY_WEIGHTS.get(frequency.lower(), DEFAULT_FREQUENCY_WEIGHT)


def determine_priority(score: float) -> Priority:
    """Map a score to its priority tier (>= 7 high, >= 5 medium, else low)."""
    if score >= HIGH_PRIORITY_MIN_SCORE:
        return Priority.HIGH
    if score >= MEDIUM_PRIORITY_MIN_SCORE:
        return Priority.MEDIUM
    return Priority.LOW


def _index_phenotypes(disease: Disease) -> dict[str, DiseasePhenotypeLink]:
    # First link wins when a disease lists the same HPO ID twice
    index: dict[str, DiseasePhenotypeLink] = {}
    for link in disease.phenotypes or []:
        index.setdefault(link.hpo_id, link)
    return index


def score_disease(
    query: Iterable[PhenotypeObservation],
    disease: Disease,
) -> ScoredMatch:
    """
    Score one disease against the query phenotypes.

    Args:
        query: Observed phenotypes.
        disease: Candidate disease.

    Returns:
        ScoredMatch, possibly with a score of 0.
    """
    links = _index_phenotypes(disease)
    key_matches = 0
    supporting_matches = 0

    for observation in query:
        link = links.get(observation.hpo_id)
        if link is None:
            continue
        if is_key_symptom(link.frequency):
            key_matches += 1
        else:
            supporting_matches += 1

    score = key_matches * KEY_MATCH_POINTS + supporting_matches * SUPPORTING_MATCH_POINTS
    return ScoredMatch(
        disease=disease,
        score=score,
        key_matches=key_matches,
        supporting_matches=supporting_matches,
        priority=determine_priority(score),
    )


def sort_by_score(results: Iterable[ScoredMatch]) -> list[ScoredMatch]:
    """Sort by score, highest first. Ties keep their input order."""
    return sorted(results, key=lambda r: r.score, reverse=True)


def filter_by_threshold(
    results: Iterable[ScoredMatch],
    threshold: float = DEFAULT_SCORE_THRESHOLD,
) -> list[ScoredMatch]:
    """Keep results scoring at least `threshold`."""
    return [r for r in results if r.score >= threshold]


def rank(
    query: Sequence[PhenotypeObservation],
    diseases: Iterable[Disease],
    limit: int = MAX_RESULTS,
) -> list[ScoredMatch]:
    """
    Rank diseases by phenotype overlap with the query.

    Diseases without any overlap are dropped. The remaining candidates are
    sorted by score (stable, so ties keep catalog order) and truncated.

    Args:
        query: Observed phenotypes. An empty query yields an empty list.
        diseases: The full knowledge base.
        limit: Maximum number of results.

    Returns:
        At most `limit` ScoredMatch objects, highest score first.
    """
    if not query:
        return []

    scored = (score_disease(query, disease) for disease in diseases)
    matches = [match for match in scored if match.score > 0]
    return sort_by_score(matches)[:limit]
