"""
Brand-specific filtering and relevance scoring.

Relevance is the store's base score plus fixed boosts for recency, human
endorsement, confidence and importance, capped at 1.0.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from ..models.core import GraphContext, MemoryRecord
from ..models.schema import BrandMemorySearchOptions
from ..utils.timestamp_utils import ensure_utc

DEFAULT_BASE_RELEVANCE = 0.5
RECENCY_WINDOW = timedelta(days=7)
RECENCY_BOOST = 0.1
VALIDATION_BOOST = 0.15
CONFIDENCE_WEIGHT = 0.1
DEFAULT_CONFIDENCE = 0.5
IMPORTANCE_THRESHOLD = 0.8
IMPORTANCE_BOOST = 0.1

GRAPH_CONTEXT_WEIGHT = 0.1


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


def _overlaps(wanted: Optional[Sequence[str]], present: Optional[Iterable[str]]) -> bool:
    """True when no filter is set, the record carries no values, or the two sets share a value."""
    if not wanted or not present:
        return True
    return bool({str(v).lower() for v in wanted} & {str(v).lower() for v in present})


def matches_brand_criteria(record: MemoryRecord, options: BrandMemorySearchOptions, now: datetime) -> bool:
    """Apply the filters the primitive store does not understand.

    Set-valued filters only reject records that carry the field and share no
    value with the filter; scalar validation filters are always enforced.
    """
    metadata = record.metadata

    if options.memory_types and metadata.type not in options.memory_types:
        return False

    context_filter = options.brand_context
    if not (context_filter and context_filter.include_expired) and record.is_expired(now):
        return False
    if context_filter:
        brand_context = metadata.brand_context
        for name in ('analysis_id', 'content_id', 'strategy_version'):
            wanted = getattr(context_filter, name)
            if wanted is not None and getattr(brand_context, name, None) != wanted:
                return False

    technical_filter = options.technical_filter
    if technical_filter:
        technical = metadata.technical
        metrics = metadata.metrics
        if not _overlaps(technical_filter.technologies, technical.technologies if technical else None):
            return False
        if technical_filter.skill_levels and technical and technical.skill_level and \
                technical.skill_level not in technical_filter.skill_levels:
            return False
        if technical_filter.platforms and metrics and metrics.platform and metrics.platform not in technical_filter.platforms:
            return False

    strategic_filter = options.strategic_filter
    if strategic_filter:
        strategic = metadata.strategic
        if not _overlaps(strategic_filter.target_audiences, strategic.target_audience if strategic else None):
            return False
        if not _overlaps(strategic_filter.brand_pillars, strategic.brand_pillars if strategic else None):
            return False
        segment = strategic.market_segment if strategic else None
        if not _overlaps(strategic_filter.market_segments, [segment] if segment else None):
            return False

    validation = options.validation_status
    if validation:
        if validation.human_validated is not None and metadata.validated_by_human != validation.human_validated:
            return False
        if validation.min_confidence is not None and (metadata.confidence_score or 0.0) < validation.min_confidence:
            return False
        if validation.approval_status:
            metrics = metadata.metrics
            if metrics is None or metrics.approval_status not in validation.approval_status:
                return False

    return True


def calculate_brand_relevance(record: MemoryRecord, now: datetime) -> float:
    """base + recency + validation + confidence + importance, capped at 1.0."""
    metadata = record.metadata
    relevance = record.relevance_score if record.relevance_score is not None else DEFAULT_BASE_RELEVANCE

    if ensure_utc(now) - ensure_utc(record.created_at) < RECENCY_WINDOW:
        relevance += RECENCY_BOOST

    if metadata.human_endorsed:
        relevance += VALIDATION_BOOST

    confidence = metadata.confidence_score
    relevance += (confidence if confidence is not None else DEFAULT_CONFIDENCE) * CONFIDENCE_WEIGHT

    if metadata.importance is not None and metadata.importance > IMPORTANCE_THRESHOLD:
        relevance += IMPORTANCE_BOOST

    return _clamp(relevance)


def rank_memories(records: Sequence[MemoryRecord], now: datetime) -> List[MemoryRecord]:
    """Re-score records and sort by descending relevance; ties keep store order."""
    scored = [replace(record, relevance_score=calculate_brand_relevance(record, now)) for record in records]
    return sorted(scored, key=lambda record: record.relevance_score, reverse=True)


def calculate_hybrid_score(vector_results: Sequence[MemoryRecord], graph_context: Sequence[GraphContext]) -> float:
    """(sum of vector relevance + 0.1 per graph context) / (vector count + 1), within [0, 1]."""
    if not vector_results:
        return 0.0
    vector_score = sum(record.relevance_score or 0.0 for record in vector_results)
    graph_score = len(graph_context) * GRAPH_CONTEXT_WEIGHT
    return _clamp((vector_score + graph_score) / (len(vector_results) + 1))
