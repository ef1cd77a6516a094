"""
Narrative context derived from hybrid search results.
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Sequence

from ..models.core import ContextualInsights, GraphContext, MemoryRecord
from ..models.schema import BrandMemoryType
from ..utils.timestamp_utils import age_in_days

RECENT_DAYS = 30
MAX_ITEMS = 3


def extract_semantic_context(memory: MemoryRecord) -> List[str]:
    metadata = memory.metadata
    context = []

    technical = metadata.technical
    if technical and technical.technologies:
        context.append(f"Technologies: {', '.join(technical.technologies)}")

    metrics = metadata.metrics
    if metrics and metrics.platform:
        context.append(f'Platform: {metrics.platform}')

    strategic = metadata.strategic
    if strategic and strategic.target_audience:
        context.append(f"Audience: {', '.join(strategic.target_audience)}")

    return context


def _technology_counts(memories: Sequence[MemoryRecord]) -> Counter:
    counts: Counter = Counter()
    for memory in memories:
        technical = memory.metadata.technical
        if technical and technical.technologies:
            counts.update(tech.strip() for tech in technical.technologies if tech.strip())
    return counts


def _unique(memories: Sequence[MemoryRecord]) -> List[MemoryRecord]:
    seen: Dict[str, MemoryRecord] = {}
    for memory in memories:
        seen.setdefault(memory.id, memory)
    return list(seen.values())


def generate_contextual_insights(vector_results: Sequence[MemoryRecord], graph_context: Sequence[GraphContext],
                                 now: datetime) -> ContextualInsights:
    """Patterns, trends and recommendations over vector results plus graph-connected memories."""
    connected = [memory for context in graph_context for memory in context.connected_memories]
    memories = _unique(list(vector_results) + connected)
    insights = ContextualInsights()
    if not memories:
        return insights

    technologies = _technology_counts(memories)
    for technology, count in technologies.most_common(MAX_ITEMS):
        if count > 1:
            insights.patterns.append(f'Recurring work with {technology} across {count} memories')

    relationships = Counter(context.relationship for context in graph_context)
    for relationship, count in relationships.most_common(MAX_ITEMS):
        insights.patterns.append(f'{count} related memory group(s) linked via {relationship}')

    recent = [memory for memory in memories if age_in_days(memory.created_at, now) < RECENT_DAYS]
    recent_types = Counter(memory.memory_type for memory in recent)
    for memory_type, count in recent_types.most_common(MAX_ITEMS):
        insights.trends.append(f'{count} {memory_type.replace("_", " ")} memories in the last {RECENT_DAYS} days')

    recent_technologies = _technology_counts(recent)
    if recent_technologies:
        top = ', '.join(name for name, _ in recent_technologies.most_common(MAX_ITEMS))
        insights.trends.append(f'Recent focus on {top}')

    types = {memory.memory_type for memory in memories}
    if technologies and BrandMemoryType.CONTENT_PERFORMANCE.value not in types:
        technology = technologies.most_common(1)[0][0]
        insights.recommendations.append(f'Turn the {technology} work into published content')
    unvalidated = [memory for memory in memories if not memory.metadata.validated_by_human]
    if unvalidated and len(unvalidated) * 2 > len(memories):
        insights.recommendations.append('Request human review for the majority of these memories, which are unvalidated')
    if BrandMemoryType.BRAND_STRATEGY.value not in types and BrandMemoryType.CONTENT_PERFORMANCE.value in types:
        insights.recommendations.append('Align content with an explicit brand strategy')

    return insights
