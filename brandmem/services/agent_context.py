"""
Agent context protocol: which memories each agent type may see and how the
retrieved subset is summarised for it.
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from ..models.core import MemoryRecord
from ..models.schema import BrandMemoryType
from ..utils.timestamp_utils import age_in_days

GITHUB_ANALYZER = 'github-analyzer'
CONTENT_CREATOR = 'content-creator'
BRAND_STRATEGIST = 'brand-strategist'

AGENT_MEMORY_TYPES: Dict[str, Tuple[str, ...]] = {
    GITHUB_ANALYZER: (BrandMemoryType.DEV_ACHIEVEMENT.value, BrandMemoryType.SKILL_PROFILE.value,
                      BrandMemoryType.WORKFLOW_LEARNING.value),
    CONTENT_CREATOR: (BrandMemoryType.CONTENT_PERFORMANCE.value, BrandMemoryType.BRAND_STRATEGY.value,
                      BrandMemoryType.USER_FEEDBACK.value),
    BRAND_STRATEGIST: (BrandMemoryType.BRAND_STRATEGY.value, BrandMemoryType.MARKET_INSIGHT.value,
                       BrandMemoryType.CAREER_MILESTONE.value, BrandMemoryType.USER_FEEDBACK.value),
}
DEFAULT_AGENT_MEMORY_TYPES = (BrandMemoryType.BRAND_STRATEGY.value, BrandMemoryType.WORKFLOW_LEARNING.value)

BASE_CONFIDENCE = 0.5
RECENT_DAYS = 14
RECENCY_WEIGHT = 0.2
VALIDATION_WEIGHT = 0.3

BASE_SUGGESTIONS = (
    'Leverage previous successful patterns',
    'Focus on high-engagement content themes',
    'Consider human feedback from similar tasks',
)
AGENT_SUGGESTIONS = {
    GITHUB_ANALYZER: 'Emphasize recent technical achievements',
    CONTENT_CREATOR: 'Reference top-performing content formats',
    BRAND_STRATEGIST: 'Check positioning against the latest market insights',
}


def memory_types_for_agent(agent_type: str) -> List[str]:
    """Allowlisted memory types for an agent; unknown agents get the default set."""
    return list(AGENT_MEMORY_TYPES.get(agent_type, DEFAULT_AGENT_MEMORY_TYPES))


def _technologies(memories: Sequence[MemoryRecord]) -> List[str]:
    counts: Counter = Counter()
    for memory in memories:
        technical = memory.metadata.technical
        if technical and technical.technologies:
            counts.update(technical.technologies)
    return [name for name, _ in counts.most_common(3)]


def _platforms(memories: Sequence[MemoryRecord]) -> List[str]:
    counts = Counter(memory.metadata.metrics.platform for memory in memories
                     if memory.metadata.metrics and memory.metadata.metrics.platform)
    return [name for name, _ in counts.most_common(3)]


def _pillars(memories: Sequence[MemoryRecord]) -> List[str]:
    pillars: List[str] = []
    for memory in memories:
        strategic = memory.metadata.strategic
        for pillar in (strategic.brand_pillars or []) if strategic else []:
            if pillar not in pillars:
                pillars.append(pillar)
    return pillars[:3]


def generate_context_summary(memories: Sequence[MemoryRecord], agent_type: str, current_task: str) -> str:
    summary = f'Context for {agent_type}: {len(memories)} relevant memories found for task "{current_task}".'
    if not memories:
        return f'{summary} No prior brand memory applies; proceed from the task alone.'

    if agent_type == GITHUB_ANALYZER:
        technologies = _technologies(memories)
        if technologies:
            return f"{summary} Recurring technologies: {', '.join(technologies)}."
    elif agent_type == CONTENT_CREATOR:
        platforms = _platforms(memories)
        feedback = sum(1 for memory in memories if memory.memory_type == BrandMemoryType.USER_FEEDBACK.value)
        details = [f"platforms: {', '.join(platforms)}"] if platforms else []
        if feedback:
            details.append(f'{feedback} human feedback record(s)')
        if details:
            return f"{summary} Prior content on {'; '.join(details)}."
    elif agent_type == BRAND_STRATEGIST:
        pillars = _pillars(memories)
        if pillars:
            return f"{summary} Current brand pillars: {', '.join(pillars)}."

    types = Counter(memory.memory_type for memory in memories)
    breakdown = ', '.join(f'{count} {memory_type}' for memory_type, count in types.most_common())
    return f'{summary} Memory mix: {breakdown}.'


def generate_agent_suggestions(memories: Sequence[MemoryRecord], agent_type: str) -> List[str]:
    suggestions = list(BASE_SUGGESTIONS)
    if agent_type in AGENT_SUGGESTIONS:
        suggestions.append(AGENT_SUGGESTIONS[agent_type])

    rejected = [memory for memory in memories
                if memory.metadata.metrics and memory.metadata.metrics.approval_status in ('rejected', 'needs_revision')]
    if rejected:
        suggestions.append(f'Avoid the approaches behind {len(rejected)} rejected or revised item(s)')
    return suggestions


def calculate_agent_confidence(memories: Sequence[MemoryRecord], now: datetime) -> float:
    """0.5 + 0.2 x share of memories newer than 14 days + 0.3 x share endorsed by a human, capped at 1.0."""
    if not memories:
        return BASE_CONFIDENCE
    total = len(memories)
    recent = sum(1 for memory in memories if age_in_days(memory.created_at, now) < RECENT_DAYS)
    validated = sum(1 for memory in memories if memory.metadata.human_endorsed)
    confidence = BASE_CONFIDENCE + RECENCY_WEIGHT * recent / total + VALIDATION_WEIGHT * validated / total
    return min(confidence, 1.0)
