"""
Aggregate analytics over a user's full brand memory set.

All functions are pure: they take the memories already fetched and derive
statistics from them without touching any store.
"""

from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence

from ..models.core import (AgentLearning, BrandEvolution, BrandMemoryAnalytics, ConfidenceMetrics, ContentPerformance,
                           MemoryRecord, RecommendedActions, SkillProgression)
from ..models.schema import ApprovalStatus, BrandMemoryType, SkillLevel

DEFAULT_AVERAGE_CONFIDENCE = 0.8
MAX_LIST_ITEMS = 5
TOP_PLATFORMS = 3

SKILL_RANK = {level.value: rank for rank, level in enumerate(SkillLevel)}
GROWTH_LEVELS = (SkillLevel.BEGINNER.value, SkillLevel.INTERMEDIATE.value)
SKILL_TYPES = (BrandMemoryType.DEV_ACHIEVEMENT.value, BrandMemoryType.SKILL_PROFILE.value)


def _of_type(memories: Sequence[MemoryRecord], *types: str) -> List[MemoryRecord]:
    return [memory for memory in memories if memory.memory_type in types]


def _chronological(memories: Sequence[MemoryRecord], newest_first: bool = False) -> List[MemoryRecord]:
    return sorted(memories, key=lambda memory: memory.created_at, reverse=newest_first)


def _unique(values, limit: Optional[int] = MAX_LIST_ITEMS) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen[:limit] if limit else seen


def _mean(values: Sequence[float], default: float = 0.0) -> float:
    return sum(values) / len(values) if values else default


def calculate_memory_distribution(memories: Sequence[MemoryRecord]) -> Dict[str, int]:
    distribution = {memory_type.value: 0 for memory_type in BrandMemoryType}
    for memory in memories:
        distribution[memory.memory_type] = distribution.get(memory.memory_type, 0) + 1
    return distribution


def analyze_skill_progression(memories: Sequence[MemoryRecord]) -> SkillProgression:
    """Latest level per technology and the technologies that moved up a level."""
    history: Dict[str, List[str]] = defaultdict(list)
    for memory in _chronological(_of_type(memories, *SKILL_TYPES)):
        technical = memory.metadata.technical
        if not technical or not technical.skill_level:
            continue
        for technology in technical.technologies or []:
            history[technology.strip()].append(technical.skill_level)

    progression = SkillProgression()
    for technology, levels in history.items():
        latest = levels[-1]
        progression.current_level[technology] = latest
        earlier = levels[:-1]
        if earlier:
            previous_best = max(earlier, key=SKILL_RANK.__getitem__)
            if SKILL_RANK[latest] > SKILL_RANK[previous_best]:
                progression.recent_improvements.append(f'{technology}: {previous_best} -> {latest}')
    progression.recommended_areas = sorted(tech for tech, level in progression.current_level.items() if level in GROWTH_LEVELS)
    return progression


def analyze_content_performance(memories: Sequence[MemoryRecord]) -> ContentPerformance:
    content = _of_type(memories, BrandMemoryType.CONTENT_PERFORMANCE.value)
    statuses = []
    engagements = []
    by_platform: Dict[str, List[float]] = defaultdict(list)
    for memory in content:
        metrics = memory.metadata.metrics
        if not metrics:
            continue
        if metrics.approval_status:
            statuses.append(metrics.approval_status)
        if metrics.engagement is not None:
            engagements.append(metrics.engagement)
        if metrics.platform:
            by_platform[metrics.platform].append(metrics.engagement or 0.0)

    ranked_platforms = sorted(by_platform, key=lambda platform: (_mean(by_platform[platform]), len(by_platform[platform])),
                              reverse=True)
    approved = sum(1 for status in statuses if status == ApprovalStatus.APPROVED.value)
    return ContentPerformance(total_generated=len(content),
                              approval_rate=approved / len(statuses) if statuses else 0.0,
                              average_engagement=_mean(engagements),
                              top_performing_platforms=ranked_platforms[:TOP_PLATFORMS])


def analyze_brand_evolution(memories: Sequence[MemoryRecord]) -> BrandEvolution:
    strategies = _chronological(_of_type(memories, BrandMemoryType.BRAND_STRATEGY.value), newest_first=True)
    positioning = []
    for memory in strategies:
        strategic = memory.metadata.strategic
        if strategic:
            positioning.extend(strategic.brand_pillars or [])
            positioning.append(strategic.competitive_position)

    market_sources = _chronological(
        _of_type(memories, BrandMemoryType.MARKET_INSIGHT.value, BrandMemoryType.BRAND_STRATEGY.value), newest_first=True)
    segments = [memory.metadata.strategic.market_segment for memory in market_sources if memory.metadata.strategic]

    return BrandEvolution(strategic_changes=len(strategies),
                          positioning_updates=_unique(positioning),
                          market_adaptations=_unique(segments))


def analyze_agent_learning(memories: Sequence[MemoryRecord]) -> AgentLearning:
    workflows = _chronological(_of_type(memories, BrandMemoryType.WORKFLOW_LEARNING.value), newest_first=True)
    improvements = [memory.content.strip()[:120] for memory in workflows]

    # Share of generated content that received human feedback
    content_ids = {
        memory.metadata.brand_context.content_id
        for memory in _of_type(memories, BrandMemoryType.CONTENT_PERFORMANCE.value)
        if memory.metadata.brand_context and memory.metadata.brand_context.content_id
    }
    reviewed_ids = {
        memory.metadata.brand_context.content_id
        for memory in _of_type(memories, BrandMemoryType.USER_FEEDBACK.value)
        if memory.metadata.brand_context and memory.metadata.brand_context.content_id
    }
    hitl_score = len(content_ids & reviewed_ids) / len(content_ids) if content_ids else 0.0

    return AgentLearning(workflow_optimizations=len(workflows),
                         coordination_improvements=_unique(improvements),
                         hitl_integration_score=hitl_score)


def calculate_confidence_metrics(memories: Sequence[MemoryRecord]) -> ConfidenceMetrics:
    scores = [memory.metadata.confidence_score for memory in memories if memory.metadata.confidence_score is not None]
    validated = sum(1 for memory in memories if memory.metadata.validated_by_human)

    verdicts = []
    for memory in _of_type(memories, BrandMemoryType.USER_FEEDBACK.value):
        metrics = memory.metadata.metrics
        if metrics and metrics.approval_status:
            verdicts.append(metrics.approval_status == ApprovalStatus.APPROVED.value)

    return ConfidenceMetrics(average_confidence=_mean(scores, DEFAULT_AVERAGE_CONFIDENCE),
                             human_validation_rate=validated / len(memories) if memories else 0.0,
                             prediction_accuracy=sum(verdicts) / len(verdicts) if verdicts else 0.0)


def generate_recommendations(memories: Sequence[MemoryRecord], skills: SkillProgression, content: ContentPerformance,
                             confidence: ConfidenceMetrics) -> RecommendedActions:
    technologies: Counter = Counter()
    audiences = []
    for memory in _chronological(memories, newest_first=True):
        technical = memory.metadata.technical
        if technical and technical.technologies:
            technologies.update(tech.strip() for tech in technical.technologies if tech.strip())
        strategic = memory.metadata.strategic
        if strategic:
            audiences.extend(strategic.target_audience or [])

    actions = RecommendedActions()
    for technology, _ in technologies.most_common(3):
        actions.content_opportunities.append(f'Write about your {technology} work')
    if content.top_performing_platforms:
        actions.content_opportunities.append(
            f'Publish more on {content.top_performing_platforms[0]}, your best-performing platform')

    actions.skill_development_areas = skills.recommended_areas[:MAX_LIST_ITEMS]

    if content.total_generated and content.approval_rate < 0.5:
        actions.strategic_adjustments.append(f'Revisit content approach: approval rate is {content.approval_rate:.0%}')
    if memories and confidence.human_validation_rate < 0.3:
        actions.strategic_adjustments.append('Increase human review of agent output')
    if not _of_type(memories, BrandMemoryType.BRAND_STRATEGY.value):
        actions.strategic_adjustments.append('Define brand pillars and target audience')

    actions.networking_targets = [f'Engage with {audience}' for audience in _unique(audiences)]
    return actions


def build_brand_analytics(user_id: str, memories: Sequence[MemoryRecord]) -> BrandMemoryAnalytics:
    skills = analyze_skill_progression(memories)
    content = analyze_content_performance(memories)
    confidence = calculate_confidence_metrics(memories)
    return BrandMemoryAnalytics(user_id=user_id,
                                total_memories=len(memories),
                                memory_distribution=calculate_memory_distribution(memories),
                                skill_progression=skills,
                                content_performance=content,
                                brand_evolution=analyze_brand_evolution(memories),
                                agent_learning=analyze_agent_learning(memories),
                                recommended_actions=generate_recommendations(memories, skills, content, confidence),
                                confidence_metrics=confidence)
