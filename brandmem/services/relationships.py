"""
Relationship inference: derives graph edges from a memory record's metadata.

Graph nodes are addressed by ``<kind>:<value>`` keys, so memory nodes look like
``memory:<record id>`` and technologies like ``technology:python``.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..models.core import MemoryRecord
from ..models.schema import BrandMemoryType, BrandRelationshipType

MEMORY_KIND = 'memory'


@dataclass(frozen=True)
class Relationship:
    from_node: str
    edge_type: str
    to_node: str


def node_key(kind: str, value: str) -> str:
    return f'{kind}:{value.strip().lower() if kind != MEMORY_KIND else value}'


def memory_node(memory_id: str) -> str:
    return node_key(MEMORY_KIND, memory_id)


def node_kind(key: str) -> str:
    return key.split(':', 1)[0]


def memory_id_from_node(key: str) -> Optional[str]:
    """Record id behind a memory node key, None for any other node kind."""
    kind, _, value = key.partition(':')
    return value if kind == MEMORY_KIND and value else None


def infer_brand_relationships(record: MemoryRecord) -> List[Relationship]:
    """Edges implied by a record's type and metadata, without duplicates, in a stable order."""
    metadata = record.metadata
    memory = memory_node(record.id)
    memory_type = metadata.type
    technical = metadata.technical
    metrics = metadata.metrics
    strategic = metadata.strategic
    relationships: List[Relationship] = []

    if memory_type == BrandMemoryType.DEV_ACHIEVEMENT:
        relationships.append(Relationship(node_key('developer', record.user_id), BrandRelationshipType.ACHIEVED.value, memory))

    if technical and technical.technologies:
        for technology in technical.technologies:
            if technology.strip():
                relationships.append(
                    Relationship(memory, BrandRelationshipType.USED_TECHNOLOGY.value, node_key('technology', technology)))

    if memory_type == BrandMemoryType.SKILL_PROFILE and technical and technical.skill_level:
        relationships.append(
            Relationship(memory, BrandRelationshipType.EVOLVED_INTO.value, node_key('skill', technical.skill_level)))

    if metrics and metrics.platform and memory_type == BrandMemoryType.CONTENT_PERFORMANCE:
        relationships.append(Relationship(memory, BrandRelationshipType.MEASURED_BY.value, node_key('platform', metrics.platform)))

    if strategic:
        for audience in strategic.target_audience or []:
            relationships.append(
                Relationship(memory, BrandRelationshipType.TARGETS_AUDIENCE.value, node_key('audience', audience)))
        for goal in strategic.career_goals or []:
            relationships.append(Relationship(memory, BrandRelationshipType.SUPPORTS_GOAL.value, node_key('career_goal', goal)))
        if strategic.market_segment and memory_type == BrandMemoryType.BRAND_STRATEGY:
            relationships.append(
                Relationship(memory, BrandRelationshipType.INFLUENCED_BY.value,
                             node_key('market_trend', strategic.market_segment)))

    brand_context = metadata.brand_context
    if memory_type == BrandMemoryType.USER_FEEDBACK and brand_context and brand_context.content_id:
        relationships.append(
            Relationship(node_key('content', brand_context.content_id), BrandRelationshipType.REFINED_BY.value, memory))

    unique = []
    for relationship in relationships:
        if relationship not in unique:
            unique.append(relationship)
    return unique
