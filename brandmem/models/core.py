"""
Core data models for the brand memory layer.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..utils.timestamp_utils import ensure_utc, to_iso


@dataclass
class MemoryRecord:
    """One persisted observation about a user.

    ``metadata`` is a plain dict when the record comes straight from the
    primitive store and a typed metadata variant once the service has hydrated it.
    ``relevance_score`` is derived per query and never persisted as the true score.
    """
    id: str  # Store-assigned, immutable
    thread_id: str  # Workflow/session run the record came from
    user_id: str  # Owner
    content: str  # Human-readable text used for embedding and search
    metadata: Any
    created_at: datetime
    structured_data: Optional[Dict[str, Any]] = None
    embedding: Optional[List[float]] = None
    last_accessed_at: Optional[datetime] = None
    access_count: int = 0
    relevance_score: Optional[float] = None
    expires_at: Optional[datetime] = None

    @property
    def memory_type(self) -> Optional[str]:
        if isinstance(self.metadata, dict):
            return self.metadata.get('type')
        return getattr(self.metadata, 'type', None)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and ensure_utc(self.expires_at) <= ensure_utc(now)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation for agents and tool responses."""
        metadata = self.metadata
        if isinstance(metadata, BaseModel):
            metadata = metadata.model_dump(mode='json', exclude_none=True)
        return {
            'id': self.id,
            'thread_id': self.thread_id,
            'user_id': self.user_id,
            'content': self.content,
            'structured_data': self.structured_data,
            'metadata': metadata,
            'created_at': to_iso(self.created_at),
            'last_accessed_at': to_iso(self.last_accessed_at),
            'access_count': self.access_count,
            'relevance_score': self.relevance_score,
            'expires_at': to_iso(self.expires_at),
        }


@dataclass
class StructuredEntry:
    """One entry of a batch write."""
    content: str
    memory_type: str
    structured_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class GraphContext:
    """Memories reached from the vector results through one relationship kind."""
    relationship: str
    connected_memories: List[MemoryRecord]
    path_relevance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'relationship': self.relationship,
            'connected_memories': [memory.to_dict() for memory in self.connected_memories],
            'path_relevance': self.path_relevance,
        }


@dataclass
class VectorResult:
    memory: MemoryRecord
    relevance_score: float
    semantic_context: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'memory': self.memory.to_dict(),
            'relevance_score': self.relevance_score,
            'semantic_context': list(self.semantic_context),
        }


@dataclass
class ContextualInsights:
    patterns: List[str] = field(default_factory=list)
    trends: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class HybridResult:
    """Vector results combined with graph-neighbourhood context."""
    vector_results: List[VectorResult]
    graph_context: List[GraphContext]
    hybrid_score: float
    contextual_insights: ContextualInsights

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vector_results': [result.to_dict() for result in self.vector_results],
            'graph_context': [context.to_dict() for context in self.graph_context],
            'hybrid_score': self.hybrid_score,
            'contextual_insights': asdict(self.contextual_insights),
        }


@dataclass
class AgentContext:
    """Filtered, ranked and summarised memory subset prepared for one agent type."""
    relevant_memories: List[MemoryRecord]
    context_summary: str
    suggested_actions: List[str]
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'relevant_memories': [memory.to_dict() for memory in self.relevant_memories],
            'context_summary': self.context_summary,
            'suggested_actions': list(self.suggested_actions),
            'confidence': self.confidence,
        }


@dataclass
class SkillProgression:
    current_level: Dict[str, str] = field(default_factory=dict)
    recent_improvements: List[str] = field(default_factory=list)
    recommended_areas: List[str] = field(default_factory=list)


@dataclass
class ContentPerformance:
    total_generated: int = 0
    approval_rate: float = 0.0
    average_engagement: float = 0.0
    top_performing_platforms: List[str] = field(default_factory=list)


@dataclass
class BrandEvolution:
    strategic_changes: int = 0
    positioning_updates: List[str] = field(default_factory=list)
    market_adaptations: List[str] = field(default_factory=list)


@dataclass
class AgentLearning:
    workflow_optimizations: int = 0
    coordination_improvements: List[str] = field(default_factory=list)
    hitl_integration_score: float = 0.0


@dataclass
class RecommendedActions:
    content_opportunities: List[str] = field(default_factory=list)
    skill_development_areas: List[str] = field(default_factory=list)
    strategic_adjustments: List[str] = field(default_factory=list)
    networking_targets: List[str] = field(default_factory=list)


@dataclass
class ConfidenceMetrics:
    average_confidence: float = 0.8
    human_validation_rate: float = 0.0
    prediction_accuracy: float = 0.0


@dataclass
class BrandMemoryAnalytics:
    """Aggregated insights about a user's personal brand development."""
    user_id: str
    total_memories: int
    memory_distribution: Dict[str, int]
    skill_progression: SkillProgression
    content_performance: ContentPerformance
    brand_evolution: BrandEvolution
    agent_learning: AgentLearning
    recommended_actions: RecommendedActions
    confidence_metrics: ConfidenceMetrics

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
