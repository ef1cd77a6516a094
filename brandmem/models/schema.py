"""
Brand memory schema: memory types, typed metadata variants, search options and validation.

Metadata is a tagged union keyed by ``type``. Every variant carries the common
fields (importance, brand context, ...) plus only the sub-structures that make
sense for its memory type.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError


class ValidationError(ValueError):
    """Raised when a record, metadata or search options fail validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f'Invalid {field}: {message}')


class BrandMemoryType(str, Enum):
    """Personal brand memory categories."""
    DEV_ACHIEVEMENT = 'dev_achievement'
    CONTENT_PERFORMANCE = 'content_performance'
    BRAND_STRATEGY = 'brand_strategy'
    SKILL_PROFILE = 'skill_profile'
    CAREER_MILESTONE = 'career_milestone'
    MARKET_INSIGHT = 'market_insight'
    USER_FEEDBACK = 'user_feedback'
    WORKFLOW_LEARNING = 'workflow_learning'


class SkillLevel(str, Enum):
    BEGINNER = 'beginner'
    INTERMEDIATE = 'intermediate'
    ADVANCED = 'advanced'
    EXPERT = 'expert'


class ProjectComplexity(str, Enum):
    SIMPLE = 'simple'
    MEDIUM = 'medium'
    COMPLEX = 'complex'
    ENTERPRISE = 'enterprise'


class Platform(str, Enum):
    LINKEDIN = 'linkedin'
    TWITTER = 'twitter'
    BLOG = 'blog'
    NEWSLETTER = 'newsletter'
    GITHUB = 'github'


class ApprovalStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    NEEDS_REVISION = 'needs_revision'


class BrandRelationshipType(str, Enum):
    """Edge kinds in the brand relationship graph."""
    ACHIEVED = 'ACHIEVED'  # Developer -> Achievement
    USED_TECHNOLOGY = 'USED_TECHNOLOGY'  # Achievement -> Technology
    GENERATED_CONTENT = 'GENERATED_CONTENT'  # Achievement -> Content
    TARGETS_AUDIENCE = 'TARGETS_AUDIENCE'  # Content -> Audience
    SUPPORTS_GOAL = 'SUPPORTS_GOAL'  # Strategy -> Career Goal
    INFLUENCED_BY = 'INFLUENCED_BY'  # Strategy -> Market Trend
    REFINED_BY = 'REFINED_BY'  # Content -> User Feedback
    LEARNED_FROM = 'LEARNED_FROM'  # Agent -> Workflow Pattern
    EVOLVED_INTO = 'EVOLVED_INTO'  # Skill -> Higher Skill Level
    MEASURED_BY = 'MEASURED_BY'  # Content -> Performance Metric
    VALIDATES = 'VALIDATES'  # Human Feedback -> AI Decision
    OPTIMIZES = 'OPTIMIZES'  # Strategy -> Brand Performance


BRAND_GRAPH_LABELS = {
    'developer': 'Developer',
    'achievement': 'Achievement',
    'technology': 'Technology',
    'content': 'Content',
    'audience': 'Audience',
    'strategy': 'Strategy',
    'career_goal': 'CareerGoal',
    'market_trend': 'MarketTrend',
    'skill': 'Skill',
    'feedback': 'Feedback',
    'workflow': 'Workflow',
    'agent': 'Agent',
    'platform': 'Platform',
    'memory': 'Memory',
}

BRAND_MEMORY_COLLECTIONS: Dict[BrandMemoryType, str] = {
    BrandMemoryType.DEV_ACHIEVEMENT: 'dev_achievements',
    BrandMemoryType.CONTENT_PERFORMANCE: 'content_metrics',
    BrandMemoryType.BRAND_STRATEGY: 'brand_history',
    BrandMemoryType.SKILL_PROFILE: 'skill_evolution',
    BrandMemoryType.CAREER_MILESTONE: 'career_milestones',
    BrandMemoryType.MARKET_INSIGHT: 'market_intelligence',
    BrandMemoryType.USER_FEEDBACK: 'user_feedback',
    BrandMemoryType.WORKFLOW_LEARNING: 'agent_learning',
}

if set(BRAND_MEMORY_COLLECTIONS) != set(BrandMemoryType) or \
        len(set(BRAND_MEMORY_COLLECTIONS.values())) != len(BRAND_MEMORY_COLLECTIONS):
    raise RuntimeError('Every memory type must map to exactly one distinct collection')


def resolve_collection(memory_type: Union[BrandMemoryType, str]) -> str:
    """Sub-collection holding structured payloads for a memory type."""
    return BRAND_MEMORY_COLLECTIONS[coerce_memory_type(memory_type)]


def coerce_memory_type(value: Union[BrandMemoryType, str]) -> BrandMemoryType:
    try:
        return BrandMemoryType(value)
    except ValueError:
        raise ValidationError('type', f"unknown memory type '{value}'") from None


class _Strict(BaseModel):
    model_config = ConfigDict(extra='forbid', use_enum_values=True)


Score = Annotated[float, Field(ge=0.0, le=1.0)]


class BrandContext(_Strict):
    user_id: str = Field(min_length=1)
    analysis_id: Optional[str] = None
    content_id: Optional[str] = None
    strategy_version: Optional[str] = None
    confidence_score: Optional[Score] = None
    validated_by_human: Optional[bool] = None
    human_approved: Optional[bool] = None
    human_rating: Optional[int] = Field(default=None, ge=1, le=5)


class TechnicalData(_Strict):
    github_username: Optional[str] = None
    repositories: Optional[List[str]] = None
    technologies: Optional[List[str]] = None
    skill_level: Optional[SkillLevel] = None
    project_complexity: Optional[ProjectComplexity] = None


class ContentMetrics(_Strict):
    platform: Optional[Platform] = None
    engagement: Optional[float] = Field(default=None, ge=0.0)
    reach: Optional[int] = Field(default=None, ge=0)
    conversions: Optional[int] = Field(default=None, ge=0)
    generated_at: Optional[str] = None
    approval_status: Optional[ApprovalStatus] = None


class StrategicData(_Strict):
    target_audience: Optional[List[str]] = None
    market_segment: Optional[str] = None
    competitive_position: Optional[str] = None
    brand_pillars: Optional[List[str]] = None
    career_goals: Optional[List[str]] = None


class _MetadataBase(_Strict):
    source: str = 'brand-memory'
    tags: List[str] = Field(default_factory=list)
    importance: Score = 0.7
    persistent: bool = True
    user_id: Optional[str] = None
    brand_context: Optional[BrandContext] = None

    # Uniform accessors so ranking and analytics need not branch on the variant
    @property
    def technical(self) -> Optional[TechnicalData]:
        return getattr(self, 'technical_data', None)

    @property
    def metrics(self) -> Optional[ContentMetrics]:
        return getattr(self, 'content_metrics', None)

    @property
    def strategic(self) -> Optional[StrategicData]:
        return getattr(self, 'strategic_data', None)

    @property
    def confidence_score(self) -> Optional[float]:
        return self.brand_context.confidence_score if self.brand_context else None

    @property
    def validated_by_human(self) -> bool:
        return bool(self.brand_context and self.brand_context.validated_by_human)

    @property
    def human_endorsed(self) -> bool:
        """Validated by a human whose latest verdict was not a rejection."""
        return self.validated_by_human and self.brand_context.human_approved is not False


class DevAchievementMetadata(_MetadataBase):
    type: Literal['dev_achievement'] = 'dev_achievement'
    technical_data: Optional[TechnicalData] = None


class ContentPerformanceMetadata(_MetadataBase):
    type: Literal['content_performance'] = 'content_performance'
    content_metrics: Optional[ContentMetrics] = None
    strategic_data: Optional[StrategicData] = None


class BrandStrategyMetadata(_MetadataBase):
    type: Literal['brand_strategy'] = 'brand_strategy'
    strategic_data: Optional[StrategicData] = None


class SkillProfileMetadata(_MetadataBase):
    type: Literal['skill_profile'] = 'skill_profile'
    technical_data: Optional[TechnicalData] = None


class CareerMilestoneMetadata(_MetadataBase):
    type: Literal['career_milestone'] = 'career_milestone'
    technical_data: Optional[TechnicalData] = None
    strategic_data: Optional[StrategicData] = None


class MarketInsightMetadata(_MetadataBase):
    type: Literal['market_insight'] = 'market_insight'
    technical_data: Optional[TechnicalData] = None
    strategic_data: Optional[StrategicData] = None


class UserFeedbackMetadata(_MetadataBase):
    type: Literal['user_feedback'] = 'user_feedback'
    content_metrics: Optional[ContentMetrics] = None


class WorkflowLearningMetadata(_MetadataBase):
    type: Literal['workflow_learning'] = 'workflow_learning'


BrandMemoryMetadata = Annotated[Union[DevAchievementMetadata, ContentPerformanceMetadata, BrandStrategyMetadata,
                                      SkillProfileMetadata, CareerMilestoneMetadata, MarketInsightMetadata,
                                      UserFeedbackMetadata, WorkflowLearningMetadata],
                                Field(discriminator='type')]

METADATA_VARIANTS = {
    BrandMemoryType.DEV_ACHIEVEMENT: DevAchievementMetadata,
    BrandMemoryType.CONTENT_PERFORMANCE: ContentPerformanceMetadata,
    BrandMemoryType.BRAND_STRATEGY: BrandStrategyMetadata,
    BrandMemoryType.SKILL_PROFILE: SkillProfileMetadata,
    BrandMemoryType.CAREER_MILESTONE: CareerMilestoneMetadata,
    BrandMemoryType.MARKET_INSIGHT: MarketInsightMetadata,
    BrandMemoryType.USER_FEEDBACK: UserFeedbackMetadata,
    BrandMemoryType.WORKFLOW_LEARNING: WorkflowLearningMetadata,
}

_METADATA_ADAPTER = TypeAdapter(BrandMemoryMetadata)


class TimeRange(_Strict):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode='after')
    def _ordered(self) -> 'TimeRange':
        if self.start and self.end and self.start > self.end:
            raise ValueError('start must not be after end')
        return self


class BrandContextFilter(_Strict):
    analysis_id: Optional[str] = None
    content_id: Optional[str] = None
    strategy_version: Optional[str] = None
    include_expired: bool = False


class TechnicalFilter(_Strict):
    technologies: Optional[List[str]] = None
    skill_levels: Optional[List[SkillLevel]] = None
    platforms: Optional[List[Platform]] = None


class StrategicFilter(_Strict):
    target_audiences: Optional[List[str]] = None
    market_segments: Optional[List[str]] = None
    brand_pillars: Optional[List[str]] = None


class ValidationStatusFilter(_Strict):
    human_validated: Optional[bool] = None
    min_confidence: Optional[Score] = None
    approval_status: Optional[List[ApprovalStatus]] = None


class BrandMemorySearchOptions(_Strict):
    """Search parameters for brand memory queries. ``user_id`` is mandatory."""
    user_id: str
    query: Optional[str] = None
    thread_id: Optional[str] = None
    memory_types: Optional[List[BrandMemoryType]] = None
    limit: Optional[int] = Field(default=None, gt=0)
    offset: Optional[int] = Field(default=None, ge=0)
    min_relevance: Optional[Score] = None
    time_range: Optional[TimeRange] = None
    brand_context: Optional[BrandContextFilter] = None
    technical_filter: Optional[TechnicalFilter] = None
    strategic_filter: Optional[StrategicFilter] = None
    validation_status: Optional[ValidationStatusFilter] = None

    @field_validator('user_id')
    @classmethod
    def _user_id_present(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError('user_id is required')
        return value


class HumanFeedback(_Strict):
    """Human-in-the-loop verdict on a piece of generated content."""
    approved: bool
    corrections: Optional[str] = None
    suggestions: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    categories: Optional[List[str]] = None


_VARIANT_TAGS = {member.value for member in BrandMemoryType}


def _field_path(error: Mapping[str, Any], prefix: str) -> str:
    parts = [str(part) for part in error.get('loc', ()) if str(part) not in _VARIANT_TAGS]
    if not parts:
        return prefix or 'value'
    return '.'.join([prefix, *parts]) if prefix else '.'.join(parts)


def _translate(error: PydanticValidationError, prefix: str = '') -> ValidationError:
    first = error.errors()[0]
    return ValidationError(_field_path(first, prefix), first.get('msg', 'invalid value'))


def require_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError('user_id', 'user_id is required')
    return user_id


def validate_metadata(data: Union[Mapping[str, Any], BaseModel]) -> BrandMemoryMetadata:
    """Validate a metadata mapping into its typed variant."""
    if isinstance(data, _MetadataBase):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError('metadata', 'metadata must be a mapping')
    if 'type' not in data:
        raise ValidationError('metadata.type', 'memory type is required')
    coerce_memory_type(data['type'])
    try:
        return _METADATA_ADAPTER.validate_python(dict(data))
    except PydanticValidationError as e:
        raise _translate(e, 'metadata') from None


def validate_search_options(options: Union[Mapping[str, Any], BrandMemorySearchOptions]) -> BrandMemorySearchOptions:
    """Validate search options, accepting either a mapping or a model instance."""
    if isinstance(options, BrandMemorySearchOptions):
        return options
    if not isinstance(options, Mapping):
        raise ValidationError('options', 'search options must be a mapping')
    try:
        return BrandMemorySearchOptions.model_validate(dict(options))
    except PydanticValidationError as e:
        raise _translate(e) from None


def validate_feedback(feedback: Union[Mapping[str, Any], HumanFeedback]) -> HumanFeedback:
    if isinstance(feedback, HumanFeedback):
        return feedback
    if not isinstance(feedback, Mapping):
        raise ValidationError('feedback', 'feedback must be a mapping')
    try:
        return HumanFeedback.model_validate(dict(feedback))
    except PydanticValidationError as e:
        raise _translate(e, 'feedback') from None


def dump_metadata(metadata: BrandMemoryMetadata) -> Dict[str, Any]:
    """Plain-dict form handed to the primitive store."""
    return metadata.model_dump(mode='json', exclude_none=True)
