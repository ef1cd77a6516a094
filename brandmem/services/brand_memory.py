"""
Brand Memory Service: the public operations agents call to write, search and
learn from a user's brand memory.

The service owns no storage of its own. It composes a primitive store
(content, metadata, embeddings, similarity search) with a relationship store
(typed graph edges, traversal) and adds brand-specific validation, filtering,
ranking, graph context and analytics on top.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..models.core import AgentContext, BrandMemoryAnalytics, GraphContext, HybridResult, MemoryRecord, StructuredEntry, VectorResult
from ..models.schema import (ApprovalStatus, BrandMemoryMetadata, BrandMemorySearchOptions, BrandMemoryType,
                             BrandRelationshipType, HumanFeedback, ValidationError, coerce_memory_type, dump_metadata,
                             require_user_id, resolve_collection, validate_feedback, validate_metadata,
                             validate_search_options)
from ..models.stores import PrimitiveStore, RelationshipStore
from ..utils.config import AppConfig, BrandMemoryConfig, config
from ..utils.logging_config import get_logger
from ..utils.neptune_client import NeptuneRelationshipStore
from ..utils.opensearch_client import OpenSearchMemoryStore
from ..utils.timestamp_utils import utc_now
from .agent_context import (calculate_agent_confidence, generate_agent_suggestions, generate_context_summary,
                            memory_types_for_agent)
from .analytics import build_brand_analytics
from .insights import extract_semantic_context, generate_contextual_insights
from .ranking import calculate_hybrid_score, matches_brand_criteria, rank_memories
from .relationships import infer_brand_relationships, memory_id_from_node, memory_node

logger = get_logger(__name__)

DEFAULT_IMPORTANCE = 0.7
DEFAULT_CONFIDENCE_SCORE = 0.8
BRAND_MEMORY_SOURCE = 'brand-memory'

HYBRID_MIN_RELEVANCE = 0.5
DEFAULT_VECTOR_RELEVANCE = 0.8
DEFAULT_PATH_RELEVANCE = 0.7
# Graph fan-out bounds, per vector result
GRAPH_PATHS_PER_RESULT = 20
CONNECTED_MEMORIES_PER_RESULT = 5
ANALYTICS_SCAN_LIMIT = 1000

FEEDBACK_CONFIDENCE_APPROVED = 1.0
FEEDBACK_CONFIDENCE_REJECTED = 0.3
FEEDBACK_IMPORTANCE_APPROVED = 0.9
FEEDBACK_IMPORTANCE_REJECTED = 0.8


class BrandMemoryError(Exception):
    """Raised when a critical step of a public operation fails."""

    def __init__(self, operation: str, cause: Any):
        self.operation = operation
        self.cause = cause
        super().__init__(f'{operation} failed: {cause}')


def build_brand_metadata(user_id: str,
                         memory_type: Union[BrandMemoryType, str],
                         overrides: Optional[Mapping[str, Any]] = None) -> BrandMemoryMetadata:
    """Merge the base brand fields with caller overrides and validate the result.

    Overrides win key by key; ``brand_context`` overrides are merged into the
    default brand context rather than replacing it.

    Args:
        user_id: Owner of the memory
        memory_type: Brand memory type
        overrides: Caller-supplied metadata fields

    Returns:
        Typed metadata variant for ``memory_type``

    Raises:
        ValidationError: If the merged metadata is invalid
    """
    memory_type = coerce_memory_type(memory_type).value
    if overrides is not None and not isinstance(overrides, Mapping):
        raise ValidationError('metadata', 'metadata overrides must be a mapping')
    overrides = dict(overrides or {})

    if 'type' in overrides and coerce_memory_type(overrides.pop('type')).value != memory_type:
        raise ValidationError('metadata.type', f"override does not match memory type '{memory_type}'")

    context_overrides = overrides.pop('brand_context', None) or {}
    if not isinstance(context_overrides, Mapping):
        raise ValidationError('metadata.brand_context', 'brand_context must be a mapping')

    metadata = {
        'type': memory_type,
        'source': BRAND_MEMORY_SOURCE,
        'importance': DEFAULT_IMPORTANCE,
        'persistent': True,
        'user_id': user_id,
        'brand_context': {
            'user_id': user_id,
            'confidence_score': DEFAULT_CONFIDENCE_SCORE,
            **context_overrides
        },
    }
    metadata.update(overrides)
    return validate_metadata(metadata)


def feedback_content(content_id: str, feedback: HumanFeedback) -> str:
    verdict = 'APPROVED' if feedback.approved else 'REJECTED'
    text = f'Human feedback for content {content_id}: {verdict}'
    if feedback.corrections:
        text += f' - Corrections: {feedback.corrections}'
    if feedback.suggestions:
        text += f' - Suggestions: {feedback.suggestions}'
    return text


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f'{field} is required')
    return value


class BrandMemoryService:
    """Brand memory operations composed over a primitive store and a relationship store."""

    def __init__(self,
                 primitive_store: PrimitiveStore,
                 relationship_store: RelationshipStore,
                 memory_config: Optional[BrandMemoryConfig] = None,
                 clock: Callable[[], datetime] = utc_now):
        """Initialize the brand memory service.

        Args:
            primitive_store: Content/embedding store
            relationship_store: Graph store for relationship edges
            memory_config: BrandMemoryConfig instance, uses default if None
            clock: Source of the current time
        """
        self.primitive_store = primitive_store
        self.relationship_store = relationship_store
        self.memory_config = memory_config or config.memory
        self.clock = clock
        logger.info('Initialized BrandMemoryService')

    @classmethod
    def from_config(cls, app_config: Optional[AppConfig] = None) -> 'BrandMemoryService':
        """Build the service on the OpenSearch and Neptune backends."""
        app_config = app_config or config
        return cls(OpenSearchMemoryStore(app_config.opensearch, app_config.bedrock_embed),
                   NeptuneRelationshipStore(app_config.neptune), app_config.memory)

    def store_brand_memory(self,
                           user_id: str,
                           thread_id: str,
                           content: str,
                           memory_type: Union[BrandMemoryType, str],
                           structured_data: Optional[Dict[str, Any]] = None,
                           metadata_overrides: Optional[Mapping[str, Any]] = None,
                           timeout: Optional[float] = None) -> MemoryRecord:
        """Store one brand memory.

        The primary write is critical. The structured-data copy and the derived
        relationship edges are best-effort.

        Args:
            user_id: Owner of the memory
            thread_id: Workflow run the memory came from
            content: Human-readable text, used for embedding
            memory_type: Brand memory type
            structured_data: Optional payload stored in the type's sub-collection
            metadata_overrides: Metadata fields overriding the defaults
            timeout: Per-request store timeout in seconds

        Returns:
            Hydrated MemoryRecord with typed metadata and structured data

        Raises:
            ValidationError: If any input is invalid
            BrandMemoryError: If the primary write fails
        """
        return self._store_one(user_id, thread_id, content, memory_type, structured_data, metadata_overrides, timeout,
                               operation='store_brand_memory')

    def store_brand_memories_batch(self,
                                   user_id: str,
                                   thread_id: str,
                                   entries: Sequence[Union[StructuredEntry, Mapping[str, Any]]],
                                   timeout: Optional[float] = None) -> List[MemoryRecord]:
        """Store several brand memories with one primary batch write.

        Secondary writes run per entry on a bounded worker pool after the batch
        has been persisted; their failures never affect the returned records.

        Args:
            user_id: Owner of the memories
            thread_id: Workflow run the memories came from
            entries: StructuredEntry objects or mappings with ``content``,
                ``memory_type`` (or ``type``), ``structured_data`` and ``metadata``
            timeout: Per-request store timeout in seconds

        Returns:
            Hydrated records in input order
        """
        if not entries:
            return []

        user_id = require_user_id(user_id)
        thread_id = _require_text(thread_id, 'thread_id')
        prepared = [self._prepare_entry(user_id, index, entry) for index, entry in enumerate(entries)]
        expires_at = self._default_expiry()
        payload = [{
            'content': content,
            'metadata': dump_metadata(metadata),
            'expires_at': expires_at
        } for content, metadata, _ in prepared]

        try:
            stored = self.primitive_store.store_batch(thread_id, payload, user_id, timeout=timeout)
        except Exception as e:
            logger.error(f'Batch store of {len(payload)} brand memories failed for user {user_id}: {e}')
            raise BrandMemoryError('store_brand_memories_batch', e) from e

        if len(stored) != len(prepared):
            raise BrandMemoryError('store_brand_memories_batch',
                                   f'store returned {len(stored)} records for {len(prepared)} entries')

        records = [
            replace(record, metadata=metadata, structured_data=structured_data)
            for record, (_, metadata, structured_data) in zip(stored, prepared)
        ]

        with ThreadPoolExecutor(max_workers=self.memory_config.secondary_write_workers) as executor:
            list(executor.map(partial(self._write_secondary, timeout=timeout), records))

        logger.debug(f'Stored batch of {len(records)} brand memories for user {user_id}')
        return records

    def search_brand_memories(self,
                              options: Union[BrandMemorySearchOptions, Mapping[str, Any]],
                              timeout: Optional[float] = None) -> List[MemoryRecord]:
        """Search brand memories with brand-specific filtering and ranking.

        Args:
            options: BrandMemorySearchOptions or an equivalent mapping; ``user_id`` is required
            timeout: Per-request store timeout in seconds

        Returns:
            Filtered records sorted by descending brand relevance
        """
        options = validate_search_options(options)
        return self._search(options, timeout, operation='search_brand_memories')

    def hybrid_brand_search(self,
                            user_id: str,
                            query: str,
                            max_vector_results: int = 10,
                            max_graph_depth: int = 2,
                            include_related_memories: bool = True,
                            context_threshold: float = DEFAULT_PATH_RELEVANCE,
                            timeout: Optional[float] = None) -> HybridResult:
        """Vector search enriched with memories reachable through the relationship graph.

        Args:
            user_id: Owner of the memories
            query: Free-text query
            max_vector_results: Maximum number of vector results
            max_graph_depth: Maximum traversal depth in hops
            include_related_memories: Whether to traverse the graph at all
            context_threshold: Minimum path relevance of graph context
            timeout: Per-request store timeout in seconds

        Returns:
            HybridResult with vector results, graph context, score and insights
        """
        if not isinstance(max_graph_depth, int) or max_graph_depth < 1:
            raise ValidationError('max_graph_depth', 'must be a positive integer')
        if not 0.0 <= context_threshold <= 1.0:
            raise ValidationError('context_threshold', 'must be within [0, 1]')
        options = validate_search_options({
            'user_id': user_id,
            'query': query,
            'limit': max_vector_results,
            'min_relevance': HYBRID_MIN_RELEVANCE
        })

        memories = self._search(options, timeout, operation='hybrid_brand_search')

        graph_context: List[GraphContext] = []
        if include_related_memories and memories:
            graph_context = self._find_related_memories(options.user_id, memories, max_graph_depth, context_threshold,
                                                        timeout)

        vector_results = [
            VectorResult(memory=memory,
                         relevance_score=memory.relevance_score
                         if memory.relevance_score is not None else DEFAULT_VECTOR_RELEVANCE,
                         semantic_context=extract_semantic_context(memory)) for memory in memories
        ]
        hybrid_score = calculate_hybrid_score(memories, graph_context)
        insights = generate_contextual_insights(memories, graph_context, self.clock())

        logger.debug(f'Hybrid search for user {user_id}: {len(vector_results)} vector results, '
                     f'{len(graph_context)} graph contexts, score {hybrid_score:.3f}')
        return HybridResult(vector_results=vector_results,
                            graph_context=graph_context,
                            hybrid_score=hybrid_score,
                            contextual_insights=insights)

    def get_brand_analytics(self, user_id: str, timeout: Optional[float] = None) -> BrandMemoryAnalytics:
        """Aggregate analytics over up to 1000 of the user's memories.

        Args:
            user_id: Owner of the memories
            timeout: Per-request store timeout in seconds

        Returns:
            BrandMemoryAnalytics computed from the fetched memory set
        """
        options = validate_search_options({
            'user_id': user_id,
            'limit': ANALYTICS_SCAN_LIMIT,
            'min_relevance': 0.0,
            'brand_context': {
                'include_expired': True
            }
        })
        memories = self._search(options, timeout, operation='get_brand_analytics')
        analytics = build_brand_analytics(options.user_id, memories)
        logger.debug(f'Computed brand analytics for user {user_id} over {len(memories)} memories')
        return analytics

    def get_brand_context_for_agent(self,
                                    user_id: str,
                                    agent_type: str,
                                    current_task: str,
                                    max_memories: int = 15,
                                    time_window_days: int = 30,
                                    include_validated_only: bool = False,
                                    timeout: Optional[float] = None) -> AgentContext:
        """Memory context for one agent working on one task.

        The memory lookup is best-effort: when the store fails the agent gets
        an empty context with base confidence instead of an error.

        Args:
            user_id: Owner of the memories
            agent_type: ``github-analyzer``, ``content-creator``, ``brand-strategist`` or any other agent
            current_task: Task description, used as the search query
            max_memories: Maximum number of memories to return
            time_window_days: Only memories created within this many days
            include_validated_only: Restrict to human-validated memories
            timeout: Per-request store timeout in seconds

        Returns:
            AgentContext with memories, summary, suggestions and confidence
        """
        agent_type = _require_text(agent_type, 'agent_type')
        current_task = _require_text(current_task, 'current_task')
        if not isinstance(time_window_days, int) or time_window_days < 1:
            raise ValidationError('time_window_days', 'must be a positive integer')

        now = self.clock()
        options: Dict[str, Any] = {
            'user_id': user_id,
            'query': current_task,
            'memory_types': memory_types_for_agent(agent_type),
            'limit': max_memories,
            'time_range': {
                'start': now - timedelta(days=time_window_days)
            },
        }
        if include_validated_only:
            options['validation_status'] = {'human_validated': True}
        options = validate_search_options(options)

        try:
            memories = self._search(options, timeout, operation='get_brand_context_for_agent')
        except BrandMemoryError as e:
            logger.warning(f'Memory lookup for {agent_type} failed, continuing without context: {e}')
            memories = []

        confidence = calculate_agent_confidence(memories, now)
        logger.debug(f'Generated {agent_type} context for user {user_id}: '
                     f'{len(memories)} memories, confidence {confidence:.2f}')
        return AgentContext(relevant_memories=memories,
                            context_summary=generate_context_summary(memories, agent_type, current_task),
                            suggested_actions=generate_agent_suggestions(memories, agent_type),
                            confidence=confidence)

    def store_human_feedback(self,
                             user_id: str,
                             content_id: str,
                             feedback: Union[HumanFeedback, Mapping[str, Any]],
                             related_memory_ids: Optional[Sequence[str]] = None,
                             timeout: Optional[float] = None) -> MemoryRecord:
        """Record a human verdict on generated content and propagate it to related memories.

        Args:
            user_id: Reviewer / owner of the content
            content_id: Identifier of the reviewed content
            feedback: HumanFeedback or an equivalent mapping
            related_memory_ids: Memories whose validation status should follow the verdict
            timeout: Per-request store timeout in seconds

        Returns:
            The new user_feedback record
        """
        user_id = require_user_id(user_id)
        content_id = _require_text(content_id, 'content_id')
        feedback = validate_feedback(feedback)
        related_ids = [memory_id for memory_id in (related_memory_ids or []) if memory_id]

        confidence = FEEDBACK_CONFIDENCE_APPROVED if feedback.approved else FEEDBACK_CONFIDENCE_REJECTED
        if feedback.approved:
            status = ApprovalStatus.APPROVED
        elif feedback.corrections:
            status = ApprovalStatus.NEEDS_REVISION
        else:
            status = ApprovalStatus.REJECTED

        overrides = {
            'importance': FEEDBACK_IMPORTANCE_APPROVED if feedback.approved else FEEDBACK_IMPORTANCE_REJECTED,
            'tags': ['human-feedback', *(feedback.categories or [])],
            'brand_context': {
                'content_id': content_id,
                'confidence_score': confidence,
                'validated_by_human': True,
                'human_rating': feedback.rating,
            },
            'content_metrics': {
                'approval_status': status.value
            },
        }
        structured_data = {
            'content_id': content_id,
            'related_memory_ids': related_ids,
            **feedback.model_dump(mode='json', exclude_none=True)
        }

        record = self._store_one(user_id,
                                 f'feedback_{content_id}',
                                 feedback_content(content_id, feedback),
                                 BrandMemoryType.USER_FEEDBACK,
                                 structured_data,
                                 overrides,
                                 timeout,
                                 operation='store_human_feedback')

        patch: Dict[str, Any] = {
            'user_id': user_id,
            'validated_by_human': True,
            'human_approved': feedback.approved,
            'confidence_score': confidence
        }
        if feedback.rating is not None:
            patch['human_rating'] = feedback.rating
        for memory_id in related_ids:
            self._propagate_validation(record, memory_id, {'brand_context': patch}, timeout)

        logger.debug(f'Stored human feedback {record.id} for content {content_id} '
                     f'({status.value}), {len(related_ids)} related memories')
        return record

    def _store_one(self, user_id: str, thread_id: str, content: str, memory_type: Union[BrandMemoryType, str],
                   structured_data: Optional[Dict[str, Any]], metadata_overrides: Optional[Mapping[str, Any]],
                   timeout: Optional[float], operation: str) -> MemoryRecord:
        user_id = require_user_id(user_id)
        thread_id = _require_text(thread_id, 'thread_id')
        content = _require_text(content, 'content')
        if structured_data is not None and not isinstance(structured_data, dict):
            raise ValidationError('structured_data', 'structured_data must be a mapping')
        metadata = build_brand_metadata(user_id, memory_type, metadata_overrides)

        try:
            stored = self.primitive_store.store(thread_id=thread_id,
                                                content=content,
                                                metadata=dump_metadata(metadata),
                                                user_id=user_id,
                                                expires_at=self._default_expiry(),
                                                timeout=timeout)
        except Exception as e:
            logger.error(f'Failed to store {metadata.type} memory for user {user_id}: {e}')
            raise BrandMemoryError(operation, e) from e

        record = replace(stored, metadata=metadata, structured_data=structured_data)
        self._write_secondary(record, timeout=timeout)
        logger.debug(f'Stored brand memory {record.id} of type {metadata.type} for user {user_id}')
        return record

    def _prepare_entry(self, user_id: str, index: int,
                       entry: Union[StructuredEntry, Mapping[str, Any]]) -> Tuple[str, BrandMemoryMetadata, Optional[Dict]]:
        if isinstance(entry, StructuredEntry):
            content, memory_type = entry.content, entry.memory_type
            structured_data, overrides = entry.structured_data, entry.metadata
        elif isinstance(entry, Mapping):
            content = entry.get('content')
            memory_type = entry.get('memory_type') or entry.get('type')
            structured_data, overrides = entry.get('structured_data'), entry.get('metadata')
        else:
            raise ValidationError(f'entries.{index}', 'entry must be a StructuredEntry or a mapping')

        try:
            content = _require_text(content, 'content')
            if memory_type is None:
                raise ValidationError('type', 'memory type is required')
            metadata = build_brand_metadata(user_id, memory_type, overrides)
        except ValidationError as e:
            raise ValidationError(f'entries.{index}.{e.field}', e.message) from None
        return content, metadata, structured_data

    def _default_expiry(self) -> Optional[datetime]:
        ttl_days = self.memory_config.default_ttl_days
        return self.clock() + timedelta(days=ttl_days) if ttl_days > 0 else None

    def _write_secondary(self, record: MemoryRecord, timeout: Optional[float] = None) -> None:
        """Best-effort structured-data copy and relationship edges for a stored record."""
        if record.structured_data:
            self._store_structured_data(record, timeout)
        self._create_relationships(record, timeout)

    def _store_structured_data(self, record: MemoryRecord, timeout: Optional[float]) -> None:
        metadata = dump_metadata(record.metadata)
        metadata['structured_data_for'] = record.id
        try:
            self.primitive_store.store(thread_id=record.thread_id,
                                       content=json.dumps(record.structured_data, default=str),
                                       metadata=metadata,
                                       user_id=record.user_id,
                                       collection=resolve_collection(record.memory_type),
                                       expires_at=record.expires_at,
                                       timeout=timeout)
        except Exception as e:
            logger.warning(f'Failed to store structured data for memory {record.id}: {e}')

    def _create_relationships(self, record: MemoryRecord, timeout: Optional[float]) -> None:
        relationships = infer_brand_relationships(record)
        created = 0
        for relationship in relationships:
            try:
                self.relationship_store.create_edge(relationship.from_node,
                                                    relationship.edge_type,
                                                    relationship.to_node,
                                                    user_id=record.user_id,
                                                    timeout=timeout)
                created += 1
            except Exception as e:
                logger.warning(f'Failed to create {relationship.edge_type} edge for memory {record.id}: {e}')
        if relationships:
            logger.debug(f'Created {created}/{len(relationships)} relationships for memory {record.id}')

    def _propagate_validation(self, feedback_record: MemoryRecord, memory_id: str, patch: Dict[str, Any],
                              timeout: Optional[float]) -> None:
        try:
            if not self.primitive_store.update_metadata(memory_id, feedback_record.user_id, patch, timeout=timeout):
                logger.warning(f'Related memory {memory_id} not found, validation status not propagated')
        except Exception as e:
            logger.warning(f'Failed to propagate validation status to memory {memory_id}: {e}')

        try:
            self.relationship_store.create_edge(memory_node(feedback_record.id),
                                                BrandRelationshipType.VALIDATES.value,
                                                memory_node(memory_id),
                                                user_id=feedback_record.user_id,
                                                timeout=timeout)
        except Exception as e:
            logger.warning(f'Failed to link feedback {feedback_record.id} to memory {memory_id}: {e}')

    def _hydrate(self, records: Sequence[MemoryRecord]) -> List[MemoryRecord]:
        """Attach typed metadata; records whose stored metadata no longer validates are skipped."""
        hydrated = []
        for record in records:
            try:
                hydrated.append(replace(record, metadata=validate_metadata(record.metadata)))
            except ValidationError as e:
                logger.warning(f'Skipping memory {record.id} with invalid metadata: {e}')
        return hydrated

    def _search(self, options: BrandMemorySearchOptions, timeout: Optional[float], operation: str) -> List[MemoryRecord]:
        time_range = options.time_range
        try:
            results = self.primitive_store.search(query=options.query,
                                                  thread_id=options.thread_id,
                                                  user_id=options.user_id,
                                                  limit=options.limit,
                                                  offset=options.offset,
                                                  min_relevance=options.min_relevance,
                                                  start_date=time_range.start if time_range else None,
                                                  end_date=time_range.end if time_range else None,
                                                  timeout=timeout)
        except Exception as e:
            logger.error(f'Memory search failed for user {options.user_id}: {e}')
            raise BrandMemoryError(operation, e) from e

        now = self.clock()
        candidates = self._hydrate(results)
        matching = [record for record in candidates if matches_brand_criteria(record, options, now)]
        ranked = rank_memories(matching, now)
        logger.debug(f'Search for user {options.user_id}: {len(results)} from store, {len(ranked)} after brand filters')
        return ranked

    def _find_related_memories(self, user_id: str, memories: Sequence[MemoryRecord], max_depth: int, threshold: float,
                               timeout: Optional[float]) -> List[GraphContext]:
        """Group memories reachable from ``memories`` by the relationship that leads to them.

        Hub vertices (the developer, a popular technology) connect most of a user's memories, so both the
        walked paths and the connected memories are capped per starting memory.
        """
        try:
            paths = self.relationship_store.traverse([memory_node(memory.id) for memory in memories],
                                                     max_depth,
                                                     threshold,
                                                     user_id=user_id,
                                                     timeout=timeout,
                                                     max_paths=len(memories) * GRAPH_PATHS_PER_RESULT)
        except Exception as e:
            logger.warning(f'Graph traversal failed for user {user_id}, continuing without graph context: {e}')
            return []

        start_ids = {memory.id for memory in memories}
        max_connected = len(memories) * CONNECTED_MEMORIES_PER_RESULT
        selected = set()
        groups: Dict[str, Dict[str, Any]] = {}
        for path in paths:
            relevance = path.get('path_relevance')
            relevance = DEFAULT_PATH_RELEVANCE if relevance is None else relevance
            if relevance < threshold:
                continue
            reached = [memory_id_from_node(node) for node in path.get('node_ids', [])]
            reached = [memory_id for memory_id in reached if memory_id and memory_id not in start_ids]
            kept = []
            for memory_id in reached:
                if memory_id not in selected and len(selected) >= max_connected:
                    continue
                selected.add(memory_id)
                kept.append(memory_id)
            reached = kept
            if not reached:
                continue
            group = groups.setdefault(path.get('relationship', ''), {'ids': [], 'path_relevance': relevance})
            group['path_relevance'] = max(group['path_relevance'], relevance)
            for memory_id in reached:
                if memory_id not in group['ids']:
                    group['ids'].append(memory_id)

        wanted = list(dict.fromkeys(memory_id for group in groups.values() for memory_id in group['ids']))
        if not wanted:
            return []

        try:
            fetched = self.primitive_store.get_many(wanted, user_id, timeout=timeout)
        except Exception as e:
            logger.warning(f'Failed to load {len(wanted)} graph-connected memories for user {user_id}: {e}')
            return []

        now = self.clock()
        by_id = {record.id: record for record in self._hydrate(fetched) if not record.is_expired(now)}
        contexts = [
            GraphContext(relationship=relationship,
                         connected_memories=[by_id[memory_id] for memory_id in group['ids'] if memory_id in by_id],
                         path_relevance=group['path_relevance']) for relationship, group in groups.items()
        ]
        return [context for context in contexts if context.connected_memories]
