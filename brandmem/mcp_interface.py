"""
MCP interface exposing the brand memory operations to agents through fastmcp.

Each tool is a thin adapter: it forwards to a ``handle_*`` function that takes
the service explicitly and returns JSON-friendly dicts.
"""
from typing import Any, Callable, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .models.schema import ValidationError
from .services.brand_memory import BrandMemoryError, BrandMemoryService
from .utils.config import config
from .utils.logging_config import get_logger

logger = get_logger(__name__)

mcp = FastMCP('Brand Memory')
_service: Optional[BrandMemoryService] = None


def get_service() -> BrandMemoryService:
    """Service on the configured backends, created on first use."""
    global _service
    if _service is None:
        _service = BrandMemoryService.from_config(config)
    return _service


def _invoke(operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
    try:
        return func(*args, **kwargs)
    except ValidationError as e:
        logger.warning(f'Rejected {operation} request: {e}')
        raise ToolError(str(e))
    except BrandMemoryError as e:
        logger.error(f'Brand memory error in MCP {operation}: {e}')
        raise ToolError(str(e))


def handle_store_brand_memory(service: BrandMemoryService,
                              user_id: str,
                              thread_id: str,
                              content: str,
                              memory_type: str,
                              structured_data: Optional[Dict[str, Any]] = None,
                              metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    record = _invoke('store_brand_memory', service.store_brand_memory, user_id, thread_id, content, memory_type,
                     structured_data, metadata)
    return record.to_dict()


def handle_store_brand_memories_batch(service: BrandMemoryService, user_id: str, thread_id: str,
                                      entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    records = _invoke('store_brand_memories_batch', service.store_brand_memories_batch, user_id, thread_id, entries)
    return [record.to_dict() for record in records]


def handle_search_brand_memories(service: BrandMemoryService, user_id: str,
                                 options: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    search_options = {**(options or {}), 'user_id': user_id}
    records = _invoke('search_brand_memories', service.search_brand_memories, search_options)
    logger.debug(f'MCP search returned {len(records)} memories for user {user_id}')
    return [record.to_dict() for record in records]


def handle_hybrid_brand_search(service: BrandMemoryService, user_id: str, query: str, **options) -> Dict[str, Any]:
    return _invoke('hybrid_brand_search', service.hybrid_brand_search, user_id, query, **options).to_dict()


def handle_get_brand_analytics(service: BrandMemoryService, user_id: str) -> Dict[str, Any]:
    return _invoke('get_brand_analytics', service.get_brand_analytics, user_id).to_dict()


def handle_get_brand_context_for_agent(service: BrandMemoryService, user_id: str, agent_type: str, current_task: str,
                                       **options) -> Dict[str, Any]:
    return _invoke('get_brand_context_for_agent', service.get_brand_context_for_agent, user_id, agent_type, current_task,
                   **options).to_dict()


def handle_store_human_feedback(service: BrandMemoryService,
                                user_id: str,
                                content_id: str,
                                feedback: Dict[str, Any],
                                related_memory_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    record = _invoke('store_human_feedback', service.store_human_feedback, user_id, content_id, feedback,
                     related_memory_ids)
    return record.to_dict()


@mcp.tool()
def store_brand_memory(user_id: str,
                       thread_id: str,
                       content: str,
                       memory_type: str,
                       structured_data: Optional[Dict[str, Any]] = None,
                       metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Store one brand memory.

    Args:
        user_id: User ID
        thread_id: Workflow run the memory came from
        content: Human-readable memory text
        memory_type: One of dev_achievement, content_performance, brand_strategy, skill_profile,
            career_milestone, market_insight, user_feedback, workflow_learning
        structured_data: Optional structured payload
        metadata: Optional metadata overrides (importance, tags, brand_context, technical_data, ...)

    Returns:
        The stored memory record
    """
    return handle_store_brand_memory(get_service(), user_id, thread_id, content, memory_type, structured_data, metadata)


@mcp.tool()
def store_brand_memories_batch(user_id: str, thread_id: str, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Store several brand memories at once.

    Args:
        user_id: User ID
        thread_id: Workflow run the memories came from
        entries: Objects with content, memory_type and optional structured_data and metadata

    Returns:
        Stored memory records in input order
    """
    return handle_store_brand_memories_batch(get_service(), user_id, thread_id, entries)


@mcp.tool()
def search_brand_memories(user_id: str, options: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Search brand memories with brand-aware filtering and ranking.

    Args:
        user_id: User ID
        options: Search options (query, memory_types, limit, time_range, technical_filter, ...)

    Returns:
        Memory records sorted by relevance
    """
    return handle_search_brand_memories(get_service(), user_id, options)


@mcp.tool()
def hybrid_brand_search(user_id: str,
                        query: str,
                        max_vector_results: int = 10,
                        max_graph_depth: int = 2,
                        include_related_memories: bool = True,
                        context_threshold: float = 0.7) -> Dict[str, Any]:
    """Vector search enriched with graph-connected memories and contextual insights."""
    return handle_hybrid_brand_search(get_service(),
                                      user_id,
                                      query,
                                      max_vector_results=max_vector_results,
                                      max_graph_depth=max_graph_depth,
                                      include_related_memories=include_related_memories,
                                      context_threshold=context_threshold)


@mcp.tool()
def get_brand_analytics(user_id: str) -> Dict[str, Any]:
    """Aggregate analytics over the user's brand memories."""
    return handle_get_brand_analytics(get_service(), user_id)


@mcp.tool()
def get_brand_context_for_agent(user_id: str,
                                agent_type: str,
                                current_task: str,
                                max_memories: int = 15,
                                time_window_days: int = 30,
                                include_validated_only: bool = False) -> Dict[str, Any]:
    """Relevant memories, summary, suggestions and confidence for an agent's current task.

    Args:
        user_id: User ID
        agent_type: github-analyzer, content-creator, brand-strategist or another agent name
        current_task: Description of the task at hand
        max_memories: Maximum number of memories (default: 15)
        time_window_days: Look-back window in days (default: 30)
        include_validated_only: Only human-validated memories

    Returns:
        Agent context
    """
    return handle_get_brand_context_for_agent(get_service(),
                                              user_id,
                                              agent_type,
                                              current_task,
                                              max_memories=max_memories,
                                              time_window_days=time_window_days,
                                              include_validated_only=include_validated_only)


@mcp.tool()
def store_human_feedback(user_id: str,
                         content_id: str,
                         feedback: Dict[str, Any],
                         related_memory_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    """Record human feedback on generated content and mark related memories as validated.

    Args:
        user_id: User ID
        content_id: Reviewed content ID
        feedback: {approved, corrections?, suggestions?, rating?, categories?}
        related_memory_ids: Memories the content was based on

    Returns:
        The stored feedback record
    """
    return handle_store_human_feedback(get_service(), user_id, content_id, feedback, related_memory_ids)


if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
