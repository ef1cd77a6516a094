"""
Interfaces of the two external stores the brand memory layer is built on.

Every method takes an optional ``timeout`` (seconds) which callers forward from
their own deadline; implementations pass it on to the backend request.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .core import MemoryRecord


@runtime_checkable
class PrimitiveStore(Protocol):
    """Durable content/metadata/embedding storage with similarity search."""

    def store(self,
              thread_id: str,
              content: str,
              metadata: Dict[str, Any],
              user_id: str,
              collection: Optional[str] = None,
              expires_at: Optional[datetime] = None,
              timeout: Optional[float] = None) -> MemoryRecord:
        """Persist one record; ``collection`` selects a sub-collection instead of the primary one."""
        ...

    def store_batch(self,
                    thread_id: str,
                    entries: Sequence[Dict[str, Any]],
                    user_id: str,
                    timeout: Optional[float] = None) -> List[MemoryRecord]:
        """Persist ``{'content', 'metadata', 'expires_at'?}`` entries in one call, preserving order."""
        ...

    def search(self,
               query: Optional[str] = None,
               thread_id: Optional[str] = None,
               user_id: Optional[str] = None,
               limit: Optional[int] = None,
               offset: Optional[int] = None,
               min_relevance: Optional[float] = None,
               start_date: Optional[datetime] = None,
               end_date: Optional[datetime] = None,
               timeout: Optional[float] = None) -> List[MemoryRecord]:
        """Similarity search over the primary collection; results carry a base ``relevance_score``."""
        ...

    def get_many(self, ids: Sequence[str], user_id: str, timeout: Optional[float] = None) -> List[MemoryRecord]:
        ...

    def update_metadata(self,
                        memory_id: str,
                        user_id: str,
                        patch: Dict[str, Any],
                        timeout: Optional[float] = None) -> bool:
        """Deep-merge ``patch`` into a stored record's metadata. False when the record is unknown."""
        ...


@runtime_checkable
class RelationshipStore(Protocol):
    """Directed, typed-edge graph storage with traversal."""

    def create_edge(self,
                    from_node: str,
                    edge_type: str,
                    to_node: str,
                    user_id: str,
                    timeout: Optional[float] = None) -> bool:
        ...

    def traverse(self,
                 start_ids: Sequence[str],
                 max_depth: int,
                 min_path_relevance: float,
                 user_id: str,
                 timeout: Optional[float] = None,
                 max_paths: Optional[int] = None) -> List[Dict[str, Any]]:
        """Paths leaving ``start_ids``: ``{'relationship', 'node_ids', 'path_relevance'}`` dicts.

        At most ``max_paths`` paths are walked when it is set, shortest first.
        """
        ...
