"""
Amazon Neptune relationship store using the Gremlin Python driver with AWS SigV4 authentication.

Vertices are keyed by ``<kind>:<value>`` node keys and scoped per user, so
the same technology or audience gets one vertex per user.
"""

from functools import wraps
from typing import Any, Dict, List, Optional, Sequence

from boto3 import Session
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from gremlin_python.driver.aiohttp.transport import AiohttpTransport
from gremlin_python.driver.driver_remote_connection import DriverRemoteConnection
from gremlin_python.process.anonymous_traversal import traversal
from gremlin_python.process.graph_traversal import __
from gremlin_python.process.traversal import P, T

from ..models.schema import BRAND_GRAPH_LABELS
from .config import NeptuneConfig
from .logging_config import get_logger
from .timestamp_utils import to_seconds_str

logger = get_logger(__name__)

# Relevance lost per hop beyond the first
PATH_DECAY = 0.8


class NeptuneError(Exception):
    """Custom exception for Neptune errors."""
    pass


def retry_on_connection_error(func):
    """Decorator to retry Neptune operations once after reconnecting on a closed transport."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception as e:
            if 'cannot write to closing transport' in str(e).lower():
                logger.warning(f'Connection error detected: {e}. Reconnecting...')
                self.close()
                self._connect()
                try:
                    return func(self, *args, **kwargs)
                except Exception as retry_e:
                    logger.error(f'Error in {func.__name__}: {retry_e}')
                    raise NeptuneError(f'Failed to {func.__name__}: {retry_e}')
            else:
                logger.error(f'Error in {func.__name__}: {e}')
                raise NeptuneError(f'Failed to {func.__name__}: {e}')

    return wrapper


def path_relevance(hops: int) -> float:
    return PATH_DECAY**(hops - 1)


def _paths_to_contexts(paths: Sequence[Any], min_path_relevance: float) -> List[Dict[str, Any]]:
    """Turn ``path().by('id').by(T.label)`` results into relationship contexts.

    Path objects alternate vertex ids and edge labels, starting with the start vertex.
    """
    contexts = []
    for path in paths:
        objects = list(getattr(path, 'objects', path))
        node_ids, edge_labels = objects[0::2], objects[1::2]
        if not edge_labels:
            continue
        relevance = path_relevance(len(edge_labels))
        if relevance < min_path_relevance:
            continue
        contexts.append({'relationship': edge_labels[0], 'node_ids': node_ids[1:], 'path_relevance': relevance})
    return contexts


class NeptuneRelationshipStore:
    """Relationship store on Amazon Neptune."""

    def __init__(self, config: NeptuneConfig, g: Optional[Any] = None):
        """
        Initialize the Neptune relationship store.

        Args:
            config: NeptuneConfig instance with connection parameters
            g: Pre-built graph traversal source, connects using config if None
        """
        self.config = config
        self.connection = None
        self.g = g
        if g is None:
            self._connect()
            logger.info(f'Connected to Neptune at {config.endpoint}')

    def _connect(self):
        """Establish connection to Neptune."""
        conn_string = f'wss://{self.config.endpoint}:{self.config.port}/gremlin'

        credentials = Session().get_credentials()
        if credentials is None:
            raise NeptuneError('No AWS credentials found')
        creds = credentials.get_frozen_credentials()

        region = self.config.region or Session().region_name or 'us-east-1'

        # Signed request headers for the WebSocket handshake
        request = AWSRequest(method='GET', url=conn_string, data=None)
        SigV4Auth(creds, 'neptune-db', region).add_auth(request)

        self.connection = DriverRemoteConnection(conn_string,
                                                 'g',
                                                 headers=request.headers.items(),
                                                 transport_factory=lambda: AiohttpTransport(call_from_event_loop=True))
        self.g = traversal().with_remote(self.connection)

    def close(self):
        """Close the Neptune connection."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def _source(self, timeout: Optional[float]):
        if timeout is None:
            return self.g
        return self.g.with_('evaluationTimeout', int(timeout * 1000))

    @staticmethod
    def _upsert_vertex(g, node_key: str, user_id: str):
        kind = node_key.split(':', 1)[0]
        label = BRAND_GRAPH_LABELS.get(kind, 'Entity')
        return g.V().has('id', node_key).has('user_id', user_id).fold()\
            .coalesce(__.unfold(),
                      __.add_v(label).property('id', node_key).property('user_id', user_id).property('kind', kind))\
            .next()

    @retry_on_connection_error
    def create_edge(self,
                    from_node: str,
                    edge_type: str,
                    to_node: str,
                    user_id: str,
                    timeout: Optional[float] = None) -> bool:
        """
        Create a typed edge between two nodes, creating missing vertices.

        Args:
            from_node: Source node key
            edge_type: Relationship kind, used as the edge label
            to_node: Target node key
            user_id: User ID for isolation
            timeout: Evaluation timeout in seconds

        Returns:
            True once the edge exists
        """
        g = self._source(timeout)
        source = self._upsert_vertex(g, from_node, user_id)
        target = self._upsert_vertex(g, to_node, user_id)

        existing = g.V(source).out_e(edge_type).has('user_id', user_id).in_v().has('id', to_node).to_list()
        if existing:
            logger.debug(f'Edge already exists: {from_node} -{edge_type}-> {to_node}')
            return True

        g.V(source).add_e(edge_type).to(target)\
            .property('user_id', user_id)\
            .property('created_at', to_seconds_str())\
            .next()
        logger.debug(f'Created edge: {from_node} -{edge_type}-> {to_node}')
        return True

    @retry_on_connection_error
    def traverse(self,
                 start_ids: Sequence[str],
                 max_depth: int,
                 min_path_relevance: float,
                 user_id: str,
                 timeout: Optional[float] = None,
                 max_paths: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Walk edges in both directions from the start nodes without revisiting vertices.

        Args:
            start_ids: Node keys to start from
            max_depth: Maximum number of hops
            min_path_relevance: Paths scoring below this are dropped
            user_id: User ID for isolation
            timeout: Evaluation timeout in seconds
            max_paths: Maximum number of paths to walk; unbounded when None

        Returns:
            List of ``{'relationship', 'node_ids', 'path_relevance'}`` dicts
        """
        if not start_ids or max_depth < 1:
            return []

        traversal = self._source(timeout).V().has('id', P.within(list(start_ids))).has('user_id', user_id)\
            .repeat(__.both_e().has('user_id', user_id).other_v().has('user_id', user_id).simple_path())\
            .emit()\
            .times(max_depth)
        if max_paths is not None:
            traversal = traversal.limit(max_paths)
        paths = traversal.path().by('id').by(T.label).to_list()

        contexts = _paths_to_contexts(paths, min_path_relevance)
        logger.debug(f'Traversal from {len(start_ids)} nodes returned {len(contexts)} paths within {max_depth} hops')
        return contexts

    @retry_on_connection_error
    def health_check(self) -> bool:
        """
        Perform a health check on the Neptune service.

        Returns:
            True if service is healthy
        """
        self.g.V().limit(1).count().next()
        return True
