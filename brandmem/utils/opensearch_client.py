"""
OpenSearch-backed primitive store: memory content, metadata and embeddings
with k-NN similarity search.

The primary collection holds the memory records themselves; structured-data
copies go to one index per brand collection (``<index_name>_<collection>``).
"""

import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import OpenSearchException
from requests_aws4auth import AWS4Auth

from ..models.core import MemoryRecord
from .bedrock_embed import BedrockEmbed, BedrockEmbedError
from .config import BedrockEmbedConfig, OpenSearchConfig
from .config import config as app_config
from .logging_config import get_logger
from .timestamp_utils import parse_datetime, to_iso, utc_now

logger = get_logger(__name__)

PRIMARY_COLLECTION = 'memories'
# Keeps id lookups well inside the default result window
MAX_IDS_PER_REQUEST = 500


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``patch`` into a copy of ``base``; patch values win."""
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _clamp_score(score: Optional[float]) -> Optional[float]:
    if score is None:
        return None
    return max(0.0, min(float(score), 1.0))


def _request_kwargs(timeout: Optional[float]) -> Dict[str, Any]:
    return {'request_timeout': timeout} if timeout is not None else {}


class OpenSearchMemoryStore:
    """Primitive memory store on Amazon OpenSearch Serverless with AWS authentication."""

    def __init__(self,
                 config: OpenSearchConfig,
                 embed_config: Optional[BedrockEmbedConfig] = None,
                 client: Optional[Any] = None,
                 embed: Optional[BedrockEmbed] = None,
                 clock=utc_now):
        """
        Initialize the OpenSearch memory store.

        Args:
            config: OpenSearchConfig instance with connection parameters
            embed_config: BedrockEmbedConfig for the embedder, uses default if None
            client: Pre-built OpenSearch client, created from config if None
            embed: Embedding client, created from embed_config if None
            clock: Source of record creation times
        """
        self.config = config
        self.client = client or self._create_client(config)
        self.embed = embed or BedrockEmbed(embed_config or app_config.bedrock_embed)
        self.clock = clock
        self._ready_indexes = set()

        logger.info(f'Initialized OpenSearch memory store for endpoint: {config.endpoint}')

    @staticmethod
    def _create_client(config: OpenSearchConfig) -> OpenSearch:
        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service='aoss', refreshable_credentials=credentials)
        endpoint = config.endpoint
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]

        return OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                          http_auth=auth,
                          use_ssl=True,
                          verify_certs=True,
                          connection_class=RequestsHttpConnection)

    def index_for(self, collection: Optional[str] = None) -> str:
        return f'{self.config.index_name}_{collection or PRIMARY_COLLECTION}'

    def ensure_index(self, index_name: str) -> None:
        """
        Create the index with the memory mapping if it does not exist yet.

        Raises:
            OpenSearchError: If the index cannot be created
        """
        if index_name in self._ready_indexes:
            return

        try:
            if not self.client.indices.exists(index=index_name):
                index_body = {
                    'mappings': {
                        'properties': {
                            'id': {
                                'type': 'keyword'
                            },
                            'user_id': {
                                'type': 'keyword'
                            },
                            'thread_id': {
                                'type': 'keyword'
                            },
                            'content': {
                                'type': 'text'
                            },
                            'metadata': {
                                'type': 'object',
                                'properties': {
                                    'type': {
                                        'type': 'keyword'
                                    },
                                    'structured_data_for': {
                                        'type': 'keyword'
                                    }
                                }
                            },
                            'embedding': {
                                'type': 'knn_vector',
                                'dimension': self.config.dimension,
                                'method': {
                                    'name': 'hnsw',
                                    'space_type': 'cosinesimil',
                                    'engine': 'nmslib'
                                }
                            },
                            'access_count': {
                                'type': 'integer'
                            },
                            'created_at': {
                                'type': 'date'
                            },
                            'last_accessed_at': {
                                'type': 'date'
                            },
                            'expires_at': {
                                'type': 'date'
                            }
                        }
                    },
                    'settings': {
                        'index': {
                            'knn': True,
                            'knn.algo_param.ef_search': 100
                        }
                    }
                }
                response = self.client.indices.create(index=index_name, body=index_body)
                logger.info(f'Created index {index_name}')
                if response.get('acknowledged', False) and self.config.index_sync_delay > 0:
                    logger.info(f'Waiting {self.config.index_sync_delay}s for index {index_name} sync-up...')
                    time.sleep(self.config.index_sync_delay)
        except OpenSearchException as e:
            logger.error(f'Error creating index {index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')

        self._ready_indexes.add(index_name)

    def _build_document(self, thread_id: str, content: str, metadata: Dict[str, Any], user_id: str,
                        expires_at: Optional[datetime], embedding: List[float]) -> Dict[str, Any]:
        return {
            'id': str(uuid.uuid4()),
            'user_id': user_id,
            'thread_id': thread_id,
            'content': content,
            'metadata': metadata,
            'embedding': embedding,
            'access_count': 0,
            'created_at': to_iso(self.clock()),
            'last_accessed_at': None,
            'expires_at': to_iso(expires_at),
        }

    @staticmethod
    def _to_record(document: Dict[str, Any], score: Optional[float] = None) -> MemoryRecord:
        return MemoryRecord(id=document['id'],
                            thread_id=document.get('thread_id', ''),
                            user_id=document.get('user_id', ''),
                            content=document.get('content', ''),
                            metadata=document.get('metadata') or {},
                            created_at=parse_datetime(document.get('created_at')) or utc_now(),
                            embedding=document.get('embedding'),
                            last_accessed_at=parse_datetime(document.get('last_accessed_at')),
                            access_count=int(document.get('access_count') or 0),
                            relevance_score=_clamp_score(score),
                            expires_at=parse_datetime(document.get('expires_at')))

    def store(self,
              thread_id: str,
              content: str,
              metadata: Dict[str, Any],
              user_id: str,
              collection: Optional[str] = None,
              expires_at: Optional[datetime] = None,
              timeout: Optional[float] = None) -> MemoryRecord:
        """
        Embed and index one memory record.

        Args:
            thread_id: Workflow run the record belongs to
            content: Text to store and embed
            metadata: Plain metadata dict
            user_id: Owner of the record
            collection: Sub-collection name, primary collection if None
            expires_at: Optional expiry time
            timeout: Request timeout in seconds

        Returns:
            The stored MemoryRecord

        Raises:
            OpenSearchError: If embedding or indexing fails
        """
        index_name = self.index_for(collection)
        self.ensure_index(index_name)

        try:
            embedding = self.embed.embed_document(content)
            document = self._build_document(thread_id, content, metadata, user_id, expires_at, embedding)
            response = self.client.index(index=index_name, body=document, **_request_kwargs(timeout))
        except BedrockEmbedError as e:
            logger.error(f'Error embedding memory content: {e}')
            raise OpenSearchError(f'Failed to embed memory: {e}')
        except OpenSearchException as e:
            logger.error(f'Error indexing memory in {index_name}: {e}')
            raise OpenSearchError(f'Failed to index memory: {e}')

        if response.get('result') not in ('created', 'updated'):
            raise OpenSearchError(f'Unexpected result indexing memory: {response}')

        logger.debug(f"Indexed memory {document['id']} in {index_name}")
        return self._to_record(document)

    def store_batch(self,
                    thread_id: str,
                    entries: Sequence[Dict[str, Any]],
                    user_id: str,
                    timeout: Optional[float] = None) -> List[MemoryRecord]:
        """
        Embed and index several records with one bulk request.

        Returns:
            Stored records in input order

        Raises:
            OpenSearchError: If embedding fails or any bulk item is rejected
        """
        if not entries:
            return []

        index_name = self.index_for()
        self.ensure_index(index_name)

        try:
            embeddings = self.embed.embed_many([entry['content'] for entry in entries])
        except BedrockEmbedError as e:
            logger.error(f'Error embedding batch of {len(entries)} memories: {e}')
            raise OpenSearchError(f'Failed to embed memories: {e}')

        documents = [
            self._build_document(thread_id, entry['content'], entry['metadata'], user_id, entry.get('expires_at'), embedding)
            for entry, embedding in zip(entries, embeddings)
        ]
        body = []
        for document in documents:
            body.append({'index': {'_index': index_name}})
            body.append(document)

        try:
            response = self.client.bulk(body=body, **_request_kwargs(timeout))
        except OpenSearchException as e:
            logger.error(f'Error bulk indexing {len(documents)} memories: {e}')
            raise OpenSearchError(f'Bulk index failed: {e}')

        if response.get('errors'):
            failed = [item for item in response.get('items', []) if item.get('index', {}).get('error')]
            raise OpenSearchError(f'Bulk index rejected {len(failed)} of {len(documents)} memories')

        logger.debug(f'Bulk indexed {len(documents)} memories in {index_name}')
        return [self._to_record(document) for document in documents]

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
        """
        Search the primary collection.

        With a query this is a k-NN search whose scores become the records'
        base relevance; without one it lists the newest records unscored.

        Raises:
            OpenSearchError: If the search fails
        """
        size = limit or self.config.default_limit
        filters: List[Dict[str, Any]] = []
        if user_id:
            filters.append({'term': {'user_id': user_id}})
        if thread_id:
            filters.append({'term': {'thread_id': thread_id}})
        if start_date or end_date:
            created_range = {}
            if start_date:
                created_range['gte'] = to_iso(start_date)
            if end_date:
                created_range['lte'] = to_iso(end_date)
            filters.append({'range': {'created_at': created_range}})

        search_body: Dict[str, Any] = {'size': size, '_source': {'excludes': ['embedding']}}
        if offset:
            search_body['from'] = offset

        try:
            if query and query.strip():
                query_vector = self.embed.embed_query(query)
                search_body['query'] = {
                    'bool': {
                        'must': [{
                            'knn': {
                                'embedding': {
                                    'vector': query_vector,
                                    'k': size + (offset or 0)
                                }
                            }
                        }],
                        'filter': filters
                    }
                }
            else:
                search_body['query'] = {'bool': {'filter': filters}} if filters else {'match_all': {}}
                search_body['sort'] = [{'created_at': {'order': 'desc'}}]

            response = self.client.search(index=self.index_for(), body=search_body, **_request_kwargs(timeout))
        except BedrockEmbedError as e:
            logger.error(f'Error embedding search query: {e}')
            raise OpenSearchError(f'Failed to embed query: {e}')
        except OpenSearchException as e:
            logger.error(f'Error searching memories: {e}')
            raise OpenSearchError(f'Memory search failed: {e}')

        scored = bool(query and query.strip())
        records = []
        for hit in response['hits']['hits']:
            record = self._to_record(hit['_source'], hit.get('_score') if scored else None)
            if scored and min_relevance is not None and (record.relevance_score or 0.0) < min_relevance:
                continue
            records.append(record)

        logger.debug(f'Memory search returned {len(records)} results for user {user_id}')
        return records

    def _find(self, memory_ids: Sequence[str], user_id: str, timeout: Optional[float]) -> List[Dict[str, Any]]:
        search_body = {
            'size': len(memory_ids),
            'query': {
                'bool': {
                    'filter': [{
                        'term': {
                            'user_id': user_id
                        }
                    }, {
                        'terms': {
                            'id': list(memory_ids)
                        }
                    }]
                }
            },
            '_source': {
                'excludes': ['embedding']
            }
        }
        response = self.client.search(index=self.index_for(), body=search_body, **_request_kwargs(timeout))
        return response['hits']['hits']

    def get_many(self, ids: Sequence[str], user_id: str, timeout: Optional[float] = None) -> List[MemoryRecord]:
        """
        Fetch records by id for one user, in the order of ``ids``; unknown ids are skipped.

        Raises:
            OpenSearchError: If the lookup fails
        """
        if not ids:
            return []

        try:
            hits = []
            for start in range(0, len(ids), MAX_IDS_PER_REQUEST):
                hits.extend(self._find(ids[start:start + MAX_IDS_PER_REQUEST], user_id, timeout))
        except OpenSearchException as e:
            logger.error(f'Error fetching {len(ids)} memories for user {user_id}: {e}')
            raise OpenSearchError(f'Failed to get memories: {e}')

        by_id = {hit['_source']['id']: self._to_record(hit['_source']) for hit in hits}
        return [by_id[memory_id] for memory_id in ids if memory_id in by_id]

    def update_metadata(self,
                        memory_id: str,
                        user_id: str,
                        patch: Dict[str, Any],
                        timeout: Optional[float] = None) -> bool:
        """
        Deep-merge ``patch`` into a stored record's metadata.

        Returns:
            True if the record was updated, False if it does not exist

        Raises:
            OpenSearchError: If the lookup or update fails
        """
        try:
            hits = self._find([memory_id], user_id, timeout)
            if not hits:
                logger.debug(f'Memory {memory_id} not found for metadata update')
                return False

            hit = hits[0]
            metadata = deep_merge(hit['_source'].get('metadata') or {}, patch)
            self.client.update(index=self.index_for(),
                               id=hit['_id'],
                               body={'doc': {
                                   'metadata': metadata
                               }},
                               **_request_kwargs(timeout))
        except OpenSearchException as e:
            logger.error(f'Error updating metadata of memory {memory_id}: {e}')
            raise OpenSearchError(f'Failed to update memory metadata: {e}')

        logger.debug(f'Updated metadata of memory {memory_id}')
        return True

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self.index_for())
            return response in [True, False]
        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
