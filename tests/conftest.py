"""Shared fixtures: a frozen clock and in-memory fakes for both stores."""

import copy
import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from brandmem.models.core import MemoryRecord
from brandmem.models.schema import validate_metadata
from brandmem.services.brand_memory import BrandMemoryService
from brandmem.utils.config import BrandMemoryConfig
from brandmem.utils.opensearch_client import deep_merge

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
BASE_RELEVANCE = 0.6


class FrozenClock:

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class FakePrimitiveStore:
    """Keeps records in dicts; every search hit gets the same base relevance unless overridden."""

    def __init__(self, clock: FrozenClock, base_relevance: float = BASE_RELEVANCE):
        self.clock = clock
        self.base_relevance = base_relevance
        self.records = {}
        self.collections = {}
        self.scores = {}
        self.calls = []
        self.fail_on = set()
        self._ids = itertools.count(1)

    def _check(self, method: str) -> None:
        if method in self.fail_on:
            raise RuntimeError(f'{method} unavailable')

    def _new_record(self, thread_id, content, metadata, user_id, expires_at=None) -> MemoryRecord:
        return MemoryRecord(id=f'mem-{next(self._ids)}',
                            thread_id=thread_id,
                            user_id=user_id,
                            content=content,
                            metadata=copy.deepcopy(metadata),
                            created_at=self.clock(),
                            expires_at=expires_at)

    @staticmethod
    def _copy(record: MemoryRecord, **changes) -> MemoryRecord:
        return replace(record, metadata=copy.deepcopy(record.metadata), **changes)

    def store(self, thread_id, content, metadata, user_id, collection=None, expires_at=None, timeout=None):
        self.calls.append(('store', {'collection': collection, 'metadata': metadata, 'timeout': timeout}))
        self._check('store_collection' if collection else 'store')
        record = self._new_record(thread_id, content, metadata, user_id, expires_at)
        if collection:
            self.collections.setdefault(collection, []).append(record)
        else:
            self.records[record.id] = record
        return self._copy(record)

    def store_batch(self, thread_id, entries, user_id, timeout=None):
        self.calls.append(('store_batch', {'count': len(entries), 'timeout': timeout}))
        self._check('store_batch')
        stored = []
        for entry in entries:
            record = self._new_record(thread_id, entry['content'], entry['metadata'], user_id, entry.get('expires_at'))
            self.records[record.id] = record
            stored.append(self._copy(record))
        return stored

    def search(self,
               query=None,
               thread_id=None,
               user_id=None,
               limit=None,
               offset=None,
               min_relevance=None,
               start_date=None,
               end_date=None,
               timeout=None):
        self.calls.append(('search', {
            'query': query,
            'user_id': user_id,
            'limit': limit,
            'min_relevance': min_relevance,
            'start_date': start_date,
            'end_date': end_date,
            'timeout': timeout
        }))
        self._check('search')
        results = []
        for record in self.records.values():
            if user_id and record.user_id != user_id:
                continue
            if thread_id and record.thread_id != thread_id:
                continue
            if start_date and record.created_at < start_date:
                continue
            if end_date and record.created_at > end_date:
                continue
            score = self.scores.get(record.id, self.base_relevance)
            if min_relevance is not None and score < min_relevance:
                continue
            results.append(self._copy(record, relevance_score=score))
        start = offset or 0
        return results[start:start + limit] if limit else results[start:]

    def get_many(self, ids, user_id, timeout=None):
        self.calls.append(('get_many', {'ids': list(ids), 'timeout': timeout}))
        self._check('get_many')
        return [self._copy(self.records[i]) for i in ids if i in self.records and self.records[i].user_id == user_id]

    def update_metadata(self, memory_id, user_id, patch, timeout=None):
        self.calls.append(('update_metadata', {'memory_id': memory_id, 'patch': patch, 'timeout': timeout}))
        self._check('update_metadata')
        record = self.records.get(memory_id)
        if record is None or record.user_id != user_id:
            return False
        record.metadata = deep_merge(record.metadata, patch)
        return True

    def add(self, memory_type, user_id='user-1', content='memory', created_at=None, **metadata) -> MemoryRecord:
        """Seed a record directly, bypassing the service."""
        metadata = {'type': memory_type, **metadata}
        record = self._new_record('thread-seed', content, metadata, user_id)
        if created_at is not None:
            record.created_at = created_at
        self.records[record.id] = record
        return record

    def calls_to(self, method):
        return [kwargs for name, kwargs in self.calls if name == method]


class FakeRelationshipStore:
    """Directed edge list; traversal walks both directions like the Neptune store."""

    def __init__(self):
        self.edges = []
        self.fail_on = set()
        self.traverse_calls = []

    def create_edge(self, from_node, edge_type, to_node, user_id, timeout=None):
        if 'create_edge' in self.fail_on:
            raise RuntimeError('graph unavailable')
        edge = (from_node, edge_type, to_node, user_id)
        if edge not in self.edges:
            self.edges.append(edge)
        return True

    def traverse(self, start_ids, max_depth, min_path_relevance, user_id, timeout=None, max_paths=None):
        self.traverse_calls.append({
            'start_ids': list(start_ids),
            'max_depth': max_depth,
            'timeout': timeout,
            'max_paths': max_paths
        })
        if 'traverse' in self.fail_on:
            raise RuntimeError('graph unavailable')

        contexts = []
        frontier = [([start], []) for start in start_ids]
        walked = 0
        for hops in range(1, max_depth + 1):
            next_frontier = []
            for nodes, labels in frontier:
                for source, label, target, owner in self.edges:
                    if owner != user_id:
                        continue
                    if source == nodes[-1]:
                        neighbour = target
                    elif target == nodes[-1]:
                        neighbour = source
                    else:
                        continue
                    if neighbour in nodes:
                        continue
                    if max_paths is not None and walked >= max_paths:
                        return contexts
                    walked += 1
                    path = (nodes + [neighbour], labels + [label])
                    next_frontier.append(path)
                    relevance = 0.8**(hops - 1)
                    if relevance >= min_path_relevance:
                        contexts.append({'relationship': path[1][0], 'node_ids': path[0][1:], 'path_relevance': relevance})
            frontier = next_frontier
        return contexts

    def edge_types(self):
        return [edge_type for _, edge_type, _, _ in self.edges]


def make_record(memory_type, created_at=NOW, relevance_score=None, user_id='user-1', record_id='r-1', expires_at=None,
                **metadata) -> MemoryRecord:
    """A hydrated record with typed metadata, for testing pure functions."""
    return MemoryRecord(id=record_id,
                        thread_id='thread-1',
                        user_id=user_id,
                        content=f'{memory_type} memory',
                        metadata=validate_metadata({
                            'type': memory_type,
                            **metadata
                        }),
                        created_at=created_at,
                        relevance_score=relevance_score,
                        expires_at=expires_at)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def primitive_store(clock):
    return FakePrimitiveStore(clock)


@pytest.fixture
def relationship_store():
    return FakeRelationshipStore()


@pytest.fixture
def service(primitive_store, relationship_store, clock):
    return BrandMemoryService(primitive_store,
                              relationship_store,
                              BrandMemoryConfig(secondary_write_workers=2, default_ttl_days=0),
                              clock=clock)
