"""Tests for brand memory search and ranking through the service."""

from datetime import timedelta

import pytest
from conftest import BASE_RELEVANCE, NOW

from brandmem.models.schema import BrandMemorySearchOptions, ValidationError
from brandmem.services.brand_memory import BrandMemoryError


def test_content_performance_round_trip(service):
    stored = service.store_brand_memory('user-1',
                                        'thread-1',
                                        'LinkedIn post about serverless',
                                        'content_performance',
                                        metadata_overrides={'content_metrics': {
                                            'platform': 'linkedin',
                                            'engagement': 0.8
                                        }})
    service.store_brand_memory('user-1', 'thread-1', 'Learned Go', 'skill_profile')

    results = service.search_brand_memories({'user_id': 'user-1', 'memory_types': ['content_performance']})

    assert [record.id for record in results] == [stored.id]
    assert results[0].metadata.metrics.platform == 'linkedin'
    assert results[0].relevance_score >= BASE_RELEVANCE


def test_memory_type_filter_never_leaks_other_types(service, primitive_store):
    for memory_type in ('dev_achievement', 'brand_strategy', 'user_feedback', 'dev_achievement'):
        primitive_store.add(memory_type)

    results = service.search_brand_memories({'user_id': 'user-1', 'memory_types': ['dev_achievement']})

    assert len(results) == 2
    assert all(record.metadata.type == 'dev_achievement' for record in results)


def test_ranked_by_brand_relevance(service, primitive_store):
    old = primitive_store.add('dev_achievement', created_at=NOW - timedelta(days=20))
    validated = primitive_store.add('dev_achievement',
                                    created_at=NOW - timedelta(days=20),
                                    brand_context={
                                        'user_id': 'user-1',
                                        'validated_by_human': True
                                    })
    recent = primitive_store.add('dev_achievement', created_at=NOW - timedelta(days=1))

    results = service.search_brand_memories(BrandMemorySearchOptions(user_id='user-1'))

    assert [record.id for record in results] == [validated.id, recent.id, old.id]
    assert results[0].relevance_score == pytest.approx(BASE_RELEVANCE + 0.15 + 0.05)


def test_options_forwarded_to_store(service, primitive_store):
    start = NOW - timedelta(days=3)
    service.search_brand_memories({
        'user_id': 'user-1',
        'query': 'rust',
        'limit': 5,
        'min_relevance': 0.3,
        'time_range': {
            'start': start
        }
    },
                                  timeout=1.0)

    call = primitive_store.calls_to('search')[0]
    assert call['query'] == 'rust'
    assert call['limit'] == 5
    assert call['min_relevance'] == 0.3
    assert call['start_date'] == start
    assert call['timeout'] == 1.0


def test_missing_user_id_rejected_before_store(service, primitive_store):
    with pytest.raises(ValidationError):
        service.search_brand_memories({'query': 'python'})
    assert primitive_store.calls == []


def test_store_failure_wrapped(service, primitive_store):
    primitive_store.fail_on.add('search')
    with pytest.raises(BrandMemoryError) as exc:
        service.search_brand_memories({'user_id': 'user-1'})
    assert exc.value.operation == 'search_brand_memories'


def test_records_with_invalid_metadata_skipped(service, primitive_store):
    primitive_store.add('dev_achievement', importance=3.0)
    good = primitive_store.add('dev_achievement')

    results = service.search_brand_memories({'user_id': 'user-1'})

    assert [record.id for record in results] == [good.id]


def test_other_users_not_returned(service, primitive_store):
    primitive_store.add('dev_achievement', user_id='someone-else')
    assert service.search_brand_memories({'user_id': 'user-1'}) == []


def test_expired_records_hidden(service, primitive_store):
    record = primitive_store.add('dev_achievement')
    primitive_store.records[record.id].expires_at = NOW - timedelta(hours=1)

    assert service.search_brand_memories({'user_id': 'user-1'}) == []
    assert len(service.search_brand_memories({'user_id': 'user-1', 'brand_context': {'include_expired': True}})) == 1
