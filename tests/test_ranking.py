"""Tests for brand filters, relevance boosts and the hybrid score."""

from datetime import timedelta

import pytest
from conftest import NOW, make_record

from brandmem.models.core import GraphContext
from brandmem.models.schema import validate_search_options
from brandmem.services.ranking import (calculate_brand_relevance, calculate_hybrid_score, matches_brand_criteria,
                                       rank_memories)


def options(**kwargs):
    return validate_search_options({'user_id': 'user-1', **kwargs})


class TestRelevance:

    def test_recency_boost_boundary(self):
        fresh = make_record('dev_achievement', created_at=NOW - timedelta(days=6, hours=23), relevance_score=0.5)
        stale = make_record('dev_achievement', created_at=NOW - timedelta(days=7, hours=1), relevance_score=0.5)

        # base 0.5 + default confidence 0.5 * 0.1
        assert calculate_brand_relevance(stale, NOW) == pytest.approx(0.55)
        assert calculate_brand_relevance(fresh, NOW) == pytest.approx(0.65)

    def test_all_boosts(self):
        record = make_record('dev_achievement',
                             relevance_score=0.5,
                             importance=0.9,
                             brand_context={
                                 'user_id': 'user-1',
                                 'confidence_score': 0.95,
                                 'validated_by_human': True
                             })
        assert calculate_brand_relevance(record, NOW) == pytest.approx(0.5 + 0.1 + 0.15 + 0.095 + 0.1)

    def test_capped_at_one(self):
        record = make_record('dev_achievement',
                             relevance_score=0.6,
                             importance=0.9,
                             brand_context={
                                 'user_id': 'user-1',
                                 'confidence_score': 0.95,
                                 'validated_by_human': True
                             })
        assert calculate_brand_relevance(record, NOW) == 1.0

    def test_rejected_by_human_gets_no_validation_boost(self):
        record = make_record('dev_achievement',
                             relevance_score=0.5,
                             brand_context={
                                 'user_id': 'user-1',
                                 'confidence_score': 0.3,
                                 'validated_by_human': True,
                                 'human_approved': False
                             })
        assert calculate_brand_relevance(record, NOW) == pytest.approx(0.5 + 0.1 + 0.03)

    def test_missing_base_relevance_defaults(self):
        record = make_record('workflow_learning', created_at=NOW - timedelta(days=30))
        assert calculate_brand_relevance(record, NOW) == pytest.approx(0.55)

    def test_zero_confidence_is_not_defaulted(self):
        record = make_record('workflow_learning',
                             created_at=NOW - timedelta(days=30),
                             relevance_score=0.5,
                             brand_context={
                                 'user_id': 'user-1',
                                 'confidence_score': 0.0
                             })
        assert calculate_brand_relevance(record, NOW) == pytest.approx(0.5)

    def test_importance_boost_needs_more_than_threshold(self):
        record = make_record('workflow_learning', created_at=NOW - timedelta(days=30), relevance_score=0.5, importance=0.8)
        assert calculate_brand_relevance(record, NOW) == pytest.approx(0.55)


class TestRankMemories:

    def test_sorted_descending_ties_keep_order(self):
        old = NOW - timedelta(days=30)
        records = [
            make_record('dev_achievement', created_at=old, relevance_score=0.5, record_id='a'),
            make_record('dev_achievement', created_at=old, relevance_score=0.7, record_id='b'),
            make_record('dev_achievement', created_at=old, relevance_score=0.5, record_id='c'),
        ]
        ranked = rank_memories(records, NOW)
        assert [record.id for record in ranked] == ['b', 'a', 'c']
        assert records[0].relevance_score == 0.5

    def test_scores_within_unit_interval(self):
        records = [make_record('dev_achievement', relevance_score=score, importance=1.0) for score in (0.0, 0.4, 1.0)]
        assert all(0.0 <= record.relevance_score <= 1.0 for record in rank_memories(records, NOW))


class TestBrandCriteria:

    def test_memory_types(self):
        record = make_record('dev_achievement')
        assert matches_brand_criteria(record, options(memory_types=['dev_achievement']), NOW)
        assert not matches_brand_criteria(record, options(memory_types=['brand_strategy']), NOW)

    def test_technologies_overlap_case_insensitive(self):
        record = make_record('dev_achievement', technical_data={'technologies': ['Python', 'AWS']})
        assert matches_brand_criteria(record, options(technical_filter={'technologies': ['python']}), NOW)
        assert not matches_brand_criteria(record, options(technical_filter={'technologies': ['rust']}), NOW)

    def test_records_without_technologies_pass_technology_filter(self):
        record = make_record('brand_strategy')
        assert matches_brand_criteria(record, options(technical_filter={'technologies': ['rust']}), NOW)

    def test_skill_levels(self):
        record = make_record('skill_profile', technical_data={'skill_level': 'advanced'})
        assert matches_brand_criteria(record, options(technical_filter={'skill_levels': ['advanced', 'expert']}), NOW)
        assert not matches_brand_criteria(record, options(technical_filter={'skill_levels': ['beginner']}), NOW)

    def test_human_validated(self):
        validated = make_record('dev_achievement', brand_context={'user_id': 'user-1', 'validated_by_human': True})
        unvalidated = make_record('dev_achievement')
        wanted = options(validation_status={'human_validated': True})
        assert matches_brand_criteria(validated, wanted, NOW)
        assert not matches_brand_criteria(unvalidated, wanted, NOW)
        assert matches_brand_criteria(unvalidated, options(validation_status={'human_validated': False}), NOW)

    def test_min_confidence_treats_missing_as_zero(self):
        wanted = options(validation_status={'min_confidence': 0.7})
        confident = make_record('dev_achievement', brand_context={'user_id': 'user-1', 'confidence_score': 0.8})
        assert matches_brand_criteria(confident, wanted, NOW)
        assert not matches_brand_criteria(make_record('dev_achievement'), wanted, NOW)

    def test_approval_status(self):
        record = make_record('content_performance', content_metrics={'approval_status': 'approved'})
        assert matches_brand_criteria(record, options(validation_status={'approval_status': ['approved']}), NOW)
        assert not matches_brand_criteria(record, options(validation_status={'approval_status': ['rejected']}), NOW)

    def test_brand_context_ids(self):
        record = make_record('content_performance', brand_context={'user_id': 'user-1', 'content_id': 'c1'})
        assert matches_brand_criteria(record, options(brand_context={'content_id': 'c1'}), NOW)
        assert not matches_brand_criteria(record, options(brand_context={'content_id': 'c2'}), NOW)

    def test_expired_records_excluded_unless_requested(self):
        record = make_record('dev_achievement', expires_at=NOW - timedelta(seconds=1))
        assert not matches_brand_criteria(record, options(), NOW)
        assert matches_brand_criteria(record, options(brand_context={'include_expired': True}), NOW)

    def test_expiry_against_naive_clock(self):
        record = make_record('dev_achievement', expires_at=NOW - timedelta(seconds=1))
        naive_now = NOW.replace(tzinfo=None)
        assert record.is_expired(naive_now)
        assert not matches_brand_criteria(record, options(), naive_now)

    def test_strategic_audience(self):
        record = make_record('brand_strategy', strategic_data={'target_audience': ['CTOs'], 'market_segment': 'fintech'})
        assert matches_brand_criteria(record, options(strategic_filter={'target_audiences': ['ctos']}), NOW)
        assert not matches_brand_criteria(record, options(strategic_filter={'market_segments': ['gaming']}), NOW)


class TestHybridScore:

    def test_empty_vector_results(self):
        assert calculate_hybrid_score([], []) == 0.0

    def test_formula(self):
        records = [make_record('dev_achievement', relevance_score=score) for score in (0.9, 0.6)]
        context = [GraphContext('USED_TECHNOLOGY', [], 1.0)]
        assert calculate_hybrid_score(records, context) == pytest.approx((0.9 + 0.6 + 0.1) / 3)

    def test_capped(self):
        records = [make_record('dev_achievement', relevance_score=1.0)]
        context = [GraphContext(f'REL_{i}', [], 1.0) for i in range(20)]
        assert calculate_hybrid_score(records, context) == 1.0
