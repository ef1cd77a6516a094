"""Tests for brand analytics aggregation."""

from datetime import timedelta

import pytest
from conftest import NOW, make_record

from brandmem.models.schema import BrandMemoryType
from brandmem.services.analytics import (analyze_agent_learning, analyze_content_performance, analyze_skill_progression,
                                         build_brand_analytics, calculate_confidence_metrics,
                                         calculate_memory_distribution)


def skill(level, technologies, days_ago, memory_type='skill_profile'):
    return make_record(memory_type,
                       created_at=NOW - timedelta(days=days_ago),
                       technical_data={
                           'skill_level': level,
                           'technologies': technologies
                       })


def content(platform=None, engagement=None, status=None, content_id=None, validated=False):
    metadata = {'content_metrics': {'platform': platform, 'engagement': engagement, 'approval_status': status}}
    metadata['brand_context'] = {'user_id': 'user-1', 'content_id': content_id, 'validated_by_human': validated}
    return make_record('content_performance', **metadata)


def feedback(status, content_id='c1'):
    return make_record('user_feedback',
                       content_metrics={'approval_status': status},
                       brand_context={
                           'user_id': 'user-1',
                           'content_id': content_id,
                           'validated_by_human': True,
                           'confidence_score': 1.0 if status == 'approved' else 0.3
                       })


def test_distribution_covers_every_type():
    distribution = calculate_memory_distribution([make_record('dev_achievement'), make_record('dev_achievement')])
    assert set(distribution) == {memory_type.value for memory_type in BrandMemoryType}
    assert distribution['dev_achievement'] == 2
    assert distribution['brand_strategy'] == 0


def test_skill_progression():
    progression = analyze_skill_progression([
        skill('beginner', ['Rust'], 60),
        skill('intermediate', ['Rust'], 5, memory_type='dev_achievement'),
        skill('expert', ['Python'], 10),
        make_record('brand_strategy'),
    ])

    assert progression.current_level == {'Rust': 'intermediate', 'Python': 'expert'}
    assert progression.recent_improvements == ['Rust: beginner -> intermediate']
    assert progression.recommended_areas == ['Rust']


def test_skill_regression_is_not_an_improvement():
    progression = analyze_skill_progression([skill('advanced', ['Go'], 20), skill('intermediate', ['Go'], 1)])
    assert progression.current_level == {'Go': 'intermediate'}
    assert progression.recent_improvements == []


def test_content_performance():
    performance = analyze_content_performance([
        content('linkedin', 0.8, 'approved'),
        content('linkedin', 0.6, 'rejected'),
        content('twitter', 0.2, 'approved'),
        content('blog'),
    ])

    assert performance.total_generated == 4
    assert performance.approval_rate == pytest.approx(2 / 3)
    assert performance.average_engagement == pytest.approx((0.8 + 0.6 + 0.2) / 3)
    assert performance.top_performing_platforms == ['linkedin', 'twitter', 'blog']


def test_confidence_metrics_defaults_when_empty():
    metrics = calculate_confidence_metrics([])
    assert metrics.average_confidence == 0.8
    assert metrics.human_validation_rate == 0.0
    assert metrics.prediction_accuracy == 0.0


def test_confidence_metrics():
    memories = [
        feedback('approved'),
        feedback('rejected'),
        make_record('dev_achievement', brand_context={
            'user_id': 'user-1',
            'confidence_score': 0.5
        }),
        make_record('dev_achievement'),
    ]
    metrics = calculate_confidence_metrics(memories)

    assert metrics.average_confidence == pytest.approx((1.0 + 0.3 + 0.5) / 3)
    assert metrics.human_validation_rate == pytest.approx(0.5)
    assert metrics.prediction_accuracy == pytest.approx(0.5)


def test_agent_learning_hitl_score():
    learning = analyze_agent_learning([
        content(content_id='c1'),
        content(content_id='c2'),
        feedback('approved', content_id='c1'),
        make_record('workflow_learning'),
    ])
    assert learning.workflow_optimizations == 1
    assert learning.coordination_improvements == ['workflow_learning memory']
    assert learning.hitl_integration_score == pytest.approx(0.5)


def test_build_analytics_recommendations():
    analytics = build_brand_analytics('user-1', [skill('beginner', ['Rust'], 3), content('linkedin', 0.9, 'rejected')])

    assert analytics.total_memories == 2
    actions = analytics.recommended_actions
    assert 'Write about your Rust work' in actions.content_opportunities
    assert 'Publish more on linkedin, your best-performing platform' in actions.content_opportunities
    assert actions.skill_development_areas == ['Rust']
    assert 'Define brand pillars and target audience' in actions.strategic_adjustments
    assert analytics.to_dict()['memory_distribution']['content_performance'] == 1


def test_service_analytics_scans_all_memories(service, primitive_store):
    primitive_store.add('dev_achievement')
    primitive_store.add('brand_strategy', strategic_data={'brand_pillars': ['Cloud cost'], 'market_segment': 'fintech'})

    analytics = service.get_brand_analytics('user-1')

    call = primitive_store.calls_to('search')[0]
    assert call['limit'] == 1000
    assert call['min_relevance'] == 0.0
    assert analytics.total_memories == 2
    assert analytics.brand_evolution.strategic_changes == 1
    assert analytics.brand_evolution.positioning_updates == ['Cloud cost']
    assert analytics.brand_evolution.market_adaptations == ['fintech']
