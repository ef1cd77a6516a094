"""Tests for relationship inference and node keys."""

from conftest import make_record

from brandmem.services.relationships import (Relationship, infer_brand_relationships, memory_id_from_node, memory_node,
                                             node_key, node_kind)


def test_node_keys():
    assert node_key('technology', ' Python ') == 'technology:python'
    assert memory_node('Mem-1') == 'memory:Mem-1'
    assert node_kind('audience:ctos') == 'audience'
    assert memory_id_from_node('memory:abc') == 'abc'
    assert memory_id_from_node('technology:abc') is None
    assert memory_id_from_node('memory:') is None


def test_achievement_edges():
    record = make_record('dev_achievement', record_id='m1', technical_data={'technologies': ['Python', 'python', 'AWS']})

    assert infer_brand_relationships(record) == [
        Relationship('developer:user-1', 'ACHIEVED', 'memory:m1'),
        Relationship('memory:m1', 'USED_TECHNOLOGY', 'technology:python'),
        Relationship('memory:m1', 'USED_TECHNOLOGY', 'technology:aws'),
    ]


def test_skill_profile_edges():
    record = make_record('skill_profile', record_id='m2', technical_data={'skill_level': 'advanced'})
    assert infer_brand_relationships(record) == [Relationship('memory:m2', 'EVOLVED_INTO', 'skill:advanced')]


def test_content_edges():
    record = make_record('content_performance',
                         record_id='m3',
                         content_metrics={'platform': 'linkedin'},
                         strategic_data={'target_audience': ['CTOs']})
    assert infer_brand_relationships(record) == [
        Relationship('memory:m3', 'MEASURED_BY', 'platform:linkedin'),
        Relationship('memory:m3', 'TARGETS_AUDIENCE', 'audience:ctos'),
    ]


def test_strategy_edges():
    record = make_record('brand_strategy',
                         record_id='m4',
                         strategic_data={
                             'career_goals': ['Staff engineer'],
                             'market_segment': 'Fintech'
                         })
    assert infer_brand_relationships(record) == [
        Relationship('memory:m4', 'SUPPORTS_GOAL', 'career_goal:staff engineer'),
        Relationship('memory:m4', 'INFLUENCED_BY', 'market_trend:fintech'),
    ]


def test_feedback_edge():
    record = make_record('user_feedback', record_id='m5', brand_context={'user_id': 'user-1', 'content_id': 'post-9'})
    assert infer_brand_relationships(record) == [Relationship('content:post-9', 'REFINED_BY', 'memory:m5')]


def test_no_edges_for_bare_record():
    assert infer_brand_relationships(make_record('workflow_learning')) == []
