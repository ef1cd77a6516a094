"""Tests for memory types, metadata variants and option validation."""

from datetime import datetime, timezone

import pytest

from brandmem.models.schema import (BRAND_MEMORY_COLLECTIONS, BrandMemoryType, BrandStrategyMetadata,
                                    ContentPerformanceMetadata, ValidationError, dump_metadata, resolve_collection,
                                    validate_feedback, validate_metadata, validate_search_options)


class TestCollections:

    def test_every_type_has_a_distinct_collection(self):
        assert set(BRAND_MEMORY_COLLECTIONS) == set(BrandMemoryType)
        assert len(set(BRAND_MEMORY_COLLECTIONS.values())) == len(BrandMemoryType)

    @pytest.mark.parametrize('memory_type,collection', [
        ('dev_achievement', 'dev_achievements'),
        ('content_performance', 'content_metrics'),
        ('brand_strategy', 'brand_history'),
        ('skill_profile', 'skill_evolution'),
        ('career_milestone', 'career_milestones'),
        ('market_insight', 'market_intelligence'),
        ('user_feedback', 'user_feedback'),
        ('workflow_learning', 'agent_learning'),
    ])
    def test_resolve_collection(self, memory_type, collection):
        assert resolve_collection(memory_type) == collection
        assert resolve_collection(BrandMemoryType(memory_type)) == collection
        assert resolve_collection(memory_type) == resolve_collection(memory_type)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError) as exc:
            resolve_collection('blog_post')
        assert exc.value.field == 'type'


class TestMetadata:

    def test_variant_selected_by_type(self):
        metadata = validate_metadata({
            'type': 'content_performance',
            'content_metrics': {
                'platform': 'linkedin',
                'engagement': 0.8
            }
        })
        assert isinstance(metadata, ContentPerformanceMetadata)
        assert metadata.metrics.platform == 'linkedin'
        assert metadata.importance == 0.7
        assert metadata.source == 'brand-memory'

    def test_sub_structure_not_allowed_on_variant(self):
        with pytest.raises(ValidationError) as exc:
            validate_metadata({'type': 'brand_strategy', 'technical_data': {'technologies': ['python']}})
        assert exc.value.field == 'metadata.technical_data'

    @pytest.mark.parametrize('field,value', [('importance', 1.2), ('importance', -0.1)])
    def test_importance_out_of_range(self, field, value):
        with pytest.raises(ValidationError) as exc:
            validate_metadata({'type': 'dev_achievement', field: value})
        assert exc.value.field == 'metadata.importance'

    def test_confidence_out_of_range_names_nested_field(self):
        with pytest.raises(ValidationError) as exc:
            validate_metadata({'type': 'dev_achievement', 'brand_context': {'user_id': 'u', 'confidence_score': 1.5}})
        assert exc.value.field == 'metadata.brand_context.confidence_score'

    def test_invalid_enum_value(self):
        with pytest.raises(ValidationError) as exc:
            validate_metadata({'type': 'skill_profile', 'technical_data': {'skill_level': 'guru'}})
        assert exc.value.field == 'metadata.technical_data.skill_level'

    def test_type_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_metadata({'importance': 0.5})
        assert exc.value.field == 'metadata.type'

    def test_model_instance_passes_through(self):
        metadata = BrandStrategyMetadata(strategic_data={'brand_pillars': ['open source']})
        assert validate_metadata(metadata) is metadata

    def test_dump_drops_empty_fields(self):
        dumped = dump_metadata(validate_metadata({'type': 'workflow_learning'}))
        assert dumped['type'] == 'workflow_learning'
        assert 'brand_context' not in dumped

    def test_validated_by_human_defaults_false(self):
        assert validate_metadata({'type': 'dev_achievement'}).validated_by_human is False


class TestSearchOptions:

    def test_user_id_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_search_options({'query': 'python'})
        assert exc.value.field == 'user_id'

    def test_blank_user_id_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_search_options({'user_id': '  '})
        assert exc.value.field == 'user_id'

    @pytest.mark.parametrize('options,field', [
        ({'limit': 0}, 'limit'),
        ({'offset': -1}, 'offset'),
        ({'min_relevance': 1.5}, 'min_relevance'),
        ({'memory_types': ['podcast']}, 'memory_types.0'),
        ({'validation_status': {'min_confidence': 2}}, 'validation_status.min_confidence'),
    ])
    def test_invalid_fields(self, options, field):
        with pytest.raises(ValidationError) as exc:
            validate_search_options({'user_id': 'user-1', **options})
        assert exc.value.field == field

    def test_time_range_must_be_ordered(self):
        with pytest.raises(ValidationError) as exc:
            validate_search_options({
                'user_id': 'user-1',
                'time_range': {
                    'start': datetime(2026, 2, 1, tzinfo=timezone.utc),
                    'end': datetime(2026, 1, 1, tzinfo=timezone.utc)
                }
            })
        assert exc.value.field == 'time_range'

    def test_enum_values_kept_as_strings(self):
        options = validate_search_options({'user_id': 'user-1', 'memory_types': [BrandMemoryType.DEV_ACHIEVEMENT]})
        assert options.memory_types == ['dev_achievement']


class TestFeedback:

    def test_rating_range(self):
        with pytest.raises(ValidationError) as exc:
            validate_feedback({'approved': True, 'rating': 6})
        assert exc.value.field == 'feedback.rating'

    def test_approved_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_feedback({'corrections': 'shorter'})
        assert exc.value.field == 'feedback.approved'
