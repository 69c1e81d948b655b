"""
Unit tests for the category registry (relevancy/categories.py)
"""

import pytest
from pydantic import ValidationError

from config import settings
from relevancy.categories import Category, CategoryRegistry, rank_column_for_tag, validate_rank_column
from relevancy.errors import InvalidRankColumn, UnknownCategory


class TestRankColumnValidation:
    """Rank column identifiers must match ^[a-z0-9_]+$"""

    @pytest.mark.parametrize('column', ['business_relevancy', 'ai_for_dentists_relevancy', 'x1'])
    def test_valid_columns(self, column):
        assert validate_rank_column(column) == column

    @pytest.mark.parametrize('column', [
        '',
        'Business_relevancy',
        'fleet-relevancy',
        'fleet relevancy',
        'x; DROP TABLE courses',
        'business_relevancy\n',
        None,
    ])
    def test_invalid_columns_rejected(self, column):
        with pytest.raises(InvalidRankColumn):
            validate_rank_column(column)

    def test_invalid_column_is_value_error(self):
        """Test that callers catching ValueError also catch InvalidRankColumn"""
        with pytest.raises(ValueError):
            validate_rank_column('Bad')

    def test_column_for_tag(self):
        """Test that hyphens in tags become underscores"""
        assert rank_column_for_tag('ai-for-dentists') == 'ai_for_dentists_relevancy'
        assert rank_column_for_tag(' Legal ') == 'legal_relevancy'

    def test_column_for_unsafe_tag(self):
        with pytest.raises(InvalidRankColumn):
            rank_column_for_tag('legal"; --')

    def test_category_rejects_invalid_column(self):
        with pytest.raises(ValidationError):
            Category(name='Bad', context='x', rank_column='Bad-Column')


class TestCategoryRegistry:
    """Tests for CategoryRegistry"""

    def test_builtin_categories_from_yaml(self):
        """Test loading the shipped categories config"""
        registry = CategoryRegistry.from_yaml(settings.CATEGORIES_CONFIG_PATH)

        assert registry.names == ['Business', 'Restaurant', 'Fleet']
        assert registry.get('Fleet').rank_column == 'fleet_relevancy'
        assert registry.version == 1
        assert '\n' not in registry.get('Business').context

    def test_from_config_requires_categories(self):
        with pytest.raises(ValueError):
            CategoryRegistry.from_config({'version': 1, 'categories': []})

    def test_unknown_category(self, registry):
        with pytest.raises(UnknownCategory):
            registry.get('Dentists')

    def test_unknown_category_is_key_error(self, registry):
        with pytest.raises(KeyError):
            registry.get('Dentists')

    def test_duplicate_name_rejected(self, business):
        with pytest.raises(ValueError):
            CategoryRegistry([business, business])

    def test_duplicate_column_rejected(self, business):
        clash = Category(name='Other', context='x', rank_column=business.rank_column)
        with pytest.raises(ValueError):
            CategoryRegistry([business, clash])

    def test_find_is_case_insensitive(self, registry):
        """Test lookup by name in any case, or by rank column"""
        assert registry.find('business').name == 'Business'
        assert registry.find('fleet_relevancy').name == 'Fleet'
        assert registry.find('nothing') is None

    def test_membership_and_iteration(self, registry):
        assert 'Business' in registry
        assert 'Dentists' not in registry
        assert len(registry) == 2
        assert [c.name for c in registry] == ['Business', 'Fleet']


class TestLandingPages:
    """Tests for CategoryRegistry.with_landing_pages"""

    def test_landing_pages_added_to_new_registry(self, registry):
        """Test that landing pages extend a copy and leave the original untouched"""
        extended = registry.with_landing_pages([
            {'tag': 'dentists', 'name': 'Dentists', 'description': 'Dental clinics',
             'relevancy_column': 'dentists_relevancy'},
        ])

        assert 'dentists' in extended
        assert extended.get('dentists').context == 'Dental clinics'
        assert 'dentists' not in registry

    def test_missing_description_gets_default_context(self, registry):
        extended = registry.with_landing_pages([
            {'tag': 'legal', 'name': 'Legal', 'description': None, 'relevancy_column': 'legal_relevancy'},
        ])

        assert extended.get('legal').context == 'AI courses relevant to Legal'

    def test_invalid_column_skipped(self, registry):
        """Test that a landing page with an unsafe column is skipped, not interpolated"""
        extended = registry.with_landing_pages([
            {'tag': 'evil', 'name': 'Evil', 'description': '', 'relevancy_column': 'x; DROP TABLE courses'},
            {'tag': 'ok', 'name': 'Ok', 'description': '', 'relevancy_column': 'ok_relevancy'},
        ])

        assert 'evil' not in extended
        assert 'ok' in extended

    def test_clashing_column_skipped(self, registry):
        extended = registry.with_landing_pages([
            {'tag': 'biz', 'name': 'Biz', 'description': '', 'relevancy_column': 'business_relevancy'},
        ])

        assert len(extended) == len(registry)
