"""
Unit tests for tag usage analytics, clustering and improvement suggestions.
"""

import random

import pytest

from content_intel.errors import InvalidInput
from content_intel.tag_analytics import (
    analyze_tag_usage,
    create_tag_clusters,
    jaccard,
    tag_relevance,
)

RUST_BOOKMARK = {
    'title': 'Intro to Rust',
    'url': 'https://blog.rust-lang.org/intro',
    'content': 'Rust is a systems language. Rust is fast.',
    'tags': ['rust', 'cooking'],
}


class TestAnalyzeTagUsage:
    """Tests for analyze_tag_usage()."""

    def test_usage_order(self, sample_bookmarks):
        analytics = analyze_tag_usage(sample_bookmarks)
        assert [s.tag for s in analytics.tags] == [
            'python', 'cooking', 'recipes', 'web', 'baking', 'data', 'django', 'flask',
        ]
        assert analytics.usage['python'] == 3
        assert analytics.total_bookmarks == 5

    def test_per_tag_statistics(self, sample_bookmarks):
        stats = {s.tag: s for s in analyze_tag_usage(sample_bookmarks).tags}
        python = stats['python']
        assert python.related_tags == ['web', 'data', 'django', 'flask']
        assert python.categories == ['programming', 'research']
        assert python.avg_quality_score == 7.0
        assert python.bookmark_ids == ['b1', 'b2', 'b3']

    def test_missing_quality_defaults_to_five(self, sample_bookmarks):
        stats = {s.tag: s for s in analyze_tag_usage(sample_bookmarks).tags}
        assert stats['cooking'].avg_quality_score == 5.0

    def test_co_occurrence_is_symmetric(self, sample_bookmarks):
        analytics = analyze_tag_usage(sample_bookmarks)
        assert analytics.pair_count('python', 'web') == 2
        assert analytics.pair_count('web', 'python') == 2
        assert analytics.pair_count('python', 'cooking') == 0

    def test_trending_needs_more_than_ten_percent(self):
        bookmarks = [{'id': str(i), 'tags': ['common']} for i in range(10)]
        bookmarks.append({'id': 'rare', 'tags': ['common', 'rare']})
        stats = {s.tag: s for s in analyze_tag_usage(bookmarks).tags}
        assert stats['common'].trending is True
        assert stats['rare'].trending is False

    def test_tags_are_canonicalized_per_bookmark(self):
        analytics = analyze_tag_usage([{'id': 1, 'tags': ['JS', 'javascript', ' JavaScript ']}])
        assert analytics.usage == {'javascript': 1}
        assert analytics.tags[0].bookmark_ids == ['1']

    def test_is_deterministic(self, sample_bookmarks):
        first = analyze_tag_usage(sample_bookmarks).to_dict()
        shuffled = [dict(b, tags=random.sample(b['tags'], len(b['tags']))) for b in sample_bookmarks]
        assert analyze_tag_usage(shuffled).to_dict() == first

    def test_empty_list(self):
        analytics = analyze_tag_usage([])
        assert analytics.tags == []
        assert analytics.total_bookmarks == 0

    def test_to_dict_shape(self, sample_bookmarks):
        data = analyze_tag_usage(sample_bookmarks).to_dict()
        assert data['totalBookmarks'] == 5
        assert {'tags': ['python', 'web'], 'count': 2} in data['coOccurrence']
        assert data['tags'][0]['tag'] == 'python'

    @pytest.mark.parametrize('bookmarks', [
        'not a list',
        [{'tags': ['python']}],
        [{'id': '', 'tags': ['python']}],
        [{'id': 'b1'}],
        [{'id': 'b1', 'tags': 'python'}],
        ['b1'],
    ])
    def test_malformed_input(self, bookmarks):
        with pytest.raises(InvalidInput):
            analyze_tag_usage(bookmarks)


class TestClusters:
    """Tests for create_tag_clusters() and jaccard()."""

    def test_jaccard(self, sample_bookmarks):
        analytics = analyze_tag_usage(sample_bookmarks)
        assert jaccard(analytics, 'python', 'web') == pytest.approx(2 / 3)
        assert jaccard(analytics, 'cooking', 'recipes') == 1.0
        assert jaccard(analytics, 'python', 'cooking') == 0.0

    def test_greedy_clusters(self, sample_bookmarks):
        clusters = create_tag_clusters(analyze_tag_usage(sample_bookmarks))
        assert len(clusters) == 2

        programming, cooking = clusters
        assert programming.cluster_id == 'cluster-python'
        assert programming.representative_tag == 'python'
        assert programming.tags == ['python', 'web', 'data', 'django', 'flask']
        assert programming.name == 'Programming (python, web, data)'
        assert programming.color == '#8B5CF6'
        assert programming.bookmark_count == 3

        assert cooking.tags == ['cooking', 'recipes', 'baking']
        assert cooking.bookmark_count == 2
        assert cooking.color == '#6B7280'

    def test_every_tag_in_exactly_one_cluster(self, sample_bookmarks):
        analytics = analyze_tag_usage(sample_bookmarks)
        clusters = create_tag_clusters(analytics, threshold=0.99)
        members = [tag for cluster in clusters for tag in cluster.tags]
        assert sorted(members) == sorted(analytics.usage)
        assert len(members) == len(set(members))

    def test_cluster_name_without_categories(self):
        analytics = analyze_tag_usage([{'id': 'a', 'tags': ['alpha', 'beta']}])
        clusters = create_tag_clusters(analytics)
        assert clusters[0].name == 'alpha, beta'


class TestImprovements:
    """Tests for TagAnalyticsEngine suggestions."""

    def test_tag_relevance(self):
        assert tag_relevance('rust', 'Intro to Rust', 'Rust is fast') == 1.0
        assert tag_relevance('cooking', 'Intro to Rust', 'Rust is fast') == 0.0
        assert tag_relevance('rust', '', '') == 0.0

    def test_suggestions_exclude_existing_tags(self, analytics_engine):
        suggestions = analytics_engine.suggest_tag_improvements(RUST_BOOKMARK)
        assert [t.name for t in suggestions] == ['rust-lang']

    def test_irrelevant_tags(self, analytics_engine):
        assert analytics_engine.find_irrelevant_tags(RUST_BOOKMARK) == ['cooking']

    def test_no_text_means_nothing_is_irrelevant(self, analytics_engine):
        bookmark = {'url': 'https://example.com', 'tags': ['anything']}
        assert analytics_engine.find_irrelevant_tags(bookmark) == []

    def test_improvement_report(self, analytics_engine):
        report = analytics_engine.improvement_report(RUST_BOOKMARK)
        assert report['tagsToAdd'] == ['rust-lang']
        assert report['tagsToRemove'] == ['cooking']
        assert report['confidence'] == 0.8
        assert report['suggestedTags'][0]['name'] == 'rust-lang'

    def test_target_needs_url(self, analytics_engine):
        with pytest.raises(InvalidInput):
            analytics_engine.suggest_tag_improvements({'title': 'No URL'})
