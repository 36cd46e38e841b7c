"""
Unit tests for the content analysis engine.

Page fetching is not exercised here: requests either carry their own
content/html or are rejected before any fetch.
"""

import pytest
import responses

from content_intel.concurrency import CancelScope
from content_intel.content_analysis import (
    ContentAnalysisEngine,
    detect_content_type,
    heuristic_quality,
)
from content_intel.errors import (
    ContentPolicyViolation,
    InvalidRequest,
    OperationCancelled,
    SsrfRejected,
)
from content_intel.text_utils import MAX_SUMMARY_LENGTH

# Nine words, repeated to 450
ARTICLE_TEXT = ' '.join(['The garden was quiet after the rain this morning.'] * 50)

AI_REPLY = {
    'summary': 'A practical list of Python tips.',
    'tags': ['Python', 'python', 'Tips', 'the'],
    'category': 'programming',
    'topics': ['python'],
    'sentiment': 'positive',
    'complexity': 'beginner',
    'qualityScore': 8,
    'keyPoints': ['Use the standard library'],
    'relatedKeywords': ['pep8'],
    'readingTime': 99,
    'language': 'en',
    'confidence': 0.9,
}


def _request(**overrides):
    payload = {
        'url': 'https://example.com/python-tips',
        'userId': 'user-1',
        'title': 'Python Tips | Example Blog',
        'content': ARTICLE_TEXT,
    }
    payload.update(overrides)
    return payload


class TestDetectContentType:
    """Tests for detect_content_type()."""

    @pytest.mark.parametrize('url,expected', [
        ('https://www.youtube.com/watch?v=abc', 'video'),
        ('https://open.spotify.com/episode/abc', 'podcast'),
        ('https://x.com/someone/status/1', 'social'),
        ('https://www.linkedin.com/posts/someone', 'social'),
        ('https://github.com/psf/requests', 'code'),
        ('https://www.amazon.com/dp/B000', 'product'),
        ('https://docs.python.org/3/', 'documentation'),
        ('https://www.nytimes.com/2024/01/01/story.html', 'news'),
        ('https://blog.example.com/post', 'blog'),
    ])
    def test_url_patterns(self, url, expected):
        assert detect_content_type(url) == expected

    def test_social_host_does_not_match_inside_other_domains(self):
        assert detect_content_type('https://www.dropbox.com/s/abc') == 'other'

    def test_tutorial_marker_in_title(self):
        assert detect_content_type('https://example.com/a', 'How to bake bread', 'text') == 'tutorial'

    def test_plain_article(self):
        assert detect_content_type('https://example.com/a', 'Thoughts', 'some text') == 'article'


class TestHeuristicQuality:
    """Tests for heuristic_quality()."""

    @pytest.mark.parametrize('words,title,description,expected', [
        (0, False, False, 0),
        (50, True, False, 3),
        (450, True, False, 7),
        (5000, True, True, 10),
    ])
    def test_bands(self, words, title, description, expected):
        assert heuristic_quality(words, title, description) == expected


class TestAnalyzeContent:
    """Tests for ContentAnalysisEngine.analyze_content()."""

    def test_heuristic_result_without_ai(self):
        result = ContentAnalysisEngine(ai_client=None).analyze_content(_request())
        assert result.derivation == 'heuristic'
        assert result.is_ai_derived is False
        assert result.confidence == 0.3
        assert result.title == 'Python Tips | Example Blog'
        assert result.word_count == 450
        assert result.reading_time == 3
        assert result.quality_score == 7
        assert result.category == 'other'
        assert result.tags == []
        assert result.content_type == 'article'
        assert result.language == 'en'
        assert 0 < len(result.summary) <= MAX_SUMMARY_LENGTH

    def test_ai_result_is_coerced(self, make_ai_client):
        client, backend = make_ai_client(AI_REPLY)
        result = ContentAnalysisEngine(client).analyze_content(_request())

        assert len(backend.calls) == 1
        assert result.derivation == 'ai'
        assert result.summary == 'A practical list of Python tips.'
        assert result.tags == ['python', 'tips']
        assert result.category == 'programming'
        assert result.sentiment == 'positive'
        assert result.quality_score == 8
        assert result.confidence == 0.9
        assert result.related_keywords == ['pep8']
        # Word count is known, so the model's reading time is not used
        assert result.reading_time == 3

    def test_depth_sets_token_budget(self, make_ai_client):
        client, backend = make_ai_client(AI_REPLY)
        engine = ContentAnalysisEngine(client)
        engine.analyze_content(_request(preferences={'analysisDepth': 'basic'}))
        engine.analyze_content(_request(preferences={'analysisDepth': 'comprehensive'}))
        assert [call['max_tokens'] for call in backend.calls] == [512, 2048]

    def test_preferences_switch_fields_off(self, make_ai_client):
        client, _ = make_ai_client(AI_REPLY)
        result = ContentAnalysisEngine(client).analyze_content(_request(preferences={
            'includeSentiment': False,
            'includeTopics': False,
            'includeKeywords': False,
            'includeReadingTime': False,
        }))
        assert result.sentiment == 'neutral'
        assert result.topics == []
        assert result.related_keywords == []
        assert result.reading_time == 0

    @pytest.mark.parametrize('reply', [
        ContentPolicyViolation('blocked'),
        'Sorry, I cannot analyze this page.',
        RuntimeError('backend exploded'),
    ])
    def test_ai_failures_fall_back_to_heuristics(self, make_ai_client, reply):
        client, _ = make_ai_client(reply)
        result = ContentAnalysisEngine(client).analyze_content(_request())
        assert result.derivation == 'heuristic'
        assert result.confidence == 0.3

    def test_supplied_html_is_parsed(self, sample_article_html):
        request = _request(content=None, title=None, html=sample_article_html)
        result = ContentAnalysisEngine().analyze_content(request)
        assert result.title == '10 Python Tips You Should Know'
        assert result.description == 'Learn essential Python tips'
        assert result.word_count > 0

    def test_page_title_site_suffix_is_stripped(self):
        html = '<html lang="en"><head><title>Rust 1.75 | The Rust Blog</title></head><body><p>Notes</p></body></html>'
        result = ContentAnalysisEngine().analyze_content(_request(content=None, title=None, html=html))
        assert result.title == 'Rust 1.75'

    def test_supplied_title_is_kept_verbatim(self):
        result = ContentAnalysisEngine().analyze_content(_request(title='Rust 1.75 - Release Notes'))
        assert result.title == 'Rust 1.75 - Release Notes'

    @responses.activate
    def test_unsafe_url_is_rejected_before_any_fetch(self):
        with pytest.raises(SsrfRejected):
            ContentAnalysisEngine().analyze_content({'url': 'http://127.0.0.1/admin', 'userId': 'u'})
        assert len(responses.calls) == 0

    @pytest.mark.parametrize('payload', [
        {'url': 'https://example.com'},
        {'userId': 'u'},
        {'url': 'https://example.com', 'userId': '  '},
        None,
    ])
    def test_invalid_requests(self, payload):
        with pytest.raises(InvalidRequest):
            ContentAnalysisEngine().analyze_content(payload)

    def test_cancelled_scope(self):
        scope = CancelScope()
        scope.cancel()
        with pytest.raises(OperationCancelled):
            ContentAnalysisEngine().analyze_content(_request(), scope)

    def test_processing_time_is_recorded(self):
        result = ContentAnalysisEngine().analyze_content(_request())
        assert result.processing_time_ms >= 0
        assert result.to_dict()['processingTimeMs'] == result.processing_time_ms


class TestBatchAnalyze:
    """Tests for ContentAnalysisEngine.batch_analyze()."""

    def test_outcomes_in_input_order(self):
        outcomes = ContentAnalysisEngine().batch_analyze([
            _request(url='https://example.com/one'),
            {'url': 'https://example.com/two'},
            _request(url='https://example.com/three'),
        ])
        assert [outcome.ok for outcome in outcomes] == [True, False, True]
        assert isinstance(outcomes[1].error, InvalidRequest)
        assert outcomes[2].value.derivation == 'heuristic'
