"""
Unit tests for HTML parsing in the content extractor.

HTTP behaviour is covered by the integration tests; fetch deadlines use a
fake streaming session here.
"""

import time
from unittest.mock import MagicMock

import pytest
from bs4 import BeautifulSoup

from content_intel.config import ExtractionOptions
from content_intel.errors import FetchFailed, FetchTimeout
from content_intel.extractor import (
    detect_language,
    extract,
    extract_metadata,
    fallback_content,
    fetch_webpage,
    parse_html,
)

PAGE_URL = 'https://example.com/posts/python-tips'


class TestParseHtml:
    """Tests for parse_html()."""

    def test_extracts_metadata(self, sample_article_html):
        content = parse_html(sample_article_html, PAGE_URL)
        assert content.title == '10 Python Tips You Should Know'
        assert content.description == 'Learn essential Python tips'
        assert content.site_name == 'Example Blog'
        assert content.language == 'en'
        assert content.fallback is False

    def test_body_excludes_scripts_and_navigation(self, sample_article_html):
        content = parse_html(sample_article_html, PAGE_URL)
        assert 'Python development' in content.body_text
        assert 'tracking' not in content.body_text
        assert 'Copyright' not in content.body_text
        assert 'About' not in content.body_text
        assert content.word_count > 10

    def test_images_and_links_are_opt_in(self, sample_article_html):
        content = parse_html(sample_article_html, PAGE_URL)
        assert content.images == []
        assert content.links == []

    def test_images_are_resolved_against_page_url(self, sample_article_html):
        content = parse_html(sample_article_html, PAGE_URL, ExtractionOptions(include_images=True))
        assert content.images == [
            {'src': 'https://example.com/images/tip.png', 'alt': 'A tip', 'title': None}
        ]

    def test_links_are_classified(self, sample_article_html):
        content = parse_html(sample_article_html, PAGE_URL, ExtractionOptions(include_links=True))
        by_href = {link['href']: link for link in content.links}
        assert by_href['https://docs.python.org/3/']['type'] == 'external'
        assert by_href['https://example.com/more-tips']['type'] == 'internal'

    def test_body_is_bounded_but_word_count_is_not(self):
        html = '<html><body><p>' + 'word ' * 100 + '</p></body></html>'
        content = parse_html(html, PAGE_URL, ExtractionOptions(max_words=5))
        assert content.body_text == 'word word word word word'
        assert content.word_count == 100

    def test_empty_document_falls_back_to_hostname(self):
        content = parse_html('', PAGE_URL)
        assert content.title == 'example.com'
        assert content.description == ''
        assert content.word_count == 0
        assert content.language is None

    def test_detects_undeclared_language(self, sample_spanish_html):
        content = parse_html(sample_spanish_html, 'https://example.es/recetas')
        assert content.language == 'es'

    def test_metadata_is_carried_into_content(self):
        html = (
            '<html lang="en"><head><title>Post</title>'
            '<meta name="author" content="Jane Doe">'
            '<meta name="keywords" content="rust, systems">'
            '<link rel="canonical" href="/posts/rust"></head>'
            '<body><p>Body</p></body></html>'
        )
        data = parse_html(html, PAGE_URL).to_dict()

        assert data['author'] == 'Jane Doe'
        assert data['keywords'] == ['rust', 'systems']
        assert data['canonicalUrl'] == 'https://example.com/posts/rust'
        assert data['publishedDate'] is None
        assert data['mainImage'] is None
        assert data['twitterCard'] == {}


class TestExtractMetadata:
    """Tests for extract_metadata()."""

    def test_title_tag_used_without_og_title(self):
        soup = BeautifulSoup('<title>Plain Title</title>', 'html.parser')
        assert extract_metadata(PAGE_URL, soup)['title'] == 'Plain Title'

    def test_meta_description_used_without_og_description(self):
        soup = BeautifulSoup('<meta name="description" content="About things">', 'html.parser')
        assert extract_metadata(PAGE_URL, soup)['description'] == 'About things'

    def test_twitter_title_precedes_title_tag(self):
        soup = BeautifulSoup(
            '<meta name="twitter:title" content="Card Title"><title>Plain Title</title>', 'html.parser')
        assert extract_metadata(PAGE_URL, soup)['title'] == 'Card Title'

    def test_h1_used_without_any_title(self):
        soup = BeautifulSoup('<body><h1>Heading Title</h1></body>', 'html.parser')
        assert extract_metadata(PAGE_URL, soup)['title'] == 'Heading Title'

    def test_authorship_and_link_metadata(self):
        html = """
        <head>
            <meta name="author" content="By Jane Doe">
            <meta property="article:published_time" content="2024-03-05T10:00:00Z">
            <meta property="og:image" content="/images/cover.png">
            <meta name="keywords" content="python, tips, , python, testing">
            <meta name="twitter:card" content="summary_large_image">
            <meta name="twitter:site" content="@example">
            <link rel="canonical" href="https://example.com/python-tips">
            <link rel="shortcut icon" href="/favicon.ico">
        </head>
        """
        metadata = extract_metadata(PAGE_URL, BeautifulSoup(html, 'html.parser'))

        assert metadata['author'] == 'Jane Doe'
        assert metadata['published_date'] == '2024-03-05'
        assert metadata['main_image'] == 'https://example.com/images/cover.png'
        assert metadata['keywords'] == ['python', 'tips', 'testing']
        assert metadata['canonical_url'] == 'https://example.com/python-tips'
        assert metadata['favicon'] == 'https://example.com/favicon.ico'
        assert metadata['twitter_card'] == {'card': 'summary_large_image', 'site': '@example'}

    def test_fallback_sources_for_author_date_and_image(self):
        html = """
        <head><meta name="twitter:image" content="https://cdn.example.com/card.jpg"></head>
        <body>
            <span class="post-byline">by Sam Lee</span>
            <time datetime="2023-11-20">November 20</time>
        </body>
        """
        metadata = extract_metadata(PAGE_URL, BeautifulSoup(html, 'html.parser'))

        assert metadata['author'] == 'Sam Lee'
        assert metadata['published_date'] == '2023-11-20'
        assert metadata['main_image'] == 'https://cdn.example.com/card.jpg'

    def test_missing_metadata_is_empty(self):
        metadata = extract_metadata(PAGE_URL, BeautifulSoup('<p>Nothing here</p>', 'html.parser'))

        assert metadata['author'] is None
        assert metadata['published_date'] is None
        assert metadata['main_image'] is None
        assert metadata['keywords'] == []
        assert metadata['canonical_url'] is None
        assert metadata['twitter_card'] == {}

    def test_unparseable_date_is_dropped(self):
        soup = BeautifulSoup('<meta name="date" content="last Tuesday">', 'html.parser')
        assert extract_metadata(PAGE_URL, soup)['published_date'] is None


class TestDetectLanguage:
    """Tests for detect_language()."""

    def test_declared_language_wins(self):
        assert detect_language('the and of', 'fr-FR') == 'fr'

    def test_english_body(self):
        text = ('The cat sat on the mat and looked at the door for a while, waiting for '
                'the dog to come home from its long walk through the park.')
        assert detect_language(text) == 'en'

    def test_invalid_declared_code_falls_through(self):
        text = ('La cocina de la casa es el lugar para los amigos y la familia, y las '
                'recetas de la abuela son las mejores para una fiesta.')
        assert detect_language(text, 'x') == 'es'

    def test_undetectable_text(self):
        assert detect_language('') is None
        assert detect_language('   ') is None
        assert detect_language('12345 67890 !!!') is None


class TestFallbackContent:
    """Tests for fallback_content()."""

    def test_fallback_uses_hostname(self):
        content = fallback_content('https://example.com/missing', FetchFailed(status=404))
        assert content.fallback is True
        assert content.title == 'example.com'
        assert content.description == 'Link from example.com'
        assert content.status_code == 404
        assert content.error == 'HTTP error: 404'


class TestFetchDeadline:
    """fetch_webpage() bounds the whole fetch by options.timeout, not each socket read."""

    @staticmethod
    def _streaming_session(chunks, delay):
        def slow_body(chunk_size=None):
            for chunk in chunks:
                time.sleep(delay)
                yield chunk

        response = MagicMock(is_redirect=False, status_code=200, url=PAGE_URL, encoding=None,
                             headers={'Content-Type': 'text/html'})
        response.iter_content.side_effect = slow_body
        session = MagicMock()
        session.get.return_value = response
        return session

    def test_slow_body_raises_fetch_timeout(self):
        session = self._streaming_session([b'<p>chunk</p>'] * 6, delay=0.2)

        started = time.monotonic()
        with pytest.raises(FetchTimeout):
            fetch_webpage(PAGE_URL, ExtractionOptions(timeout=0.5), session=session)

        assert time.monotonic() - started < 1.0
        session.get.return_value.close.assert_called_once()

    def test_request_timeout_is_bounded_by_time_left(self):
        session = self._streaming_session([b'<p>fast</p>'], delay=0)

        page = fetch_webpage(PAGE_URL, ExtractionOptions(timeout=5), session=session)

        assert page.html == '<p>fast</p>'
        assert 0 < session.get.call_args.kwargs['timeout'] <= 5

    def test_slow_extract_falls_back(self):
        session = self._streaming_session([b'<p>chunk</p>'] * 6, delay=0.2)

        content = extract(PAGE_URL, ExtractionOptions(timeout=0.5), session=session)

        assert content.fallback is True
        assert 'timed out' in content.error
