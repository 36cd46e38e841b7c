"""
Shared pytest fixtures for the content intelligence tests.
"""

import json
import os
import pytest
import sys
import importlib.util
from pathlib import Path

# Project root for finding Cloud Function modules
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Handlers must never reach the real Gemini API during tests
os.environ.pop('GEMINI_API_KEY', None)

from content_intel import AIClient, IntelligentTaggingEngine, TagAnalyticsEngine


def _load_module_from_path(module_name: str, file_path: Path):
    """Load a module from a specific file path."""
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


# Load Cloud Function modules with unique names at module load time
_content_analyzer_module = _load_module_from_path(
    'content_analyzer_main',
    PROJECT_ROOT / 'content-analyzer' / 'main.py'
)

_tag_generator_module = _load_module_from_path(
    'tag_generator_main',
    PROJECT_ROOT / 'tag-generator' / 'main.py'
)


# ============================================================================
# Fake AI backend
# ============================================================================

class FakeBackend:
    """
    Stand-in for GeminiBackend.

    reply may be a dict (sent as JSON), a string (sent verbatim), an
    exception instance (raised) or a callable taking the call kwargs.
    """

    def __init__(self, reply=None):
        self.reply = reply if reply is not None else {}
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.reply(**kwargs) if callable(self.reply) else self.reply
        if isinstance(reply, BaseException):
            raise reply
        content = reply if isinstance(reply, str) else json.dumps(reply)
        return {'choices': [{'message': {'role': 'assistant', 'content': content}}]}


@pytest.fixture
def fake_backend():
    """Factory for FakeBackend instances."""
    return FakeBackend


@pytest.fixture
def make_ai_client():
    """Factory for an AIClient wired to a FakeBackend."""
    def _make(reply=None, **kwargs):
        backend = FakeBackend(reply)
        return AIClient(backend, **kwargs), backend
    return _make


@pytest.fixture
def heuristic_tagging_engine():
    """Tagging engine with no AI source."""
    return IntelligentTaggingEngine(ai_client=None)


@pytest.fixture
def analytics_engine(heuristic_tagging_engine):
    return TagAnalyticsEngine(heuristic_tagging_engine)


# ============================================================================
# Sample documents
# ============================================================================

@pytest.fixture
def sample_article_html():
    """Returns raw HTML of a sample article page."""
    return """
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <title>10 Python Tips | Example Blog</title>
        <meta property="og:title" content="10 Python Tips You Should Know">
        <meta property="og:site_name" content="Example Blog">
        <meta name="description" content="Learn essential Python tips">
    </head>
    <body>
        <nav><a href="/">Home</a><a href="/about">About</a></nav>
        <article>
            <h1>10 Python Tips You Should Know</h1>
            <p>Here are some tips for Python development. Python is a language
            that rewards small habits, and the tips below cover the standard library.</p>
            <img src="/images/tip.png" alt="A tip">
            <a href="https://docs.python.org/3/">Python docs</a>
            <a href="/more-tips">More tips</a>
        </article>
        <script>console.log('tracking');</script>
        <footer>Copyright Example Blog</footer>
    </body>
    </html>
    """


@pytest.fixture
def sample_spanish_html():
    return """
    <html>
    <head><title>Recetas</title></head>
    <body><main>
        <p>La cocina de la casa es el lugar para los amigos y la familia, y en
        el verano las recetas de la abuela son las mejores para una fiesta con
        los vecinos de la calle.</p>
    </main></body>
    </html>
    """


@pytest.fixture
def sample_bookmarks():
    """Bookmarks with tags for analytics tests."""
    return [
        {'id': 'b1', 'tags': ['python', 'web', 'flask'], 'category': 'programming', 'qualityScore': 8},
        {'id': 'b2', 'tags': ['python', 'web', 'django'], 'category': 'programming', 'qualityScore': 6},
        {'id': 'b3', 'tags': ['python', 'data'], 'category': 'research'},
        {'id': 'b4', 'tags': ['cooking', 'recipes'], 'category': 'other'},
        {'id': 'b5', 'tags': ['cooking', 'recipes', 'baking']},
    ]


@pytest.fixture
def mock_flask_request():
    """Factory for creating mock Flask request objects."""
    class MockRequest:
        def __init__(self, json_data=None, method='POST'):
            self._json = json_data
            self.method = method
            self.data = b''

        def get_json(self, force=False, silent=False):
            return self._json

    return MockRequest


# ============================================================================
# HTTP function fixtures
# ============================================================================

@pytest.fixture
def content_analyzer_module():
    return _content_analyzer_module


@pytest.fixture
def tag_generator_module():
    return _tag_generator_module


@pytest.fixture
def analyze_content():
    """Returns analyze_content entry point from content-analyzer."""
    return _content_analyzer_module.analyze_content


@pytest.fixture
def extract_content():
    """Returns extract_content entry point from content-analyzer."""
    return _content_analyzer_module.extract_content


@pytest.fixture
def generate_tags():
    """Returns generate_tags entry point from tag-generator."""
    return _tag_generator_module.generate_tags


@pytest.fixture
def generate_tags_batch():
    """Returns generate_tags_batch entry point from tag-generator."""
    return _tag_generator_module.generate_tags_batch


@pytest.fixture
def tag_analytics():
    """Returns tag_analytics entry point from tag-generator."""
    return _tag_generator_module.tag_analytics
