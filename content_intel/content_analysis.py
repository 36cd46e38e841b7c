"""
Content Analysis Engine

Turns a ContentAnalysisRequest into a complete ContentAnalysisResult.

Steps:
1. Validate the request (URL safety, user id)
2. Gather text: supplied content, supplied html, or a fetch via the extractor
3. Run the AI analysis and the heuristic scorer in parallel
4. Coerce the AI JSON, apply preference toggles, bound every field

When the AI call fails for any reason the heuristic result is returned with
derivation='heuristic'. Only invalid input and cancellation raise.
"""

import logging
import time
from functools import partial
from typing import Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

import requests

from .ai_client import AIClient
from .analysis_utils import AIAnalysisPayload, coerce_analysis_payload, validate_analysis_result
from .concurrency import CancelScope, TaskOutcome, check_scope, run_isolated
from .config import ExtractionOptions, Settings
from .errors import AIUnavailable, InvalidRequest, ParseFailed
from .extractor import detect_language, extract, fallback_content, parse_html
from .models import (
    DERIVATION_AI,
    DERIVATION_HEURISTIC,
    ContentAnalysisRequest,
    ContentAnalysisResult,
    ExtractedContent,
)
from .tag_utils import merge_similar_tags, validate_tag
from .text_utils import (
    bound_summary,
    clean_title,
    count_words,
    reading_time,
    sanitize_text,
    truncate_words,
)
from .url_safety import validate_url

logger = logging.getLogger(__name__)

MAX_RESULT_TAGS = 10
MAX_PROMPT_WORDS = 1500
HEURISTIC_CONFIDENCE = 0.3

DEPTH_TOKEN_BUDGET = {
    'basic': 512,
    'detailed': 1024,
    'comprehensive': 2048,
}

# URL patterns for type detection
VIDEO_PATTERNS = ['youtube.com', 'youtu.be', 'vimeo.com', 'tiktok.com', 'twitch.tv']
SOCIAL_PATTERNS = ['twitter.com', 'x.com', 'instagram.com', 'linkedin.com/posts', 'facebook.com', 'threads.net']
CODE_PATTERNS = ['github.com', 'gitlab.com', 'stackoverflow.com', 'codepen.io', 'jsfiddle.net', 'replit.com']
PRODUCT_PATTERNS = ['amazon.', 'ebay.', 'etsy.com', 'shopify.', 'aliexpress.', 'walmart.com', 'target.com']
PODCAST_PATTERNS = ['spotify.com/episode', 'podcasts.apple.com', 'overcast.fm', 'pocketcasts.com']
NEWS_PATTERNS = ['nytimes.com', 'bbc.co', 'reuters.com', 'theguardian.com', 'cnn.com', 'apnews.com', 'news.']
TUTORIAL_MARKERS = ['tutorial', 'how to', 'step-by-step', 'step by step', 'getting started']

ANALYSIS_SYSTEM_PROMPT = (
    'You analyze saved web pages for a bookmark manager and answer with a single JSON object only.'
)


def detect_content_type(url: str, title: str = '', text: str = '') -> str:
    """Detect the type of content from URL patterns, then page text."""
    parsed = urlparse(url)
    domain = (parsed.hostname or '').lower()
    lowered_url = url.lower()
    path = parsed.path.lower()

    for pattern in VIDEO_PATTERNS:
        if pattern in domain:
            return 'video'

    for pattern in PODCAST_PATTERNS:
        if pattern in lowered_url:
            return 'podcast'

    for pattern in SOCIAL_PATTERNS:
        if '/' in pattern:
            if pattern in lowered_url:
                return 'social'
        elif domain == pattern or domain.endswith('.' + pattern):
            return 'social'

    for pattern in CODE_PATTERNS:
        if pattern in domain:
            return 'code'

    for pattern in PRODUCT_PATTERNS:
        if pattern in domain:
            return 'product'

    if domain.startswith('docs.') or path.startswith(('/docs', '/documentation', '/reference', '/api')):
        return 'documentation'

    for pattern in NEWS_PATTERNS:
        if pattern in domain:
            return 'news'

    heading = f'{title} {text[:500]}'.lower()
    if any(marker in heading for marker in TUTORIAL_MARKERS):
        return 'tutorial'

    if domain.startswith('blog.') or '/blog/' in path:
        return 'blog'

    return 'article' if text else 'other'


def heuristic_quality(word_count: int, has_title: bool, has_description: bool) -> int:
    """Quality score 0-10 from content length bands plus metadata presence."""
    if word_count <= 0:
        score = 0
    elif word_count < 100:
        score = 2
    elif word_count < 300:
        score = 4
    elif word_count < 1000:
        score = 6
    elif word_count < 2000:
        score = 7
    else:
        score = 8

    if has_title:
        score += 1
    if has_description:
        score += 1
    return min(score, 10)


def build_analysis_prompt(request: ContentAnalysisRequest, title: str, description: str,
                          body: str, max_words: int = MAX_PROMPT_WORDS) -> str:
    prefs = request.preferences
    bounded_body, _ = truncate_words(body, max_words)
    categories = ', '.join(prefs.categories) or 'General'
    interests = ', '.join(prefs.interests) or 'General'

    return f"""Analyze the following web content.

URL: {request.url}
Title: {sanitize_text(title) or 'Not provided'}
Meta Description: {sanitize_text(description) or 'Not provided'}

Content:
{bounded_body or 'Not available'}

User Preferences:
- Categories of interest: {categories}
- User interests: {interests}
- Language: {prefs.language}
- Analysis depth: {prefs.analysis_depth}

Provide a {prefs.analysis_depth} analysis. Respond in this exact JSON format:
{{
  "summary": "Concise summary, at most 3 sentences",
  "tags": ["lowercase-hyphenated", "specific", "tags"],
  "category": "technology|programming|science|business|education|research|documentation|tutorial|news|entertainment|design|health|finance|other",
  "topics": ["main", "topics"],
  "sentiment": "positive|neutral|negative",
  "complexity": "beginner|intermediate|advanced",
  "qualityScore": 0,
  "keyPoints": ["key takeaway"],
  "relatedKeywords": ["keyword"],
  "contentType": "article|tutorial|reference|news|blog|documentation|tool|video|podcast|product|social|code|other",
  "language": "two-letter ISO 639-1 code",
  "confidence": 0.0
}}

Guidelines:
- qualityScore is an integer from 0 to 10
- confidence is a number from 0 to 1
- Consider the user's interests when choosing category and tags
"""


def _clean_tags(tags: List[str]) -> List[str]:
    merged = merge_similar_tags(tags)
    return [name for name in merged if validate_tag(name).valid][:MAX_RESULT_TAGS]


class ContentAnalysisEngine:
    """
    Analyzes bookmarked pages with an AI backend and a heuristic fallback.

    Args:
        ai_client: Client used for the AI pass (None always yields heuristic results)
        extraction_options: Fetch/parse bounds used when the caller sends no content
        max_prompt_words: Body words included in the prompt
        session: Optional requests session for page fetches
    """

    def __init__(self, ai_client: Optional[AIClient] = None,
                 extraction_options: Optional[ExtractionOptions] = None,
                 max_prompt_words: int = MAX_PROMPT_WORDS,
                 session: Optional[requests.Session] = None):
        self.ai_client = ai_client
        self.extraction_options = extraction_options or ExtractionOptions()
        self.max_prompt_words = max_prompt_words
        self.session = session

    @classmethod
    def from_settings(cls, settings: Settings, ai_client: Optional[AIClient] = None) -> 'ContentAnalysisEngine':
        return cls(
            ai_client=ai_client or AIClient.from_settings(settings),
            extraction_options=ExtractionOptions.from_settings(settings),
        )

    # ------------------------------------------------------------------
    # Gathering
    # ------------------------------------------------------------------

    def _from_supplied_content(self, request: ContentAnalysisRequest) -> ExtractedContent:
        text = sanitize_text(request.content)
        body, _ = truncate_words(text, self.extraction_options.max_words)
        host = urlparse(request.url).hostname or request.url
        return ExtractedContent(
            url=request.url,
            title=request.title or host,
            description=request.description or '',
            body_text=body,
            word_count=count_words(text),
            language=detect_language(text),
        )

    def gather_content(self, request: ContentAnalysisRequest,
                       scope: Optional[CancelScope] = None) -> ExtractedContent:
        """Use supplied content or html if present, otherwise fetch the page."""
        if request.content:
            return self._from_supplied_content(request)

        if request.html:
            try:
                return parse_html(request.html, request.url, self.extraction_options)
            except ParseFailed as e:
                logger.warning('Could not parse supplied html for %s: %s', request.url, e.message)
                return fallback_content(request.url, e)

        return extract(request.url, self.extraction_options, scope, strict=False, session=self.session)

    # ------------------------------------------------------------------
    # Analysis passes
    # ------------------------------------------------------------------

    def ai_analysis(self, request: ContentAnalysisRequest, title: str, description: str,
                    body: str, scope: Optional[CancelScope] = None) -> AIAnalysisPayload:
        """
        Run the AI pass and coerce its JSON.

        Raises:
            AIClientError family on backend failure or unusable output
        """
        if self.ai_client is None:
            raise AIUnavailable('No AI client configured')
        prompt = build_analysis_prompt(request, title, description, body, self.max_prompt_words)
        data = self.ai_client.complete(
            prompt,
            system=ANALYSIS_SYSTEM_PROMPT,
            max_tokens=DEPTH_TOKEN_BUDGET.get(request.preferences.analysis_depth),
            response_format='json',
            scope=scope,
        )
        return coerce_analysis_payload(data)

    def heuristic_analysis(self, request: ContentAnalysisRequest, content: ExtractedContent,
                           title: str, description: str) -> ContentAnalysisResult:
        """Deterministic analysis used on its own whenever the AI pass fails."""
        summary = description or truncate_words(content.body_text, 60)[0]
        return ContentAnalysisResult(
            summary=bound_summary(summary),
            tags=[],
            category='other',
            reading_time=reading_time(content.word_count),
            quality_score=heuristic_quality(content.word_count, bool(title), bool(description)),
            content_type=detect_content_type(request.url, title, content.body_text),
            language=content.language or request.preferences.language or 'en',
            title=title,
            description=description,
            word_count=content.word_count,
            confidence=HEURISTIC_CONFIDENCE,
            derivation=DERIVATION_HEURISTIC,
        )

    def _merge_ai(self, heuristic: ContentAnalysisResult, payload: AIAnalysisPayload) -> ContentAnalysisResult:
        if heuristic.word_count > 0:
            minutes = heuristic.reading_time
        else:
            minutes = payload.reading_time or 0

        # URL patterns are more reliable than the model for these types
        content_type = heuristic.content_type
        if content_type in ('article', 'other') and payload.content_type:
            content_type = payload.content_type

        return ContentAnalysisResult(
            summary=bound_summary(payload.summary) or heuristic.summary,
            tags=_clean_tags(payload.tags),
            category=payload.category,
            topics=payload.topics,
            sentiment=payload.sentiment,
            reading_time=minutes,
            complexity=payload.complexity,
            quality_score=payload.quality_score,
            key_points=payload.key_points,
            related_keywords=payload.related_keywords,
            content_type=content_type,
            language=payload.language or heuristic.language,
            title=heuristic.title,
            description=heuristic.description,
            word_count=heuristic.word_count,
            confidence=round(payload.confidence, 3),
            derivation=DERIVATION_AI,
        )

    @staticmethod
    def _apply_preferences(result: ContentAnalysisResult, request: ContentAnalysisRequest) -> ContentAnalysisResult:
        prefs = request.preferences
        if not prefs.include_keywords:
            result.related_keywords = []
        if not prefs.include_sentiment:
            result.sentiment = 'neutral'
        if not prefs.include_topics:
            result.topics = []
        if not prefs.include_reading_time:
            result.reading_time = 0
        return result

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def analyze_content(self, request: Union[ContentAnalysisRequest, Mapping],
                        scope: Optional[CancelScope] = None) -> ContentAnalysisResult:
        """
        Analyze one bookmark.

        Raises:
            InvalidRequest: missing user id or malformed request
            MalformedUrl / SsrfRejected: unsafe URL
            OperationCancelled: scope aborted or expired
        """
        started = time.monotonic()
        if not isinstance(request, ContentAnalysisRequest):
            request = ContentAnalysisRequest.from_dict(request)
        if not request.user_id or not request.user_id.strip():
            raise InvalidRequest('Missing required field: userId')
        validate_url(request.url)
        check_scope(scope)

        content = self.gather_content(request, scope)
        check_scope(scope)

        # Site suffixes are stripped from page titles only; supplied titles are kept
        title = sanitize_text(request.title) if request.title else clean_title(content.title)
        description = sanitize_text(request.description or content.description)

        outcomes = run_isolated({
            'ai': partial(self.ai_analysis, request, title, description, content.body_text, scope),
            'heuristic': partial(self.heuristic_analysis, request, content, title, description),
        }, scope)

        heuristic_outcome = outcomes['heuristic']
        if not heuristic_outcome.ok:
            # Heuristics are pure; a failure here is a bug
            raise heuristic_outcome.error
        result = heuristic_outcome.value

        ai_outcome = outcomes['ai']
        if ai_outcome.ok:
            result = self._merge_ai(result, ai_outcome.value)
        elif isinstance(ai_outcome.error, AIUnavailable):
            logger.info('AI unavailable for %s, using heuristic analysis', request.url)
        else:
            logger.warning('AI analysis failed for %s: %s', request.url, ai_outcome.error)

        result = self._apply_preferences(result, request)
        result.processing_time_ms = int((time.monotonic() - started) * 1000)

        check = validate_analysis_result(result)
        if not check['valid']:
            logger.error('Analysis result for %s violates its contract: %s', request.url, check['errors'])

        logger.info('Analyzed %s (%s) in %dms', request.url, result.derivation, result.processing_time_ms)
        return result

    def batch_analyze(self, batch: List[Union[ContentAnalysisRequest, Mapping]],
                      scope: Optional[CancelScope] = None,
                      max_workers: int = 4) -> List[TaskOutcome]:
        """
        Analyze several bookmarks concurrently.

        Returns:
            One TaskOutcome per request, in input order; a failed item carries
            its exception instead of a result

        Raises:
            OperationCancelled: scope aborted or expired
        """
        tasks: Dict[int, partial] = {
            index: partial(self.analyze_content, item, scope)
            for index, item in enumerate(batch)
        }
        outcomes = run_isolated(tasks, scope, max_workers=max_workers)
        failed = sum(1 for outcome in outcomes.values() if not outcome.ok)
        logger.info('Batch analysis finished: %d/%d succeeded', len(outcomes) - failed, len(outcomes))
        return [outcomes[index] for index in range(len(batch))]
