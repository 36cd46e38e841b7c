"""
Intelligent Tagging Engine

Generates tags for a bookmark from three independent sources and reduces
them to a short, ranked list:

    COLLECT (ai | content | url, in parallel) -> MERGE -> VALIDATE -> RANK -> TRUNCATE

A failing source contributes nothing; generate_tags() only raises when the
request is cancelled.
"""

import logging
import re
from collections import Counter
from functools import partial
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlparse

from .ai_client import AIClient
from .analysis_utils import coerce_tag_payload
from .concurrency import CancelScope, check_scope, run_isolated
from .config import MAX_BATCH_SIZE, QUICK_TAGGING, Settings, TaggingOptions
from .errors import ContentIntelError, InternalError, InvalidInput
from .models import (
    SOURCE_AI,
    SOURCE_CONTENT,
    SOURCE_PRIORITY,
    SOURCE_URL,
    BatchItemResult,
    Tag,
    TagCandidate,
)
from .tag_utils import (
    canonical_tag,
    category_color,
    category_weight,
    collapse_plurals,
    validate_tag,
)
from .text_utils import sanitize_text, tokenize, truncate_words

logger = logging.getLogger(__name__)

# Content source
TITLE_WEIGHT = 3
MAX_CONTENT_CANDIDATES = 15
CONTENT_MIN_CONFIDENCE = 0.5
CONTENT_MAX_CONFIDENCE = 0.9
# Score at which a term counts as fully supported
CONTENT_FULL_SUPPORT = 3

# URL source
DOMAIN_CONFIDENCE = 0.8
FIRST_SEGMENT_CONFIDENCE = 0.7
SEGMENT_CONFIDENCE = 0.6
MAX_PATH_SEGMENTS = 4
MAX_SLUG_WORDS = 3
SECOND_LEVEL_LABELS = {'co', 'com', 'org', 'net', 'ac', 'gov', 'edu'}
URL_NOISE = {
    'www', 'com', 'org', 'net', 'io', 'html', 'htm', 'php', 'index', 'amp', 'page',
    'pages', 'post', 'posts', 'articles', 'blog', 'en', 'wiki', 'watch', 'status',
}
FILE_EXTENSION_PATTERN = re.compile(r'\.(html?|php|aspx?|jsp|md)$', re.I)
ID_SEGMENT_PATTERN = re.compile(r'^(\d+|[0-9a-f]{8,}|[0-9a-f-]{16,})$', re.I)

# AI source
AI_TOPIC_CONFIDENCE = 0.8
AI_CATEGORY_CONFIDENCE = 0.95
MAX_PROMPT_WORDS = 500
AI_TAG_MAX_TOKENS = 400

TAG_SYSTEM_PROMPT = (
    'You are a bookmark organizer. You suggest short, specific tags for saved web pages '
    'and answer with JSON only.'
)


def build_tag_prompt(title: str, url: str, content: Optional[str] = None,
                     description: Optional[str] = None,
                     max_words: int = MAX_PROMPT_WORDS) -> str:
    body, _ = truncate_words(sanitize_text(content or ''), max_words)
    return f"""Suggest up to 10 tags for this bookmark.

Rules:
- Tags are lowercase, use hyphens between words, and are 2-30 characters long
- Prefer specific technologies, topics and concepts over generic words
- confidence is a number between 0 and 1

URL: {url}
Title: {sanitize_text(title)}
Description: {sanitize_text(description or '')}

Content:
{body}

Respond in this exact JSON format:
{{"tags": [{{"tag": "example-tag", "confidence": 0.9}}], "category": "technology|programming|science|business|education|research|documentation|tutorial|news|entertainment|design|health|finance|other", "topics": ["topic"]}}
"""


# ============================================================================
# Candidate sources
# ============================================================================

def _bigrams(tokens: Sequence[str], options: TaggingOptions) -> List[str]:
    pairs = []
    for first, second in zip(tokens, tokens[1:]):
        if (validate_tag(first, options.custom_stop_words, options.exclude_common_words).valid and
                validate_tag(second, options.custom_stop_words, options.exclude_common_words).valid):
            pairs.append(f'{first}-{second}')
    return pairs


def content_candidates(title: str, content: Optional[str] = None,
                       description: Optional[str] = None,
                       options: Optional[TaggingOptions] = None) -> List[TagCandidate]:
    """
    Frequency-based keywords from the title, description and body.

    Title terms count TITLE_WEIGHT times. Bigrams are kept only when they
    repeat or appear in the title. Confidence scales with the term's score
    relative to the top term.
    """
    options = options or TaggingOptions()
    title_tokens = tokenize(title)
    body_tokens = tokenize(f'{description or ""} {content or ""}')

    scores = Counter()
    for token in title_tokens:
        scores[token] += TITLE_WEIGHT
    for token in body_tokens:
        scores[token] += 1

    title_pairs = Counter(_bigrams(title_tokens, options))
    body_pairs = Counter(_bigrams(body_tokens, options))
    for pair in set(title_pairs) | set(body_pairs):
        if title_pairs[pair] or body_pairs[pair] >= 2:
            scores[pair] += title_pairs[pair] * TITLE_WEIGHT + body_pairs[pair]

    eligible = {}
    for term, score in scores.items():
        check = validate_tag(term, options.custom_stop_words, options.exclude_common_words)
        if check.valid:
            eligible[check.cleaned] = max(score, eligible.get(check.cleaned, 0))
    if not eligible:
        return []

    top_score = max(eligible.values())
    ranked = sorted(eligible.items(), key=lambda item: (-item[1], item[0]))[:MAX_CONTENT_CANDIDATES]

    candidates = []
    for term, score in ranked:
        support = min(1.0, score / CONTENT_FULL_SUPPORT)
        confidence = CONTENT_MIN_CONFIDENCE + (CONTENT_MAX_CONFIDENCE - CONTENT_MIN_CONFIDENCE) * (score / top_score) * support
        candidates.append(TagCandidate(term, round(min(CONTENT_MAX_CONFIDENCE, confidence), 4), SOURCE_CONTENT))
    return candidates


def _domain_label(host: str) -> Optional[str]:
    labels = [label for label in host.split('.') if label]
    if len(labels) < 2:
        return None
    # example.co.uk -> example
    if len(labels) >= 3 and len(labels[-1]) == 2 and labels[-2] in SECOND_LEVEL_LABELS:
        return labels[-3]
    return labels[-2]


def url_candidates(url: str) -> List[TagCandidate]:
    """
    Tags from the registrable domain label and the leading path segments.

    Examples:
        github.com/psf/requests -> github (0.8), psf (0.7), requests (0.6)
    """
    parsed = urlparse(url)
    candidates = []

    domain = _domain_label((parsed.hostname or '').lower())
    if domain and domain not in URL_NOISE:
        candidates.append(TagCandidate(domain, DOMAIN_CONFIDENCE, SOURCE_URL))

    segments = [unquote(segment) for segment in parsed.path.split('/') if segment]
    for position, segment in enumerate(segments[:MAX_PATH_SEGMENTS]):
        segment = FILE_EXTENSION_PATTERN.sub('', segment)
        if not segment or ID_SEGMENT_PATTERN.match(segment):
            continue
        name = canonical_tag(segment.replace('_', '-').replace('+', '-'))
        if not name or name in URL_NOISE or name.count('-') >= MAX_SLUG_WORDS:
            continue
        confidence = FIRST_SEGMENT_CONFIDENCE if position == 0 else SEGMENT_CONFIDENCE
        candidates.append(TagCandidate(name, confidence, SOURCE_URL))

    return candidates


def apply_category_weighting(candidates: Iterable[TagCandidate], category: Optional[str]) -> List[TagCandidate]:
    """Scale AI candidates by the page category's weight (capped at 1.0)."""
    weight = category_weight(category)
    weighted = []
    for candidate in candidates:
        if candidate.source == SOURCE_AI:
            candidate = TagCandidate(
                candidate.tag,
                round(min(1.0, candidate.confidence * weight), 4),
                candidate.source,
                candidate.category,
            )
        weighted.append(candidate)
    return weighted


# ============================================================================
# Merge / validate / rank
# ============================================================================

def merge_candidates(candidates: Iterable[TagCandidate], options: Optional[TaggingOptions] = None) -> List[Tag]:
    """
    Merge candidates that share a canonical name, then drop invalid names.

    The merged tag keeps the highest confidence seen and the union of sources.
    """
    options = options or TaggingOptions()
    named = [(canonical_tag(c.tag), c) for c in candidates]
    named = [(name, c) for name, c in named if name]
    plural_map = collapse_plurals(name for name, _ in named)

    merged: Dict[str, Tag] = {}
    for name, candidate in named:
        name = plural_map[name]
        tag = merged.get(name)
        if tag is None:
            merged[name] = Tag(name=name, confidence=candidate.confidence,
                               category=candidate.category, sources=[candidate.source])
            continue
        tag.confidence = max(tag.confidence, candidate.confidence)
        tag.category = tag.category or candidate.category
        if candidate.source not in tag.sources:
            tag.sources.append(candidate.source)

    tags = []
    for tag in merged.values():
        if not validate_tag(tag.name, options.custom_stop_words, options.exclude_common_words).valid:
            continue
        tag.sources.sort(key=lambda source: SOURCE_PRIORITY.get(source, len(SOURCE_PRIORITY)))
        if tag.category:
            tag.color = category_color(tag.category)
        tags.append(tag)
    return tags


def rank_tags(tags: Iterable[Tag], options: Optional[TaggingOptions] = None) -> List[Tag]:
    """Order by confidence, then source priority (ai > content > url), then name."""
    options = options or TaggingOptions()
    eligible = [tag for tag in tags if tag.confidence >= options.min_confidence]
    eligible.sort(key=lambda tag: (-tag.confidence, tag.best_source_priority, tag.name))
    return eligible[:options.max_tags]


def _as_options(options: Union[TaggingOptions, Mapping, None]) -> TaggingOptions:
    if isinstance(options, TaggingOptions):
        return options
    return TaggingOptions.from_dict(options)


def _batch_item_problem(item) -> Optional[str]:
    if not isinstance(item, Mapping):
        return 'Bookmark must be an object'
    item_id = item.get('id')
    if item_id is None or (isinstance(item_id, str) and not item_id.strip()) or isinstance(item_id, bool):
        return 'Bookmark is missing id'
    if not isinstance(item.get('url'), str) or not item['url'].strip():
        return 'Bookmark is missing url'
    return None


class IntelligentTaggingEngine:
    """
    Tag generation for single bookmarks and batches.

    Args:
        ai_client: Client for the AI source (None or unavailable skips it)
        max_workers: Concurrent items in generate_tags_batch
        max_prompt_words: Body words included in the AI prompt
    """

    def __init__(self, ai_client: Optional[AIClient] = None, max_workers: int = 8,
                 max_prompt_words: int = MAX_PROMPT_WORDS):
        self.ai_client = ai_client
        self.max_workers = max_workers
        self.max_prompt_words = max_prompt_words

    @classmethod
    def from_settings(cls, settings: Settings, ai_client: Optional[AIClient] = None) -> 'IntelligentTaggingEngine':
        return cls(
            ai_client=ai_client or AIClient.from_settings(settings),
            max_workers=settings.batch_workers,
        )

    def ai_candidates(self, title: str, url: str, content: Optional[str] = None,
                      description: Optional[str] = None,
                      scope: Optional[CancelScope] = None) -> Tuple[List[TagCandidate], Optional[str]]:
        """
        Ask the model for tags.

        Returns:
            Tuple of (candidates, category); category is None when not given

        Raises:
            AIClientError family on backend failure
        """
        prompt = build_tag_prompt(title, url, content, description, self.max_prompt_words)
        data = self.ai_client.complete(
            prompt,
            system=TAG_SYSTEM_PROMPT,
            max_tokens=AI_TAG_MAX_TOKENS,
            response_format='json',
            scope=scope,
        )
        payload = coerce_tag_payload(data)

        candidates = [
            TagCandidate(item.tag, item.confidence, SOURCE_AI, payload.category)
            for item in payload.tags
        ]
        candidates.extend(
            TagCandidate(topic, AI_TOPIC_CONFIDENCE, SOURCE_AI, payload.category)
            for topic in payload.topics
        )
        if payload.category and payload.category != 'other':
            candidates.append(TagCandidate(payload.category, AI_CATEGORY_CONFIDENCE, SOURCE_AI, payload.category))
        return candidates, payload.category

    def generate_tags(self, title: str, url: str, content: Optional[str] = None,
                      description: Optional[str] = None,
                      options: Union[TaggingOptions, Mapping, None] = None,
                      scope: Optional[CancelScope] = None) -> List[Tag]:
        """
        Generate ranked tags for one bookmark.

        Args:
            title: Bookmark title
            url: Bookmark URL (only parsed, never fetched)
            content: Optional page text
            description: Optional page description
            options: TaggingOptions or an inbound option dict
            scope: Optional cancel scope

        Returns:
            At most options.max_tags unique tags, each >= options.min_confidence

        Raises:
            OperationCancelled: scope aborted or expired
        """
        options = _as_options(options)
        title = title or ''
        check_scope(scope)

        sources = {}
        if options.include_ai_tags and self.ai_client is not None and self.ai_client.available:
            sources[SOURCE_AI] = partial(self.ai_candidates, title, url, content, description, scope)
        if options.include_content_tags:
            sources[SOURCE_CONTENT] = partial(content_candidates, title, content, description, options)
        if options.include_url_tags:
            sources[SOURCE_URL] = partial(url_candidates, url or '')

        outcomes = run_isolated(sources, scope)

        candidates = []
        category = None
        for source in (SOURCE_AI, SOURCE_CONTENT, SOURCE_URL):
            outcome = outcomes.get(source)
            if outcome is None or not outcome.ok:
                continue
            if source == SOURCE_AI:
                ai_tags, category = outcome.value
                if options.category_weighting and category:
                    ai_tags = apply_category_weighting(ai_tags, category)
                candidates.extend(ai_tags)
            else:
                candidates.extend(outcome.value)

        tags = rank_tags(merge_candidates(candidates, options), options)
        logger.debug('Generated %d tags for %s from %d candidates', len(tags), url, len(candidates))
        return tags

    def generate_quick_tags(self, title: str, url: str, description: Optional[str] = None) -> List[str]:
        """Tag names from content and URL heuristics only (no AI call)."""
        return [tag.name for tag in self.generate_tags(title, url, None, description, QUICK_TAGGING)]

    def generate_tags_batch(self, bookmarks, options: Union[TaggingOptions, Mapping, None] = None,
                            scope: Optional[CancelScope] = None) -> List[BatchItemResult]:
        """
        Tag up to MAX_BATCH_SIZE bookmarks concurrently.

        Each item is {id, url, title?, content?, description?}. Malformed items
        and items whose tagging failed get a failure marker; the rest succeed.

        Raises:
            InvalidInput: bookmarks is not a list or is too large
            OperationCancelled: scope aborted or expired
        """
        if not isinstance(bookmarks, list):
            raise InvalidInput('bookmarks must be a list')
        if len(bookmarks) > MAX_BATCH_SIZE:
            raise InvalidInput(f'Too many bookmarks: {len(bookmarks)} (max {MAX_BATCH_SIZE})')
        options = _as_options(options)

        results: List[Optional[BatchItemResult]] = [None] * len(bookmarks)
        tasks = {}
        for index, item in enumerate(bookmarks):
            problem = _batch_item_problem(item)
            if problem:
                item_id = item.get('id') if isinstance(item, Mapping) else None
                results[index] = BatchItemResult(
                    id=str(item_id) if item_id is not None else None,
                    success=False,
                    error=InvalidInput(problem).to_dict(),
                )
                continue
            tasks[index] = partial(
                self.generate_tags,
                item.get('title') or '',
                item['url'],
                item.get('content'),
                item.get('description'),
                options,
                scope,
            )

        outcomes = run_isolated(tasks, scope, max_workers=self.max_workers)
        for index, outcome in outcomes.items():
            item_id = str(bookmarks[index]['id'])
            if outcome.ok:
                results[index] = BatchItemResult(id=item_id, success=True, tags=outcome.value)
                continue
            error = outcome.error
            if not isinstance(error, ContentIntelError):
                logger.error('Tagging failed for bookmark %s: %s', item_id, error)
                error = InternalError('Tag generation failed')
            results[index] = BatchItemResult(id=item_id, success=False, error=error.to_dict())

        succeeded = sum(1 for result in results if result.success)
        logger.info('Batch tagging finished: %d/%d succeeded', succeeded, len(results))
        return results
