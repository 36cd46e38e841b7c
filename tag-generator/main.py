"""
Tag Generator Cloud Function

Generates, validates and analyzes bookmark tags for the Bookmark Knowledge Base.

Responsibilities:
- Single-bookmark tag generation (full, quick, validate, merge actions)
- Batch tag generation with per-item failure markers
- Tag usage analytics, clustering and improvement suggestions

Does NOT:
- Fetch pages (tags come from the supplied title/url/content)
- Persist tags (callers store them)
"""

import functions_framework
import logging
import os
import sys

# Add shared package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from content_intel import (
    MAX_BATCH_SIZE,
    CancelScope,
    IntelligentTaggingEngine,
    InvalidInput,
    InvalidRequest,
    Settings,
    TagAnalyticsEngine,
    TaggingOptions,
    analyze_tag_usage,
    configure_logging,
    create_tag_clusters,
    merge_similar_tags,
    validate_tag,
)
from content_intel.http_utils import (
    error_response,
    json_response,
    preflight_response,
    read_json,
    utc_timestamp,
)

# Configuration
settings = Settings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger('tag_generator')

TAG_ACTIONS = ('generate', 'quick', 'validate', 'merge')
ANALYTICS_ACTIONS = ('analyze', 'cluster', 'improve')

_tagging_engine = None
_analytics_engine = None


def get_tagging_engine() -> IntelligentTaggingEngine:
    global _tagging_engine
    if _tagging_engine is None:
        _tagging_engine = IntelligentTaggingEngine.from_settings(settings)
    return _tagging_engine


def get_analytics_engine() -> TagAnalyticsEngine:
    global _analytics_engine
    if _analytics_engine is None:
        _analytics_engine = TagAnalyticsEngine(get_tagging_engine())
    return _analytics_engine


def _require_string(request_json: dict, field: str) -> str:
    value = request_json.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f'Missing required field: {field}')
    return value.strip()


def _tag_list(request_json: dict) -> list:
    tags = request_json.get('tags')
    if isinstance(request_json.get('tag'), str):
        tags = [request_json['tag']]
    if not isinstance(tags, list) or not tags:
        raise InvalidRequest('tags must be a non-empty array')
    return [tag for tag in tags if isinstance(tag, str)]


@functions_framework.http
def generate_tags(request):
    """
    Generate or post-process tags for one bookmark.

    Expected JSON input:
    {
        "action": "generate" | "quick" | "validate" | "merge",
        "title": "Intro to Rust",
        "url": "https://blog.rust-lang.org/intro",
        "content": "optional",
        "description": "optional",
        "options": {"maxTags": 5, "minConfidence": 0.7},
        "tags": ["for", "validate", "and", "merge"]
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response()

    try:
        request_json = read_json(request)
        action = request_json.get('action') or 'generate'
        if action not in TAG_ACTIONS:
            raise InvalidRequest(f"Invalid action. Supported actions: {', '.join(TAG_ACTIONS)}")

        if action == 'validate':
            data = {'results': [
                dict(tag=tag, **validate_tag(tag).to_dict()) for tag in _tag_list(request_json)
            ]}
        elif action == 'merge':
            data = {'tags': merge_similar_tags(_tag_list(request_json))}
        else:
            url = _require_string(request_json, 'url')
            title = request_json.get('title') if isinstance(request_json.get('title'), str) else ''
            description = request_json.get('description')
            engine = get_tagging_engine()

            if action == 'quick':
                data = {'tags': engine.generate_quick_tags(title, url, description)}
            else:
                options = TaggingOptions.from_dict(request_json.get('options'))
                scope = CancelScope(settings.request_deadline)
                tags = engine.generate_tags(title, url, request_json.get('content'),
                                            description, options, scope)
                data = {'tags': [tag.to_dict() for tag in tags]}

        return json_response({
            'success': True,
            'action': action,
            'data': data,
            'processed_at': utc_timestamp(),
        })

    except Exception as e:
        return error_response(e)


@functions_framework.http
def generate_tags_batch(request):
    """
    Generate tags for up to 100 bookmarks.

    Expected JSON input:
    {
        "bookmarks": [{"id": "b1", "title": "...", "url": "https://...", "content": "optional"}],
        "options": {"maxTags": 5}
    }

    Malformed items get their own failure marker; the batch is only rejected
    (400) when every item is malformed.
    """
    if request.method == 'OPTIONS':
        return preflight_response()

    try:
        request_json = read_json(request)
        bookmarks = request_json.get('bookmarks')
        if not isinstance(bookmarks, list) or not bookmarks:
            raise InvalidRequest('bookmarks must be a non-empty array')
        if len(bookmarks) > MAX_BATCH_SIZE:
            raise InvalidRequest(f'Too many bookmarks: {len(bookmarks)} (max {MAX_BATCH_SIZE})')

        options = TaggingOptions.from_dict(request_json.get('options'))
        scope = CancelScope(settings.request_deadline)
        results = get_tagging_engine().generate_tags_batch(bookmarks, options, scope)

        if all(not r.success and r.error.get('stage') == 'validation' for r in results):
            raise InvalidInput('Every bookmark is malformed: each needs an id and a url')

        succeeded = sum(1 for r in results if r.success)
        return json_response({
            'success': True,
            'data': {
                'results': [r.to_dict() for r in results],
                'succeeded': succeeded,
                'failed': len(results) - succeeded,
            },
            'processed_at': utc_timestamp(),
        })

    except Exception as e:
        return error_response(e)


@functions_framework.http
def tag_analytics(request):
    """
    Tag usage analytics over caller-supplied bookmarks.

    Expected JSON input:
    {
        "action": "analyze" | "cluster" | "improve",
        "bookmarks": [{"id": "b1", "tags": ["python", "web"]}],
        "targetBookmark": {"title": "...", "url": "...", "tags": [...]},
        "threshold": 0.25
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response()

    try:
        request_json = read_json(request)
        bookmarks = request_json.get('bookmarks')
        action = request_json.get('action') or 'analyze'
        if not isinstance(bookmarks, list) or not bookmarks:
            raise InvalidRequest('Bookmarks array is required and must not be empty')
        if action not in ANALYTICS_ACTIONS:
            raise InvalidRequest(f"Invalid action. Supported actions: {', '.join(ANALYTICS_ACTIONS)}")

        analytics = analyze_tag_usage(bookmarks)

        if action == 'analyze':
            result = analytics.to_dict()
        elif action == 'cluster':
            threshold = request_json.get('threshold', 0.25)
            if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0 <= threshold < 1:
                raise InvalidRequest('threshold must be a number between 0 and 1')
            result = [cluster.to_dict() for cluster in create_tag_clusters(analytics, threshold)]
        else:
            target = request_json.get('targetBookmark')
            if not target:
                raise InvalidRequest('Target bookmark is required for improvement suggestions')
            scope = CancelScope(settings.request_deadline)
            result = get_analytics_engine().improvement_report(
                target, request_json.get('options'), scope)

        return json_response({
            'success': True,
            'action': action,
            'result': result,
            'totalBookmarks': len(bookmarks),
            'processed_at': utc_timestamp(),
        })

    except Exception as e:
        return error_response(e)
