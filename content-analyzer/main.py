"""
Content Analyzer Cloud Function

Analyzes and extracts bookmarked webpages for the Bookmark Knowledge Base.

Responsibilities:
- Validate inbound requests (URL safety, required fields)
- Extract page content (with fallback metadata on fetch failure)
- Run AI content analysis with heuristic fallback

Does NOT:
- Persist results (callers store them)
- Retry failed fetches or AI calls
"""

import functions_framework
import logging
import os
import sys

# Add shared package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from content_intel import (
    CancelScope,
    ContentAnalysisEngine,
    ContentAnalysisRequest,
    ExtractionOptions,
    InvalidRequest,
    Settings,
    configure_logging,
    extract,
    validate_url,
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
logger = logging.getLogger('content_analyzer')

_engine = None


def get_engine() -> ContentAnalysisEngine:
    """Build the analysis engine once per function instance."""
    global _engine
    if _engine is None:
        _engine = ContentAnalysisEngine.from_settings(settings)
    return _engine


@functions_framework.http
def analyze_content(request):
    """
    Analyze a bookmarked page.

    Expected JSON input:
    {
        "url": "https://example.com/article",
        "userId": "user-123",
        "title": "optional",
        "description": "optional",
        "content": "optional pre-fetched text",
        "html": "optional pre-fetched html",
        "preferences": {"analysisDepth": "detailed", "includeSentiment": true}
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response()

    try:
        analysis_request = ContentAnalysisRequest.from_dict(read_json(request))
        scope = CancelScope(settings.request_deadline)
        result = get_engine().analyze_content(analysis_request, scope)

        return json_response({
            'success': True,
            'data': result.to_dict(),
            'processed_at': utc_timestamp(),
        })

    except Exception as e:
        return error_response(e)


@functions_framework.http
def extract_content(request):
    """
    Extract metadata and text from a page.

    Expected JSON input:
    {
        "url": "https://example.com/article",
        "options": {"timeoutMs": 10000, "includeImages": false, "includeLinks": false}
    }

    Unreachable pages return 200 with fallback data (fallback: true).
    """
    if request.method == 'OPTIONS':
        return preflight_response()

    try:
        request_json = read_json(request)
        url = request_json.get('url')
        if not isinstance(url, str) or not url.strip():
            raise InvalidRequest('Missing required field: url')
        url = validate_url(url.strip())

        options = ExtractionOptions.from_dict(
            request_json.get('options'),
            base=ExtractionOptions.from_settings(settings),
        )
        scope = CancelScope(settings.request_deadline)
        content = extract(url, options, scope, strict=False)

        return json_response({
            'success': True,
            'data': content.to_dict(),
            'processed_at': utc_timestamp(),
        })

    except Exception as e:
        return error_response(e)
