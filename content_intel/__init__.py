"""Content intelligence pipeline for Bookmark Knowledge Base."""

from .errors import (
    ContentIntelError,
    InputError,
    InvalidRequest,
    InvalidInput,
    MalformedUrl,
    SsrfRejected,
    FetchError,
    FetchTimeout,
    FetchFailed,
    ParseFailed,
    AIClientError,
    AIUnavailable,
    RateLimited,
    ContentPolicyViolation,
    AITimeout,
    MalformedResponse,
    OperationCancelled,
    InternalError,
)

from .config import (
    Settings,
    ExtractionOptions,
    TaggingOptions,
    QUICK_TAGGING,
    MAX_BATCH_SIZE,
    configure_logging,
)

from .models import (
    AnalysisPreferences,
    ContentAnalysisRequest,
    ContentAnalysisResult,
    ExtractedContent,
    TagCandidate,
    Tag,
    TagValidation,
    TagStats,
    TagUsageAnalytics,
    TagCluster,
    BatchItemResult,
)

from .concurrency import CancelScope, run_isolated
from .url_safety import validate_url, is_safe_url
from .extractor import extract, fetch_webpage, parse_html
from .ai_client import AIClient, GeminiBackend
from .content_analysis import ContentAnalysisEngine
from .tag_utils import normalize_tag, validate_tag, merge_similar_tags
from .tagging import IntelligentTaggingEngine
from .tag_analytics import TagAnalyticsEngine, analyze_tag_usage, create_tag_clusters

__all__ = [
    # Errors
    'ContentIntelError',
    'InputError',
    'InvalidRequest',
    'InvalidInput',
    'MalformedUrl',
    'SsrfRejected',
    'FetchError',
    'FetchTimeout',
    'FetchFailed',
    'ParseFailed',
    'AIClientError',
    'AIUnavailable',
    'RateLimited',
    'ContentPolicyViolation',
    'AITimeout',
    'MalformedResponse',
    'OperationCancelled',
    'InternalError',
    # Configuration
    'Settings',
    'ExtractionOptions',
    'TaggingOptions',
    'QUICK_TAGGING',
    'MAX_BATCH_SIZE',
    'configure_logging',
    # Models
    'AnalysisPreferences',
    'ContentAnalysisRequest',
    'ContentAnalysisResult',
    'ExtractedContent',
    'TagCandidate',
    'Tag',
    'TagValidation',
    'TagStats',
    'TagUsageAnalytics',
    'TagCluster',
    'BatchItemResult',
    # Components
    'CancelScope',
    'run_isolated',
    'validate_url',
    'is_safe_url',
    'extract',
    'fetch_webpage',
    'parse_html',
    'AIClient',
    'GeminiBackend',
    'ContentAnalysisEngine',
    'normalize_tag',
    'validate_tag',
    'merge_similar_tags',
    'IntelligentTaggingEngine',
    'TagAnalyticsEngine',
    'analyze_tag_usage',
    'create_tag_clusters',
]
