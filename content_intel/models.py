"""Value objects passed through the content intelligence pipeline."""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import InvalidRequest

CATEGORIES = (
    'technology', 'programming', 'science', 'business', 'education', 'research',
    'documentation', 'tutorial', 'news', 'entertainment', 'design', 'health',
    'finance', 'other',
)

CONTENT_TYPES = (
    'article', 'tutorial', 'reference', 'news', 'blog', 'documentation', 'tool',
    'video', 'podcast', 'product', 'social', 'code', 'other',
)

SENTIMENTS = ('positive', 'neutral', 'negative')
COMPLEXITIES = ('beginner', 'intermediate', 'advanced')
ANALYSIS_DEPTHS = ('basic', 'detailed', 'comprehensive')

DERIVATION_AI = 'ai'
DERIVATION_HEURISTIC = 'heuristic'

SOURCE_AI = 'ai'
SOURCE_CONTENT = 'content'
SOURCE_URL = 'url'

# Lower value wins when confidences tie
SOURCE_PRIORITY = {SOURCE_AI: 0, SOURCE_CONTENT: 1, SOURCE_URL: 2}


def _optional_str(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _str_tuple(value) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(v.strip() for v in value if isinstance(v, str) and v.strip())


@dataclass(frozen=True)
class AnalysisPreferences:
    analysis_depth: str = 'detailed'
    include_keywords: bool = True
    include_sentiment: bool = True
    include_topics: bool = True
    include_reading_time: bool = True
    language: str = 'en'
    categories: Tuple[str, ...] = ()
    interests: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> 'AnalysisPreferences':
        if not isinstance(data, Mapping):
            return cls()
        depth = data.get('analysisDepth', data.get('analysis_depth'))

        def flag(camel, snake):
            value = data.get(camel, data.get(snake))
            return value is not False

        language = data.get('language')
        return cls(
            analysis_depth=depth if depth in ANALYSIS_DEPTHS else 'detailed',
            include_keywords=flag('includeKeywords', 'include_keywords'),
            include_sentiment=flag('includeSentiment', 'include_sentiment'),
            include_topics=flag('includeTopics', 'include_topics'),
            include_reading_time=flag('includeReadingTime', 'include_reading_time'),
            language=language.strip().lower() if isinstance(language, str) and language.strip() else 'en',
            categories=_str_tuple(data.get('categories')),
            interests=_str_tuple(data.get('interests')),
        )


@dataclass(frozen=True)
class ContentAnalysisRequest:
    url: str
    user_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    html: Optional[str] = None
    preferences: AnalysisPreferences = field(default_factory=AnalysisPreferences)

    @classmethod
    def from_dict(cls, payload: Optional[Mapping]) -> 'ContentAnalysisRequest':
        """Build a request from the inbound JSON shape.

        Raises:
            InvalidRequest: payload is not an object or url/userId are missing
        """
        if not isinstance(payload, Mapping):
            raise InvalidRequest('Request body must be a JSON object')
        url = payload.get('url')
        user_id = payload.get('userId', payload.get('user_id'))
        if not isinstance(url, str) or not url.strip():
            raise InvalidRequest('Missing required field: url')
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidRequest('Missing required field: userId')
        return cls(
            url=url.strip(),
            user_id=user_id,
            title=_optional_str(payload.get('title')),
            description=_optional_str(payload.get('description')),
            content=_optional_str(payload.get('content')),
            html=_optional_str(payload.get('html')),
            preferences=AnalysisPreferences.from_dict(payload.get('preferences')),
        )


@dataclass
class ContentAnalysisResult:
    summary: str = ''
    tags: List[str] = field(default_factory=list)
    category: str = 'other'
    topics: List[str] = field(default_factory=list)
    sentiment: str = 'neutral'
    reading_time: int = 0
    complexity: str = 'intermediate'
    quality_score: int = 0
    key_points: List[str] = field(default_factory=list)
    related_keywords: List[str] = field(default_factory=list)
    content_type: str = 'other'
    language: str = 'en'
    title: str = ''
    description: str = ''
    word_count: int = 0
    confidence: float = 0.0
    derivation: str = DERIVATION_HEURISTIC
    processing_time_ms: int = 0

    @property
    def is_ai_derived(self) -> bool:
        return self.derivation == DERIVATION_AI

    def to_dict(self) -> Dict:
        return {
            'summary': self.summary,
            'tags': list(self.tags),
            'category': self.category,
            'topics': list(self.topics),
            'sentiment': self.sentiment,
            'readingTime': self.reading_time,
            'complexity': self.complexity,
            'qualityScore': self.quality_score,
            'keyPoints': list(self.key_points),
            'relatedKeywords': list(self.related_keywords),
            'contentType': self.content_type,
            'language': self.language,
            'title': self.title,
            'description': self.description,
            'wordCount': self.word_count,
            'confidence': self.confidence,
            'derivation': self.derivation,
            'processingTimeMs': self.processing_time_ms,
        }


@dataclass
class ExtractedContent:
    url: str
    title: str
    description: str = ''
    body_text: str = ''
    word_count: int = 0
    site_name: Optional[str] = None
    language: Optional[str] = None
    author: Optional[str] = None
    published_date: Optional[str] = None
    main_image: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    canonical_url: Optional[str] = None
    favicon: Optional[str] = None
    twitter_card: Dict[str, str] = field(default_factory=dict)
    images: List[Dict] = field(default_factory=list)
    links: List[Dict] = field(default_factory=list)
    status_code: Optional[int] = None
    fallback: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'url': self.url,
            'title': self.title,
            'description': self.description,
            'bodyText': self.body_text,
            'wordCount': self.word_count,
            'siteName': self.site_name,
            'language': self.language,
            'author': self.author,
            'publishedDate': self.published_date,
            'mainImage': self.main_image,
            'keywords': list(self.keywords),
            'canonicalUrl': self.canonical_url,
            'favicon': self.favicon,
            'twitterCard': dict(self.twitter_card),
            'images': list(self.images),
            'links': list(self.links),
            'statusCode': self.status_code,
            'fallback': self.fallback,
            'error': self.error,
        }


@dataclass(frozen=True)
class TagCandidate:
    tag: str
    confidence: float
    source: str
    category: Optional[str] = None


@dataclass
class Tag:
    name: str
    confidence: float
    category: Optional[str] = None
    color: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    @property
    def best_source_priority(self) -> int:
        return min((SOURCE_PRIORITY.get(s, len(SOURCE_PRIORITY)) for s in self.sources),
                   default=len(SOURCE_PRIORITY))

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'confidence': round(self.confidence, 3),
            'category': self.category,
            'color': self.color,
            'sources': list(self.sources),
        }


@dataclass(frozen=True)
class TagValidation:
    valid: bool
    cleaned: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict:
        result = {'valid': self.valid}
        if self.cleaned is not None:
            result['cleaned'] = self.cleaned
        if self.reason is not None:
            result['reason'] = self.reason
        return result


@dataclass
class TagStats:
    tag: str
    usage: int = 0
    trending: bool = False
    related_tags: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    avg_quality_score: Optional[float] = None
    bookmark_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'tag': self.tag,
            'usage': self.usage,
            'trending': self.trending,
            'relatedTags': list(self.related_tags),
            'categories': list(self.categories),
            'avgQualityScore': self.avg_quality_score,
            'bookmarkIds': list(self.bookmark_ids),
        }


@dataclass
class TagUsageAnalytics:
    tags: List[TagStats] = field(default_factory=list)
    co_occurrence: Dict[Tuple[str, str], int] = field(default_factory=dict)
    total_bookmarks: int = 0

    @property
    def usage(self) -> Dict[str, int]:
        return {stats.tag: stats.usage for stats in self.tags}

    def pair_count(self, a: str, b: str) -> int:
        key = (a, b) if a <= b else (b, a)
        return self.co_occurrence.get(key, 0)

    def to_dict(self) -> Dict:
        return {
            'tags': [stats.to_dict() for stats in self.tags],
            'usage': self.usage,
            'coOccurrence': [
                {'tags': [a, b], 'count': count}
                for (a, b), count in sorted(self.co_occurrence.items())
            ],
            'totalBookmarks': self.total_bookmarks,
        }


@dataclass
class TagCluster:
    cluster_id: str
    tags: List[str]
    representative_tag: str
    name: str = ''
    color: str = '#6B7280'
    bookmark_count: int = 0

    def to_dict(self) -> Dict:
        return {
            'clusterId': self.cluster_id,
            'tags': list(self.tags),
            'representativeTag': self.representative_tag,
            'name': self.name,
            'color': self.color,
            'bookmarkCount': self.bookmark_count,
        }


@dataclass
class BatchItemResult:
    id: Optional[str]
    success: bool
    tags: List[Tag] = field(default_factory=list)
    error: Optional[Dict] = None

    def to_dict(self) -> Dict:
        result = {'id': self.id, 'success': self.success}
        if self.success:
            result['tags'] = [tag.to_dict() for tag in self.tags]
        else:
            result['error'] = self.error
        return result
