"""
AI analysis utilities for the content intelligence pipeline.

Validates and coerces the JSON objects returned by the model. Every field
has a documented default, so a partial or oddly-typed response still yields
a complete payload. Only a non-object response is rejected outright.
"""

import re
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedResponse
from .models import CATEGORIES, COMPLEXITIES, CONTENT_TYPES, SENTIMENTS, ContentAnalysisResult
from .text_utils import MAX_SUMMARY_LENGTH

# Category names models tend to return instead of the closed set
CATEGORY_SYNONYMS = {
    'tech': 'technology',
    'development': 'programming',
    'software': 'programming',
    'coding': 'programming',
    'software-development': 'programming',
    'academic': 'research',
    'docs': 'documentation',
    'reference': 'documentation',
    'how-to': 'tutorial',
    'guide': 'tutorial',
    'learning': 'education',
    'finance-and-economics': 'finance',
    'money': 'finance',
    'medicine': 'health',
    'ux': 'design',
    'general': 'other',
    'misc': 'other',
}

COMPLEXITY_SYNONYMS = {
    'basic': 'beginner',
    'easy': 'beginner',
    'introductory': 'beginner',
    'medium': 'intermediate',
    'moderate': 'intermediate',
    'hard': 'advanced',
    'expert': 'advanced',
}

DEFAULT_QUALITY_SCORE = 5
DEFAULT_CONFIDENCE = 0.7
DEFAULT_TAG_CONFIDENCE = 0.8

LANGUAGE_PATTERN = re.compile(r'^[a-z]{2}$')
KEBAB_TAG_PATTERN = re.compile(r'^[a-z0-9+#.]+(?:-[a-z0-9+#.]+)*$')


# ============================================================================
# Scalar coercion helpers
# ============================================================================

def _as_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ''


def _as_string_list(value) -> List[str]:
    """Coerce a list, comma-separated string or single value to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(',')
    if not isinstance(value, (list, tuple)):
        return []
    result = []
    for item in value:
        if isinstance(item, dict):
            item = item.get('name') or item.get('tag') or item.get('label')
        text = _as_text(item)
        if text:
            result.append(text)
    return result


def _as_float(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip('%'))
        except ValueError:
            return None
    return None


def _as_unit_confidence(value, default: float) -> float:
    """Confidence in 0..1; percentages (1 < c <= 100) are scaled down."""
    confidence = _as_float(value)
    if confidence is None or confidence != confidence or confidence < 0:
        return default
    if 1 < confidence <= 100:
        confidence = confidence / 100
    return min(confidence, 1.0)


def normalize_category(value) -> str:
    """Map a model-provided category onto the closed category set."""
    text = _as_text(value).lower().replace(' ', '-').replace('_', '-')
    text = CATEGORY_SYNONYMS.get(text, text)
    return text if text in CATEGORIES else 'other'


# ============================================================================
# Payload models
# ============================================================================

class AIAnalysisPayload(BaseModel):
    """Shape of the content analysis JSON after coercion."""

    model_config = ConfigDict(extra='ignore')

    summary: str = Field('', validation_alias=AliasChoices('summary', 'aiSummary', 'description'))
    tags: List[str] = Field(default_factory=list, validation_alias=AliasChoices('tags', 'aiTags'))
    category: str = Field('other', validation_alias=AliasChoices('category', 'aiCategory'))
    topics: List[str] = Field(default_factory=list)
    sentiment: str = 'neutral'
    reading_time: Optional[int] = Field(None, validation_alias=AliasChoices('readingTime', 'reading_time'))
    complexity: str = 'intermediate'
    quality_score: int = Field(
        DEFAULT_QUALITY_SCORE,
        validation_alias=AliasChoices('qualityScore', 'quality_score', 'quality'),
    )
    key_points: List[str] = Field(default_factory=list, validation_alias=AliasChoices('keyPoints', 'key_points'))
    related_keywords: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices('relatedKeywords', 'related_keywords', 'keywords'),
    )
    content_type: Optional[str] = Field(None, validation_alias=AliasChoices('contentType', 'content_type'))
    language: Optional[str] = None
    confidence: float = DEFAULT_CONFIDENCE

    @field_validator('summary', mode='before')
    @classmethod
    def _coerce_summary(cls, value):
        return _as_text(value)

    @field_validator('tags', 'topics', 'key_points', 'related_keywords', mode='before')
    @classmethod
    def _coerce_lists(cls, value):
        return _as_string_list(value)

    @field_validator('category', mode='before')
    @classmethod
    def _coerce_category(cls, value):
        return normalize_category(value)

    @field_validator('sentiment', mode='before')
    @classmethod
    def _coerce_sentiment(cls, value):
        if isinstance(value, dict):
            value = value.get('label', value.get('score'))
        score = _as_float(value) if not isinstance(value, str) else None
        if score is not None:
            if score > 0.2:
                return 'positive'
            if score < -0.2:
                return 'negative'
            return 'neutral'
        text = _as_text(value).lower()
        return text if text in SENTIMENTS else 'neutral'

    @field_validator('complexity', mode='before')
    @classmethod
    def _coerce_complexity(cls, value):
        text = _as_text(value).lower()
        text = COMPLEXITY_SYNONYMS.get(text, text)
        return text if text in COMPLEXITIES else 'intermediate'

    @field_validator('quality_score', mode='before')
    @classmethod
    def _coerce_quality(cls, value):
        if isinstance(value, dict):
            value = value.get('score')
        score = _as_float(value)
        if score is None or score < 0:
            return DEFAULT_QUALITY_SCORE
        # 0-100 scale
        if score > 10:
            score = score / 10
        return int(round(min(score, 10)))

    @field_validator('reading_time', mode='before')
    @classmethod
    def _coerce_reading_time(cls, value):
        minutes = _as_float(value)
        if minutes is None or minutes < 0:
            return None
        return int(round(minutes))

    @field_validator('content_type', mode='before')
    @classmethod
    def _coerce_content_type(cls, value):
        text = _as_text(value).lower()
        return text if text in CONTENT_TYPES else None

    @field_validator('language', mode='before')
    @classmethod
    def _coerce_language(cls, value):
        text = _as_text(value).lower()
        return text if LANGUAGE_PATTERN.match(text) else None

    @field_validator('confidence', mode='before')
    @classmethod
    def _coerce_confidence(cls, value):
        return _as_unit_confidence(value, DEFAULT_CONFIDENCE)


class AITag(BaseModel):
    tag: str
    confidence: float = DEFAULT_TAG_CONFIDENCE


class AITagPayload(BaseModel):
    """Shape of the tag generation JSON after coercion."""

    model_config = ConfigDict(extra='ignore')

    tags: List[AITag] = Field(default_factory=list)
    category: Optional[str] = None
    topics: List[str] = Field(default_factory=list)

    @field_validator('tags', mode='before')
    @classmethod
    def _coerce_tags(cls, value):
        if isinstance(value, str):
            value = value.split(',')
        if not isinstance(value, (list, tuple)):
            return []
        tags = []
        for item in value:
            if isinstance(item, str) and item.strip():
                tags.append({'tag': item.strip(), 'confidence': DEFAULT_TAG_CONFIDENCE})
            elif isinstance(item, dict):
                name = _as_text(item.get('tag') or item.get('name'))
                if not name:
                    continue
                confidence = _as_unit_confidence(item.get('confidence'), DEFAULT_TAG_CONFIDENCE)
                tags.append({'tag': name, 'confidence': confidence})
        return tags

    @field_validator('category', mode='before')
    @classmethod
    def _coerce_category(cls, value):
        if value is None:
            return None
        category = normalize_category(value)
        return category

    @field_validator('topics', mode='before')
    @classmethod
    def _coerce_topics(cls, value):
        return _as_string_list(value)


def coerce_analysis_payload(data) -> AIAnalysisPayload:
    """
    Validate a parsed AI analysis response.

    Raises:
        MalformedResponse: data is not a JSON object
    """
    if not isinstance(data, dict):
        raise MalformedResponse('Analysis response is not a JSON object')
    try:
        return AIAnalysisPayload.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f'Analysis response failed validation: {e.error_count()} errors')


def coerce_tag_payload(data) -> AITagPayload:
    """
    Validate a parsed AI tagging response.

    Raises:
        MalformedResponse: data is not a JSON object
    """
    if not isinstance(data, dict):
        raise MalformedResponse('Tagging response is not a JSON object')
    try:
        return AITagPayload.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f'Tagging response failed validation: {e.error_count()} errors')


# ============================================================================
# Result validation
# ============================================================================

def validate_analysis_result(result: ContentAnalysisResult) -> Dict:
    """
    Check a finished analysis result against its output contract.

    Returns:
        Dict with:
            valid: bool
            errors: list - Error messages
    """
    errors = []

    if len(result.summary) > MAX_SUMMARY_LENGTH:
        errors.append(f'Summary exceeds {MAX_SUMMARY_LENGTH} characters ({len(result.summary)})')

    if len(result.tags) > 10:
        errors.append(f'Too many tags: {len(result.tags)}')
    if len(set(result.tags)) != len(result.tags):
        errors.append('Tags are not unique')
    for tag in result.tags:
        if not KEBAB_TAG_PATTERN.match(tag):
            errors.append(f'Tag is not lower-kebab-case: {tag}')

    if result.category not in CATEGORIES:
        errors.append(f'Unknown category: {result.category}')
    if result.content_type not in CONTENT_TYPES:
        errors.append(f'Unknown content type: {result.content_type}')
    if result.sentiment not in SENTIMENTS:
        errors.append(f'Unknown sentiment: {result.sentiment}')
    if result.complexity not in COMPLEXITIES:
        errors.append(f'Unknown complexity: {result.complexity}')

    if not 0 <= result.quality_score <= 10:
        errors.append(f'Quality score out of range: {result.quality_score}')
    if result.reading_time < 0:
        errors.append(f'Negative reading time: {result.reading_time}')
    if not LANGUAGE_PATTERN.match(result.language or ''):
        errors.append(f'Invalid language code: {result.language}')

    return {
        'valid': len(errors) == 0,
        'errors': errors,
    }
