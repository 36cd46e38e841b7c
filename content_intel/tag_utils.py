"""
Tag normalization policy.

A tag's canonical name is produced in three steps:
1. normalize: lower-case, trim, strip punctuation, spaces/underscores -> hyphens
2. alias: well-known abbreviations map to their full name (js -> javascript)
3. plural collapse: 'apis' -> 'api' when both spellings occur in the same set
"""

import re
from typing import Dict, Iterable, List, Optional

from .models import TagValidation

MIN_TAG_LENGTH = 2
MAX_TAG_LENGTH = 30

STOP_WORDS = frozenset([
    'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'from', 'up', 'about', 'into', 'through', 'during', 'before', 'after', 'above',
    'below', 'between', 'among', 'this', 'that', 'these', 'those', 'is', 'are', 'was',
    'were', 'be', 'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will',
    'would', 'could', 'should', 'may', 'might', 'must', 'can', 'how', 'what', 'when',
    'where', 'why', 'who', 'which', 'article', 'guide', 'tutorial', 'introduction',
    'intro', 'an', 'it', 'its', 'as', 'not', 'you', 'your', 'we', 'our', 'they',
    'their', 'all', 'more', 'most', 'some', 'any', 'also', 'just', 'than', 'then',
    'there', 'here', 'if', 'so', 'no', 'yes', 'one', 'new', 'use', 'using', 'get',
])

TAG_ALIASES = {
    'js': 'javascript',
    'ts': 'typescript',
    'py': 'python',
    'k8s': 'kubernetes',
    'ml': 'machine-learning',
    'ai-ml': 'machine-learning',
    'golang': 'go',
    'postgres': 'postgresql',
    'reactjs': 'react',
    'react.js': 'react',
    'nodejs': 'node.js',
    'node': 'node.js',
    'vuejs': 'vue',
    'vue.js': 'vue',
    'llms': 'llm',
}

# Boost applied to AI candidates when the page falls into a category
CATEGORY_WEIGHTS = {
    'technology': 1.2,
    'programming': 1.2,
    'science': 1.1,
    'business': 1.0,
    'education': 1.1,
    'research': 1.2,
    'documentation': 1.1,
    'tutorial': 1.3,
    'news': 0.8,
    'entertainment': 0.7,
    'other': 0.9,
}

CATEGORY_COLORS = {
    'technology': '#3B82F6',
    'programming': '#8B5CF6',
    'science': '#10B981',
    'business': '#F59E0B',
    'education': '#EF4444',
    'research': '#6366F1',
    'documentation': '#84CC16',
    'tutorial': '#F97316',
    'news': '#06B6D4',
    'entertainment': '#EC4899',
}
DEFAULT_COLOR = '#6B7280'

LETTER_PATTERN = re.compile(r'[^\W\d_]')


def category_weight(category: Optional[str]) -> float:
    return CATEGORY_WEIGHTS.get(category or '', 1.0)


def category_color(category: Optional[str]) -> str:
    return CATEGORY_COLORS.get(category or '', DEFAULT_COLOR)


def normalize_tag(tag: str) -> str:
    """
    Lower-case kebab form of a tag.

    Examples:
        >>> normalize_tag('  Machine Learning! ')
        'machine-learning'

        >>> normalize_tag('C++')
        'c++'
    """
    if not isinstance(tag, str):
        return ''
    tag = tag.strip().lower()
    tag = re.sub(r'[^\w\s+#.-]', '', tag)
    tag = re.sub(r'[\s_]+', '-', tag)
    tag = re.sub(r'-{2,}', '-', tag)
    return tag.strip('-.')


def canonical_tag(tag: str) -> str:
    """Normalized name with the alias table applied (no plural collapse)."""
    normalized = normalize_tag(tag)
    return TAG_ALIASES.get(normalized, normalized)


def singularize(tag: str) -> str:
    """Naive English singular of the last word of a tag."""
    if len(tag) > 4 and tag.endswith('ies'):
        return tag[:-3] + 'y'
    if len(tag) > 3 and tag.endswith('s') and not tag.endswith(('ss', 'us', 'is')):
        return tag[:-1]
    return tag


def collapse_plurals(names: Iterable[str]) -> Dict[str, str]:
    """Map each name to its singular form when that form is also in the set."""
    present = set(names)
    mapping = {}
    for name in present:
        singular = singularize(name)
        mapping[name] = singular if singular != name and singular in present else name
    return mapping


def is_stop_word(tag: str, custom_stop_words: Iterable[str] = (),
                 exclude_common_words: bool = True) -> bool:
    if exclude_common_words and tag in STOP_WORDS:
        return True
    return tag in custom_stop_words


def validate_tag(tag: str, custom_stop_words: Iterable[str] = (),
                 exclude_common_words: bool = True) -> TagValidation:
    """
    Validate and clean a single tag.

    Returns:
        TagValidation with the canonical name when valid, or the reason it was rejected
    """
    cleaned = canonical_tag(tag)

    if not cleaned:
        return TagValidation(valid=False, reason='Tag is empty')
    if len(cleaned) < MIN_TAG_LENGTH:
        return TagValidation(valid=False, reason='Tag too short')
    if len(cleaned) > MAX_TAG_LENGTH:
        return TagValidation(valid=False, reason='Tag too long')
    if not LETTER_PATTERN.search(cleaned):
        return TagValidation(valid=False, reason='Tag must contain letters')
    if is_stop_word(cleaned, custom_stop_words, exclude_common_words):
        return TagValidation(valid=False, reason='Tag is a common word')

    return TagValidation(valid=True, cleaned=cleaned)


def merge_similar_tags(tags: Iterable[str]) -> List[str]:
    """
    Collapse tags that share a canonical name, keeping first-seen order.

    Examples:
        >>> merge_similar_tags(['javascript', 'JavaScript', 'JS '])
        ['javascript']

        >>> merge_similar_tags(['APIs', 'api', 'rest'])
        ['api', 'rest']
    """
    canonical = [canonical_tag(tag) for tag in tags]
    canonical = [name for name in canonical if name]
    plural_map = collapse_plurals(canonical)

    merged = []
    seen = set()
    for name in canonical:
        name = plural_map[name]
        if name not in seen:
            seen.add(name)
            merged.append(name)
    return merged
