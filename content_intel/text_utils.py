"""
Text bounding utilities for the content intelligence pipeline.

Anything that ends up in a prompt or a result is bounded here:
1. Truncated at word boundaries (not mid-word)
2. Stripped of control characters and collapsed whitespace
"""

import math
import re
from typing import List, Tuple

# Summaries returned to callers
MAX_SUMMARY_LENGTH = 500

# Average reading speed used for reading time estimates
WORDS_PER_MINUTE = 200

# Trailing " | Site Name" / " - Site Name" style suffixes
TITLE_SUFFIX_PATTERN = re.compile(r'\s+[|–—-]\s+[^|–—-]{2,40}$')


def normalize_whitespace(text: str) -> str:
    if not text:
        return ''
    return ' '.join(text.split())


def truncate_text(text: str, max_length: int) -> Tuple[str, bool]:
    """
    Truncate text at word boundary, not mid-word.

    Args:
        text: The text to truncate
        max_length: Maximum length in characters

    Returns:
        Tuple of (truncated_text, was_truncated)

    Examples:
        >>> truncate_text("Hello World", 70)
        ('Hello World', False)

        >>> truncate_text("This is a very long title that exceeds the limit", 20)
        ('This is a very long', True)
    """
    text = normalize_whitespace(text)
    if not text:
        return ('', False)

    if len(text) <= max_length:
        return (text, False)

    truncated = text[:max_length]
    last_space = truncated.rfind(' ')

    # Single long word: hard cut with ellipsis
    if last_space == -1:
        return (text[:max_length - 3] + '...', True)

    return (truncated[:last_space].rstrip(), True)


def truncate_words(text: str, max_words: int) -> Tuple[str, bool]:
    """Keep at most max_words whitespace-separated words."""
    words = text.split() if text else []
    if len(words) <= max_words:
        return (' '.join(words), False)
    return (' '.join(words[:max_words]), True)


def bound_summary(summary: str, max_length: int = MAX_SUMMARY_LENGTH) -> str:
    return truncate_text(summary, max_length)[0]


def sanitize_text(text: str) -> str:
    """
    Sanitize text for prompts and JSON output.

    - Removes null bytes
    - Removes control characters
    - Normalizes whitespace
    """
    if not text:
        return ''
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]', '', text)
    return normalize_whitespace(text)


def clean_title(title: str) -> str:
    """Strip a trailing site-name suffix from a page title."""
    title = sanitize_text(title)
    if not title:
        return ''
    cleaned = TITLE_SUFFIX_PATTERN.sub('', title).strip()
    return cleaned or title


def tokenize(text: str) -> List[str]:
    """Lower-cased word tokens (letters, digits, inner + # . -)."""
    if not text:
        return []
    return re.findall(r'[a-z0-9][a-z0-9+#.-]*[a-z0-9+#]|[a-z0-9]', text.lower())


def count_words(text: str) -> int:
    if not text:
        return 0
    return len(text.split())


def reading_time(word_count: int) -> int:
    """Estimated reading time in whole minutes, 0 for empty content."""
    if word_count <= 0:
        return 0
    return math.ceil(word_count / WORDS_PER_MINUTE)
