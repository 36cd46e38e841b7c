"""
Tag Analytics Engine

Works only on tag sets supplied by the caller (no fetches):
- usage and pairwise co-occurrence statistics
- greedy co-occurrence clustering
- tag improvement suggestions for a single bookmark
"""

import logging
import re
from collections import Counter, defaultdict
from itertools import combinations
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .config import TaggingOptions
from .errors import InvalidInput
from .models import Tag, TagCluster, TagStats, TagUsageAnalytics
from .tag_utils import canonical_tag, category_color
from .tagging import IntelligentTaggingEngine

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_THRESHOLD = 0.25
TRENDING_SHARE = 0.1
MAX_RELATED_TAGS = 5
DEFAULT_QUALITY_SCORE = 5.0
IRRELEVANT_BELOW = 0.3


def _check_bookmark(item, index: int) -> None:
    if not isinstance(item, Mapping):
        raise InvalidInput(f'Bookmark {index} must be an object')
    item_id = item.get('id')
    if item_id is None or isinstance(item_id, bool) or (isinstance(item_id, str) and not item_id.strip()):
        raise InvalidInput(f'Bookmark {index} must have a non-empty id')
    if not isinstance(item.get('tags'), list):
        raise InvalidInput(f'Bookmark {index} must have a tags array')


def _canonical_set(tags: Sequence) -> List[str]:
    """Canonical names of a bookmark's tags, de-duplicated, first-seen order."""
    seen = []
    for tag in tags:
        name = canonical_tag(tag) if isinstance(tag, str) else ''
        if name and name not in seen:
            seen.append(name)
    return seen


def analyze_tag_usage(bookmarks) -> TagUsageAnalytics:
    """
    Compute per-tag usage, co-occurrence and related statistics.

    Args:
        bookmarks: List of {id, tags, category?, qualityScore?}

    Returns:
        TagUsageAnalytics with tags sorted by usage desc, then name

    Raises:
        InvalidInput: bookmarks is not a list, or an item lacks id/tags
    """
    if not isinstance(bookmarks, list):
        raise InvalidInput('bookmarks must be a list')
    for index, item in enumerate(bookmarks):
        _check_bookmark(item, index)

    usage = Counter()
    co_occurrence = Counter()
    categories = defaultdict(list)
    quality_scores = defaultdict(list)
    bookmark_ids = defaultdict(list)

    for item in bookmarks:
        names = _canonical_set(item['tags'])
        category = item.get('category')
        quality = item.get('qualityScore', item.get('quality_score'))
        for name in names:
            usage[name] += 1
            bookmark_ids[name].append(str(item['id']))
            if isinstance(category, str) and category and category not in categories[name]:
                categories[name].append(category)
            if isinstance(quality, (int, float)) and not isinstance(quality, bool):
                quality_scores[name].append(float(quality))
        for a, b in combinations(sorted(names), 2):
            co_occurrence[(a, b)] += 1

    partners = defaultdict(Counter)
    for (a, b), count in co_occurrence.items():
        partners[a][b] = count
        partners[b][a] = count

    total = len(bookmarks)
    stats = []
    for name in sorted(usage, key=lambda tag: (-usage[tag], tag)):
        related = sorted(partners[name].items(), key=lambda item: (-item[1], item[0]))
        scores = quality_scores[name]
        stats.append(TagStats(
            tag=name,
            usage=usage[name],
            trending=total > 0 and usage[name] / total > TRENDING_SHARE,
            related_tags=[tag for tag, _ in related[:MAX_RELATED_TAGS]],
            categories=categories[name],
            avg_quality_score=round(sum(scores) / len(scores), 2) if scores else DEFAULT_QUALITY_SCORE,
            bookmark_ids=bookmark_ids[name],
        ))

    return TagUsageAnalytics(tags=stats, co_occurrence=dict(co_occurrence), total_bookmarks=total)


def jaccard(analytics: TagUsageAnalytics, a: str, b: str, usage: Optional[Dict[str, int]] = None) -> float:
    """co(a, b) / (usage(a) + usage(b) - co(a, b))"""
    usage = usage if usage is not None else analytics.usage
    co = analytics.pair_count(a, b)
    union = usage.get(a, 0) + usage.get(b, 0) - co
    return co / union if union > 0 else 0.0


def _cluster_category(members: List[TagStats]) -> Optional[str]:
    counts = Counter(category for stats in members for category in stats.categories)
    if not counts:
        return None
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0][0]


def create_tag_clusters(analytics: TagUsageAnalytics,
                        threshold: float = DEFAULT_CLUSTER_THRESHOLD) -> List[TagCluster]:
    """
    Greedily cluster tags by co-occurrence similarity.

    Tags are visited by usage desc, then name. Each unclustered tag starts a
    cluster holding itself plus every unclustered tag whose Jaccard ratio with
    it exceeds the threshold. The representative is the highest-usage member
    (ties lexicographic), so it is always the seed.
    """
    usage = analytics.usage
    by_name = {stats.tag: stats for stats in analytics.tags}
    order = sorted(usage, key=lambda tag: (-usage[tag], tag))

    clustered = set()
    clusters = []
    for seed in order:
        if seed in clustered:
            continue
        members = [seed] + [
            other for other in order
            if other != seed and other not in clustered and jaccard(analytics, seed, other, usage) > threshold
        ]
        clustered.update(members)

        member_stats = [by_name[name] for name in members if name in by_name]
        category = _cluster_category(member_stats)
        top = ', '.join(members[:3])
        bookmark_ids = {bookmark_id for stats in member_stats for bookmark_id in stats.bookmark_ids}

        clusters.append(TagCluster(
            cluster_id=f'cluster-{seed}',
            tags=members,
            representative_tag=seed,
            name=f'{category.capitalize()} ({top})' if category else top,
            color=category_color(category),
            bookmark_count=len(bookmark_ids),
        ))

    logger.debug('Built %d clusters from %d tags', len(clusters), len(order))
    return clusters


def tag_relevance(tag: str, title: str, content: str) -> float:
    """Occurrences of the tag per 100 words of title + content, capped at 1."""
    text = f'{title} {content}'.lower()
    words = text.split()
    if not words:
        return 0.0
    name = canonical_tag(tag)
    if not name:
        return 0.0
    spaced = name.replace('-', ' ')
    occurrences = len(re.findall(r'(?<!\w)' + re.escape(spaced) + r'(?!\w)', text))
    if spaced != name:
        occurrences += len(re.findall(r'(?<!\w)' + re.escape(name) + r'(?!\w)', text))
    return min(1.0, occurrences / len(words) * 100)


class TagAnalyticsEngine:
    """Bookmark-level tag suggestions built on the tagging engine."""

    def __init__(self, tagging_engine: Optional[IntelligentTaggingEngine] = None):
        self.tagging_engine = tagging_engine or IntelligentTaggingEngine()

    analyze_tag_usage = staticmethod(analyze_tag_usage)
    create_tag_clusters = staticmethod(create_tag_clusters)

    @staticmethod
    def _check_target(bookmark) -> None:
        if not isinstance(bookmark, Mapping):
            raise InvalidInput('Target bookmark must be an object')
        if not isinstance(bookmark.get('url'), str) or not bookmark['url'].strip():
            raise InvalidInput('Target bookmark must have a url')
        if 'tags' in bookmark and not isinstance(bookmark['tags'], list):
            raise InvalidInput('Target bookmark tags must be an array')

    def suggest_tag_improvements(self, bookmark,
                                 options: Union[TaggingOptions, Mapping, None] = None,
                                 scope=None) -> List[Tag]:
        """
        Tags the tagging engine proposes that the bookmark does not have yet.

        Raises:
            InvalidInput: bookmark is not an object or has no url
        """
        self._check_target(bookmark)
        existing = set(_canonical_set(bookmark.get('tags') or []))
        suggested = self.tagging_engine.generate_tags(
            bookmark.get('title') or '',
            bookmark['url'],
            bookmark.get('content'),
            bookmark.get('description'),
            options,
            scope,
        )
        return [tag for tag in suggested if tag.name not in existing]

    def find_irrelevant_tags(self, bookmark) -> List[str]:
        """Existing tags whose relevance to the title and content is below 0.3."""
        if not isinstance(bookmark, Mapping):
            raise InvalidInput('Target bookmark must be an object')
        title = bookmark.get('title') or ''
        content = bookmark.get('content') or bookmark.get('description') or ''
        if not (title.strip() or content.strip()):
            return []
        return [
            tag for tag in bookmark.get('tags') or []
            if isinstance(tag, str) and tag_relevance(tag, title, content) < IRRELEVANT_BELOW
        ]

    def improvement_report(self, bookmark, options: Union[TaggingOptions, Mapping, None] = None,
                           scope=None) -> Dict:
        """Suggested additions plus low-relevance removals for one bookmark."""
        to_add = self.suggest_tag_improvements(bookmark, options, scope)
        to_remove = self.find_irrelevant_tags(bookmark)
        return {
            'suggestedTags': [tag.to_dict() for tag in to_add],
            'tagsToAdd': [tag.name for tag in to_add],
            'tagsToRemove': to_remove,
            'confidence': round(sum(t.confidence for t in to_add) / len(to_add), 3) if to_add else 0,
        }
