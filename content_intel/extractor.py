"""
Content Extractor

Fetches a bookmarked page under time, size, redirect and content-type bounds
and turns it into ExtractedContent.

Responsibilities:
- Validate the URL (and every redirect hop) before any request is made
- Stream the body and stop at the byte cap
- Extract title, description, authorship, link metadata, language and a bounded body window
- Optionally extract images and links

Does NOT:
- Retry failed fetches (callers decide)
- Propagate network errors from extract() unless strict=True
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
import langdetect

from .concurrency import CancelScope, bound_timeout, check_scope
from .config import ExtractionOptions
from .errors import FetchError, FetchFailed, FetchTimeout, ParseFailed
from .models import ExtractedContent
from .text_utils import count_words, normalize_whitespace, sanitize_text, truncate_words
from .url_safety import validate_url

logger = logging.getLogger(__name__)

ACCEPT_HEADER = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'

TEXT_CONTENT_TYPES = ('text/', 'application/xhtml+xml', 'application/xml')

CHUNK_SIZE = 16 * 1024

MAX_IMAGES = 50
MAX_LINKS = 100

# Elements that never contribute to the readable body
NOISE_TAGS = ['script', 'style', 'noscript', 'nav', 'header', 'footer', 'aside']

CONTENT_CLASS_PATTERN = re.compile(r'content|post|article|entry', re.I)
AUTHOR_CLASS_PATTERN = re.compile(r'author|byline', re.I)
TWITTER_META_PATTERN = re.compile(r'^twitter:')
ISO_DATE_PATTERN = re.compile(r'\d{4}-\d{2}-\d{2}')

MAX_KEYWORDS = 20

# Characters of body text handed to langdetect
LANGUAGE_SAMPLE_CHARS = 1000

# langdetect is randomised unless seeded
langdetect.DetectorFactory.seed = 0


@dataclass
class FetchedPage:
    url: str
    status_code: int
    html: str
    content_type: str = ''


# ============================================================================
# Fetching
# ============================================================================

def _is_text_content(content_type: str) -> bool:
    if not content_type:
        return True
    media_type = content_type.split(';')[0].strip().lower()
    return any(media_type.startswith(prefix) for prefix in TEXT_CONTENT_TYPES)


def _time_left(deadline: float, url: str) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise FetchTimeout(f'Request timed out: {url}')
    return remaining


def _read_capped(response: requests.Response, max_bytes: int, deadline: float,
                 scope: Optional[CancelScope]) -> bytes:
    """Read a streamed body, stopping once max_bytes have been collected."""
    chunks = []
    total = 0
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        check_scope(scope)
        _time_left(deadline, response.url)
        if not chunk:
            continue
        remaining = max_bytes - total
        if len(chunk) >= remaining:
            chunks.append(chunk[:remaining])
            logger.debug('Body of %s capped at %d bytes', response.url, max_bytes)
            break
        chunks.append(chunk)
        total += len(chunk)
    return b''.join(chunks)


def _decode(body: bytes, response: requests.Response) -> str:
    content_type = response.headers.get('Content-Type', '')
    encoding = response.encoding if 'charset' in content_type.lower() else None
    try:
        return body.decode(encoding or 'utf-8', errors='replace')
    except LookupError:
        return body.decode('utf-8', errors='replace')


def fetch_webpage(
    url: str,
    options: Optional[ExtractionOptions] = None,
    scope: Optional[CancelScope] = None,
    session: Optional[requests.Session] = None,
) -> FetchedPage:
    """
    Fetch a page with a single GET per hop, following redirects manually.

    Args:
        url: URL to fetch (validated here and on every redirect hop)
        options: Fetch bounds (timeout, byte cap, redirect limit, user agent)
        scope: Optional cancel scope bounding the request timeout
        session: Optional requests session (defaults to module-level requests)

    Returns:
        FetchedPage with the final URL, status code and decoded HTML

    Raises:
        SsrfRejected / MalformedUrl: the URL or a redirect target is unsafe
        FetchTimeout: the fetch took longer than options.timeout in total
        FetchFailed: non-2xx status, non-text content, too many redirects,
            or any other network failure
    """
    options = options or ExtractionOptions()
    http = session or requests
    headers = {
        'User-Agent': options.user_agent,
        'Accept': ACCEPT_HEADER,
        'Accept-Language': 'en-US,en;q=0.5',
    }

    # options.timeout bounds the whole fetch, redirects and body included
    deadline = time.monotonic() + options.timeout
    current = validate_url(url)
    for _ in range(options.max_redirects + 1):
        timeout = bound_timeout(scope, _time_left(deadline, current))
        try:
            response = http.get(current, headers=headers, timeout=timeout,
                                allow_redirects=False, stream=True)
        except requests.exceptions.Timeout:
            raise FetchTimeout(f'Request timed out: {current}')
        except requests.exceptions.RequestException as e:
            raise FetchFailed(f'Request failed: {e}')

        try:
            if response.is_redirect:
                target = urljoin(current, response.headers['Location'])
                logger.debug('Redirect %s -> %s', current, target)
                current = validate_url(target)
                continue

            if not 200 <= response.status_code < 300:
                raise FetchFailed(status=response.status_code)

            content_type = response.headers.get('Content-Type', '')
            if not _is_text_content(content_type):
                raise FetchFailed(f'Unsupported content type: {content_type}',
                                  status=response.status_code)

            try:
                body = _read_capped(response, options.max_bytes, deadline, scope)
            except requests.exceptions.RequestException as e:
                raise FetchFailed(f'Reading body failed: {e}', status=response.status_code)

            return FetchedPage(
                url=current,
                status_code=response.status_code,
                html=_decode(body, response),
                content_type=content_type,
            )
        finally:
            response.close()

    raise FetchFailed(f'Too many redirects (max {options.max_redirects})')


# ============================================================================
# Parsing
# ============================================================================

def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find('meta', attrs=attrs)
    if tag and tag.get('content'):
        value = sanitize_text(tag.get('content'))
        return value or None
    return None


def _link_href(soup: BeautifulSoup, rel: str, base_url: str) -> Optional[str]:
    for link in soup.find_all('link', href=True):
        if rel in [value.lower() for value in link.get('rel') or []]:
            return _resolve(link['href'].strip(), base_url)
    return None


def _element_text(element) -> Optional[str]:
    if element is None:
        return None
    return sanitize_text(element.get_text(' ', strip=True)) or None


def extract_author(soup: BeautifulSoup) -> Optional[str]:
    author_rel = soup.find('a', rel='author')
    author = (
        _meta_content(soup, name='author') or
        _meta_content(soup, property='article:author') or
        _element_text(author_rel) or
        _element_text(soup.find(attrs={'class': AUTHOR_CLASS_PATTERN}))
    )
    if author:
        author = re.sub(r'^by\s+', '', author, flags=re.I).strip()
    return author or None


def extract_published_date(soup: BeautifulSoup) -> Optional[str]:
    """YYYY-MM-DD from article:published_time, meta date or a <time datetime>."""
    time_tag = soup.find('time', attrs={'datetime': True})
    date_str = (
        _meta_content(soup, property='article:published_time') or
        _meta_content(soup, name='date') or
        (time_tag.get('datetime') if time_tag else None)
    )
    if not date_str:
        return None
    match = ISO_DATE_PATTERN.match(date_str.strip())
    return match.group(0) if match else None


def extract_keywords(soup: BeautifulSoup) -> List[str]:
    raw = _meta_content(soup, name='keywords')
    if not raw:
        return []
    keywords = []
    for keyword in raw.split(','):
        keyword = keyword.strip()
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords[:MAX_KEYWORDS]


def extract_twitter_card(soup: BeautifulSoup) -> Dict[str, str]:
    card = {}
    for meta in soup.find_all('meta', attrs={'name': TWITTER_META_PATTERN}):
        value = sanitize_text(meta.get('content') or '')
        if value:
            card[meta['name'][len('twitter:'):]] = value
    return card


def extract_metadata(url: str, soup: BeautifulSoup) -> Dict:
    """Extract title, description, authorship and link metadata from the page head."""
    host = urlparse(url).hostname or url
    main_image = _meta_content(soup, property='og:image') or _meta_content(soup, name='twitter:image')

    return {
        'title': (
            _meta_content(soup, property='og:title') or
            _meta_content(soup, name='twitter:title') or
            _element_text(soup.find('title')) or
            _element_text(soup.find('h1')) or
            host
        ),
        'description': (
            _meta_content(soup, property='og:description') or
            _meta_content(soup, name='description') or
            _meta_content(soup, name='twitter:description') or
            ''
        ),
        'site_name': _meta_content(soup, property='og:site_name'),
        'author': extract_author(soup),
        'published_date': extract_published_date(soup),
        'main_image': _resolve(main_image, url) if main_image else None,
        'keywords': extract_keywords(soup),
        'canonical_url': _link_href(soup, 'canonical', url),
        'favicon': _link_href(soup, 'icon', url),
        'twitter_card': extract_twitter_card(soup),
    }


def _resolve(href: str, base_url: str) -> str:
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def extract_images(soup: BeautifulSoup, base_url: str) -> List[Dict]:
    images = []
    for img in soup.find_all('img', src=True):
        images.append({
            'src': _resolve(img['src'], base_url),
            'alt': img.get('alt') or None,
            'title': img.get('title') or None,
        })
        if len(images) >= MAX_IMAGES:
            break
    return images


def extract_links(soup: BeautifulSoup, base_url: str) -> List[Dict]:
    base_host = urlparse(base_url).hostname
    links = []
    for anchor in soup.find_all('a', href=True):
        href = anchor['href'].strip()
        if not href or href.startswith(('#', 'mailto:', 'tel:', 'javascript:')):
            continue
        absolute = _resolve(href, base_url)
        links.append({
            'href': absolute,
            'text': normalize_whitespace(anchor.get_text()),
            'title': anchor.get('title') or None,
            'type': 'internal' if urlparse(absolute).hostname == base_host else 'external',
        })
        if len(links) >= MAX_LINKS:
            break
    return links


def extract_main_content(soup: BeautifulSoup) -> str:
    """Extract the readable text of the page (mutates soup)."""
    for element in soup.find_all(NOISE_TAGS):
        element.decompose()

    main_content = (
        soup.find('article') or
        soup.find('main') or
        soup.find(attrs={'class': CONTENT_CLASS_PATTERN}) or
        soup.find('body') or
        soup
    )
    return sanitize_text(main_content.get_text(separator=' ', strip=True))


def detect_language(text: str, declared: Optional[str] = None) -> Optional[str]:
    """ISO 639-1 code from the html lang attribute, else langdetect on the body."""
    if declared:
        code = declared.strip().lower()[:2]
        if re.match(r'^[a-z]{2}$', code):
            return code

    sample = (text or '')[:LANGUAGE_SAMPLE_CHARS].strip()
    if not sample:
        return None
    try:
        code = langdetect.detect(sample)
    except langdetect.LangDetectException:
        return None
    # langdetect reports regional variants such as zh-cn
    return code[:2]


def parse_html(html: str, url: str, options: Optional[ExtractionOptions] = None) -> ExtractedContent:
    """
    Parse HTML into ExtractedContent.

    Raises:
        ParseFailed: the document could not be parsed
    """
    options = options or ExtractionOptions()
    try:
        soup = BeautifulSoup(html or '', 'html.parser')
    except Exception as e:
        raise ParseFailed(f'Could not parse HTML: {e}') from e

    metadata = extract_metadata(url, soup)
    html_tag = soup.find('html')
    declared_language = html_tag.get('lang') if html_tag else None

    images = extract_images(soup, url) if options.include_images else []
    links = extract_links(soup, url) if options.include_links else []

    text = extract_main_content(soup)
    body_text, _ = truncate_words(text, options.max_words)

    return ExtractedContent(
        url=url,
        title=metadata['title'],
        description=metadata['description'],
        body_text=body_text,
        word_count=count_words(text),
        site_name=metadata['site_name'],
        language=detect_language(text, declared_language),
        author=metadata['author'],
        published_date=metadata['published_date'],
        main_image=metadata['main_image'],
        keywords=metadata['keywords'],
        canonical_url=metadata['canonical_url'],
        favicon=metadata['favicon'],
        twitter_card=metadata['twitter_card'],
        images=images,
        links=links,
    )


def fallback_content(url: str, error: Exception) -> ExtractedContent:
    """Minimal content used when the page could not be fetched or parsed."""
    host = urlparse(url).hostname or url
    return ExtractedContent(
        url=url,
        title=host,
        description=f'Link from {host}',
        status_code=getattr(error, 'status', None),
        fallback=True,
        error=getattr(error, 'message', None) or str(error),
    )


def extract(
    url: str,
    options: Optional[ExtractionOptions] = None,
    scope: Optional[CancelScope] = None,
    strict: bool = False,
    session: Optional[requests.Session] = None,
) -> ExtractedContent:
    """
    Fetch and parse a page.

    Unsafe URLs always raise. Fetch and parse failures produce fallback
    content (title = hostname) unless strict is set.
    """
    options = options or ExtractionOptions()
    validate_url(url)
    try:
        page = fetch_webpage(url, options, scope, session=session)
        content = parse_html(page.html, page.url, options)
    except FetchError as e:
        if strict:
            raise
        logger.warning('Extraction failed for %s, using fallback: %s', url, e.message)
        return fallback_content(url, e)

    content.status_code = page.status_code
    return content
