"""
URL safety checks run before any outbound fetch.

Rejects non-HTTP schemes, loopback/metadata hosts and private IPv4 literals.
Pure and lexical: no DNS resolution is performed.
"""

import re
from urllib.parse import urlparse

from .errors import MalformedUrl, SsrfRejected

ALLOWED_SCHEMES = ('http', 'https')

# Matched by substring containment against the lower-cased hostname
BLOCKED_HOSTS = ['localhost', '127.0.0.1', '0.0.0.0', '::1', '169.254.169.254']

IPV4_PATTERN = re.compile(r'^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$')


def is_private_ipv4(host: str) -> bool:
    """True for literals in 10.0.0.0/8, 172.16.0.0/12 or 192.168.0.0/16."""
    match = IPV4_PATTERN.match(host)
    if not match:
        return False
    octets = [int(part) for part in match.groups()]
    if any(octet > 255 for octet in octets):
        return False
    first, second = octets[0], octets[1]
    if first == 10:
        return True
    if first == 172 and 16 <= second <= 31:
        return True
    return first == 192 and second == 168


def validate_url(url: str) -> str:
    """
    Check that a URL is safe to fetch.

    Args:
        url: Absolute URL supplied by the caller (or a redirect Location)

    Returns:
        The URL unchanged

    Raises:
        MalformedUrl: empty, unparsable or missing a hostname
        SsrfRejected: disallowed scheme, blocked host or private IPv4 literal
    """
    if not isinstance(url, str) or not url.strip():
        raise MalformedUrl('URL is missing or empty')

    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError as e:
        raise MalformedUrl(f'Invalid URL: {e}')

    scheme = (parsed.scheme or '').lower()
    if not scheme:
        raise MalformedUrl('URL has no scheme')
    if scheme not in ALLOWED_SCHEMES:
        raise SsrfRejected(f'Scheme not allowed: {scheme}')
    if not host:
        raise MalformedUrl('URL has no hostname')

    host = host.lower()
    for blocked in BLOCKED_HOSTS:
        if blocked in host:
            raise SsrfRejected(f'Host not allowed: {host}')

    if is_private_ipv4(host):
        raise SsrfRejected(f'Private address not allowed: {host}')

    return url


def is_safe_url(url: str) -> bool:
    """Simple check if a URL passes validate_url (no exception)."""
    try:
        validate_url(url)
    except (MalformedUrl, SsrfRejected):
        return False
    return True
