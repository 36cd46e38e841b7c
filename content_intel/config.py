"""Configuration for the content intelligence pipeline."""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Dict, Mapping, Optional, Tuple

DEFAULT_MODEL = 'gemini-2.0-flash'
USER_AGENT = 'BookmarkContentIntel/1.0 (+https://github.com/bookmark-content-intel)'

# Hard ceiling for batch endpoints
MAX_BATCH_SIZE = 100


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(environ.get(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    """Process-level settings read from the environment.

    Attributes:
        gemini_api_key: API key for the Gemini backend (None disables AI)
        ai_model: Model name used for completions
        ai_enabled: Kill-switch for every AI call
        ai_timeout: Per-call AI timeout in seconds
        ai_max_tokens: Completion token budget
        ai_temperature: Sampling temperature (0 for reproducible output)
        fetch_timeout: Page fetch timeout in seconds
        fetch_max_bytes: Response size cap for page fetches
        max_redirects: Redirect hops followed per fetch
        max_words: Body text window handed to the AI
        batch_workers: Concurrent items in batch tagging
        log_level: Root log level for the HTTP entry points
        request_deadline: Wall-clock budget for one HTTP request in seconds
    """

    gemini_api_key: Optional[str] = None
    ai_model: str = DEFAULT_MODEL
    ai_enabled: bool = True
    ai_timeout: float = 30.0
    ai_max_tokens: int = 1024
    ai_temperature: float = 0.3
    fetch_timeout: float = 10.0
    fetch_max_bytes: int = 2_500_000
    max_redirects: int = 3
    max_words: int = 2000
    batch_workers: int = 8
    log_level: str = 'INFO'
    request_deadline: float = 60.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ
        return cls(
            gemini_api_key=env.get('GEMINI_API_KEY') or None,
            ai_model=env.get('GEMINI_MODEL') or DEFAULT_MODEL,
            ai_enabled=_env_bool(env, 'AI_ENABLED', True),
            ai_timeout=_env_float(env, 'AI_TIMEOUT', 30.0),
            ai_max_tokens=_env_int(env, 'AI_MAX_TOKENS', 1024),
            ai_temperature=_env_float(env, 'AI_TEMPERATURE', 0.3),
            fetch_timeout=_env_float(env, 'CONTENT_FETCH_TIMEOUT', 10.0),
            fetch_max_bytes=_env_int(env, 'CONTENT_MAX_BYTES', 2_500_000),
            max_words=_env_int(env, 'CONTENT_MAX_WORDS', 2000),
            batch_workers=max(1, min(_env_int(env, 'TAG_BATCH_WORKERS', 8), 32)),
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
            request_deadline=_env_float(env, 'REQUEST_DEADLINE', 60.0),
        )


def configure_logging(level: str = 'INFO') -> None:
    """Set up root logging once for a function instance."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


# ============================================================================
# Per-operation options
# ============================================================================

def _known_fields(cls, data: Optional[Mapping]) -> Dict:
    """Pick recognised keys (snake_case or camelCase) out of an option bag."""
    if not isinstance(data, Mapping):
        return {}
    picked = {}
    for f in fields(cls):
        parts = f.name.split('_')
        camel = parts[0] + ''.join(p.title() for p in parts[1:])
        for key in (f.name, camel):
            if key in data and data[key] is not None:
                picked[f.name] = data[key]
                break
    return picked


def _as_bool(value, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _as_number(value, default, low=None, high=None):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if low is not None and value < low:
        return default
    if high is not None and value > high:
        return default
    return value


def _as_strings(value) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [v for v in value.split(',')]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(v.strip().lower() for v in value if isinstance(v, str) and v.strip())


@dataclass(frozen=True)
class ExtractionOptions:
    timeout: float = 10.0
    max_bytes: int = 2_500_000
    max_redirects: int = 3
    max_words: int = 2000
    include_images: bool = False
    include_links: bool = False
    user_agent: str = USER_AGENT

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> 'ExtractionOptions':
        values = {
            'timeout': settings.fetch_timeout,
            'max_bytes': settings.fetch_max_bytes,
            'max_redirects': settings.max_redirects,
            'max_words': settings.max_words,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data: Optional[Mapping], base: Optional['ExtractionOptions'] = None) -> 'ExtractionOptions':
        """Build from an inbound option bag; timeouts may be given as timeoutMs."""
        base = base or cls()
        raw = _known_fields(cls, data)
        timeout = base.timeout
        if isinstance(data, Mapping) and 'timeoutMs' in data:
            ms = _as_number(data.get('timeoutMs'), None, 1000, 60000)
            if ms is not None:
                timeout = ms / 1000.0
        elif 'timeout' in raw:
            timeout = _as_number(raw['timeout'], base.timeout, 1, 60)
        return cls(
            timeout=timeout,
            max_bytes=int(_as_number(raw.get('max_bytes'), base.max_bytes, 1024, 10_000_000)),
            max_redirects=base.max_redirects,
            max_words=int(_as_number(raw.get('max_words'), base.max_words, 50, 20000)),
            include_images=_as_bool(raw.get('include_images'), base.include_images),
            include_links=_as_bool(raw.get('include_links'), base.include_links),
            user_agent=base.user_agent,
        )


@dataclass(frozen=True)
class TaggingOptions:
    """Options for tag generation. Unknown keys are ignored."""

    max_tags: int = 5
    min_confidence: float = 0.7
    include_ai_tags: bool = True
    include_content_tags: bool = True
    include_url_tags: bool = True
    exclude_common_words: bool = True
    custom_stop_words: Tuple[str, ...] = field(default_factory=tuple)
    category_weighting: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> 'TaggingOptions':
        raw = _known_fields(cls, data)
        defaults = cls()
        return cls(
            max_tags=int(_as_number(raw.get('max_tags'), defaults.max_tags, 1, 50)),
            min_confidence=float(_as_number(raw.get('min_confidence'), defaults.min_confidence, 0, 1)),
            include_ai_tags=_as_bool(raw.get('include_ai_tags'), True),
            include_content_tags=_as_bool(raw.get('include_content_tags'), True),
            include_url_tags=_as_bool(raw.get('include_url_tags'), True),
            exclude_common_words=_as_bool(raw.get('exclude_common_words'), True),
            custom_stop_words=_as_strings(raw.get('custom_stop_words')),
            category_weighting=_as_bool(raw.get('category_weighting'), True),
        )


QUICK_TAGGING = TaggingOptions(max_tags=5, min_confidence=0.7, include_ai_tags=False)
