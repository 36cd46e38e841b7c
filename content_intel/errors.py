"""
Error taxonomy for the content intelligence pipeline.

Every error maps onto the bookmark system's error field:
    {'stage': ..., 'message': ..., 'recoverable': ...}

Input errors are caller-caused and never retried. Upstream errors are
recoverable: the engines degrade to heuristic output instead of raising them.
"""

from typing import Dict, Optional


class ContentIntelError(Exception):
    """Base class for all pipeline errors."""

    stage = 'processing'
    recoverable = False

    def __init__(self, message: str = '', stage: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if stage:
            self.stage = stage

    def to_dict(self) -> Dict:
        return {
            'stage': self.stage,
            'message': self.message,
            'recoverable': self.recoverable,
        }


# ============================================================================
# Input errors (HTTP 400)
# ============================================================================

class InputError(ContentIntelError):
    stage = 'validation'


class InvalidRequest(InputError):
    """Analysis request is missing a required field or has a bad value."""


class InvalidInput(InputError):
    """Analytics or batch input does not have the documented shape."""


class MalformedUrl(InputError):
    """URL cannot be parsed or has no hostname."""


class SsrfRejected(InputError):
    """URL points at a scheme or host that must never be fetched."""


# ============================================================================
# Upstream errors (recoverable)
# ============================================================================

class FetchError(ContentIntelError):
    stage = 'fetch'
    recoverable = True


class FetchTimeout(FetchError):
    pass


class FetchFailed(FetchError):

    def __init__(self, message: str = '', status: Optional[int] = None):
        super().__init__(message or f'HTTP error: {status}')
        self.status = status


class ParseFailed(FetchError):
    stage = 'parse'


class AIClientError(ContentIntelError):
    """Generic failure from the AI backend."""

    stage = 'ai_analysis'
    recoverable = True


class AIUnavailable(AIClientError):
    """AI is switched off or has no credentials."""


class RateLimited(AIClientError):
    pass


class ContentPolicyViolation(AIClientError):
    pass


class AITimeout(AIClientError):
    pass


class MalformedResponse(AIClientError):
    """Model output is not the JSON object that was asked for."""


# ============================================================================
# Control flow / internal
# ============================================================================

class OperationCancelled(ContentIntelError):
    """Call was aborted or ran past its deadline; no partial result is kept."""

    stage = 'cancelled'
    recoverable = True


class InternalError(ContentIntelError):
    stage = 'processing'
