"""
AI Client Adapter

Thin, stateless wrapper around a chat-completion backend.

Backend contract:
    backend.create(model=..., messages=[{'role': ..., 'content': ...}],
                   max_tokens=..., response_format=..., temperature=...,
                   timeout=...)
    -> {'choices': [{'message': {'content': '...'}}]}

GeminiBackend implements the contract on top of google-generativeai. Tests
inject any object with a compatible create() method.

Does NOT:
- Retry failed calls (callers degrade instead)
- Keep conversation state between calls
"""

import json
import logging
import re
import time
from typing import Dict, List, Optional, Union

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from .concurrency import CancelScope, bound_timeout, check_scope
from .config import DEFAULT_MODEL, Settings
from .errors import (
    AIClientError,
    AITimeout,
    AIUnavailable,
    ContentPolicyViolation,
    MalformedResponse,
    RateLimited,
)

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r'^```(?:json)?\s*([\s\S]*?)\s*```$', re.I)
JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')


class GeminiBackend:
    """Chat-completion backend backed by Gemini (google-generativeai)."""

    def __init__(self, api_key: str):
        genai.configure(api_key=api_key)

    def create(self, model: str, messages: List[Dict], max_tokens: int,
               response_format: Optional[str] = None, temperature: float = 0.3,
               timeout: Optional[float] = None) -> Dict:
        system = '\n\n'.join(m['content'] for m in messages if m['role'] == 'system')
        prompt = '\n\n'.join(m['content'] for m in messages if m['role'] != 'system')

        generation_config = genai.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=temperature,
            response_mime_type='application/json' if response_format == 'json' else 'text/plain',
        )
        generative_model = genai.GenerativeModel(model, system_instruction=system or None)

        try:
            response = generative_model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={'timeout': timeout} if timeout else None,
            )
        except google_exceptions.ResourceExhausted as e:
            raise RateLimited(f'Gemini rate limit: {e}')
        except google_exceptions.DeadlineExceeded as e:
            raise AITimeout(f'Gemini timed out: {e}')
        except (BlockedPromptException, StopCandidateException) as e:
            raise ContentPolicyViolation(f'Gemini blocked the request: {e}')
        except google_exceptions.GoogleAPIError as e:
            raise AIClientError(f'Gemini error: {e}')

        feedback = getattr(response, 'prompt_feedback', None)
        if feedback is not None and getattr(feedback, 'block_reason', None):
            raise ContentPolicyViolation(f'Prompt blocked: {feedback.block_reason}')

        try:
            text = response.text
        except ValueError as e:
            # Raised when the candidate was stopped by a safety filter
            raise ContentPolicyViolation(f'No text in Gemini response: {e}')

        return {'model': model, 'choices': [{'message': {'role': 'assistant', 'content': text}}]}


def parse_json_object(text: str) -> Dict:
    """
    Parse model output into a JSON object.

    Strips Markdown code fences, then falls back to the outermost {...}
    span when the model wrapped the object in prose.

    Raises:
        MalformedResponse: no JSON object could be recovered
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponse('Empty response from model')

    text = text.strip()
    fenced = FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        json_match = JSON_OBJECT_PATTERN.search(text)
        if not json_match:
            raise MalformedResponse('Response is not JSON')
        try:
            data = json.loads(json_match.group())
        except json.JSONDecodeError as e:
            raise MalformedResponse(f'Invalid JSON in response: {e}')

    if not isinstance(data, dict):
        raise MalformedResponse(f'Expected a JSON object, got {type(data).__name__}')
    return data


def _message_content(raw) -> str:
    try:
        content = raw['choices'][0]['message']['content']
    except (KeyError, IndexError, TypeError):
        raise MalformedResponse('Completion has no choices/message content')
    if not isinstance(content, str):
        raise MalformedResponse('Completion content is not text')
    return content


class AIClient:
    """
    Issues one completion per call under a token budget and timeout.

    Args:
        backend: Object implementing create(); built lazily from api_key if None
        api_key: Gemini API key used to build the default backend
        enabled: Kill-switch; when False every call raises AIUnavailable
        model: Default model name
        max_tokens: Default completion token budget
        temperature: Sampling temperature
        timeout: Default per-call timeout in seconds
    """

    def __init__(self, backend=None, *, api_key: Optional[str] = None, enabled: bool = True,
                 model: str = DEFAULT_MODEL, max_tokens: int = 1024,
                 temperature: float = 0.3, timeout: float = 30.0):
        self._backend = backend
        self.api_key = api_key
        self.enabled = enabled
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, backend=None) -> 'AIClient':
        return cls(
            backend,
            api_key=settings.gemini_api_key,
            enabled=settings.ai_enabled,
            model=settings.ai_model,
            max_tokens=settings.ai_max_tokens,
            temperature=settings.ai_temperature,
            timeout=settings.ai_timeout,
        )

    @property
    def available(self) -> bool:
        return self.enabled and (self._backend is not None or bool(self.api_key))

    def _get_backend(self):
        if not self.enabled:
            raise AIUnavailable('AI is disabled')
        if self._backend is None:
            if not self.api_key:
                raise AIUnavailable('GEMINI_API_KEY not configured')
            self._backend = GeminiBackend(self.api_key)
        return self._backend

    def complete(self, prompt: str, *, system: Optional[str] = None, model: Optional[str] = None,
                 max_tokens: Optional[int] = None, response_format: Optional[str] = 'json',
                 timeout: Optional[float] = None,
                 scope: Optional[CancelScope] = None) -> Union[Dict, str]:
        """
        Run a single completion.

        Returns:
            Parsed JSON object when response_format == 'json', raw text otherwise

        Raises:
            AIUnavailable, RateLimited, ContentPolicyViolation, AITimeout,
            MalformedResponse, AIClientError, OperationCancelled
        """
        backend = self._get_backend()
        timeout = bound_timeout(scope, timeout or self.timeout)
        model = model or self.model

        messages = []
        if system:
            messages.append({'role': 'system', 'content': system})
        messages.append({'role': 'user', 'content': prompt})

        started = time.monotonic()
        try:
            raw = backend.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens or self.max_tokens,
                response_format=response_format,
                temperature=self.temperature,
                timeout=timeout,
            )
        except AIClientError:
            raise
        except TimeoutError as e:
            raise AITimeout(f'AI call timed out: {e}') from e
        except Exception as e:
            logger.exception('Unexpected AI backend failure')
            raise AIClientError(f'AI backend error: {e}') from e

        check_scope(scope)
        logger.debug('AI completion from %s in %.2fs', model, time.monotonic() - started)

        content = _message_content(raw)
        if response_format == 'json':
            return parse_json_object(content)
        return content
