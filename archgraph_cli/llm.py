"""Multi-provider LLM adapter used by the AI-assisted stages.

Every provider exposes a single text-completion call. Transport failures
never raise: ``generate`` returns ``None`` and callers treat that as a
non-committal answer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Optional, TypeVar

import requests

from .config import LLM_API_KEY, LLM_ENDPOINT, LLM_MODEL, LLM_PROVIDER
from .config_manager import validate_ollama_connection

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TIMEOUT = 60.0


class LLMProvider:
    """Base class for LLM providers."""

    def __init__(self, model: str, api_key: str = "", endpoint: str = "", timeout: float = DEFAULT_TIMEOUT):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> Optional[str]:
        """Generate a response from the LLM."""
        raise NotImplementedError

    def _post(self, url: str, payload: dict, headers: Optional[dict] = None) -> Optional[dict]:
        try:
            response = requests.post(
                url,
                headers={"Content-Type": "application/json", **(headers or {})},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("%s request failed: %s", type(self).__name__, exc)
            return None


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider."""

    def generate(self, prompt, system=None, temperature=DEFAULT_TEMPERATURE, max_tokens=DEFAULT_MAX_TOKENS):
        payload: dict = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "keep_alive": "5m",
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        if system:
            payload["system"] = system
        parsed = self._post(self.endpoint, payload)
        if parsed is None:
            return None
        return parsed.get("response")


class OpenAICompatibleProvider(LLMProvider):
    """OpenAI chat-completions API (also Groq and OpenRouter)."""

    def generate(self, prompt, system=None, temperature=DEFAULT_TEMPERATURE, max_tokens=DEFAULT_MAX_TOKENS):
        if not self.api_key:
            return None
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        parsed = self._post(
            self.endpoint,
            {
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        try:
            return parsed["choices"][0]["message"]["content"] if parsed else None
        except (KeyError, IndexError, TypeError):
            return None


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider."""

    def generate(self, prompt, system=None, temperature=DEFAULT_TEMPERATURE, max_tokens=DEFAULT_MAX_TOKENS):
        if not self.api_key:
            return None
        payload: dict = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        parsed = self._post(
            self.endpoint,
            payload,
            headers={"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
        )
        try:
            return parsed["content"][0]["text"] if parsed else None
        except (KeyError, IndexError, TypeError):
            return None


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    def generate(self, prompt, system=None, temperature=DEFAULT_TEMPERATURE, max_tokens=DEFAULT_MAX_TOKENS):
        if not self.api_key:
            return None
        payload: dict = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        parsed = self._post(f"{self.endpoint}?key={self.api_key}", payload)
        try:
            return parsed["candidates"][0]["content"]["parts"][0]["text"] if parsed else None
        except (KeyError, IndexError, TypeError):
            return None


_ENDPOINTS = {
    "groq": "https://api.groq.com/openai/v1/chat/completions",
    "openai": "https://api.openai.com/v1/chat/completions",
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
    "anthropic": "https://api.anthropic.com/v1/messages",
}


class LocalLLM:
    """Explicit LLM client handle passed to the stages that need one."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize LLM with provider selection.

        Args:
            model: Model name (defaults to config or "qwen2.5-coder:7b")
            provider: Provider name: "ollama", "groq", "openai", "anthropic",
                "gemini", "openrouter" (defaults to config)
            api_key: API key for cloud providers (defaults to config)
            endpoint: Custom endpoint (defaults to config)
            timeout: Per-request timeout in seconds
        """
        self.provider_name = (provider or LLM_PROVIDER).lower()
        self.model = model or LLM_MODEL
        self.api_key = api_key or LLM_API_KEY
        self.endpoint = endpoint or LLM_ENDPOINT
        self.timeout = timeout
        self._available: Optional[bool] = None

        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        """Create the appropriate provider based on configuration."""
        name = self.provider_name
        if name == "ollama":
            return OllamaProvider(self.model, endpoint=self.endpoint, timeout=self.timeout)

        # Cloud providers ignore the Ollama endpoint default
        endpoint = self.endpoint if self.endpoint and "11434" not in self.endpoint else ""
        if name in ("groq", "openai", "openrouter"):
            return OpenAICompatibleProvider(
                self.model, self.api_key, endpoint or _ENDPOINTS[name], timeout=self.timeout
            )
        if name == "anthropic":
            return AnthropicProvider(self.model, self.api_key, endpoint or _ENDPOINTS[name], timeout=self.timeout)
        if name == "gemini":
            return GeminiProvider(
                self.model,
                self.api_key,
                endpoint or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent",
                timeout=self.timeout,
            )
        logger.warning("Unknown LLM provider '%s', falling back to Ollama", name)
        self.provider_name = "ollama"
        return OllamaProvider(self.model, endpoint=self.endpoint, timeout=self.timeout)

    def is_available(self) -> bool:
        """Probe the provider once per client; the answer is cached."""
        if self._available is None:
            if self.provider_name == "ollama":
                self._available = validate_ollama_connection(self.endpoint, timeout=5.0)
            else:
                self._available = bool(self.api_key)
            logger.info("LLM provider %s available: %s", self.provider_name, self._available)
        return self._available

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> Optional[str]:
        return self.provider.generate(prompt, system=system, temperature=temperature, max_tokens=max_tokens)


def extract_json(text: Optional[str]) -> Optional[Any]:
    """Return the first balanced JSON object embedded in ``text``.

    String literals are honoured so braces inside quoted values do not
    unbalance the scan. Returns ``None`` when nothing decodes.
    """
    if not text:
        return None
    for start, char in enumerate(text):
        if char != "{":
            continue
        end = _balanced_end(text, start)
        if end is None:
            continue
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            continue
    return None


def _balanced_end(text: str, start: int) -> Optional[int]:
    closing = {"{": "}", "[": "]"}
    stack = [closing[text[start]]]
    in_string = False
    escaped = False
    for index in range(start + 1, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in closing:
            stack.append(closing[char])
        elif char in "}]":
            if not stack or char != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return index
    return None


async def run_blocking(func: Callable[..., T], *args: Any, timeout: float, **kwargs: Any) -> T:
    """Run ``func`` on a worker thread of its own and wait at most ``timeout`` seconds.

    The executor is private to this call and is never joined, so a worker
    still running after the timeout does not hold up ``asyncio.run``.
    Raises ``asyncio.TimeoutError``.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="archgraph-llm")
    try:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.run_in_executor(executor, partial(func, *args, **kwargs)), timeout=timeout)
    finally:
        executor.shutdown(wait=False)


async def generate_async(
    llm: LocalLLM,
    prompt: str,
    system: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> Optional[str]:
    """Run the blocking ``generate`` call off the event loop with a hard timeout.

    A timeout or transport exception yields ``None`` like any other
    provider failure.
    """
    try:
        return await run_blocking(llm.generate, prompt, system=system, timeout=timeout, **kwargs)
    except asyncio.TimeoutError:
        logger.warning("LLM request timed out after %.0fs", timeout)
    except Exception as exc:
        logger.warning("LLM request failed: %s", exc)
    return None


def generate_with_timeout(llm: LocalLLM, prompt: str, system: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT, **kwargs: Any) -> Optional[str]:
    return asyncio.run(generate_async(llm, prompt, system=system, timeout=timeout, **kwargs))
