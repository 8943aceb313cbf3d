"""Distractor generator interface. Ollama (local) and OpenAI-compatible backends."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from flashcards.distractors.prompts import confusing_options

logger = logging.getLogger("flashcards.distractors")


@dataclass
class DistractorGenerationError(Exception):
    """Structured generation failure. Never expose raw tracebacks."""
    kind: str  # unauthenticated | rate_limited | timeout | unavailable | invalid_json | invalid_response | provider_error
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def parse_option_list(text: str, count: int) -> List[str]:
    """Parse a model reply into exactly `count` strings or raise."""
    if not text or not text.strip():
        raise DistractorGenerationError(kind="invalid_json", message="Empty response from model")
    try:
        data = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise DistractorGenerationError(kind="invalid_json", message="Model output is not valid JSON", details={"error": str(e)})
    if not isinstance(data, list) or len(data) != count:
        raise DistractorGenerationError(kind="invalid_response", message="Invalid response format from model")
    if not all(isinstance(item, str) for item in data):
        raise DistractorGenerationError(kind="invalid_response", message="Model returned non-string options")
    return [item.strip() for item in data]


class DistractorGenerator(ABC):
    """Abstract text-generation collaborator for plausible wrong answers."""

    name: str = "base"

    @abstractmethod
    async def generate_distractors(self, front: str, correct_answer: str, count: int = 3) -> List[str]:
        """Return `count` wrong answers or raise DistractorGenerationError."""
        ...

    @abstractmethod
    async def test_connection(self) -> tuple[bool, str]:
        """Test if the backend is reachable. Returns (ok, message)."""
        ...


class _HttpGenerator(DistractorGenerator):
    """Shared httpx plumbing and status-code mapping."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout_s: int = 20,
        temperature: float = 0.8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self.temperature = temperature
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _post_json(self, path: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            async with self._client(self.timeout_s) as client:
                resp = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise DistractorGenerationError(kind="timeout", message="Model request timed out", details={"error": str(e)})
        except httpx.ConnectError as e:
            raise DistractorGenerationError(kind="unavailable", message=f"Cannot connect to {self.name}", details={"error": str(e)})
        except httpx.HTTPError as e:
            logger.exception("%s request failed", self.name)
            raise DistractorGenerationError(kind="provider_error", message="Model request failed", details={"error": str(e)})

        if resp.status_code in (401, 403):
            raise DistractorGenerationError(kind="unauthenticated", message=f"{self.name} rejected the credentials", details={"status": resp.status_code})
        if resp.status_code == 429:
            raise DistractorGenerationError(kind="rate_limited", message=f"{self.name} rate limit reached", details={"status": resp.status_code})
        if resp.status_code != 200:
            raise DistractorGenerationError(
                kind="provider_error",
                message=f"{self.name} returned {resp.status_code}",
                details={"status": resp.status_code, "body": resp.text[:200]},
            )
        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise DistractorGenerationError(kind="invalid_json", message="Invalid response from model", details={"error": str(e)})


class OllamaGenerator(_HttpGenerator):
    """Ollama HTTP API backend."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b-instruct",
        timeout_s: int = 20,
        temperature: float = 0.8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, model, timeout_s, temperature, transport)
        self.name = "ollama"

    async def generate_distractors(self, front: str, correct_answer: str, count: int = 3) -> List[str]:
        system, user = confusing_options(front, correct_answer, count)
        payload = {
            "model": self.model,
            "prompt": f"{system}\n\n{user}",
            "stream": False,
            "options": {"temperature": self.temperature, "num_predict": 500},
        }
        data = await self._post_json("/api/generate", payload)
        return parse_option_list(data.get("response", ""), count)

    async def test_connection(self) -> tuple[bool, str]:
        try:
            async with self._client(5) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            if resp.status_code == 200:
                return True, "Ollama available"
            return False, f"Ollama returned {resp.status_code}"
        except httpx.ConnectError:
            return False, "Ollama not detected. Install and run: ollama serve"
        except httpx.HTTPError as e:
            return False, str(e)


class OpenAIGenerator(_HttpGenerator):
    """OpenAI-compatible /v1/chat/completions backend."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com",
        model: str = "gpt-4o-mini",
        timeout_s: int = 20,
        temperature: float = 0.8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, model, timeout_s, temperature, transport)
        self.api_key = api_key
        self.name = "openai"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def generate_distractors(self, front: str, correct_answer: str, count: int = 3) -> List[str]:
        if not self.api_key:
            raise DistractorGenerationError(kind="unauthenticated", message="API key not configured")
        system, user = confusing_options(front, correct_answer, count)
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
            "max_tokens": 500,
        }
        data = await self._post_json("/v1/chat/completions", payload, headers=self._headers())
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise DistractorGenerationError(kind="invalid_response", message="No response from model")
        return parse_option_list(content or "", count)

    async def test_connection(self) -> tuple[bool, str]:
        if not self.api_key:
            return False, "API key not configured"
        try:
            async with self._client(5) as client:
                resp = await client.get(f"{self.base_url}/v1/models", headers=self._headers())
            if resp.status_code == 200:
                return True, "OpenAI available"
            return False, f"OpenAI returned {resp.status_code}"
        except httpx.HTTPError as e:
            return False, str(e)


class FakeGenerator(DistractorGenerator):
    """Test double: returns canned options or raises a canned error."""

    def __init__(
        self,
        canned: Optional[List[str]] = None,
        error: Optional[DistractorGenerationError] = None,
        release: Optional[asyncio.Event] = None,
    ):
        self.canned = canned
        self.error = error
        self.release = release
        self.calls: List[tuple] = []
        self.name = "fake"

    async def generate_distractors(self, front: str, correct_answer: str, count: int = 3) -> List[str]:
        self.calls.append((front, correct_answer, count))
        if self.release is not None:
            await self.release.wait()
        if self.error:
            raise self.error
        if self.canned is not None:
            return list(self.canned)
        return [f"{correct_answer} (wrong {i + 1})" for i in range(count)]

    async def test_connection(self) -> tuple[bool, str]:
        if self.error and self.error.kind == "unavailable":
            return False, "Fake unavailable"
        return True, "Fake OK"


def build_generator(settings) -> Optional[DistractorGenerator]:
    """Construct the configured generator. Returns None if disabled or unconfigured."""
    if not getattr(settings, "llm_enabled", False):
        return None
    provider_name = getattr(settings, "llm_provider", "ollama")
    timeout = getattr(settings, "llm_timeout_s", 20)
    temperature = getattr(settings, "llm_temperature", 0.8)
    if provider_name == "openai":
        api_key = getattr(settings, "llm_api_key", None)
        if not api_key:
            logger.warning("OpenAI distractor generation enabled without an API key; using local options")
            return None
        return OpenAIGenerator(
            api_key=api_key,
            base_url=getattr(settings, "llm_base_url", None) or "https://api.openai.com",
            model=getattr(settings, "llm_model", None) or "gpt-4o-mini",
            timeout_s=timeout,
            temperature=temperature,
        )
    if provider_name != "ollama":
        logger.warning("Unknown distractor provider %r; using ollama", provider_name)
    return OllamaGenerator(
        base_url=getattr(settings, "llm_base_url", None) or "http://localhost:11434",
        model=getattr(settings, "llm_model", None) or "qwen2.5:7b-instruct",
        timeout_s=timeout,
        temperature=temperature,
    )
