"""Provider-agnostic LLM service — Ollama, LM Studio/OpenAI and Gemini.

Provider URLs are centralized in signal_trader.config.settings:
    OLLAMA_URL   — Ollama endpoint (default http://localhost:11434)
    LMSTUDIO_URL — LM Studio endpoint (default http://localhost:1234)
    OPENAI_URL   — OpenAI-compatible endpoint
    GEMINI_URL   — Google Generative Language endpoint

Uses a module-level shared httpx.AsyncClient for connection pooling.
Each ``chat()`` is exactly one HTTP request; callers own any retry policy.
"""

from __future__ import annotations

import re
import time

import httpx

from signal_trader.config import settings
from signal_trader.utils.logger import logger

# Shared async HTTP client — reused across all LLM calls.
# Created lazily on first use; closed on logout / shutdown.
_shared_client: httpx.AsyncClient | None = None


async def _get_shared_client() -> httpx.AsyncClient:
    """Get or create the shared httpx.AsyncClient."""
    global _shared_client  # noqa: PLW0603
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.LLM_TIMEOUT_SECONDS,
                connect=10.0,   # Fail fast if server is unreachable
            ),
            limits=httpx.Limits(
                max_connections=10,
                max_keepalive_connections=5,
            ),
        )
    return _shared_client


async def aclose_shared_client() -> None:
    """Tear down the pooled client (session teardown on logout)."""
    global _shared_client  # noqa: PLW0603
    if _shared_client is not None and not _shared_client.is_closed:
        await _shared_client.aclose()
        logger.info("[LLM] Shared HTTP client closed")
    _shared_client = None


class LLMService:
    """Sends one completion request to the configured inference provider."""

    def __init__(self) -> None:
        self.provider = settings.LLM_PROVIDER
        self.base_url = settings.LLM_BASE_URL  # Computed property, already stripped
        self.model = settings.LLM_MODEL
        self.temperature = settings.LLM_TEMPERATURE
        self.context_size = settings.LLM_CONTEXT_SIZE
        self.api_key = settings.OPENAI_API_KEY
        self.gemini_key = settings.GEMINI_API_KEY

    async def chat(
        self,
        system: str,
        user: str,
        *,
        response_format: str = "json",
        max_tokens: int | None = None,
    ) -> str:
        """Send a chat completion request and return the raw text response.

        Raises ``httpx.HTTPError`` on transport failures and non-2xx replies.
        """
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

        if self.provider == "ollama":
            return await self._call_ollama(messages, response_format, max_tokens)
        if self.provider == "gemini":
            return await self._call_gemini(system, user, max_tokens)
        # Both "lmstudio" and "openai" use the OpenAI-compatible API
        return await self._call_openai(messages, response_format, max_tokens)

    async def _call_ollama(
        self,
        messages: list[dict],
        response_format: str,
        max_tokens: int | None,
    ) -> str:
        """Call the Ollama /api/chat endpoint using shared connection pool."""
        url = f"{self.base_url}/api/chat"
        payload: dict = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_ctx": self.context_size,
            },
        }
        if response_format == "json":
            payload["format"] = "json"
        if max_tokens:
            payload["options"]["num_predict"] = max_tokens

        logger.info("⏱️  Ollama request START → %s model=%s", url, self.model)
        t0 = time.perf_counter()

        client = await _get_shared_client()
        resp = await client.post(url, json=payload)
        resp.raise_for_status()
        content = resp.json().get("message", {}).get("content", "")

        logger.info(
            "⏱️  Ollama request DONE  → %.2fs, %d chars",
            time.perf_counter() - t0, len(content),
        )
        return content

    async def _call_openai(
        self,
        messages: list[dict],
        response_format: str,
        max_tokens: int | None,
    ) -> str:
        """Call an OpenAI-compatible /v1/chat/completions endpoint."""
        url = f"{self.base_url}/v1/chat/completions"
        payload: dict = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        # LM Studio does NOT support response_format — omit it entirely.
        if response_format == "json" and self.provider != "lmstudio":
            payload["response_format"] = {"type": "json_object"}

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info(
            "⏱️  OpenAI request START → %s model=%s provider=%s",
            url, self.model, self.provider,
        )
        t0 = time.perf_counter()

        client = await _get_shared_client()
        resp = await client.post(url, json=payload, headers=headers)
        if resp.status_code >= 400:
            logger.error(
                "❌ OpenAI endpoint returned %d: %s",
                resp.status_code, resp.text[:500],
            )
        resp.raise_for_status()

        content = resp.json()["choices"][0]["message"]["content"] or ""
        logger.info(
            "⏱️  OpenAI request DONE  → %.2fs, %d chars",
            time.perf_counter() - t0, len(content),
        )
        return content

    async def _call_gemini(
        self,
        system: str,
        user: str,
        max_tokens: int | None,
    ) -> str:
        """Call Gemini ``models/{model}:generateContent``."""
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"
        payload: dict = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        if max_tokens:
            payload["generationConfig"]["maxOutputTokens"] = max_tokens

        logger.info("⏱️  Gemini request START → model=%s", self.model)
        t0 = time.perf_counter()

        client = await _get_shared_client()
        resp = await client.post(
            url, json=payload, params={"key": self.gemini_key},
        )
        if resp.status_code >= 400:
            logger.error(
                "❌ Gemini endpoint returned %d: %s",
                resp.status_code, resp.text[:500],
            )
        resp.raise_for_status()

        candidates = resp.json().get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts") or [{}]
        content = parts[0].get("text", "") or ""
        logger.info(
            "⏱️  Gemini request DONE  → %.2fs, %d chars",
            time.perf_counter() - t0, len(content),
        )
        return content

    @staticmethod
    def clean_json_response(raw: str) -> str:
        """Strip markdown code fences and extract the FIRST complete JSON object.

        LLMs often wrap their JSON in ```json ... ``` markers, or surround
        it with prose.  We use brace-depth counting to extract only the
        first complete {...} object.
        """
        cleaned = re.sub(r"```(?:json)?\s*", "", raw)
        cleaned = re.sub(r"```\s*$", "", cleaned)
        cleaned = cleaned.strip()

        start = cleaned.find("{")
        if start == -1:
            return cleaned  # No JSON object at all

        depth = 0
        in_string = False
        escape_next = False
        end = -1

        for i in range(start, len(cleaned)):
            ch = cleaned[i]

            if escape_next:
                escape_next = False
                continue

            if ch == "\\":
                escape_next = True
                continue

            if ch == '"':
                in_string = not in_string
                continue

            if in_string:
                continue

            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break

        if end != -1:
            return cleaned[start : end + 1]

        # Incomplete object (truncated by max_tokens) — return what we have
        return cleaned[start:]

    async def health_check(self) -> dict:
        """Check connectivity to the inference backend."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                if self.provider == "ollama":
                    resp = await client.get(f"{self.base_url}/api/tags")
                    resp.raise_for_status()
                    models = [m["name"] for m in resp.json().get("models", [])]
                elif self.provider == "gemini":
                    resp = await client.get(
                        f"{self.base_url}/v1beta/models",
                        params={"key": self.gemini_key},
                    )
                    resp.raise_for_status()
                    models = [
                        m.get("name", "").removeprefix("models/")
                        for m in resp.json().get("models", [])
                    ]
                else:
                    headers: dict[str, str] = {}
                    if self.api_key:
                        headers["Authorization"] = f"Bearer {self.api_key}"
                    resp = await client.get(
                        f"{self.base_url}/v1/models", headers=headers,
                    )
                    resp.raise_for_status()
                    models = [m.get("id", "") for m in resp.json().get("data", [])]
            return {
                "status": "ok",
                "provider": self.provider,
                "active_url": self.base_url,
                "models": models,
                "configured_model": self.model,
                "model_available": self.model in models,
            }
        except Exception as e:
            return {
                "status": "error",
                "provider": self.provider,
                "active_url": self.base_url,
                "error": str(e),
            }
