"""Language-model backends that return a raw credibility assessment for a report."""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import requests
from flask import current_app
from google import genai
from google.genai import errors as genai_errors
from google.genai import types


class CredibilityAssessorError(Exception):
    """Base class for failures talking to the model provider."""


class ConfigurationError(CredibilityAssessorError):
    """Raised when the provider credential or provider name is not configured."""


class RateLimitError(CredibilityAssessorError):
    """Raised when the provider throttles the request; safe to retry later."""


class QuotaExhaustedError(CredibilityAssessorError):
    """Raised when provider credits or billing quota are exhausted; not retryable."""


class ProviderError(CredibilityAssessorError):
    """Raised for any other provider failure, including timeouts."""


def classify_status(code: Optional[int], message: str = "") -> type[CredibilityAssessorError]:
    """Map a provider HTTP status onto the error taxonomy."""
    if code == 402:
        return QuotaExhaustedError
    if code == 429:
        if "billing" in (message or "").lower():
            return QuotaExhaustedError
        return RateLimitError
    return ProviderError


class CredibilityAssessor:
    """Capability interface: send a system/user prompt pair, get back free text."""

    provider = "unknown"

    def __init__(self, model: str, temperature: float = 0.3, timeout: float = 30.0) -> None:
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    async def assess(self, system_prompt: str, user_prompt: str) -> str:
        try:
            return await asyncio.wait_for(self._complete(system_prompt, user_prompt), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            current_app.logger.warning("Credibility assessment timed out", extra={"provider": self.provider, "timeout": self.timeout})
            raise ProviderError(f"{self.provider} request timed out after {self.timeout}s") from exc

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError


class GeminiCredibilityAssessor(CredibilityAssessor):
    provider = "gemini"

    def __init__(self, api_key: str, model: str, temperature: float = 0.3, timeout: float = 30.0) -> None:
        super().__init__(model, temperature=temperature, timeout=timeout)
        self.client = genai.Client(api_key=api_key)

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=self.temperature,
                ),
            )
        except genai_errors.APIError as exc:
            error_cls = classify_status(exc.code, str(exc.message or ""))
            current_app.logger.error("Gemini request failed", extra={"status": exc.code, "provider": self.provider})
            raise error_cls(f"Gemini error {exc.code}: {exc.message}") from exc
        except Exception as exc:  # pragma: no cover - relies on remote service
            current_app.logger.exception("Gemini request failed")
            raise ProviderError("Gemini request failed") from exc

        raw_text = (response.text or "").strip()
        if not raw_text and getattr(response, "candidates", None):
            parts = response.candidates[0].content.parts if response.candidates[0].content else []
            raw_text = "".join(getattr(p, "text", "") or "" for p in parts or []).strip()
        return raw_text


class GatewayCredibilityAssessor(CredibilityAssessor):
    """OpenAI-compatible chat-completions gateway."""

    provider = "gateway"

    def __init__(self, url: str, api_key: str, model: str, temperature: float = 0.3, timeout: float = 30.0) -> None:
        super().__init__(model, temperature=temperature, timeout=timeout)
        self.url = url
        self.api_key = api_key

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        return await asyncio.to_thread(self._post, system_prompt, user_prompt)

    def _post(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f"Gateway request failed: {exc}") from exc

        if not response.ok:
            body_text = response.text or ""
            current_app.logger.error(
                "AI gateway error",
                extra={"status": response.status_code, "provider": self.provider, "raw_text_snippet": body_text[:500]},
            )
            error_cls = classify_status(response.status_code, body_text)
            raise error_cls(f"AI gateway error: {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("AI gateway returned a non-JSON body") from exc
        return _message_content(body)


def _message_content(body: Any) -> str:
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content if isinstance(content, str) else ""


def build_assessor(config: Mapping[str, Any]) -> CredibilityAssessor:
    """Create the configured assessor, failing fast when its credential is missing."""
    provider = (config.get("AI_PROVIDER") or "gemini").lower()
    temperature = float(config.get("ANALYSIS_TEMPERATURE", 0.3))
    timeout = float(config.get("ANALYSIS_TIMEOUT_SECONDS", 30))

    if provider == "gemini":
        api_key = config.get("GEMINI_API_KEY")
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        return GeminiCredibilityAssessor(
            api_key=api_key,
            model=config.get("GEMINI_ANALYSIS_MODEL", "gemini-2.5-flash"),
            temperature=temperature,
            timeout=timeout,
        )
    if provider == "gateway":
        api_key = config.get("AI_GATEWAY_API_KEY")
        if not api_key:
            raise ConfigurationError("AI_GATEWAY_API_KEY is not configured")
        return GatewayCredibilityAssessor(
            url=config.get("AI_GATEWAY_URL"),
            api_key=api_key,
            model=config.get("AI_GATEWAY_MODEL"),
            temperature=temperature,
            timeout=timeout,
        )
    raise ConfigurationError(f"Unsupported AI_PROVIDER: {provider}")


def current_assessor() -> CredibilityAssessor:
    """Return the assessor registered on the app, or build one from config."""
    registered = current_app.extensions.get("credibility_assessor")
    if registered is not None:
        return registered
    return build_assessor(current_app.config)
