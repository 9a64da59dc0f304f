"""Resilient client for the external text-generation service.

One ``generate`` call is one logical attempt: the transport is invoked at most
once, its reply is run through the request's schema contract, and every failure
is classified into a :class:`FailureKind`. Retry policy belongs to callers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from .config import RoleModelConfig, llm_disabled, resolve_api_key
from .contracts import SchemaContract
from .errors import (
    FailureKind,
    GenerationFailure,
    GenerationTimeoutError,
    ServiceUnavailableError,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """Prompt plus the contract its reply must satisfy."""

    prompt: str
    contract: SchemaContract
    temperature: float = 0.7
    max_tokens: int = 1500
    system: str | None = None
    attachments: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class GenerationResult:
    """Non-raising view of one attempt."""

    value: Any = None
    failure: GenerationFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class Transport(Protocol):
    """Anything that turns a prompt into raw service text."""

    def __call__(
        self,
        prompt: str,
        *,
        system: str | None = None,
        attachments: Sequence[str] = (),
        temperature: float = 0.7,
        max_tokens: int = 1500,
    ) -> str: ...


def classify_exception(exc: BaseException) -> GenerationFailure:
    """Map a transport exception onto the failure taxonomy."""

    if isinstance(exc, GenerationFailure):
        return exc
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)) or "timeout" in type(exc).__name__.lower():
        return GenerationTimeoutError(f"Generation service timed out: {exc}")
    if isinstance(exc, (httpx.HTTPError, ConnectionError, OSError)):
        return ServiceUnavailableError(f"Generation service unavailable: {exc}")
    return GenerationFailure(f"Unexpected generation error: {exc!r}", kind=FailureKind.UNKNOWN)


def _join_content(content: Any) -> str:
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(str(part.get("text") or ""))
            else:
                parts.append(str(part))
        return " ".join(part for part in parts if part)
    return "" if content is None else str(content)


class OpenAIChatTransport:
    """Chat-completions transport over httpx with optional image parts."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        api_base: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        if client is None:
            self._client = httpx.Client(base_url=api_base.rstrip("/"), timeout=timeout)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def __call__(
        self,
        prompt: str,
        *,
        system: str | None = None,
        attachments: Sequence[str] = (),
        temperature: float = 0.7,
        max_tokens: int = 1500,
    ) -> str:
        response = self._client.post(
            "/chat/completions",
            json=self.build_payload(prompt, system=system, attachments=attachments, temperature=temperature, max_tokens=max_tokens),
            headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
        )
        response.raise_for_status()
        try:
            data = response.json()
            return _join_content(data["choices"][0]["message"]["content"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ServiceUnavailableError(f"Unexpected chat completion envelope: {response.text[:200]}") from exc

    def build_payload(
        self,
        prompt: str,
        *,
        system: str | None,
        attachments: Sequence[str],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        if attachments:
            content: Any = [{"type": "text", "text": prompt}]
            content.extend({"type": "image_url", "image_url": {"url": url}} for url in attachments)
        else:
            content = prompt
        messages.append({"role": "user", "content": content})
        return {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class DSPyTransport:
    """Adapter that lets a configured ``dspy.LM`` act as a transport."""

    def __init__(self, lm: Any) -> None:
        self.lm = lm

    def __call__(
        self,
        prompt: str,
        *,
        system: str | None = None,
        attachments: Sequence[str] = (),
        temperature: float = 0.7,
        max_tokens: int = 1500,
    ) -> str:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        if attachments:
            content: Any = [{"type": "text", "text": prompt}]
            content.extend({"type": "image_url", "image_url": {"url": url}} for url in attachments)
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": prompt})
        raw = self.lm(messages=messages, temperature=temperature, max_tokens=max_tokens)
        if isinstance(raw, list):
            return "\n".join(_join_content([item]) for item in raw)
        return _join_content(raw)


class GenerationClient:
    """Single-attempt client with contract enforcement and failure classification."""

    def __init__(
        self,
        transport: Transport | None,
        *,
        model_name: str | None = None,
        credential_present: bool = True,
    ) -> None:
        self._transport = transport
        self.model_name = model_name
        self._credential_present = credential_present and transport is not None
        self.call_count = 0

    @property
    def available(self) -> bool:
        return self._credential_present

    def close(self) -> None:
        """Release the transport's resources when it holds any."""
        closer = getattr(self._transport, "close", None)
        if callable(closer):
            closer()

    def generate(self, request: GenerationRequest) -> Any:
        if not self.available:
            raise ServiceUnavailableError("No credential configured for the generation service")

        self.call_count += 1
        try:
            raw = self._transport(
                request.prompt,
                system=request.system,
                attachments=tuple(request.attachments),
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except Exception as exc:
            failure = classify_exception(exc)
            LOGGER.debug("Transport call failed (%s): %s", failure.kind.value, exc)
            raise failure from exc

        return request.contract.parse(raw)

    def generate_result(self, request: GenerationRequest) -> GenerationResult:
        try:
            return GenerationResult(value=self.generate(request))
        except GenerationFailure as failure:
            return GenerationResult(failure=failure)


def offline_client(model_name: Optional[str] = None) -> GenerationClient:
    """Client that always reports the service as unavailable."""
    return GenerationClient(None, model_name=model_name, credential_present=False)


def build_generation_client(
    role_cfg: RoleModelConfig,
    role_name: str,
    *,
    api_key: str | None = None,
    http_client: httpx.Client | None = None,
) -> GenerationClient:
    """Construct the client for a role; missing credentials yield an offline client."""

    if llm_disabled():
        LOGGER.info("LLM calls disabled via environment; %s will use fallback content", role_name)
        return offline_client(role_cfg.model)

    key = api_key or resolve_api_key(role_cfg, role_name)
    if not key:
        LOGGER.warning("API key missing or placeholder value for %s; using fallback content", role_name)
        return offline_client(role_cfg.model)

    if role_cfg.provider == "dspy":
        from .dspy_runtime import build_dspy_lm

        transport: Transport = DSPyTransport(build_dspy_lm(role_cfg, api_key=key))
    else:
        transport = OpenAIChatTransport(
            api_key=key,
            model=role_cfg.model,
            api_base=role_cfg.api_base,
            timeout=role_cfg.timeout_seconds,
            client=http_client,
        )
    return GenerationClient(transport, model_name=role_cfg.model)


__all__ = [
    "DSPyTransport",
    "GenerationClient",
    "GenerationRequest",
    "GenerationResult",
    "OpenAIChatTransport",
    "Transport",
    "build_generation_client",
    "classify_exception",
    "offline_client",
]
