# src/itemguard/oracle/llm.py
"""
itemguard: oracle access

This module centralizes:
- AsyncOpenAI / AsyncAzureOpenAI client creation from env
- the Oracle protocol every judge and the fixer talk to
- a single call wrapper that enforces the per-call timeout and records usage
- consistent error shaping (OracleUnavailable / OracleTimeout / OracleError)

Design notes:
- Do not encode task-specific prompts here; prompts live in validate/prompt.py.
- For Azure, `model` MUST be the deployment name.
- No retries: each judge is exactly one round-trip; the SDK's own retries are
  controlled by `client_max_retries` in config.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

from openai import AsyncAzureOpenAI, AsyncOpenAI

from itemguard.config import OracleConfig

from .usage import UsageTracker

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Errors / results
# ---------------------------------------------------------------------
class OracleError(RuntimeError):
    """Base class for oracle call failures."""


class OracleUnavailable(OracleError):
    """Raised when credentials or the client are missing."""


class OracleTimeout(OracleError):
    """Raised when a call exceeds the per-call timeout."""


@dataclass(frozen=True)
class OracleReply:
    content: str
    model: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class Oracle(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        call_type: str,
    ) -> OracleReply: ...


# ---------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------
def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def normalize_azure_endpoint(endpoint: str) -> str:
    """
    Azure endpoint must be: https://<resource>.openai.azure.com
    (no trailing slash, no /openai)
    """
    e = (endpoint or "").strip().rstrip("/")
    if e.endswith("/openai"):
        e = e[:-7]
    return e


def _mask(s: str) -> str:
    s = s or ""
    if len(s) <= 8:
        return "*" * len(s)
    return f"{s[:4]}{'*' * (len(s) - 8)}{s[-4:]}"


def resolve_provider(cfg: OracleConfig) -> str:
    return (cfg.provider or _env("ITEMGUARD_LLM_PROVIDER", "openai") or "openai").strip().lower()


def build_client(cfg: OracleConfig) -> Any:
    """
    Returns an async SDK client for cfg.provider.

    - azure: AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY, AZURE_OPENAI_API_VERSION
    - openai (default): OPENAI_API_KEY and optional ITEMGUARD_BASE_URL for
      OpenAI-compatible gateways
    """
    provider = resolve_provider(cfg)

    if provider == "azure":
        endpoint = _env("AZURE_OPENAI_ENDPOINT")
        api_key = _env("AZURE_OPENAI_API_KEY")
        api_version = _env("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")
        missing = [
            k
            for k, v in [
                ("AZURE_OPENAI_ENDPOINT", endpoint),
                ("AZURE_OPENAI_API_KEY", api_key),
            ]
            if not v
        ]
        if missing:
            raise OracleUnavailable(f"Missing Azure env vars: {', '.join(missing)}")
        logger.debug(
            "Azure oracle: endpoint=%s api_version=%s api_key_mask=%s",
            endpoint,
            api_version,
            _mask(api_key or ""),
        )
        return AsyncAzureOpenAI(
            azure_endpoint=normalize_azure_endpoint(endpoint or ""),
            api_key=api_key,
            api_version=api_version,
            timeout=cfg.timeout_s,
            max_retries=cfg.client_max_retries,
        )

    api_key = _env("OPENAI_API_KEY")
    if not api_key:
        raise OracleUnavailable("OPENAI_API_KEY is not set in the environment.")
    base_url = _env("ITEMGUARD_BASE_URL")
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=cfg.timeout_s,
        max_retries=cfg.client_max_retries,
    )


def is_azure_client(client: Any) -> bool:
    # safest: check class name (avoids import identity issues)
    return client.__class__.__name__ in {"AzureOpenAI", "AsyncAzureOpenAI"}


class ChatOracle:
    """
    Oracle backed by the chat completions API.

    The client is built lazily on the first call so that a missing key turns
    into an OracleUnavailable at the call site instead of at import time.
    """

    def __init__(self, cfg: OracleConfig, client: Any | None = None) -> None:
        self.cfg = cfg
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = build_client(self.cfg)
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        call_type: str,
    ) -> OracleReply:
        client = self._get_client()
        kwargs: dict[str, Any] = dict(
            model=model,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        # Azure reasoning deployments reject max_tokens.
        if is_azure_client(client):
            kwargs["max_completion_tokens"] = int(max_tokens)
        else:
            kwargs["max_tokens"] = int(max_tokens)

        resp = await client.chat.completions.create(**kwargs)
        content = ""
        if resp.choices:
            content = (resp.choices[0].message.content or "").strip()
        usage = getattr(resp, "usage", None)
        return OracleReply(
            content=content,
            model=getattr(resp, "model", None) or model,
            prompt_tokens=getattr(usage, "prompt_tokens", None) if usage else None,
            completion_tokens=getattr(usage, "completion_tokens", None) if usage else None,
        )


# ---------------------------------------------------------------------
# Call wrapper
# ---------------------------------------------------------------------
async def ask_oracle(
    oracle: Oracle,
    prompt: str,
    *,
    model: str,
    max_tokens: int,
    temperature: float,
    timeout_s: float,
    call_type: str,
    tracker: UsageTracker | None = None,
) -> OracleReply:
    """
    One bounded oracle round-trip.

    Raises OracleTimeout when the call exceeds `timeout_s`; any other SDK error
    propagates unchanged. Cancellation of the surrounding task cancels the call.
    """
    t0 = time.monotonic()
    try:
        reply = await asyncio.wait_for(
            oracle.complete(
                prompt,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                call_type=call_type,
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as e:
        raise OracleTimeout(f"{call_type} call exceeded {timeout_s:.1f}s") from e

    duration_ms = int((time.monotonic() - t0) * 1000)
    if tracker is not None:
        tracker.track(
            call_type=call_type,
            model=reply.model,
            prompt_tokens=reply.prompt_tokens,
            completion_tokens=reply.completion_tokens,
            duration_ms=duration_ms,
        )
    return reply


SMOKE_PROMPT = 'Return ONLY JSON: {"ok": true}'


async def smoke_check(cfg: OracleConfig, oracle: Oracle | None = None) -> OracleReply:
    """
    One tiny round-trip against the agents model to check credentials and
    connectivity. Errors propagate to the caller.
    """
    oracle = oracle if oracle is not None else ChatOracle(cfg)
    logger.info("Smoke check: provider=%s model=%s", resolve_provider(cfg), cfg.agents_model)
    return await ask_oracle(
        oracle,
        SMOKE_PROMPT,
        model=cfg.agents_model,
        max_tokens=30,
        temperature=0.0,
        timeout_s=cfg.timeout_s,
        call_type="smoke",
    )
