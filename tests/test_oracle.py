from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from itemguard.config import OracleConfig
from itemguard.oracle import (
    ChatOracle,
    OracleTimeout,
    OracleUnavailable,
    UsageTracker,
    ask_oracle,
    build_client,
    smoke_check,
)
from itemguard.oracle.llm import normalize_azure_endpoint, resolve_provider
from tests.conftest import HANG, FakeOracle


class _Completions:
    def __init__(self, content: str) -> None:
        self.content = content
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(
            model="served-model",
            choices=[SimpleNamespace(message=SimpleNamespace(content=f"  {self.content}  "))],
            usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7),
        )


def _client(content: str):
    completions = _Completions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_missing_openai_key_is_unavailable(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(OracleUnavailable):
        build_client(OracleConfig(provider="openai"))


def test_missing_azure_settings_are_unavailable(monkeypatch):
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    with pytest.raises(OracleUnavailable, match="AZURE_OPENAI_ENDPOINT"):
        build_client(OracleConfig(provider="azure"))


def test_openai_client_is_built_from_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-123456789")
    monkeypatch.setenv("ITEMGUARD_BASE_URL", "https://gateway.example.com/v1")
    client = build_client(OracleConfig(provider="openai", timeout_s=12))
    assert str(client.base_url).startswith("https://gateway.example.com/v1")
    assert client.max_retries == 0


def test_unset_provider_falls_back_to_env(monkeypatch):
    monkeypatch.setenv("ITEMGUARD_LLM_PROVIDER", "Azure")
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    assert resolve_provider(OracleConfig()) == "azure"
    with pytest.raises(OracleUnavailable, match="AZURE_OPENAI_ENDPOINT"):
        build_client(OracleConfig())


def test_configured_provider_wins_over_env(monkeypatch):
    monkeypatch.setenv("ITEMGUARD_LLM_PROVIDER", "azure")
    assert resolve_provider(OracleConfig(provider="openai")) == "openai"
    monkeypatch.delenv("ITEMGUARD_LLM_PROVIDER")
    assert resolve_provider(OracleConfig()) == "openai"


def test_normalize_azure_endpoint():
    assert (
        normalize_azure_endpoint(" https://res.openai.azure.com/openai/ ")
        == "https://res.openai.azure.com"
    )


def test_chat_oracle_maps_the_response():
    client, completions = _client('{"ok": true}')
    oracle = ChatOracle(OracleConfig(), client=client)

    reply = asyncio.run(
        oracle.complete("hi", model="m", max_tokens=50, temperature=0.1, call_type="smoke")
    )
    assert reply.content == '{"ok": true}'
    assert reply.model == "served-model"
    assert (reply.prompt_tokens, reply.completion_tokens) == (11, 7)
    assert completions.kwargs["max_tokens"] == 50
    assert completions.kwargs["messages"] == [{"role": "user", "content": "hi"}]


def test_chat_oracle_without_credentials_fails_at_call_time(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    oracle = ChatOracle(OracleConfig(provider="openai"))
    with pytest.raises(OracleUnavailable):
        asyncio.run(oracle.complete("hi", model="m", max_tokens=5, temperature=0, call_type="x"))


def test_ask_oracle_times_out():
    oracle = FakeOracle({"slow": [HANG]})
    with pytest.raises(OracleTimeout):
        asyncio.run(
            ask_oracle(
                oracle, "p", model="m", max_tokens=5, temperature=0, timeout_s=0.05, call_type="slow"
            )
        )


def test_ask_oracle_tracks_usage():
    tracker = UsageTracker()
    oracle = FakeOracle({"judge": ["{}"]})
    asyncio.run(
        ask_oracle(
            oracle,
            "p",
            model="m",
            max_tokens=5,
            temperature=0,
            timeout_s=1,
            call_type="judge",
            tracker=tracker,
        )
    )
    assert [r.call_type for r in tracker.records] == ["judge"]


def test_smoke_check_uses_agents_model():
    oracle = FakeOracle({"smoke": ['{"ok": true}']})
    cfg = OracleConfig()
    reply = asyncio.run(smoke_check(cfg, oracle))
    assert reply.content == '{"ok": true}'
    assert oracle.calls[0]["model"] == cfg.agents_model
