"""
Per-call token usage and cost accounting for oracle calls.

Usage is reported for external accounting only; nothing in the pipeline's
decisions depends on it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPrice:
    input_per_1m: float
    output_per_1m: float


# Prices per 1M tokens in the billing currency of the provider account.
MODEL_PRICING: dict[str, ModelPrice] = {
    "openai/gpt-4.1": ModelPrice(168.23, 672.92),
    "openai/gpt-4.1-mini": ModelPrice(33.65, 134.58),
    "google/gemini-3-flash-preview": ModelPrice(168.23, 1009.38),
    "google/gemini-2.5-flash-lite": ModelPrice(8.41, 33.65),
    "deepseek/deepseek-v3.2": ModelPrice(21.87, 31.96),
}

DEFAULT_PRICE = ModelPrice(100.0, 400.0)


def calculate_cost(
    model: str,
    prompt_tokens: int,
    completion_tokens: int,
    pricing: dict[str, ModelPrice] | None = None,
) -> float:
    table = pricing if pricing is not None else MODEL_PRICING
    price = table.get(model, DEFAULT_PRICE)
    cost = (prompt_tokens / 1_000_000) * price.input_per_1m + (
        completion_tokens / 1_000_000
    ) * price.output_per_1m
    return round(cost, 6)


@dataclass(frozen=True)
class UsageRecord:
    call_type: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost: float
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class UsageTracker:
    """
    Collects usage records for one pipeline invocation.

    `sink` (optional) receives every record as it is produced, e.g. to persist
    it to an accounting store. Sink failures are logged and ignored.
    """

    def __init__(
        self,
        sink: Callable[[UsageRecord], None] | None = None,
        pricing_overrides: dict[str, tuple[float, float]] | None = None,
    ) -> None:
        self.records: list[UsageRecord] = []
        self._sink = sink
        self._pricing = dict(MODEL_PRICING)
        for model, (inp, out) in (pricing_overrides or {}).items():
            self._pricing[model] = ModelPrice(float(inp), float(out))

    def track(
        self,
        *,
        call_type: str,
        model: str,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        duration_ms: int = 0,
    ) -> UsageRecord | None:
        if prompt_tokens is None and completion_tokens is None:
            return None
        p = int(prompt_tokens or 0)
        c = int(completion_tokens or 0)
        rec = UsageRecord(
            call_type=call_type,
            model=model,
            prompt_tokens=p,
            completion_tokens=c,
            cost=calculate_cost(model, p, c, self._pricing),
            duration_ms=int(duration_ms),
        )
        self.records.append(rec)
        logger.debug(
            "usage call_type=%s model=%s prompt=%d completion=%d cost=%.6f",
            call_type,
            model,
            p,
            c,
            rec.cost,
        )
        if self._sink is not None:
            try:
                self._sink(rec)
            except Exception as e:
                logger.error("Usage sink failed for %s: %s", call_type, e)
        return rec

    @property
    def total_cost(self) -> float:
        return round(sum(r.cost for r in self.records), 6)
