from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from itemguard.config import OracleConfig, RunConfig
from itemguard.curriculum import CurriculumLookup
from itemguard.items import (
    Blank,
    FillBlankItem,
    GeneratedItem,
    MatchingItem,
    MultipleChoiceItem,
    OpenQuestionItem,
    SingleChoiceItem,
    item_to_json,
)
from itemguard.oracle import OracleReply
from itemguard.validate.schema import ValidationContext

ANSWER = "answer-verifier"
UNIFIED = "unified-checker"
FIXER = "fixer"

# Scripted reply that never completes; only a timeout or cancellation ends it.
HANG = object()


class FakeOracle:
    """
    Scripted oracle. Replies are queued per call_type and consumed in order;
    an Exception instance is raised instead of returned.
    """

    def __init__(self, replies: dict[str, list[Any]] | None = None) -> None:
        self.replies: dict[str, list[Any]] = {k: list(v) for k, v in (replies or {}).items()}
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        call_type: str,
    ) -> OracleReply:
        self.calls.append(
            {
                "prompt": prompt,
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "call_type": call_type,
            }
        )
        queue = self.replies.get(call_type) or []
        if not queue:
            raise AssertionError(f"unexpected {call_type} call")
        reply = queue.pop(0)
        if reply is HANG:
            await asyncio.sleep(3600)
        if isinstance(reply, BaseException):
            raise reply
        return OracleReply(content=reply, model=model, prompt_tokens=120, completion_tokens=30)

    def calls_of(self, call_type: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["call_type"] == call_type]


def verdicts_json(*entries: dict[str, Any]) -> str:
    return json.dumps({"items": list(entries)}, ensure_ascii=False)


def all_ok(n: int) -> str:
    return verdicts_json(*({"index": i, "status": "ok"} for i in range(n)))


def item_reply(item: GeneratedItem) -> str:
    return "```json\n" + json.dumps(item_to_json(item), ensure_ascii=False) + "\n```"


def single_choice(n: int, correct_index: int = 1) -> SingleChoiceItem:
    return SingleChoiceItem(
        question=f"How much is {n} + {n}?",
        options=[str(2 * n - 1), str(2 * n), str(2 * n + 1)],
        correct_index=correct_index,
        explanation=f"{n} + {n} = {2 * n}",
    )


def build_batch() -> list[GeneratedItem]:
    """Five well-formed items, one per kind."""
    return [
        single_choice(2),
        MultipleChoiceItem(
            question="Which of these numbers are even?",
            options=["2", "3", "4", "5"],
            correct_indices=[0, 2],
        ),
        OpenQuestionItem(
            question="What is 7 multiplied by 8?",
            correct_answer="56",
            acceptable_variants=["fifty-six"],
        ),
        MatchingItem(
            instruction="Match each product with its value",
            left_column=["2 x 3", "4 x 5"],
            right_column=["20", "6"],
            correct_pairs=[(0, 1), (1, 0)],
        ),
        FillBlankItem(
            text_with_blanks="Half of ten is ___ and double four is ___.",
            blanks=[
                Blank(position=0, correct_answer="5"),
                Blank(position=1, correct_answer="8"),
            ],
        ),
    ]


def fast_config(timeout_s: float = 0.2, **remediation: Any) -> RunConfig:
    return RunConfig(
        oracle=OracleConfig(timeout_s=timeout_s),
        remediation=remediation or {},
    )


@pytest.fixture
def batch() -> list[GeneratedItem]:
    return build_batch()


@pytest.fixture
def ctx() -> ValidationContext:
    return ValidationContext(subject="math", grade=5, topic="Arithmetic", difficulty="medium")


@pytest.fixture
def oracle_cfg() -> OracleConfig:
    return OracleConfig(timeout_s=0.2)


@pytest.fixture
def curriculum() -> CurriculumLookup:
    return CurriculumLookup({"math": {5: ["Natural numbers", "Fractions"]}})
