# src/itemguard/items/types.py
"""
Generated exercise items: the tagged union the pipeline validates and repairs.

Each item kind is its own frozen pydantic model discriminated by `type`:
- single_choice:   question + options + correct_index
- multiple_choice: question + options + correct_indices
- open_question:   question + correct_answer (+ acceptable variants)
- matching:        instruction + two columns + correct_pairs
- fill_blank:      text_with_blanks + blanks

Design rules:
- Identity inside a batch is the list position, never content.
- Models are frozen and compare by value, so "the original item" can be checked
  with plain equality after a revert.
- Unknown keys from oracle output are ignored rather than rejected.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ItemKind(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    OPEN_QUESTION = "open_question"
    MATCHING = "matching"
    FILL_BLANK = "fill_blank"

    @staticmethod
    def normalize(value: str | None) -> ItemKind | None:
        if not value:
            return None
        v = str(value).strip().lower().replace("-", "_")
        for k in ItemKind:
            if v == k.value:
                return k
        return None


class _ItemBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class SingleChoiceItem(_ItemBase):
    type: Literal["single_choice"] = "single_choice"
    question: str
    options: list[str]
    correct_index: int
    explanation: str | None = None


class MultipleChoiceItem(_ItemBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    question: str
    options: list[str]
    correct_indices: list[int]
    explanation: str | None = None


class OpenQuestionItem(_ItemBase):
    type: Literal["open_question"] = "open_question"
    question: str
    correct_answer: str
    acceptable_variants: list[str] = Field(default_factory=list)
    explanation: str | None = None


class MatchingItem(_ItemBase):
    type: Literal["matching"] = "matching"
    instruction: str
    left_column: list[str]
    right_column: list[str]
    correct_pairs: list[tuple[int, int]]


class Blank(_ItemBase):
    position: int
    correct_answer: str
    acceptable_variants: list[str] = Field(default_factory=list)


class FillBlankItem(_ItemBase):
    type: Literal["fill_blank"] = "fill_blank"
    text_with_blanks: str
    blanks: list[Blank]


GeneratedItem = Annotated[
    Union[SingleChoiceItem, MultipleChoiceItem, OpenQuestionItem, MatchingItem, FillBlankItem],
    Field(discriminator="type"),
]

ITEM_ADAPTER: TypeAdapter[GeneratedItem] = TypeAdapter(GeneratedItem)


# ---------------------------------------------------------------------
# (De)serialization
# ---------------------------------------------------------------------
def parse_item(obj: dict[str, Any] | BaseModel) -> GeneratedItem:
    """Validate a dict into the matching item variant (raises pydantic.ValidationError)."""
    if isinstance(obj, BaseModel):
        return obj  # type: ignore[return-value]
    return ITEM_ADAPTER.validate_python(obj)


def parse_items(rows: Iterable[dict[str, Any] | BaseModel]) -> list[GeneratedItem]:
    return [parse_item(r) for r in rows]


def item_to_json(item: GeneratedItem) -> dict[str, Any]:
    return item.model_dump(mode="json", exclude_none=True)


def question_text(item: GeneratedItem) -> str:
    """The prompt-like text of an item regardless of kind."""
    if isinstance(item, MatchingItem):
        return item.instruction
    if isinstance(item, FillBlankItem):
        return item.text_with_blanks
    return item.question
