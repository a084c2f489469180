from __future__ import annotations

import pytest
from pydantic import ValidationError

from itemguard.items import (
    FillBlankItem,
    ItemKind,
    MatchingItem,
    MultipleChoiceItem,
    OpenQuestionItem,
    SingleChoiceItem,
    check_item,
    is_well_formed,
    item_to_json,
    parse_item,
    parse_items,
    question_text,
)
from tests.conftest import build_batch, single_choice


def test_parse_dispatches_on_type():
    items = parse_items(item_to_json(it) for it in build_batch())
    assert [type(it) for it in items] == [
        SingleChoiceItem,
        MultipleChoiceItem,
        OpenQuestionItem,
        MatchingItem,
        FillBlankItem,
    ]
    assert items == build_batch()


def test_unknown_keys_are_ignored_and_unknown_kinds_rejected():
    item = parse_item(
        {"type": "open_question", "question": "What is 6 x 7?", "correct_answer": "42", "hint": "x"}
    )
    assert item.correct_answer == "42"
    with pytest.raises(ValidationError):
        parse_item({"type": "essay", "question": "Write about spring"})


def test_items_are_frozen_values():
    item = single_choice(2)
    with pytest.raises(ValidationError):
        item.correct_index = 0
    assert item == single_choice(2)
    assert item != single_choice(3)


def test_item_kind_normalize():
    assert ItemKind.normalize("Single-Choice") == ItemKind.SINGLE_CHOICE
    assert ItemKind.normalize("essay") is None
    assert ItemKind.normalize(None) is None


def test_question_text_per_kind():
    batch = build_batch()
    assert question_text(batch[0]) == "How much is 2 + 2?"
    assert question_text(batch[3]) == "Match each product with its value"
    assert question_text(batch[4]).startswith("Half of ten")


def test_well_formed_batch_has_no_structural_problems():
    assert all(is_well_formed(it) for it in build_batch())


def _codes(item):
    return sorted(p.code for p in check_item(item))


def test_choice_problems():
    item = SingleChoiceItem(question="Pick one:", options=["a", "A", ""], correct_index=3)
    assert _codes(item) == ["DUPLICATE_OPTIONS", "EMPTY_FIELD", "INVALID_INDEX", "QUESTION_TOO_SHORT"]

    multi = MultipleChoiceItem(
        question="Which numbers are prime?", options=["2", "3"], correct_indices=[0, 0, 2]
    )
    assert _codes(multi) == ["DUPLICATE_INDICES", "INVALID_INDEX"]

    lonely = SingleChoiceItem(question="Only one option here", options=["x"], correct_index=0)
    assert _codes(lonely) == ["TOO_FEW_OPTIONS"]


def test_open_and_fill_blank_problems():
    assert _codes(OpenQuestionItem(question="Name the capital", correct_answer="  ")) == [
        "EMPTY_FIELD"
    ]
    assert _codes(FillBlankItem(text_with_blanks="Nothing to fill here", blanks=[])) == [
        "EMPTY_FIELD"
    ]


def test_matching_problems():
    item = MatchingItem(
        instruction="Match the words with translations",
        left_column=["cat", "dog", "cow"],
        right_column=["Katze", "Hund"],
        correct_pairs=[(0, 0), (1, 0), (2, 5)],
    )
    assert _codes(item) == ["COLUMN_LENGTH_MISMATCH", "DUPLICATE_PAIR", "INVALID_PAIR_INDEX"]
