# src/itemguard/items/structural.py
"""
Deterministic structural checks for a single generated item (no LLM).

Used to reject repaired items that decode but are not internally consistent
(e.g. a correct_index outside the options list) before they ever reach the
re-verification gate.
"""

from __future__ import annotations

from dataclasses import dataclass

from .types import (
    FillBlankItem,
    GeneratedItem,
    MatchingItem,
    MultipleChoiceItem,
    OpenQuestionItem,
    SingleChoiceItem,
    question_text,
)

MIN_QUESTION_CHARS = 10


@dataclass(frozen=True)
class StructuralProblem:
    field: str
    code: str
    message: str


def check_item(item: GeneratedItem) -> list[StructuralProblem]:
    problems: list[StructuralProblem] = []

    text = (question_text(item) or "").strip()
    if not text:
        problems.append(StructuralProblem("question", "EMPTY_FIELD", "Empty question text"))
    elif len(text) < MIN_QUESTION_CHARS:
        problems.append(
            StructuralProblem(
                "question",
                "QUESTION_TOO_SHORT",
                f"Question too short ({len(text)} chars, minimum {MIN_QUESTION_CHARS})",
            )
        )

    if isinstance(item, SingleChoiceItem):
        _check_options(item.options, problems)
        if not 0 <= item.correct_index < len(item.options):
            problems.append(
                StructuralProblem(
                    "correct_index",
                    "INVALID_INDEX",
                    f"correct_index ({item.correct_index}) outside [0, {len(item.options) - 1}]",
                )
            )
    elif isinstance(item, MultipleChoiceItem):
        _check_options(item.options, problems)
        if not item.correct_indices:
            problems.append(
                StructuralProblem("correct_indices", "EMPTY_FIELD", "No correct indices")
            )
        for idx in item.correct_indices:
            if not 0 <= idx < len(item.options):
                problems.append(
                    StructuralProblem(
                        "correct_indices",
                        "INVALID_INDEX",
                        f"correct_indices contains {idx} outside [0, {len(item.options) - 1}]",
                    )
                )
        if len(set(item.correct_indices)) != len(item.correct_indices):
            problems.append(
                StructuralProblem(
                    "correct_indices", "DUPLICATE_INDICES", "Duplicate entries in correct_indices"
                )
            )
    elif isinstance(item, OpenQuestionItem):
        if not item.correct_answer.strip():
            problems.append(
                StructuralProblem("correct_answer", "EMPTY_FIELD", "Empty correct answer")
            )
    elif isinstance(item, MatchingItem):
        _check_matching(item, problems)
    elif isinstance(item, FillBlankItem):
        if not item.blanks:
            problems.append(StructuralProblem("blanks", "EMPTY_FIELD", "No blanks defined"))
        for j, blank in enumerate(item.blanks):
            if not blank.correct_answer.strip():
                problems.append(
                    StructuralProblem(f"blanks[{j}]", "EMPTY_FIELD", "Empty blank answer")
                )

    return problems


def is_well_formed(item: GeneratedItem) -> bool:
    return not check_item(item)


def _check_options(options: list[str], problems: list[StructuralProblem]) -> None:
    if len(options) < 2:
        problems.append(
            StructuralProblem("options", "TOO_FEW_OPTIONS", f"Only {len(options)} option(s)")
        )
    seen: set[str] = set()
    for j, opt in enumerate(options):
        norm = (opt or "").strip().lower()
        if not norm:
            problems.append(StructuralProblem(f"options[{j}]", "EMPTY_FIELD", "Empty option"))
            continue
        if norm in seen:
            problems.append(
                StructuralProblem(f"options[{j}]", "DUPLICATE_OPTIONS", f"Duplicate option: {opt!r}")
            )
        seen.add(norm)


def _check_matching(item: MatchingItem, problems: list[StructuralProblem]) -> None:
    left, right, pairs = item.left_column, item.right_column, item.correct_pairs
    if len(left) != len(right):
        problems.append(
            StructuralProblem(
                "left_column/right_column",
                "COLUMN_LENGTH_MISMATCH",
                f"Column lengths differ: left={len(left)}, right={len(right)}",
            )
        )
    if len(pairs) != len(left):
        problems.append(
            StructuralProblem(
                "correct_pairs",
                "INCOMPLETE_PAIRS",
                f"{len(pairs)} pairs for {len(left)} left items",
            )
        )
    used_left: set[int] = set()
    used_right: set[int] = set()
    for l_idx, r_idx in pairs:
        if not 0 <= l_idx < len(left) or not 0 <= r_idx < len(right):
            problems.append(
                StructuralProblem(
                    "correct_pairs", "INVALID_PAIR_INDEX", f"Pair ({l_idx}, {r_idx}) out of range"
                )
            )
        if l_idx in used_left or r_idx in used_right:
            problems.append(
                StructuralProblem(
                    "correct_pairs", "DUPLICATE_PAIR", f"Pair ({l_idx}, {r_idx}) reuses an element"
                )
            )
        used_left.add(l_idx)
        used_right.add(r_idx)
