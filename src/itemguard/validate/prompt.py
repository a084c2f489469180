# src/itemguard/validate/prompt.py
"""
Judge and fixer prompts with strict JSON output contracts.

Per-subject instructions are a table keyed by the Subject enum; each entry is
a SubjectPrompts value rather than ad hoc string concatenation at call sites.

Contracts:
- Answer judge:  {"items": [{"index": 0, "status": "ok"},
                            {"index": 1, "status": "error", "issue": "..."}]}
- Unified judge: {"items": [{"index": 0, "status": "ok"},
                            {"index": 1, "status": "error|warning", "code": "...", "issue": "..."}]}
- Fixer:         the repaired item, same JSON shape as the input item
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum

from itemguard.items import (
    FillBlankItem,
    GeneratedItem,
    MatchingItem,
    MultipleChoiceItem,
    OpenQuestionItem,
    SingleChoiceItem,
    item_to_json,
)

from .schema import Difficulty, Issue, IssueCode, ValidationContext


# ---------------------------------------------------------------------
# Subject table
# ---------------------------------------------------------------------
class Subject(str, Enum):
    MATH = "math"
    ALGEBRA = "algebra"
    GEOMETRY = "geometry"
    RUSSIAN = "russian"
    OTHER = "other"

    @staticmethod
    def normalize(value: str | None) -> Subject:
        v = str(value or "").strip().lower()
        for s in Subject:
            if v == s.value:
                return s
        return Subject.OTHER


@dataclass(frozen=True)
class SubjectPrompts:
    display_name: str
    answer_check: str
    quality_check: str


_SOLVE_AND_COMPARE = """For every item:
1. Solve it yourself
2. Compare your answer with the stated one
3. If they differ, describe the error and give the correct answer"""

_OPTIONS_RULES = """ANSWER OPTIONS (choice items):
- At least one option MUST be correct
- Wrong options must be plausible (typical student mistakes)"""

SUBJECT_PROMPTS: dict[Subject, SubjectPrompts] = {
    Subject.MATH: SubjectPrompts(
        display_name="Mathematics",
        answer_check=f"""You are a reviewing primary/middle school mathematics teacher (grades 1-6).
{_SOLVE_AND_COMPARE}

Check: arithmetic, fractions, percentages, simple equations.""",
        quality_check=f"""You are a mathematics curriculum methodologist. Check the quality and fit of every item.

FORMULATION:
- The problem statement is complete and unambiguous
- The given data are consistent
- The problem has a solution

{_OPTIONS_RULES}""",
    ),
    Subject.ALGEBRA: SubjectPrompts(
        display_name="Algebra",
        answer_check=f"""You are a reviewing algebra teacher (grades 7-11).
{_SOLVE_AND_COMPARE}

Check: equations, functions, graphs, derivatives, logarithms, trigonometry.""",
        quality_check=f"""You are an algebra curriculum methodologist. Check the quality and fit of every item.

FORMULATION:
- The statement is complete and unambiguous
- Equations and inequalities are written correctly
- The problem is solvable with the material studied so far

{_OPTIONS_RULES}""",
    ),
    Subject.GEOMETRY: SubjectPrompts(
        display_name="Geometry",
        answer_check=f"""You are a reviewing geometry teacher (grades 7-11).
{_SOLVE_AND_COMPARE}

Check: theorems, area and volume formulas, vectors, coordinates.""",
        quality_check=f"""You are a geometry curriculum methodologist. Check the quality and fit of every item.

FORMULATION:
- The statement is complete and the figure is uniquely determined
- The given data are consistent
- The problem has a solution

{_OPTIONS_RULES}""",
    ),
    Subject.RUSSIAN: SubjectPrompts(
        display_name="Russian language",
        answer_check="""You are a reviewing Russian language teacher (grades 1-11).
For every item:
1. Check the stated answer against the rules of the language
2. If the answer is wrong, describe the error and give the correct answer

Check: spelling, punctuation, grammar, parts of speech, syntax.""",
        quality_check="""You are a Russian language curriculum methodologist. Check the quality and fit of every item.

FORMULATION:
- If the question contains an example, it must match what is being asked
- Classification of parts of speech, sentence members and sentence types must be correct
- Terms must be used correctly

ANSWER OPTIONS (choice items):
- At least one option MUST be correct
- If no option fits, that is an error""",
    ),
    Subject.OTHER: SubjectPrompts(
        display_name="",
        answer_check=f"""You are a reviewing school teacher.
{_SOLVE_AND_COMPARE}""",
        quality_check=f"""You are a curriculum methodologist. Check the quality and fit of every item.

FORMULATION:
- The statement is complete, unambiguous and answerable

{_OPTIONS_RULES}""",
    ),
}


def subject_prompts(subject: str) -> SubjectPrompts:
    return SUBJECT_PROMPTS[Subject.normalize(subject)]


def subject_display_name(subject: str) -> str:
    return subject_prompts(subject).display_name or subject


DIFFICULTY_CRITERIA: dict[Difficulty, str] = {
    Difficulty.EASY: "1-2 steps, simple numbers and examples, direct application of rules",
    Difficulty.MEDIUM: "2-3 steps, standard textbook cases, links to earlier material",
    Difficulty.HARD: "3+ steps, compound or non-standard problems, combines several topics",
}

ISSUE_SUGGESTIONS: dict[IssueCode, str] = {
    IssueCode.WRONG_ANSWER: "Regenerate the item or correct the stated answer",
    IssueCode.BAD_FORMULATION: "Rephrase the item or fix the answer options",
    IssueCode.DIFFICULTY_MISMATCH: "Adjust the item's difficulty",
    IssueCode.OFF_TOPIC: "Regenerate the item for the requested topic",
    IssueCode.PARTIAL_MISMATCH: "Check the item against the grade's curriculum",
}


def suggestion_for(code: IssueCode) -> str:
    return ISSUE_SUGGESTIONS.get(code, "Review the item")


# ---------------------------------------------------------------------
# Item formatting
# ---------------------------------------------------------------------
def _numbered(values: list[str]) -> str:
    return "; ".join(f"{i}) {v}" for i, v in enumerate(values))


def format_item(item: GeneratedItem, index: int, with_answers: bool) -> str:
    """Render one item for a batch prompt; answers are included only for answer checks."""
    parts = [f"--- Item {index} (type: {item.type}) ---"]

    if isinstance(item, SingleChoiceItem):
        parts.append(f"Question: {item.question}")
        parts.append(f"Options: {_numbered(item.options)}")
        if with_answers:
            stated = item.options[item.correct_index] if 0 <= item.correct_index < len(item.options) else "?"
            parts.append(f"Stated correct answer: option {item.correct_index} ({stated})")
    elif isinstance(item, MultipleChoiceItem):
        parts.append(f"Question: {item.question}")
        parts.append(f"Options: {_numbered(item.options)}")
        if with_answers:
            stated = "; ".join(
                f"{i}) {item.options[i] if 0 <= i < len(item.options) else '?'}"
                for i in item.correct_indices
            )
            parts.append(f"Stated correct options: {stated}")
    elif isinstance(item, OpenQuestionItem):
        parts.append(f"Question: {item.question}")
        if with_answers:
            parts.append(f"Stated answer: {item.correct_answer}")
    elif isinstance(item, MatchingItem):
        parts.append(f"Instruction: {item.instruction}")
        parts.append(f"Left column: {_numbered(item.left_column)}")
        parts.append(f"Right column: {_numbered(item.right_column)}")
        if with_answers:
            parts.append("Stated pairs: " + ", ".join(f"{l}-{r}" for l, r in item.correct_pairs))
    elif isinstance(item, FillBlankItem):
        parts.append(f"Text: {item.text_with_blanks}")
        if with_answers:
            parts.append(
                "Blanks: " + "; ".join(f"({b.position}) {b.correct_answer}" for b in item.blanks)
            )

    return "\n".join(parts)


def _format_batch(items: list[GeneratedItem], with_answers: bool) -> str:
    return "\n\n".join(format_item(it, i, with_answers) for i, it in enumerate(items))


# ---------------------------------------------------------------------
# Judge prompts
# ---------------------------------------------------------------------
def build_answer_prompt(items: list[GeneratedItem], subject: str) -> str:
    n = len(items)
    return f"""{subject_prompts(subject).answer_check}

Items to check:

{_format_batch(items, with_answers=True)}

Return ONLY JSON (no markdown):
{{
  "items": [
    {{"index": 0, "status": "ok"}},
    {{"index": 1, "status": "error", "issue": "Wrong answer. Stated: ... Correct: ..."}}
  ]
}}

Check ALL {n} items. Indices run from 0 to {n - 1}."""


def build_unified_prompt(
    items: list[GeneratedItem], ctx: ValidationContext, grade_topics: str
) -> str:
    n = len(items)
    sp = subject_prompts(ctx.subject)
    level = ctx.difficulty.value
    criteria = "\n".join(f"- {d.value}: {text}" for d, text in DIFFICULTY_CRITERIA.items())
    return f"""{sp.quality_check}

Subject: {sp.display_name or ctx.subject}
Grade: {ctx.grade}
Topic: "{ctx.topic}"
Difficulty level: {level}

Curriculum topics for grade {ctx.grade}: {grade_topics}

DIFFICULTY CRITERIA:
{criteria}

Items to check:

{_format_batch(items, with_answers=False)}

For every item check ALL of:
1. The formulation is complete, unambiguous and solvable
2. The answer options are valid (a correct option exists)
3. It matches the "{level}" difficulty level
4. It matches the topic "{ctx.topic}"
5. It matches the grade {ctx.grade} curriculum (no out-of-program terms)

Return ONLY JSON (no markdown):
{{
  "items": [
    {{"index": 0, "status": "ok"}},
    {{"index": 1, "status": "error", "code": "BAD_FORMULATION", "issue": "Problem description"}},
    {{"index": 2, "status": "warning", "code": "DIFFICULTY_MISMATCH", "issue": "Too easy for {level}"}},
    {{"index": 3, "status": "error", "code": "OFF_TOPIC", "issue": "Unrelated to the topic"}},
    {{"index": 4, "status": "warning", "code": "PARTIAL_MISMATCH", "issue": "Uses out-of-program terms"}}
  ]
}}

Check ALL {n} items. Indices run from 0 to {n - 1}.
Codes:
- "BAD_FORMULATION" (error): incorrect formulation, no correct option, unsolvable
- "DIFFICULTY_MISMATCH" (warning): difficulty does not match "{level}"
- "OFF_TOPIC" (error): unrelated to the topic or grade
- "PARTIAL_MISMATCH" (warning): partly out of scope or uses advanced terms
If an item is fine, use "ok" without code and issue."""


# ---------------------------------------------------------------------
# Fixer prompt
# ---------------------------------------------------------------------
def build_fix_prompt(item: GeneratedItem, issue: Issue, ctx: ValidationContext) -> str:
    item_json = json.dumps(item_to_json(item), ensure_ascii=False, indent=2)
    suggestion_line = f"\nSUGGESTION: {issue.suggestion}" if issue.suggestion else ""
    header = "\n".join(
        [
            f"Subject: {subject_display_name(ctx.subject)}",
            f"Grade: {ctx.grade}",
            f'Topic: "{ctx.topic}"',
        ]
    )

    if issue.code == IssueCode.DIFFICULTY_MISMATCH:
        level = ctx.difficulty.value
        return f"""You are an editor of teaching materials. Recreate the item from scratch at the required difficulty.
{header}
Required difficulty: {level}

CURRENT ITEM (does not match the difficulty):
{item_json}

PROBLEM:
{issue.message}{suggestion_line}

TASK:
1. Create a NEW item on the same topic, strictly at the "{level}" level
2. Make sure the answer is correct
3. Keep the item type and format (type: "{item.type}")

Return the new item in the same JSON format.
JSON only, no explanations."""

    return f"""You are an editor of teaching materials. Fix the error in the item.
{header}

ITEM WITH AN ERROR:
{item_json}

ERROR FOUND:
{issue.message}{suggestion_line}

TASK:
1. Fix the error
2. Make sure the answer is correct
3. Keep the item type and format (type: "{item.type}")

Return the corrected item in the same JSON format.
JSON only, no explanations."""
