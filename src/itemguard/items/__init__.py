"""
Item model: the tagged union of generated exercise kinds plus deterministic
structural checks.
"""

from .structural import StructuralProblem, check_item, is_well_formed
from .types import (
    Blank,
    FillBlankItem,
    GeneratedItem,
    ItemKind,
    MatchingItem,
    MultipleChoiceItem,
    OpenQuestionItem,
    SingleChoiceItem,
    item_to_json,
    parse_item,
    parse_items,
    question_text,
)

__all__ = [
    "Blank",
    "FillBlankItem",
    "GeneratedItem",
    "ItemKind",
    "MatchingItem",
    "MultipleChoiceItem",
    "OpenQuestionItem",
    "SingleChoiceItem",
    "StructuralProblem",
    "check_item",
    "is_well_formed",
    "item_to_json",
    "parse_item",
    "parse_items",
    "question_text",
]
