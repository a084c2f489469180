"""
Validation module: multi-judge checking and bounded auto-repair of a generated item batch.

Runs independent LLM judges over the whole batch at once, merges their verdicts,
repairs a budget-limited subset of flawed items and gates every repair behind a
single batched answer re-check.

Workflow:
  1. Run the answer judge and the unified quality/content judge concurrently
  2. Aggregate verdicts into problem items and a flat issue list
  3. Select repair targets (errors + remediable warnings, subject policy, budget)
  4. Repair targets one at a time with the primary issue
  5. Re-verify all repairs in one answer-judge call; revert the ones that fail
  6. Write report, final items and stats

Entry points: itemguard.validate.validate(items, ctx, options) and
itemguard.validate.run_validation(cfg, items_file, ctx)
"""

from .aggregate import aggregate
from .judges import AnswerJudge, Judge, UnifiedJudge
from .remediation import Fixer, RemediationPolicy, RemediationQueue, select
from .reverify import ReverificationGate
from .run import ValidationPipeline, run_validation, validate, validate_async
from .sanitize import extract_json_block, safe_json_parse
from .schema import (
    JUDGE_LEVEL_INDEX,
    Difficulty,
    FixOutcome,
    Issue,
    IssueCode,
    IssueRecord,
    ItemVerdict,
    JudgeResult,
    JudgeStatus,
    RemediationTarget,
    ValidationContext,
    ValidationOptions,
    ValidationReport,
    VerdictStatus,
)

__all__ = [
    "JUDGE_LEVEL_INDEX",
    "AnswerJudge",
    "Difficulty",
    "FixOutcome",
    "Fixer",
    "Issue",
    "IssueCode",
    "IssueRecord",
    "ItemVerdict",
    "Judge",
    "JudgeResult",
    "JudgeStatus",
    "RemediationPolicy",
    "RemediationQueue",
    "RemediationTarget",
    "ReverificationGate",
    "UnifiedJudge",
    "ValidationContext",
    "ValidationOptions",
    "ValidationPipeline",
    "ValidationReport",
    "VerdictStatus",
    "aggregate",
    "extract_json_block",
    "run_validation",
    "safe_json_parse",
    "select",
    "validate",
    "validate_async",
]
