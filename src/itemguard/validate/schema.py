# src/itemguard/validate/schema.py
"""
Validation schemas: Enums and dataclasses shared by judges, the aggregator,
remediation and the pipeline report.

Defines:
- VerdictStatus: ok / warning / error per item
- IssueCode: closed set of issue codes (per judge family + judge-level notices)
- JudgeStatus: explicit ok / unavailable outcome of a judge run
- Issue, ItemVerdict, JudgeResult: judge output
- IssueRecord: flattened (item, judge, issue) triple
- ValidationContext / ValidationOptions: pipeline inputs
- RemediationTarget, FixOutcome: remediation records
- ValidationReport: the single artifact handed to callers
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from itemguard.items import GeneratedItem, item_to_json
from itemguard.oracle import UsageRecord

# Item index reserved for judge-level (not item-level) notices.
JUDGE_LEVEL_INDEX = -1


# ---------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------
class VerdictStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"

    @staticmethod
    def normalize(value: str | None) -> VerdictStatus:
        v = str(value or "").strip().lower()
        for s in VerdictStatus:
            if v == s.value:
                return s
        return VerdictStatus.OK


class IssueCode(str, Enum):
    """Issue codes. Judges only ever emit codes of their own family."""

    # Answer family
    WRONG_ANSWER = "WRONG_ANSWER"  # Stated correct answer is wrong

    # Quality / content family
    BAD_FORMULATION = "BAD_FORMULATION"  # Ambiguous, unsolvable, or no correct option
    DIFFICULTY_MISMATCH = "DIFFICULTY_MISMATCH"  # Too easy / too hard for the requested level
    OFF_TOPIC = "OFF_TOPIC"  # Unrelated to the topic or grade
    PARTIAL_MISMATCH = "PARTIAL_MISMATCH"  # Partly outside the grade's curriculum

    # Judge-level notices (item_index == -1)
    AGENT_ERROR = "AGENT_ERROR"  # Network error, timeout, unexpected failure
    NO_JSON_RESPONSE = "NO_JSON_RESPONSE"  # No structured block in the response
    JSON_PARSE_ERROR = "JSON_PARSE_ERROR"  # Structured block undecodable after repair
    NO_CREDENTIALS = "NO_CREDENTIALS"  # Oracle not configured

    # Remediation
    REVERIFY_FAILED = "REVERIFY_FAILED"  # Repaired item failed the answer re-check

    @staticmethod
    def normalize(value: str | None) -> IssueCode | None:
        if not value:
            return None
        v = str(value).strip().upper().replace("-", "_")
        for c in IssueCode:
            if v == c.value:
                return c
        return None


QUALITY_CODES = frozenset(
    {
        IssueCode.BAD_FORMULATION,
        IssueCode.DIFFICULTY_MISMATCH,
        IssueCode.OFF_TOPIC,
        IssueCode.PARTIAL_MISMATCH,
    }
)


class JudgeStatus(str, Enum):
    OK = "ok"  # The judge checked the batch
    UNAVAILABLE = "unavailable"  # The judge could not check anything


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @staticmethod
    def normalize(value: str | None) -> Difficulty:
        v = str(value or "").strip().lower()
        for d in Difficulty:
            if v == d.value:
                return d
        return Difficulty.MEDIUM


# ---------------------------------------------------------------------
# Judge output
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Issue:
    code: IssueCode
    message: str
    suggestion: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.code, str) and not isinstance(self.code, IssueCode):
            object.__setattr__(self, "code", IssueCode(self.code))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.suggestion is not None:
            d["suggestion"] = self.suggestion
        return d


@dataclass(frozen=True)
class ItemVerdict:
    """
    One judge's verdict for one item.

    Invariant: `issues` is non-empty iff `status != ok`.
    """

    item_index: int
    status: VerdictStatus
    issues: tuple[Issue, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.status, str) and not isinstance(self.status, VerdictStatus):
            object.__setattr__(self, "status", VerdictStatus(self.status))
        object.__setattr__(self, "issues", tuple(self.issues))

        if self.item_index < JUDGE_LEVEL_INDEX:
            raise ValueError(f"item_index must be >= -1, got {self.item_index}")
        if self.status == VerdictStatus.OK and self.issues:
            raise ValueError("ok verdicts must not carry issues")
        if self.status != VerdictStatus.OK and not self.issues:
            raise ValueError(f"{self.status.value} verdicts must carry at least one issue")

    @property
    def is_judge_level(self) -> bool:
        return self.item_index == JUDGE_LEVEL_INDEX

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_index": self.item_index,
            "status": self.status.value,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class JudgeResult:
    """
    Output of one judge run.

    Totals are derived from `verdicts` on access. `status` distinguishes
    "checked" from "could not check"; an unavailable result also carries the
    index -1 warning notice so older consumers keep working.
    """

    judge_name: str
    verdicts: tuple[ItemVerdict, ...] = ()
    status: JudgeStatus = JudgeStatus.OK
    unavailable_reason: IssueCode | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "verdicts", tuple(self.verdicts))
        if self.status == JudgeStatus.UNAVAILABLE and self.unavailable_reason is None:
            raise ValueError("unavailable results require unavailable_reason")

    @classmethod
    def unavailable(cls, judge_name: str, code: IssueCode, message: str) -> JudgeResult:
        notice = ItemVerdict(
            item_index=JUDGE_LEVEL_INDEX,
            status=VerdictStatus.WARNING,
            issues=(Issue(code=code, message=message),),
        )
        return cls(
            judge_name=judge_name,
            verdicts=(notice,),
            status=JudgeStatus.UNAVAILABLE,
            unavailable_reason=code,
        )

    @property
    def available(self) -> bool:
        return self.status == JudgeStatus.OK

    @property
    def total_errors(self) -> int:
        return sum(1 for v in self.verdicts if v.status == VerdictStatus.ERROR)

    @property
    def total_warnings(self) -> int:
        return sum(1 for v in self.verdicts if v.status == VerdictStatus.WARNING)

    def item_verdicts(self) -> list[ItemVerdict]:
        return [v for v in self.verdicts if not v.is_judge_level]

    def verdict_for(self, item_index: int) -> ItemVerdict | None:
        for v in self.verdicts:
            if v.item_index == item_index:
                return v
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "judge_name": self.judge_name,
            "status": self.status.value,
            "unavailable_reason": (
                self.unavailable_reason.value if self.unavailable_reason else None
            ),
            "verdicts": [v.to_dict() for v in self.verdicts],
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
        }


@dataclass(frozen=True)
class IssueRecord:
    item_index: int
    judge_name: str
    issue: Issue

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_index": self.item_index,
            "judge_name": self.judge_name,
            "issue": self.issue.to_dict(),
        }


# ---------------------------------------------------------------------
# Pipeline inputs
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ValidationContext:
    subject: str
    grade: int
    topic: str
    difficulty: Difficulty = Difficulty.MEDIUM

    def __post_init__(self) -> None:
        object.__setattr__(self, "subject", str(self.subject).strip().lower())
        if not isinstance(self.difficulty, Difficulty):
            object.__setattr__(self, "difficulty", Difficulty.normalize(self.difficulty))
        if not (1 <= int(self.grade) <= 11):
            raise ValueError(f"grade must be within [1, 11], got {self.grade}")


@dataclass(frozen=True)
class ValidationOptions:
    auto_fix: bool = True


# ---------------------------------------------------------------------
# Remediation records
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RemediationTarget:
    item_index: int
    issues: tuple[Issue, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "issues", tuple(self.issues))
        if not self.issues:
            raise ValueError("a remediation target needs at least one issue")

    @property
    def primary_issue(self) -> Issue:
        # Source-judge order only; issues are not re-ranked by severity.
        return self.issues[0]


@dataclass(frozen=True)
class FixOutcome:
    """
    Result of one repair attempt.

    Exactly one of (fixed_item, error) is populated, depending on `success`.
    """

    item_index: int
    issue_code: IssueCode
    success: bool
    fixed_item: GeneratedItem | None = None
    description: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and (self.fixed_item is None or self.error is not None):
            raise ValueError("successful outcomes carry fixed_item and no error")
        if not self.success and (self.fixed_item is not None or not self.error):
            raise ValueError("failed outcomes carry an error and no fixed_item")

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_index": self.item_index,
            "issue_code": self.issue_code.value,
            "success": self.success,
            "fixed_item": item_to_json(self.fixed_item) if self.fixed_item is not None else None,
            "description": self.description,
            "error": self.error,
        }


# ---------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------
@dataclass
class ValidationReport:
    """
    Final pipeline artifact.

    `valid` is derived from `problem_items`, which is computed from
    pre-remediation verdicts: repairs improve `final_items` but never flip it.
    """

    judge_results: list[JudgeResult]
    problem_items: list[int]
    all_issues: list[IssueRecord]
    final_items: list[GeneratedItem]
    fix_outcomes: list[FixOutcome] = field(default_factory=list)
    usage: list[UsageRecord] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def valid(self) -> bool:
        return not self.problem_items

    @property
    def unchecked_judges(self) -> list[str]:
        return [r.judge_name for r in self.judge_results if not r.available]

    @property
    def fixed_count(self) -> int:
        return sum(1 for o in self.fix_outcomes if o.success)

    def to_dict(self, include_timing: bool = True) -> dict[str, Any]:
        d: dict[str, Any] = {
            "valid": self.valid,
            "problem_items": list(self.problem_items),
            "unchecked_judges": self.unchecked_judges,
            "judge_results": [r.to_dict() for r in self.judge_results],
            "all_issues": [r.to_dict() for r in self.all_issues],
            "fix_outcomes": [o.to_dict() for o in self.fix_outcomes],
            "final_items": [item_to_json(it) for it in self.final_items],
        }
        if include_timing:
            d["usage"] = [asdict(u) for u in self.usage]
            d["duration_ms"] = self.duration_ms
        return d
