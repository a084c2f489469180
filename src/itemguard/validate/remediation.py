"""
Remediation: selection of repairable items and the single-item fixer.

Selection:
- error verdicts from any judge qualify an item
- warning verdicts qualify only with a remediable code (DIFFICULTY_MISMATCH by default)
- excluded subjects select nothing; the caller logs that as a policy skip
- targets go through a bounded worklist ordered by item index; overflow is
  recorded, never repaired

Fixer:
- one oracle call per item, with only the primary (first) issue
- the repaired item must keep its kind, decode into a GeneratedItem and pass
  the structural checks; anything else is a failed FixOutcome
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from pydantic import ValidationError

from itemguard.config import OracleConfig, RemediationConfig
from itemguard.items import GeneratedItem, check_item, parse_item
from itemguard.oracle import Oracle, OracleUnavailable, UsageTracker, ask_oracle

from .prompt import build_fix_prompt
from .sanitize import extract_json_block, safe_json_parse
from .schema import (
    FixOutcome,
    Issue,
    IssueCode,
    JudgeResult,
    RemediationTarget,
    ValidationContext,
    VerdictStatus,
)

logger = logging.getLogger(__name__)

FIXER_CALL_TYPE = "fixer"


# ---------------------------------------------------------------------
# Policy + worklist
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RemediationPolicy:
    budget: int = 10
    remediable_warning_codes: frozenset[IssueCode] = frozenset({IssueCode.DIFFICULTY_MISMATCH})
    excluded_subjects: frozenset[str] = frozenset({"geometry"})

    @classmethod
    def from_config(cls, cfg: RemediationConfig) -> RemediationPolicy:
        codes = set()
        for raw in cfg.remediable_warning_codes:
            code = IssueCode.normalize(raw)
            if code is None:
                logger.warning("Ignoring unknown remediable warning code: %r", raw)
                continue
            codes.add(code)
        return cls(
            budget=cfg.budget,
            remediable_warning_codes=frozenset(codes),
            excluded_subjects=frozenset(s.strip().lower() for s in cfg.excluded_subjects),
        )

    def allows_subject(self, subject: str) -> bool:
        return (subject or "").strip().lower() not in self.excluded_subjects


@dataclass
class RemediationQueue:
    """
    Bounded worklist of repair targets.

    Accepts at most `capacity` targets in the order offered; later offers are
    recorded in `overflow` and never repaired.
    """

    capacity: int
    _targets: list[RemediationTarget] = field(default_factory=list)
    overflow: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {self.capacity}")

    def offer(self, target: RemediationTarget) -> bool:
        if len(self._targets) >= self.capacity:
            self.overflow.append(target.item_index)
            return False
        self._targets.append(target)
        return True

    def extend(self, targets: Iterable[RemediationTarget]) -> None:
        for t in targets:
            self.offer(t)

    @property
    def full(self) -> bool:
        return len(self._targets) >= self.capacity

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[RemediationTarget]:
        return iter(list(self._targets))

    def targets(self) -> list[RemediationTarget]:
        return list(self._targets)


def select(
    judge_results: list[JudgeResult],
    policy: RemediationPolicy,
    subject: str,
) -> list[RemediationTarget]:
    if not policy.allows_subject(subject):
        logger.info("Remediation skipped by policy: subject=%s is excluded from auto-repair", subject)
        return []

    collected: dict[int, list[Issue]] = {}
    for result in judge_results:
        for verdict in result.item_verdicts():
            if verdict.status == VerdictStatus.ERROR:
                issues = list(verdict.issues)
            elif verdict.status == VerdictStatus.WARNING:
                issues = [i for i in verdict.issues if i.code in policy.remediable_warning_codes]
            else:
                issues = []
            if issues:
                collected.setdefault(verdict.item_index, []).extend(issues)

    queue = RemediationQueue(capacity=policy.budget)
    queue.extend(
        RemediationTarget(item_index=idx, issues=tuple(issues))
        for idx, issues in sorted(collected.items())
    )

    if queue.overflow:
        logger.info(
            "Selected %d of %d item(s) for repair (budget: %d); left unrepaired: %s",
            len(queue),
            len(collected),
            policy.budget,
            queue.overflow,
        )
    else:
        logger.info("Selected %d item(s) for repair", len(queue))
    return queue.targets()


# ---------------------------------------------------------------------
# Fixer
# ---------------------------------------------------------------------
class Fixer:
    def __init__(
        self,
        oracle: Oracle,
        cfg: OracleConfig,
        tracker: UsageTracker | None = None,
    ) -> None:
        self.oracle = oracle
        self.cfg = cfg
        self.tracker = tracker

    async def fix(
        self,
        item: GeneratedItem,
        issue: Issue,
        ctx: ValidationContext,
        *,
        item_index: int,
    ) -> FixOutcome:
        t0 = time.monotonic()
        model = self.cfg.fixer_model(ctx.subject, ctx.grade)
        logger.debug("[fixer] item=%d code=%s model=%s", item_index, issue.code.value, model)

        def failed(reason: str) -> FixOutcome:
            logger.warning(
                "[fixer] item=%d not repaired after %dms: %s",
                item_index,
                int((time.monotonic() - t0) * 1000),
                reason,
            )
            return FixOutcome(item_index=item_index, issue_code=issue.code, success=False, error=reason)

        try:
            reply = await ask_oracle(
                self.oracle,
                build_fix_prompt(item, issue, ctx),
                model=model,
                max_tokens=self.cfg.fixer_max_tokens,
                temperature=self.cfg.fixer_temperature,
                timeout_s=self.cfg.timeout_s,
                call_type=FIXER_CALL_TYPE,
                tracker=self.tracker,
            )
        except OracleUnavailable as e:
            return failed(f"Oracle not configured: {e}")
        except Exception as e:
            return failed(f"{type(e).__name__}: {e}")

        block = extract_json_block(reply.content, prefer_fenced=True)
        if block is None:
            return failed("No JSON in oracle response")

        parsed = safe_json_parse(block, FIXER_CALL_TYPE)
        if parsed is None:
            return failed("JSON parse failed")

        # The item kind never changes during repair.
        parsed["type"] = item.type
        try:
            fixed = parse_item(parsed)
        except ValidationError as e:
            return failed(f"Repaired item does not fit {item.type}: {e.error_count()} field error(s)")

        problems = check_item(fixed)
        if problems:
            return failed(
                "Repaired item is malformed: " + "; ".join(f"{p.code} ({p.field})" for p in problems)
            )

        logger.info(
            "[fixer] item=%d repaired in %dms (%s)",
            item_index,
            int((time.monotonic() - t0) * 1000),
            issue.code.value,
        )
        return FixOutcome(
            item_index=item_index,
            issue_code=issue.code,
            success=True,
            fixed_item=fixed,
            description=f"{issue.code.value}: repaired",
        )
