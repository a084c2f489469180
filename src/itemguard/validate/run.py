"""
Pipeline coordinator: judges -> aggregate -> select -> repair -> re-verify -> report.

START -> JUDGING (parallel) -> AGGREGATING -> SELECTING -> REPAIRING (sequential,
budget-capped) -> REVERIFYING (single batched call) -> DONE

Design:
- Every invocation builds its own judges, fixer and usage tracker; nothing
  mutable is shared between runs.
- `final_items` starts as a copy of the input and is written only by the gate.
- No stage raises past `run()` except asyncio.CancelledError, in which case
  nothing has been committed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from itemguard.config import RunConfig
from itemguard.curriculum import CurriculumLookup
from itemguard.items import GeneratedItem, item_to_json, parse_items
from itemguard.oracle import ChatOracle, Oracle, UsageRecord, UsageTracker
from itemguard.utils.io import ensure_dir, read_json_records, write_json, write_jsonl

from .aggregate import aggregate
from .judges import AnswerJudge, UnifiedJudge
from .remediation import Fixer, RemediationPolicy, select
from .reverify import ReverificationGate
from .schema import FixOutcome, ValidationContext, ValidationOptions, ValidationReport

logger = logging.getLogger(__name__)


class ValidationPipeline:
    def __init__(
        self,
        cfg: RunConfig | None = None,
        *,
        oracle: Oracle | None = None,
        curriculum: CurriculumLookup | None = None,
        usage_sink: Callable[[UsageRecord], None] | None = None,
    ) -> None:
        self.cfg = cfg or RunConfig()
        self.oracle = oracle if oracle is not None else ChatOracle(self.cfg.oracle)
        self.curriculum = (
            curriculum
            if curriculum is not None
            else CurriculumLookup.from_yaml(self.cfg.paths.curriculum_file)
        )
        self.policy = RemediationPolicy.from_config(self.cfg.remediation)
        self.usage_sink = usage_sink

    async def run(
        self,
        items: Iterable[GeneratedItem | Mapping[str, Any]],
        ctx: ValidationContext,
        options: ValidationOptions | None = None,
    ) -> ValidationReport:
        options = options or ValidationOptions()
        batch = parse_items(items)
        final_items = list(batch)
        t0 = time.monotonic()

        tracker = UsageTracker(sink=self.usage_sink, pricing_overrides=self.cfg.usage.pricing)
        ocfg = self.cfg.oracle
        answer_judge = AnswerJudge(self.oracle, ocfg, tracker)
        unified_judge = UnifiedJudge(self.oracle, ocfg, self.curriculum, tracker)

        logger.info(
            "Validation started: %d item(s) subject=%s grade=%d topic=%r difficulty=%s",
            len(batch),
            ctx.subject,
            ctx.grade,
            ctx.topic,
            ctx.difficulty.value,
        )

        # JUDGING
        judge_results = list(
            await asyncio.gather(answer_judge.run(batch, ctx), unified_judge.run(batch, ctx))
        )
        for r in judge_results:
            if not r.available:
                logger.warning(
                    "Judge %s could not check the batch (%s)", r.judge_name, r.unavailable_reason.value
                )

        # AGGREGATING
        problem_items, all_issues = aggregate(judge_results)

        # SELECTING / REPAIRING / REVERIFYING
        fix_outcomes: list[FixOutcome] = []
        if not options.auto_fix:
            logger.info("Remediation disabled for this run (auto_fix=False)")
        elif not self.cfg.remediation.enabled:
            logger.info("Remediation disabled by config")
        else:
            targets = select(judge_results, self.policy, ctx.subject)
            if targets:
                fixer = Fixer(self.oracle, ocfg, tracker)
                for target in targets:
                    outcome = await fixer.fix(
                        batch[target.item_index],
                        target.primary_issue,
                        ctx,
                        item_index=target.item_index,
                    )
                    fix_outcomes.append(outcome)

                gate = ReverificationGate(
                    answer_judge, commit_unverified=self.cfg.remediation.commit_unverified
                )
                await gate.reverify(fix_outcomes, ctx, final_items)

        report = ValidationReport(
            judge_results=judge_results,
            problem_items=problem_items,
            all_issues=all_issues,
            final_items=final_items,
            fix_outcomes=fix_outcomes,
            usage=list(tracker.records),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        logger.info(
            "Validation done in %dms: %d problem item(s), %d fixed, %d issue(s), unchecked=%s",
            report.duration_ms,
            len(report.problem_items),
            report.fixed_count,
            len(report.all_issues),
            report.unchecked_judges or "none",
        )
        return report


# ---------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------
def _as_context(ctx: ValidationContext | Mapping[str, Any]) -> ValidationContext:
    if isinstance(ctx, ValidationContext):
        return ctx
    return ValidationContext(**dict(ctx))


async def validate_async(
    items: Iterable[GeneratedItem | Mapping[str, Any] | BaseModel],
    ctx: ValidationContext | Mapping[str, Any],
    options: ValidationOptions | None = None,
    *,
    cfg: RunConfig | None = None,
    oracle: Oracle | None = None,
    curriculum: CurriculumLookup | None = None,
) -> ValidationReport:
    pipeline = ValidationPipeline(cfg, oracle=oracle, curriculum=curriculum)
    return await pipeline.run(items, _as_context(ctx), options)


def validate(
    items: Iterable[GeneratedItem | Mapping[str, Any] | BaseModel],
    ctx: ValidationContext | Mapping[str, Any],
    options: ValidationOptions | None = None,
    *,
    cfg: RunConfig | None = None,
    oracle: Oracle | None = None,
    curriculum: CurriculumLookup | None = None,
) -> ValidationReport:
    """Synchronous wrapper for callers without an event loop."""
    return asyncio.run(
        validate_async(items, ctx, options, cfg=cfg, oracle=oracle, curriculum=curriculum)
    )


# ---------------------------------------------------------------------
# File runner (CLI)
# ---------------------------------------------------------------------
def build_stats(report: ValidationReport, *, ctx: ValidationContext, input_file: Path) -> dict[str, Any]:
    reverted = sum(
        1 for o in report.fix_outcomes if not o.success and (o.error or "").startswith("REVERIFY_FAILED")
    )
    return {
        "total_items": len(report.final_items),
        "valid": report.valid,
        "problem_item_count": len(report.problem_items),
        "issue_count": len(report.all_issues),
        "issue_code_breakdown": dict(Counter(r.issue.code.value for r in report.all_issues)),
        "unchecked_judges": report.unchecked_judges,
        "fix_attempted": len(report.fix_outcomes),
        "fix_committed": report.fixed_count,
        "fix_reverted": reverted,
        "oracle_calls": len(report.usage),
        "total_cost": round(sum(u.cost for u in report.usage), 6),
        "duration_ms": report.duration_ms,
        "subject": ctx.subject,
        "grade": ctx.grade,
        "topic": ctx.topic,
        "difficulty": ctx.difficulty.value,
        "input_file": str(input_file),
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
    }


def write_validation_output(
    report: ValidationReport,
    output_dir: Path,
    *,
    ctx: ValidationContext,
    input_file: Path,
) -> None:
    ensure_dir(output_dir)

    report_file = output_dir / "validation_report.json"
    write_json(report_file, report.to_dict())
    logger.info("Wrote validation report: %s", report_file)

    items_file = output_dir / "final_items.jsonl"
    n = write_jsonl(items_file, (item_to_json(it) for it in report.final_items))
    logger.info("Wrote final items: %s (n=%d)", items_file, n)

    write_json(output_dir / "validation_stats.json", build_stats(report, ctx=ctx, input_file=input_file))
    logger.info("Wrote validation stats")


def run_validation(
    cfg: RunConfig,
    items_file: Path,
    ctx: ValidationContext,
    options: ValidationOptions | None = None,
    *,
    output_dir: Path | None = None,
    oracle: Oracle | None = None,
) -> ValidationReport:
    logger.info("Loading items from: %s", items_file)
    rows = read_json_records(items_file)
    logger.info("Loaded %d item(s)", len(rows))

    report = validate(rows, ctx, options, cfg=cfg, oracle=oracle)

    out = Path(output_dir or cfg.paths.output_dir)
    write_validation_output(report, out, ctx=ctx, input_file=items_file)
    return report
