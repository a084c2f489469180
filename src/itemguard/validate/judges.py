"""
Judges: one oracle round-trip each, turned into a normalized JudgeResult.

Design:
- One prompt for the whole batch, one call, bounded tokens and timeout.
- Fail-open: missing credentials, call errors, timeouts, missing or
  undecodable JSON all produce JudgeResult.unavailable(...) (a single index -1
  warning notice, zero item verdicts). A judge never raises, except for
  cancellation of the surrounding task.
- Oracle entries with out-of-range or repeated indices are dropped.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from itemguard.config import OracleConfig
from itemguard.curriculum import CurriculumLookup
from itemguard.items import GeneratedItem
from itemguard.oracle import Oracle, OracleUnavailable, UsageTracker, ask_oracle

from .prompt import build_answer_prompt, build_unified_prompt, suggestion_for
from .sanitize import extract_json_block, safe_json_parse
from .schema import (
    QUALITY_CODES,
    Issue,
    IssueCode,
    ItemVerdict,
    JudgeResult,
    ValidationContext,
    VerdictStatus,
)

logger = logging.getLogger(__name__)


class Judge:
    """Base class; subclasses provide the prompt, the model and the entry mapping."""

    name = "judge"

    def __init__(
        self,
        oracle: Oracle,
        cfg: OracleConfig,
        tracker: UsageTracker | None = None,
    ) -> None:
        self.oracle = oracle
        self.cfg = cfg
        self.tracker = tracker

    # --- subclass hooks ------------------------------------------------
    def build_prompt(self, items: list[GeneratedItem], ctx: ValidationContext) -> str:
        raise NotImplementedError

    def model_for(self, ctx: ValidationContext) -> str:
        return self.cfg.agents_model

    def entry_to_verdict(self, index: int, entry: dict[str, Any]) -> ItemVerdict:
        raise NotImplementedError

    # --- run -----------------------------------------------------------
    async def run(self, items: list[GeneratedItem], ctx: ValidationContext) -> JudgeResult:
        if not items:
            return JudgeResult(judge_name=self.name)

        t0 = time.monotonic()
        model = self.model_for(ctx)
        logger.info("[%s] Checking %d item(s) with model=%s", self.name, len(items), model)

        try:
            reply = await ask_oracle(
                self.oracle,
                self.build_prompt(items, ctx),
                model=model,
                max_tokens=self.cfg.judge_max_tokens,
                temperature=self.cfg.judge_temperature,
                timeout_s=self.cfg.timeout_s,
                call_type=self.name,
                tracker=self.tracker,
            )
        except OracleUnavailable as e:
            logger.warning("[%s] Oracle unavailable, skipping: %s", self.name, e)
            return JudgeResult.unavailable(
                self.name, IssueCode.NO_CREDENTIALS, "Judge could not run: oracle not configured"
            )
        except Exception as e:
            logger.error(
                "[%s] Failed in %dms: %s: %s", self.name, _elapsed_ms(t0), type(e).__name__, e
            )
            return JudgeResult.unavailable(
                self.name, IssueCode.AGENT_ERROR, "Judge could not complete the check"
            )

        block = extract_json_block(reply.content)
        if block is None:
            logger.warning("[%s] No JSON in response", self.name)
            return JudgeResult.unavailable(
                self.name, IssueCode.NO_JSON_RESPONSE, "Judge response contained no JSON"
            )

        parsed = safe_json_parse(block, self.name)
        entries = _entries_of(parsed)
        if entries is None:
            return JudgeResult.unavailable(
                self.name, IssueCode.JSON_PARSE_ERROR, "Judge response could not be decoded"
            )

        verdicts = self._to_verdicts(entries, len(items))
        result = JudgeResult(judge_name=self.name, verdicts=tuple(verdicts))
        logger.info(
            "[%s] Done in %dms: %d errors, %d warnings",
            self.name,
            _elapsed_ms(t0),
            result.total_errors,
            result.total_warnings,
        )
        return result

    def _to_verdicts(self, entries: list[Any], n_items: int) -> list[ItemVerdict]:
        seen: set[int] = set()
        verdicts: list[ItemVerdict] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            index = _as_index(entry.get("index"))
            if index is None or not 0 <= index < n_items:
                logger.warning("[%s] Ignoring entry with bad index: %r", self.name, entry.get("index"))
                continue
            if index in seen:
                logger.warning("[%s] Ignoring repeated verdict for item %d", self.name, index)
                continue
            seen.add(index)
            verdicts.append(self.entry_to_verdict(index, entry))
        return verdicts


class AnswerJudge(Judge):
    """Checks that the stated correct answers are actually correct."""

    name = "answer-verifier"

    def build_prompt(self, items: list[GeneratedItem], ctx: ValidationContext) -> str:
        return build_answer_prompt(items, ctx.subject)

    def model_for(self, ctx: ValidationContext) -> str:
        return self.cfg.verifier_model(ctx.subject, ctx.grade)

    def entry_to_verdict(self, index: int, entry: dict[str, Any]) -> ItemVerdict:
        if VerdictStatus.normalize(entry.get("status")) != VerdictStatus.ERROR:
            return ItemVerdict(item_index=index, status=VerdictStatus.OK)
        message = _text(entry.get("issue")) or "Stated answer is incorrect"
        return ItemVerdict(
            item_index=index,
            status=VerdictStatus.ERROR,
            issues=(
                Issue(
                    code=IssueCode.WRONG_ANSWER,
                    message=message,
                    suggestion=suggestion_for(IssueCode.WRONG_ANSWER),
                ),
            ),
        )


class UnifiedJudge(Judge):
    """Formulation, difficulty fit and topic/curriculum relevance in one pass."""

    name = "unified-checker"

    def __init__(
        self,
        oracle: Oracle,
        cfg: OracleConfig,
        curriculum: CurriculumLookup | None = None,
        tracker: UsageTracker | None = None,
    ) -> None:
        super().__init__(oracle, cfg, tracker)
        self.curriculum = curriculum or CurriculumLookup()

    def build_prompt(self, items: list[GeneratedItem], ctx: ValidationContext) -> str:
        return build_unified_prompt(items, ctx, self.curriculum.describe(ctx.subject, ctx.grade))

    def entry_to_verdict(self, index: int, entry: dict[str, Any]) -> ItemVerdict:
        status = VerdictStatus.normalize(entry.get("status"))
        if status == VerdictStatus.OK:
            return ItemVerdict(item_index=index, status=status)

        code = IssueCode.normalize(entry.get("code"))
        if code not in QUALITY_CODES:
            code = (
                IssueCode.BAD_FORMULATION
                if status == VerdictStatus.ERROR
                else IssueCode.DIFFICULTY_MISMATCH
            )
        message = _text(entry.get("issue")) or f"Flagged as {code.value}"
        return ItemVerdict(
            item_index=index,
            status=status,
            issues=(Issue(code=code, message=message, suggestion=suggestion_for(code)),),
        )


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _entries_of(parsed: dict[str, Any] | None) -> list[Any] | None:
    if parsed is None:
        return None
    entries = parsed.get("items", parsed.get("tasks"))
    return entries if isinstance(entries, list) else None


def _as_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
