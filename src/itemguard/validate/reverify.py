"""
Re-verification gate: propose, then batch-confirm.

Every successful repair is re-checked by the answer judge in ONE call. Only
after that call returns are repairs committed into `final_items`:
- error verdict              -> revert (outcome flips to success=False, REVERIFY_FAILED)
- ok / no verdict            -> commit
- judge unavailable          -> revert, unless commit_unverified is set
"""

from __future__ import annotations

import logging
from dataclasses import replace

from itemguard.items import GeneratedItem

from .judges import AnswerJudge
from .schema import FixOutcome, IssueCode, ValidationContext, VerdictStatus

logger = logging.getLogger(__name__)


class ReverificationGate:
    def __init__(self, judge: AnswerJudge, commit_unverified: bool = False) -> None:
        self.judge = judge
        self.commit_unverified = commit_unverified

    async def reverify(
        self,
        outcomes: list[FixOutcome],
        ctx: ValidationContext,
        final_items: list[GeneratedItem],
    ) -> tuple[list[int], list[int]]:
        """
        Gate the successful entries of `outcomes`.

        Mutates `outcomes` (reverted entries are replaced) and `final_items`
        (committed repairs are written at their item index). Returns the
        (committed, reverted) item indices.
        """
        candidates = [(pos, o) for pos, o in enumerate(outcomes) if o.success]
        if not candidates:
            logger.info("Re-verification skipped: no repaired items")
            return [], []

        # Candidate i of the batch is the repair at outcomes[candidates[i][0]].
        batch = [o.fixed_item for _, o in candidates]
        logger.info("Re-verifying %d repaired item(s) in one call", len(batch))
        result = await self.judge.run(batch, ctx)

        rejections: dict[int, str] = {}
        if not result.available:
            if self.commit_unverified:
                logger.warning(
                    "Re-verification unavailable (%s); committing %d unverified repair(s)",
                    result.unavailable_reason.value,
                    len(candidates),
                )
            else:
                reason = (
                    f"{IssueCode.REVERIFY_FAILED.value}: re-verification unavailable "
                    f"({result.unavailable_reason.value}), reverted"
                )
                rejections = {local: reason for local in range(len(candidates))}
        else:
            for local in range(len(candidates)):
                verdict = result.verdict_for(local)
                if verdict is not None and verdict.status == VerdictStatus.ERROR:
                    rejections[local] = (
                        f"{IssueCode.REVERIFY_FAILED.value}: {verdict.issues[0].message}, reverted"
                    )

        committed: list[int] = []
        reverted: list[int] = []
        for local, (pos, outcome) in enumerate(candidates):
            if local in rejections:
                outcomes[pos] = replace(
                    outcome, success=False, fixed_item=None, error=rejections[local]
                )
                reverted.append(outcome.item_index)
                logger.warning("Repair of item %d reverted: %s", outcome.item_index, rejections[local])
            else:
                final_items[outcome.item_index] = outcome.fixed_item
                committed.append(outcome.item_index)

        logger.info("Re-verification done: %d committed, %d reverted", len(committed), len(reverted))
        return committed, reverted
