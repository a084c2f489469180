"""
Issue aggregation across judges.

- Judge-level notices (index -1) never make an item a problem.
- An item is a problem iff at least one judge marked it `error`.
- Issues are flattened in judge-submission order, then verdict order.
"""

from __future__ import annotations

import logging
from collections import Counter

from .schema import IssueRecord, JudgeResult, VerdictStatus

logger = logging.getLogger(__name__)


def aggregate(judge_results: list[JudgeResult]) -> tuple[list[int], list[IssueRecord]]:
    problems: set[int] = set()
    all_issues: list[IssueRecord] = []

    for result in judge_results:
        for verdict in result.item_verdicts():
            for issue in verdict.issues:
                all_issues.append(
                    IssueRecord(
                        item_index=verdict.item_index,
                        judge_name=result.judge_name,
                        issue=issue,
                    )
                )
            if verdict.status == VerdictStatus.ERROR:
                problems.add(verdict.item_index)

    problem_items = sorted(problems)
    code_counts = Counter(r.issue.code.value for r in all_issues)
    logger.info(
        "Aggregated %d judge result(s): %d problem item(s), %d issue(s) %s",
        len(judge_results),
        len(problem_items),
        len(all_issues),
        dict(code_counts),
    )
    return problem_items, all_issues
