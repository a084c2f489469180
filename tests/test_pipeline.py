from __future__ import annotations

import asyncio

from itemguard.items import (
    Blank,
    FillBlankItem,
    MultipleChoiceItem,
    OpenQuestionItem,
    item_to_json,
)
from itemguard.validate import (
    IssueCode,
    ValidationContext,
    ValidationOptions,
    ValidationPipeline,
    validate,
    validate_async,
)
from tests.conftest import (
    ANSWER,
    FIXER,
    HANG,
    UNIFIED,
    FakeOracle,
    all_ok,
    build_batch,
    fast_config,
    item_reply,
    single_choice,
    verdicts_json,
)

ANSWER_FLAGS_2 = verdicts_json(
    {"index": 0, "status": "ok"},
    {"index": 1, "status": "ok"},
    {"index": 2, "status": "error", "issue": "7 x 8 is 56, stated 54"},
    {"index": 3, "status": "ok"},
    {"index": 4, "status": "ok"},
)
UNIFIED_WARNS_4 = verdicts_json(
    {"index": 4, "status": "warning", "code": "DIFFICULTY_MISMATCH", "issue": "Too easy for medium"},
)

# Same-kind replacements for items 2 (open_question) and 4 (fill_blank).
REPAIRED_2 = OpenQuestionItem(
    question="What is 7 multiplied by 9?",
    correct_answer="63",
    acceptable_variants=["sixty-three"],
)
REPAIRED_4 = FillBlankItem(
    text_with_blanks="A quarter of forty-eight is ___ and three cubed is ___.",
    blanks=[
        Blank(position=0, correct_answer="12"),
        Blank(position=1, correct_answer="27"),
    ],
)


def _scenario_oracle(reverify_reply: str) -> FakeOracle:
    return FakeOracle(
        {
            ANSWER: [ANSWER_FLAGS_2, reverify_reply],
            UNIFIED: [UNIFIED_WARNS_4],
            FIXER: [item_reply(REPAIRED_2), item_reply(REPAIRED_4)],
        }
    )


def _run(oracle, ctx, options=None, **remediation):
    return validate(build_batch(), ctx, options, cfg=fast_config(**remediation), oracle=oracle)


def test_error_and_remediable_warning_are_both_repaired(ctx):
    oracle = _scenario_oracle(all_ok(2))
    report = _run(oracle, ctx)

    assert report.problem_items == [2]
    assert report.valid is False
    assert [(r.item_index, r.judge_name) for r in report.all_issues] == [
        (2, ANSWER),
        (4, UNIFIED),
    ]
    assert [o.item_index for o in report.fix_outcomes] == [2, 4]
    assert [o.issue_code for o in report.fix_outcomes] == [
        IssueCode.WRONG_ANSWER,
        IssueCode.DIFFICULTY_MISMATCH,
    ]
    assert report.fixed_count == 2
    assert report.final_items[2] == REPAIRED_2
    assert report.final_items[4] == REPAIRED_4
    assert all(o.success for o in report.fix_outcomes)
    assert report.final_items[:2] == build_batch()[:2]

    # two judges + two fixes + one re-verification
    assert [c["call_type"] for c in oracle.calls].count(ANSWER) == 2
    assert len(oracle.calls_of(FIXER)) == 2
    assert len(report.usage) == 5


def test_failed_reverification_reverts_to_the_original(ctx):
    oracle = _scenario_oracle(
        verdicts_json(
            {"index": 0, "status": "error", "issue": "Still wrong"},
            {"index": 1, "status": "ok"},
        )
    )
    report = _run(oracle, ctx)

    original = build_batch()
    assert report.final_items[2] == original[2]
    assert report.final_items[4] == REPAIRED_4
    first, second = report.fix_outcomes
    assert first.item_index == 2
    assert first.success is False
    assert first.fixed_item is None
    assert first.error.startswith("REVERIFY_FAILED")
    assert second.success is True
    # the rejected repair reached the gate: one batched re-verification over both
    reverify_prompt = oracle.calls_of(ANSWER)[1]["prompt"]
    assert "7 multiplied by 9" in reverify_prompt
    assert "forty-eight" in reverify_prompt
    assert report.fixed_count == 1
    # valid is computed from pre-remediation verdicts only
    assert report.problem_items == [2]


def test_answer_judge_timeout_is_an_agent_error_notice(ctx):
    oracle = FakeOracle({ANSWER: [HANG], UNIFIED: [all_ok(5)]})
    report = _run(oracle, ctx)

    answer_result = report.judge_results[0]
    assert answer_result.judge_name == ANSWER
    assert len(answer_result.verdicts) == 1
    notice = answer_result.verdicts[0]
    assert notice.item_index == -1
    assert notice.issues[0].code == IssueCode.AGENT_ERROR
    assert report.unchecked_judges == [ANSWER]
    assert report.valid is True
    assert report.fix_outcomes == []


def test_excluded_subject_skips_repair(caplog):
    ctx = ValidationContext(subject="geometry", grade=8, topic="Triangles", difficulty="hard")
    answer = verdicts_json({"index": 1, "status": "error", "issue": "wrong"})
    unified = verdicts_json(
        {"index": 3, "status": "warning", "code": "DIFFICULTY_MISMATCH", "issue": "Too easy"},
    )
    oracle = FakeOracle({ANSWER: [answer], UNIFIED: [unified]})
    with caplog.at_level("INFO"):
        report = _run(oracle, ctx)

    assert report.problem_items == [1]
    # excluded issues are still reported
    assert [(r.item_index, r.judge_name, r.issue.code) for r in report.all_issues] == [
        (1, ANSWER, IssueCode.WRONG_ANSWER),
        (3, UNIFIED, IssueCode.DIFFICULTY_MISMATCH),
    ]
    assert report.fix_outcomes == []
    assert oracle.calls_of(FIXER) == []
    assert report.final_items == build_batch()
    assert "skipped by policy" in caplog.text


def test_budget_caps_fix_attempts(ctx):
    errors = verdicts_json(*({"index": i, "status": "error", "issue": "wrong"} for i in range(5)))
    oracle = FakeOracle(
        {
            ANSWER: [errors, all_ok(2)],
            UNIFIED: [all_ok(5)],
            FIXER: [
                item_reply(single_choice(80)),
                item_reply(
                    MultipleChoiceItem(
                        question="Which of these numbers are odd?",
                        options=["2", "3", "4", "5"],
                        correct_indices=[1, 3],
                    )
                ),
            ],
        }
    )
    report = _run(oracle, ctx, budget=2)

    assert report.problem_items == [0, 1, 2, 3, 4]
    assert len(report.fix_outcomes) == 2
    assert [o.item_index for o in report.fix_outcomes] == [0, 1]


def test_auto_fix_off_only_reports(ctx):
    oracle = FakeOracle({ANSWER: [ANSWER_FLAGS_2], UNIFIED: [UNIFIED_WARNS_4]})
    report = _run(oracle, ctx, ValidationOptions(auto_fix=False))
    assert report.problem_items == [2]
    assert report.fix_outcomes == []
    assert report.final_items == build_batch()


def test_clean_batch_is_valid(ctx):
    oracle = FakeOracle({ANSWER: [all_ok(5)], UNIFIED: [all_ok(5)]})
    report = _run(oracle, ctx)
    assert report.valid
    assert report.problem_items == []
    assert report.all_issues == []
    assert report.unchecked_judges == []
    assert len(oracle.calls) == 2


def test_same_oracle_output_gives_identical_reports(ctx):
    first = _run(_scenario_oracle(all_ok(2)), ctx)
    second = _run(_scenario_oracle(all_ok(2)), ctx)
    assert first.to_dict(include_timing=False) == second.to_dict(include_timing=False)
    assert "duration_ms" in first.to_dict()


def test_dict_items_and_context_are_accepted():
    rows = [item_to_json(it) for it in build_batch()]
    oracle = FakeOracle({ANSWER: [all_ok(5)], UNIFIED: [all_ok(5)]})
    report = validate(
        rows,
        {"subject": "Math", "grade": 5, "topic": "Arithmetic"},
        cfg=fast_config(),
        oracle=oracle,
    )
    assert report.final_items == build_batch()
    assert report.valid


def test_cancelled_run_commits_nothing(ctx):
    oracle = FakeOracle({ANSWER: [ANSWER_FLAGS_2], UNIFIED: [UNIFIED_WARNS_4], FIXER: [HANG]})
    pipeline = ValidationPipeline(fast_config(timeout_s=60.0), oracle=oracle)
    items = build_batch()

    async def scenario():
        task = asyncio.create_task(pipeline.run(items, ctx))
        for _ in range(200):
            if oracle.calls_of(FIXER):
                break
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return task.cancelled()
        return False

    assert asyncio.run(scenario()) is True
    assert items == build_batch()


def test_validate_async_matches_sync_wrapper(ctx):
    report = asyncio.run(
        validate_async(build_batch(), ctx, cfg=fast_config(), oracle=_scenario_oracle(all_ok(2)))
    )
    assert report.to_dict(include_timing=False) == _run(_scenario_oracle(all_ok(2)), ctx).to_dict(
        include_timing=False
    )
