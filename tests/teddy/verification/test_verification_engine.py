"""Tests for the self-verifying execution loop."""

import pytest

from teddy.config.settings import TeddyConfig
from teddy.llm.base import LLMError
from teddy.plan.models import PlanStep, StepType
from teddy.verification.engine import VerificationEngine, made_progress
from teddy.verification.models import (
    CriterionResult,
    FileSnapshot,
    LoopState,
    SuccessCriterion,
    VerificationResult,
)
from teddy.verification.review import LLMReviewer


ORIGINAL = "export async function fetchData() {\n  return await get();\n}\n"
NO_TRY = "export async function fetchData() {\n  const result = await get();\n  return result;\n}\n"
WITH_TRY = (
    "export async function fetchData() {\n"
    "  try {\n    return await get();\n  } catch (err) {\n    throw err;\n  }\n}\n"
)


def result(attempt, *failing):
    return VerificationResult(
        attempt=attempt,
        passed=not failing,
        criteria_results=[CriterionResult(name, False, f"{name} failed") for name in failing],
    )


async def drain(engine, instruction, steps):
    return [line async for line in engine.run(instruction, steps)]


@pytest.fixture
def make_engine(workspace, tmp_path, scripted_llm):
    def _make(replies=(), **kwargs):
        llm = scripted_llm(replies)
        return VerificationEngine(llm, workspace, str(tmp_path), **kwargs), llm
    return _make


class TestMadeProgress:

    @pytest.mark.parametrize("before,after,expected", [
        (("a", "b"), ("a",), True),
        (("a",), (), True),
        (("a",), ("a",), False),
        (("a",), ("b",), False),
        (("a",), ("a", "b"), False),
    ])
    def test_proper_subset_only(self, before, after, expected):
        assert made_progress(result(1, *before), result(2, *after)) is expected


class TestIsStuck:

    def test_needs_a_full_window(self, make_engine):
        engine, _ = make_engine()
        engine.previous_results = [result(1, "a")]
        assert not engine.is_stuck()

    def test_equal_failing_sets(self, make_engine):
        engine, _ = make_engine()
        engine.previous_results = [result(1, "a", "b"), result(2, "a", "b")]
        assert engine.is_stuck()

    def test_wider_window_tolerates_one_flat_attempt(self, make_engine):
        engine, _ = make_engine(config=TeddyConfig(stuck_window=3))
        engine.previous_results = [result(1, "a", "b"), result(2, "a"), result(3, "a")]
        assert not engine.is_stuck()
        engine.previous_results.append(result(4, "a"))
        assert engine.is_stuck()


class TestSnapshots:

    @pytest.mark.asyncio
    async def test_undecodable_file_counts_as_present(self, make_engine, tmp_path):
        (tmp_path / "legacy.js").write_bytes(b"// caf\xe9\n")
        engine, _ = make_engine()

        snapshots = await engine.snapshot_before(["legacy.js", "missing.js"])

        assert snapshots["legacy.js"].existed_before is True
        assert snapshots["legacy.js"].before_content == ""
        assert snapshots["missing.js"].existed_before is False


class TestRun:

    @pytest.mark.asyncio
    async def test_passes_on_first_attempt(self, make_engine, tmp_path):
        engine, _ = make_engine(["export function add(a, b) {\n  return a + b;\n}\n"])
        steps = [PlanStep(id=1, type=StepType.CREATE_FILE, target="src/calc.ts", description="calculator")]

        lines = await drain(engine, "create a calculator module", steps)

        assert lines[0] == "ℹ️ Success criteria: exists:src/calc.ts, balanced:src/calc.ts\n"
        assert lines[1] == "\n## Attempt 1/10\n"
        assert lines[-1] == "✅ Verified on attempt 1: 2 criteria passed\n"
        assert engine.state is LoopState.DONE
        assert (tmp_path / "src/calc.ts").exists()

    @pytest.mark.asyncio
    async def test_identical_failures_give_up_after_second_attempt(self, make_engine, write_file):
        write_file("src/x.ts", ORIGINAL)
        engine, llm = make_engine([NO_TRY, "nothing parseable", NO_TRY])
        steps = [PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts", description="Add error handling")]

        lines = await drain(engine, "Add error handling to fetchData", steps)

        assert engine.state is LoopState.GAVE_UP
        assert len(engine.previous_results) == 2
        assert len(llm.prompts) == 3
        assert llm.prompts[1].startswith("A previous attempt did not fully complete this task.")
        assert "⚠️ Stopped: no progress across 2 attempts. Needs manual follow-up:\n" in lines
        assert lines[-1] == "- **error_handling**: no error handling construct found\n"

    @pytest.mark.asyncio
    async def test_regeneration_fixes_the_gap(self, make_engine, write_file, tmp_path):
        write_file("src/x.ts", ORIGINAL)
        engine, _ = make_engine([NO_TRY, "1. EDIT_FILE: src/x.ts | wrap get in try/catch", WITH_TRY])
        steps = [PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts", description="Add error handling")]

        lines = await drain(engine, "Add error handling to fetchData", steps)

        assert engine.state is LoopState.DONE
        assert "ℹ️ Regenerated 1 step(s)\n" in lines
        assert lines[-1].startswith("✅ Verified on attempt 2")
        assert (tmp_path / "src/x.ts").read_text() == WITH_TRY

    @pytest.mark.asyncio
    async def test_attempt_limit(self, make_engine):
        engine, llm = make_engine(["function a() {"], config=TeddyConfig(max_attempts=1))
        steps = [PlanStep(id=1, type=StepType.CREATE_FILE, target="a.ts", description="a")]

        lines = await drain(engine, "create a", steps)

        assert engine.state is LoopState.GAVE_UP
        assert "⚠️ Stopped: reached the limit of 1 attempts. Needs manual follow-up:\n" in lines
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_no_corrective_steps(self, make_engine):
        engine, _ = make_engine()
        steps = [PlanStep(id=1, type=StepType.RUN_COMMAND, target="true", description="noop")]
        engine.analyzer.rules.append(lambda ctx: [
            SuccessCriterion("never", "never passes", lambda s: (False, "always fails"))
        ])

        lines = await drain(engine, "run it", steps)

        assert engine.state is LoopState.GAVE_UP
        assert any("no corrective steps could be produced" in line for line in lines)

    @pytest.mark.asyncio
    async def test_reviewer_used_without_task_specific_criteria(self, make_engine):
        engine, llm = make_engine(
            ["export const a = 1;\n", "FAIL: subtract is missing"],
            config=TeddyConfig(llm_review=True, max_attempts=1),
        )
        steps = [PlanStep(id=1, type=StepType.CREATE_FILE, target="a.ts", description="a")]

        lines = await drain(engine, "create a calculator module", steps)

        assert llm.prompts[1].startswith("Review whether these files now satisfy the task.")
        assert "❌ llm_review: subtract is missing\n" in lines
        assert engine.state is LoopState.GAVE_UP

    @pytest.mark.asyncio
    async def test_reviewer_skipped_with_task_specific_criteria(self, make_engine, write_file):
        write_file("src/x.ts", ORIGINAL)
        engine, llm = make_engine([WITH_TRY], config=TeddyConfig(llm_review=True))
        steps = [PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts", description="Add error handling")]

        await drain(engine, "Add error handling to fetchData", steps)

        assert engine.state is LoopState.DONE
        assert len(llm.prompts) == 1


class TestRegenerate:

    @pytest.mark.asyncio
    async def test_targets_are_repaired_and_goal_appended(self, make_engine):
        engine, _ = make_engine([
            "1. EDIT_FILE: the main file | add try/catch\n"
            "2. RUN_COMMAND: npm test | verify\n"
            "3. CREATE_FILE: src/util.ts | helper\n"
        ])
        engine.primary_target = "src/x.ts"

        steps = await engine.regenerate("add error handling", result(1, "error_handling"))

        assert [(s.id, s.type, s.target) for s in steps] == [
            (1, StepType.EDIT_FILE, "src/x.ts"),
            (2, StepType.RUN_COMMAND, "npm test"),
            (3, StepType.CREATE_FILE, "src/util.ts"),
        ]
        assert all(s.description.endswith(" (goal: add error handling)") for s in steps)

    @pytest.mark.asyncio
    async def test_fallback_fix_step(self, make_engine):
        engine, _ = make_engine([""])
        engine.primary_target = "src/x.ts"

        steps = await engine.regenerate("add error handling", result(1, "error_handling"))

        assert len(steps) == 1
        assert steps[0].type is StepType.EDIT_FILE
        assert steps[0].target == "src/x.ts"
        assert steps[0].description == (
            "Fix: error_handling: error_handling failed (goal: add error handling)"
        )

    @pytest.mark.asyncio
    async def test_nothing_without_primary_target(self, make_engine):
        engine, _ = make_engine([""])
        assert await engine.regenerate("x", result(1, "a")) == []


class FailingLLM:
    def stream_complete(self, prompt):
        return self._stream()

    async def _stream(self):
        raise LLMError("down")
        yield  # pragma: no cover


class TestReviewer:

    SNAPSHOTS = {"a.ts": FileSnapshot("a.ts", "", "export const a = 1;", False, True)}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply,passed,explanation", [
        ("PASS - looks complete", True, "looks complete"),
        ("FAIL: subtract is missing", False, "subtract is missing"),
        ("I am not sure.", True, "review inconclusive"),
    ])
    async def test_verdicts(self, scripted_llm, reply, passed, explanation):
        reviewer = LLMReviewer(scripted_llm([reply]))
        review = await reviewer.review("create a", self.SNAPSHOTS)
        assert review.name == "llm_review"
        assert review.passed is passed
        assert review.explanation == explanation

    @pytest.mark.asyncio
    async def test_failed_call_passes(self):
        review = await LLMReviewer(FailingLLM()).review("create a", self.SNAPSHOTS)
        assert review.passed
        assert review.explanation == "review unavailable"

    def test_prompt_marks_missing_files(self, scripted_llm):
        snapshots = {"b.ts": FileSnapshot("b.ts")}
        prompt = LLMReviewer(scripted_llm()).build_prompt("x", snapshots)
        assert "--- b.ts ---\n(file does not exist)" in prompt
