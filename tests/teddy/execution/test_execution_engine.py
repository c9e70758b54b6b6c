"""Tests for StepExecutor."""

import pytest

from teddy.cancellation import CancelToken, PipelineCancelled
from teddy.config.settings import TeddyConfig
from teddy.execution.engine import StepExecutor
from teddy.llm.base import LLMError
from teddy.plan.models import PlanStep, StepType


class FailingLLM:
    def stream_complete(self, prompt):
        return self._stream()

    async def _stream(self):
        raise LLMError("provider unavailable")
        yield  # pragma: no cover


async def drain(executor, steps):
    return [line async for line in executor.execute(steps)]


@pytest.fixture
def make_executor(workspace, tmp_path, scripted_llm):
    def _make(replies=(), llm=None, **kwargs):
        llm = llm or scripted_llm(replies)
        return StepExecutor(llm, workspace, str(tmp_path), **kwargs), llm
    return _make


class TestCreateFile:

    @pytest.mark.asyncio
    async def test_creates_file_from_completion(self, make_executor, workspace, tmp_path):
        executor, llm = make_executor(["```ts\nexport const a = 1;\n```"])
        step = PlanStep(id=1, type=StepType.CREATE_FILE, target="src/a.ts", description="constant")

        lines = await drain(executor, [step])

        assert lines == [
            "⏳ **Step 1/1** Creating `src/a.ts`...\n",
            "✅ **Step 1/1** Created `src/a.ts`\n",
        ]
        assert (tmp_path / "src/a.ts").read_text() == "export const a = 1;\n"
        assert workspace.opened == [str(tmp_path / "src/a.ts")]
        assert executor.summary.completed == 1
        assert executor.summary.written == ["src/a.ts"]

    @pytest.mark.asyncio
    async def test_prompt_carries_specification(self, make_executor):
        executor, llm = make_executor(["x = 1"], spec_context="# Calculator spec")
        step = PlanStep(id=1, type=StepType.CREATE_FILE, target="calc.py", description="calc")

        await drain(executor, [step])

        assert llm.prompts[0].startswith("Create the file `calc.py`.")
        assert "# Calculator spec" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_empty_completion_fails(self, make_executor, tmp_path):
        executor, _ = make_executor([""])
        step = PlanStep(id=1, type=StepType.CREATE_FILE, target="a.py", description="x")

        lines = await drain(executor, [step])

        assert lines[-1].startswith("❌")
        assert not (tmp_path / "a.py").exists()
        assert executor.summary.failed == 1

    @pytest.mark.asyncio
    async def test_llm_error_is_reported(self, make_executor):
        executor, _ = make_executor(llm=FailingLLM())
        step = PlanStep(id=1, type=StepType.CREATE_FILE, target="a.py", description="x")

        lines = await drain(executor, [step])

        assert "LLM request failed: provider unavailable" in lines[-1]
        assert executor.summary.failed == 1

    @pytest.mark.asyncio
    async def test_readme_keeps_embedded_code_blocks(self, make_executor, tmp_path):
        readme = "# Calculator\n\nUsage:\n\n```bash\nnpm test\n```\n\nMore docs here.\n"
        executor, _ = make_executor([readme])
        step = PlanStep(id=1, type=StepType.CREATE_FILE, target="README.md", description="docs")

        await drain(executor, [step])

        assert (tmp_path / "README.md").read_text() == readme


class TestInsertCode:

    @pytest.mark.asyncio
    async def test_missing_file_is_created_verbatim(self, make_executor, tmp_path):
        executor, llm = make_executor()
        step = PlanStep(id=1, type=StepType.INSERT_CODE, target="src/h.ts",
                        description="health", code_block="export const ok = true;")

        lines = await drain(executor, [step])

        assert (tmp_path / "src/h.ts").read_text() == "export const ok = true;\n"
        assert "Created `src/h.ts` with the provided code" in lines[-1]
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_existing_file_uses_locator(self, make_executor, write_file, tmp_path):
        write_file("src/app.ts", "import a from 'a';\n\nrun();\n")
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.INSERT_CODE, target="src/app.ts",
                        description="Add the logger after the imports",
                        code_block="const log = createLogger();")

        lines = await drain(executor, [step])

        assert (tmp_path / "src/app.ts").read_text() == (
            "import a from 'a';\n\nconst log = createLogger();\n\nrun();\n"
        )
        assert lines[-1] == "✅ **Step 1/1** Inserted code into `src/app.ts` (after imports)\n"

    @pytest.mark.asyncio
    async def test_no_code_is_skipped(self, make_executor):
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.INSERT_CODE, target="a.ts", description="x")

        lines = await drain(executor, [step])

        assert lines == ["⏭️ **Step 1/1** no code to insert into `a.ts`\n"]
        assert executor.summary.skipped == 1


class TestEditFile:

    REWRITE = "export async function fetchData() {\n  try {\n    return await get();\n  } catch (e) {\n    throw e;\n  }\n}\n"

    @pytest.mark.asyncio
    async def test_missing_file_without_code_is_skipped(self, make_executor):
        executor, llm = make_executor()
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts", description="fix")

        lines = await drain(executor, [step])

        assert lines == ["⏭️ **Step 1/1** file not found: `src/x.ts`\n"]
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_missing_file_with_code_is_created(self, make_executor, tmp_path):
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts",
                        description="fix", code_block="export const x = 1;")

        await drain(executor, [step])

        assert (tmp_path / "src/x.ts").read_text() == "export const x = 1;\n"

    @pytest.mark.asyncio
    async def test_rewrite_replaces_file(self, make_executor, write_file, tmp_path):
        write_file("src/x.ts", "export async function fetchData() { return get(); }\n")
        executor, llm = make_executor(["```ts\n" + self.REWRITE + "```"])
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts",
                        description="Update error handling")

        lines = await drain(executor, [step])

        assert llm.prompts[0].startswith("Modify the file `src/x.ts`")
        assert "return get();" in llm.prompts[0]
        assert (tmp_path / "src/x.ts").read_text() == self.REWRITE
        assert lines[-1] == "✅ **Step 1/1** Updated `src/x.ts`\n"

    @pytest.mark.asyncio
    async def test_refactor_gets_whole_file_prompt(self, make_executor, write_file):
        write_file("src/x.ts", "function a(cb) { cb(); }\n")
        executor, llm = make_executor([self.REWRITE])
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts",
                        description="Refactor callbacks to async/await")

        await drain(executor, [step])

        assert "Output the ENTIRE file" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_short_rewrite_keeps_original(self, make_executor, write_file, tmp_path):
        write_file("src/x.ts", "export const original = true;\n")
        executor, _ = make_executor(["// ok"])
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="src/x.ts", description="tweak")

        lines = await drain(executor, [step])

        assert lines[-1].startswith("⚠️")
        assert "original kept" in lines[-1]
        assert (tmp_path / "src/x.ts").read_text() == "export const original = true;\n"
        assert executor.summary.failed == 1

    @pytest.mark.asyncio
    async def test_min_rewrite_length_is_configurable(self, make_executor, write_file, tmp_path):
        write_file("a.py", "x = 1\n")
        executor, _ = make_executor(["x = 2"], config=TeddyConfig(min_rewrite_length=1))
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="a.py", description="bump x")

        await drain(executor, [step])

        assert (tmp_path / "a.py").read_text() == "x = 2\n"

    @pytest.mark.asyncio
    async def test_markdown_rewrite_keeps_whole_document(self, make_executor, write_file, tmp_path):
        write_file("docs/usage.md", "# Usage\n\nRun it.\n")
        rewrite = (
            "# Usage\n\nInstall the dependencies, then run the suite:\n\n"
            "```bash\nnpm install --save-dev typescript ts-node @types/node\nnpm test\n```\n\n"
            "Reports land in `coverage/`.\n"
        )
        executor, _ = make_executor([rewrite])
        step = PlanStep(id=1, type=StepType.EDIT_FILE, target="docs/usage.md",
                        description="Document the test command")

        await drain(executor, [step])

        assert (tmp_path / "docs/usage.md").read_text() == rewrite


class TestRunCommand:

    @pytest.mark.asyncio
    async def test_successful_command(self, make_executor, workspace):
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.RUN_COMMAND, target="true", description="noop")

        lines = await drain(executor, [step])

        assert lines == [
            "⏳ **Step 1/1** Running `true`...\n",
            "✅ **Step 1/1** Ran `true`\n",
        ]
        assert workspace.commands == ["true"]

    @pytest.mark.asyncio
    async def test_failing_command_is_a_warning(self, make_executor):
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.RUN_COMMAND, target="exit 3", description="fail")

        lines = await drain(executor, [step])

        assert lines[-1].startswith("⚠️")
        assert "may need manual execution" in lines[-1]
        assert executor.summary.failed == 1


class TestRun:

    @pytest.mark.asyncio
    async def test_malformed_target_is_skipped(self, make_executor):
        executor, llm = make_executor()
        step = PlanStep(id=1, type=StepType.CREATE_FILE,
                        target="src/a.ts - the entry point", description="x")

        lines = await drain(executor, [step])

        assert lines[0].startswith("⏭️")
        assert "malformed target" in lines[0]
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_command_with_dash_is_not_malformed(self, make_executor, workspace):
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.RUN_COMMAND, target="echo a - b", description="dash")

        lines = await drain(executor, [step])

        assert lines[-1] == "✅ **Step 1/1** Ran `echo a - b`\n"
        assert workspace.commands == ["echo a - b"]

    @pytest.mark.asyncio
    async def test_analyze_is_skipped(self, make_executor):
        executor, _ = make_executor()
        step = PlanStep(id=1, type=StepType.ANALYZE, target="src", description="look around")

        lines = await drain(executor, [step])

        assert lines == ["⏭️ **Step 1/1** analysis step: look around\n"]

    @pytest.mark.asyncio
    async def test_steps_run_in_order_and_failures_continue(self, make_executor, tmp_path):
        executor, _ = make_executor(["", "print('b')"])
        steps = [
            PlanStep(id=1, type=StepType.CREATE_FILE, target="a.py", description="a"),
            PlanStep(id=2, type=StepType.CREATE_FILE, target="b.py", description="b"),
        ]

        lines = await drain(executor, steps)

        assert [line[:1] for line in lines] == ["⏳", "❌", "⏳", "✅"]
        assert "**Step 2/2**" in lines[-1]
        assert (tmp_path / "b.py").exists()
        assert executor.summary.total == 2

    @pytest.mark.asyncio
    async def test_undecodable_file_fails_only_its_step(self, make_executor, tmp_path):
        (tmp_path / "legacy.js").write_bytes(b"// caf\xe9 menu\nfunction order() {}\n")
        executor, _ = make_executor(["export const next = 1;"])
        steps = [
            PlanStep(id=1, type=StepType.INSERT_CODE, target="legacy.js",
                     description="Add a helper", code_block="function helper() {}"),
            PlanStep(id=2, type=StepType.CREATE_FILE, target="next.js", description="next"),
        ]

        lines = await drain(executor, steps)

        assert [line[:1] for line in lines] == ["⏳", "❌", "⏳", "✅"]
        assert "not UTF-8 text" in lines[1]
        assert (tmp_path / "next.js").read_text() == "export const next = 1;\n"
        assert (tmp_path / "legacy.js").read_bytes().startswith(b"// caf\xe9")
        assert (executor.summary.completed, executor.summary.failed) == (1, 1)

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_next_step(self, make_executor):
        cancel = CancelToken()
        executor, llm = make_executor(["print('a')"], cancel=cancel)
        steps = [
            PlanStep(id=1, type=StepType.CREATE_FILE, target="a.py", description="a"),
            PlanStep(id=2, type=StepType.CREATE_FILE, target="b.py", description="b"),
        ]

        seen = []
        with pytest.raises(PipelineCancelled):
            async for line in executor.execute(steps):
                seen.append(line)
                if line.startswith("✅"):
                    cancel.cancel()

        assert len(llm.prompts) == 1
        assert len(seen) == 2
