"""Tests for structured plan extraction."""

from teddy.plan.extractors import parse_structured_plan, shell_commands
from teddy.plan.models import StepType
from teddy.plan.routing import StepRouting


HEADED_SHELL = """## Step 1: Install dependencies

```bash
# install runtime and test deps
npm install express

npm install --save-dev jest
```
"""

HEADED_CODE = """## Step 1: Update the server entry point

**Target:** `src/server.ts`
**Action:** Replace the hard-coded port

```typescript
const port = Number(process.env.PORT ?? 3000);
```

## Step 2: Add a health check

```typescript
// src/health.ts
export function health() {
  return { ok: true };
}
```
"""

TARGET_THEN_CODE = """Some intro text.

**Target:** `src/x.ts`
**Action:** Update error handling in fetchData

```typescript
export async function fetchData() {
  try { return await get(); } catch (err) { throw err; }
}
```

**Target:** `src/y.ts`

```typescript
export const y = 1;
```
"""

NUMBERED = """1. **Update the request handler**: switch to the new `src/api/handler.ts` module.

```typescript
export function handle(req: Request) {
  return respond(req);
}
```

2. **Add logging**: add a logger to `src/log.ts`

3. **Background**: the service runs on Node 20.
"""


class TestHeadedSteps:
    """`## Step N:` sections."""

    def test_shell_block_yields_one_command_per_line(self):
        steps = parse_structured_plan(HEADED_SHELL)
        assert [s.type for s in steps] == [StepType.RUN_COMMAND, StepType.RUN_COMMAND]
        assert [s.target for s in steps] == ["npm install express", "npm install --save-dev jest"]
        assert [s.id for s in steps] == [1, 2]

    def test_explicit_target_with_modification_title(self):
        steps = parse_structured_plan(HEADED_CODE)
        first = steps[0]
        assert first.type is StepType.EDIT_FILE
        assert first.target == "src/server.ts"
        assert "process.env.PORT" in first.code_block
        assert "Replace the hard-coded port" in first.description

    def test_inferred_target_with_creation_title(self):
        steps = parse_structured_plan(HEADED_CODE)
        second = steps[1]
        assert second.type is StepType.INSERT_CODE
        assert second.target == "src/health.ts"

    def test_task_header_is_a_headed_step(self):
        text = "### Task 1: Update error handling\n\n**Target:** src/x.ts\n\n```ts\nexport const a = 1;\n```\n"
        steps = parse_structured_plan(text)
        assert len(steps) == 1
        assert steps[0].type is StepType.EDIT_FILE
        assert steps[0].target == "src/x.ts"

    def test_block_without_any_target_is_dropped(self):
        text = "## Step 1: Update things\n\n```ts\nconst a = 1;\n```\n"
        assert parse_structured_plan(text) == []


class TestTargetThenCode:
    """`**Target:**` blocks outside step sections."""

    def test_action_text_routes_to_edit(self):
        steps = parse_structured_plan(TARGET_THEN_CODE)
        assert steps[0].target == "src/x.ts"
        assert steps[0].type is StepType.EDIT_FILE
        assert "fetchData" in steps[0].code_block

    def test_default_action_is_modify(self):
        steps = parse_structured_plan(TARGET_THEN_CODE)
        assert steps[1].target == "src/y.ts"
        assert steps[1].type is StepType.EDIT_FILE
        assert steps[1].description == "Modify src/y.ts"

    def test_shell_block_after_target_is_a_command(self):
        text = "**Target:** `src/a.ts`\n\n```bash\nnpm test\n```\n"
        steps = parse_structured_plan(text)
        assert [(s.type, s.target) for s in steps] == [(StepType.RUN_COMMAND, "npm test")]


class TestStandaloneShell:
    """Shell blocks outside any other pattern."""

    def test_each_line_is_a_command(self):
        text = "Run these:\n\n```sh\n$ make build\n# comment\nmake test\n```\n"
        steps = parse_structured_plan(text)
        assert [s.target for s in steps] == ["make build", "make test"]

    def test_non_shell_block_alone_is_ignored(self):
        assert parse_structured_plan("```json\n{\"a\": 1}\n```") == []


class TestNumberedItems:
    """`N. **Title**: details` items."""

    def test_update_title_with_inline_target_is_edit(self):
        steps = parse_structured_plan(NUMBERED)
        first = steps[0]
        assert first.type is StepType.EDIT_FILE
        assert first.target == "src/api/handler.ts"
        assert "respond(req)" in first.code_block

    def test_action_verb_and_target_without_code(self):
        steps = parse_structured_plan(NUMBERED)
        second = steps[1]
        assert second.type is StepType.EDIT_FILE
        assert second.target == "src/log.ts"
        assert second.code_block is None

    def test_informational_item_is_dropped(self):
        steps = parse_structured_plan(NUMBERED)
        assert len(steps) == 2

    def test_add_title_routes_to_insert(self):
        text = "1. **Add a validator** in `src/validate.ts`\n\n```ts\nexport const ok = true;\n```\n"
        steps = parse_structured_plan(text)
        assert steps[0].type is StepType.INSERT_CODE


class TestPrecedence:
    """Claimed blocks are not re-derived by later patterns."""

    def test_numbered_items_inside_step_section_are_not_duplicated(self):
        text = (
            "## Step 1: Update utils\n\n"
            "**Target:** `src/utils.ts`\n\n"
            "1. **Update** the helper in `src/utils.ts`\n\n"
            "```ts\nexport const x = 2;\n```\n"
        )
        steps = parse_structured_plan(text)
        assert len(steps) == 1
        assert steps[0].target == "src/utils.ts"

    def test_steps_follow_document_order(self):
        text = (
            "```bash\nnpm ci\n```\n\n"
            "## Step 1: Update config\n\n**Target:** `a.json`\n\n```json\n{}\n```\n"
        )
        steps = parse_structured_plan(text)
        assert [s.type for s in steps] == [StepType.RUN_COMMAND, StepType.EDIT_FILE]
        assert [s.id for s in steps] == [1, 2]

    def test_routing_is_configurable(self):
        routing = StepRouting(
            modification_verbs=frozenset({"tweak"}),
            creation_verbs=frozenset(),
            action_verbs=frozenset({"tweak"}),
        )
        text = "## Step 1: Update config\n\n**Target:** `a.ts`\n\n```ts\nx\n```\n"
        assert parse_structured_plan(text, routing)[0].type is StepType.INSERT_CODE


def test_shell_commands_strip_prompts_and_comments():
    body = "# setup\n$ pip install -e .\n\n> pytest -q\nREM windows comment"
    assert shell_commands(body) == ["pip install -e .", "pytest -q"]
