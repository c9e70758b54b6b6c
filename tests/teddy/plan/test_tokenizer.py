"""Tests for plan segmentation."""

from teddy.plan.tokenizer import BlockKind, section, segment


DOC = """# Plan

## Step 1: Install dependencies

**Target:** `package.json`

```bash
npm install
```

1. **Add a helper**: put it in `src/util.ts`
2. plain item

Closing prose line one
line two
"""


class TestSegment:
    """Block labelling."""

    def test_block_kinds_in_order(self):
        kinds = [b.kind for b in segment(DOC)]
        assert kinds == [
            BlockKind.HEADER,
            BlockKind.HEADER,
            BlockKind.FIELD,
            BlockKind.FENCE,
            BlockKind.NUMBERED,
            BlockKind.NUMBERED,
            BlockKind.PROSE,
        ]

    def test_header_level_and_title(self):
        blocks = segment(DOC)
        assert blocks[1].level == 2
        assert blocks[1].title == "Step 1: Install dependencies"

    def test_field_name_is_lowercased(self):
        field = segment(DOC)[2]
        assert field.name == "target"
        assert field.value == "`package.json`"

    def test_field_with_colon_outside_bold(self):
        blocks = segment("**Action**: Modify the handler")
        assert blocks[0].kind is BlockKind.FIELD
        assert blocks[0].name == "action"
        assert blocks[0].value == "Modify the handler"

    def test_unknown_bold_label_is_prose(self):
        blocks = segment("**Note:** this is not a plan field")
        assert blocks[0].kind is BlockKind.PROSE

    def test_fence_language_and_body(self):
        fence = segment(DOC)[3]
        assert fence.lang == "bash"
        assert fence.body == "npm install"

    def test_header_inside_fence_is_body(self):
        blocks = segment("```python\n# not a header\nx = 1\n```")
        assert len(blocks) == 1
        assert blocks[0].body == "# not a header\nx = 1"

    def test_unterminated_fence_runs_to_end(self):
        blocks = segment("```ts\nconst a = 1;\nconst b = 2;")
        assert blocks[-1].kind is BlockKind.FENCE
        assert blocks[-1].body == "const a = 1;\nconst b = 2;"

    def test_numbered_bold_lead_in(self):
        item = segment(DOC)[4]
        assert item.bold_lead
        assert item.number == 1
        assert item.title == "Add a helper"
        assert item.value == "put it in `src/util.ts`"

    def test_numbered_without_bold(self):
        item = segment(DOC)[5]
        assert not item.bold_lead
        assert item.value == "plain item"

    def test_prose_lines_are_grouped(self):
        prose = segment(DOC)[-1]
        assert prose.text == "Closing prose line one\nline two"


class TestSection:
    """Section extents."""

    def test_header_section_stops_at_same_level(self):
        blocks = segment("## A\ntext a\n### A.1\ntext b\n## B\ntext c")
        body = section(blocks, 0)
        assert [b.kind for b in body] == [BlockKind.PROSE, BlockKind.HEADER, BlockKind.PROSE]

    def test_numbered_section_stops_at_next_item(self):
        blocks = segment("1. **One**\n\n```js\na()\n```\n\n2. **Two**\n\n```js\nb()\n```")
        body = section(blocks, 0, stop_at_numbered=True)
        assert len(body) == 1
        assert body[0].body == "a()"

    def test_numbered_section_stops_at_header(self):
        blocks = segment("1. **One**\ntext\n## Next\nmore")
        body = section(blocks, 0)
        assert [b.kind for b in body] == [BlockKind.PROSE]
