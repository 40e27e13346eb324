"""Tests for the document content model and the suggestion workflow."""

import json

import pytest

from expertise_engine.core.background import drain_background
from expertise_engine.core.document_model import (
    DocumentModel,
    SuggestionEditor,
    SuggestionState,
    blocks_to_markdown,
    blocks_to_plain_text,
    content_to_blocks,
    content_to_markdown,
    markdown_to_blocks,
    parse_inline_markdown,
)
from expertise_engine.core.errors import UpstreamError
from expertise_engine.core.schemas_documents import Block, BlockType, DocumentFormat, EditOperation

SAMPLE_MARKDOWN = """# Renewal Rescue
## What happened
The champion **left** in *March*.
- Found a new sponsor
- Reset the success plan
1. Mapped stakeholders
2. Ran an exec review"""


def _counter_ids():
    counter = iter(range(1000))
    return lambda: f"b{next(counter)}"


# ============================================================================
# Conversions
# ============================================================================


def test_markdown_to_blocks_types():
    blocks = markdown_to_blocks(SAMPLE_MARKDOWN, id_factory=_counter_ids())

    assert [b.type for b in blocks] == [
        "heading",
        "heading",
        "paragraph",
        "bulletListItem",
        "bulletListItem",
        "numberedListItem",
        "numberedListItem",
    ]
    assert [b.id for b in blocks] == [f"b{i}" for i in range(7)]
    assert blocks[0].level == 1
    assert blocks[1].level == 2
    assert blocks[3].text == "Found a new sponsor"
    assert blocks[5].text == "Mapped stakeholders"


def test_inline_styles():
    runs = parse_inline_markdown("The champion **left** in *March*.")

    assert [(r.text, r.styles) for r in runs] == [
        ("The champion ", {}),
        ("left", {"bold": True}),
        (" in ", {}),
        ("March", {"italic": True}),
        (".", {}),
    ]


@pytest.mark.parametrize(
    "line",
    [
        "Margin went from 5 * 3 to 2 ** 4",
        "Growth was 3x (see note*)",
        "Footnote* and *** rule",
        "a * b * c",
    ],
)
def test_stray_asterisks_stay_in_text(line):
    blocks = markdown_to_blocks(line)

    assert blocks[0].text == line
    assert [r.styles for r in blocks[0].content] == [{}]


def test_literal_asterisks_survive_markdown_round_trip():
    model = DocumentModel([])
    model.append_block(BlockType.PARAGRAPH, "Rated 4* by *most* users")
    model.append_block(BlockType.HEADING, "Step *1*: discovery", level=2)

    markdown = model.to_markdown()
    again = markdown_to_blocks(markdown)

    assert markdown == "Rated 4\\* by *most* users\n## Step *1*: discovery"
    assert [b.text for b in again] == ["Rated 4* by most users", "Step 1: discovery"]
    assert again[0].content[1].styles == {"italic": True}
    assert blocks_to_markdown(again) == markdown


def test_blocks_to_markdown_reproduces_supported_subset():
    blocks = markdown_to_blocks(SAMPLE_MARKDOWN)

    assert blocks_to_markdown(blocks) == SAMPLE_MARKDOWN


def test_blank_lines_become_empty_paragraphs():
    blocks = markdown_to_blocks("# Title\n\nBody")

    assert [b.type for b in blocks] == ["heading", "paragraph", "paragraph"]
    assert blocks[1].content == []
    assert blocks_to_markdown(blocks) == "# Title\n\nBody"


def test_plain_text_drops_markup_and_empty_blocks():
    blocks = markdown_to_blocks("# Title\n\nThe **bold** move\n- item")

    assert blocks_to_plain_text(blocks) == "Title\n\nThe bold move\n\nitem"


def test_nested_children_are_indented():
    parent = Block(
        id="p",
        type=BlockType.BULLET_LIST_ITEM.value,
        content=parse_inline_markdown("Parent"),
        children=[Block(id="c", type=BlockType.BULLET_LIST_ITEM.value, content=parse_inline_markdown("Child"))],
    )

    assert blocks_to_markdown([parent]) == "- Parent\n  - Child"
    assert blocks_to_plain_text([parent]) == "Parent\n\nChild"


def test_foreign_block_types_survive_serialization():
    raw = json.dumps([{"id": "t1", "type": "table", "props": {"rows": 2}, "content": [], "extra": {"k": 1}}])

    blocks = content_to_blocks(raw, DocumentFormat.BLOCKS)
    again = json.loads(DocumentModel(blocks).serialize())

    assert again[0]["type"] == "table"
    assert again[0]["props"] == {"rows": 2}
    assert again[0]["extra"] == {"k": 1}


def test_content_to_markdown_falls_back_to_raw_text():
    assert content_to_markdown("# Plain markdown") == "# Plain markdown"
    assert content_to_markdown("[1, 2") == "[1, 2"
    assert content_to_markdown("# Stored", DocumentFormat.MARKDOWN) == "# Stored"


def test_content_to_blocks_sniffs_json_without_format():
    serialized = DocumentModel.from_markdown("## Heading").serialize()

    blocks = content_to_blocks(serialized)

    assert blocks[0].type == "heading"
    assert blocks[0].level == 2


def test_replace_block_text_keeps_id_and_type():
    model = DocumentModel.from_markdown("## Old heading")
    block_id = model.blocks[0].id

    block = model.replace_block_text(block_id, "New *heading*")

    assert block.id == block_id
    assert block.type == "heading"
    assert block.level == 2
    assert model.to_markdown() == "## New *heading*"
    assert model.to_plain_text() == "New heading"
    assert model.block_ids() == [block_id]


def test_remove_and_append_blocks():
    model = DocumentModel.from_markdown("first\nsecond")
    first_id = model.blocks[0].id

    assert model.remove_block(first_id) is True
    assert model.remove_block(first_id) is False
    appended = model.append_block(BlockType.HEADING, "Added", level=3)

    assert appended.id != first_id
    assert model.to_markdown() == "second\n### Added"


# ============================================================================
# SuggestionEditor
# ============================================================================


def _editor(ai_client, store=None, markdown="# Title\nThis are a sentence."):
    model = DocumentModel.from_markdown(markdown)
    if store is not None:
        record = store.add_document(content=model.serialize(), format=DocumentFormat.BLOCKS)
        model.document_id = record.id
    return SuggestionEditor(model, ai_client, store=store), model


@pytest.mark.asyncio
async def test_accept_replaces_target_block(ai_client):
    editor, model = _editor(ai_client)
    target = model.blocks[1]
    ai_client.edit_text = "This is a sentence."

    outcome = await editor.request_suggestion("This are a sentence.", target.id, "fix-grammar")
    assert outcome.ok
    assert editor.state == SuggestionState.SUGGESTION_PENDING
    assert ai_client.edit_calls == [("This are a sentence.", EditOperation.FIX_GRAMMAR)]

    accepted = await editor.accept()
    assert accepted.ok
    assert model.find_block(target.id).text == "This is a sentence."
    assert editor.state == SuggestionState.IDLE


@pytest.mark.asyncio
async def test_accept_keeps_every_character_of_suggestion(store, ai_client):
    editor, model = _editor(ai_client, store=store)
    target = model.blocks[1]
    ai_client.edit_text = "Growth was 3x (see note*) and 5 ** 2 = 25"

    await editor.request_suggestion("This are a sentence.", target.id, "improve")
    assert (await editor.accept()).ok
    await drain_background()

    assert model.find_block(target.id).text == "Growth was 3x (see note*) and 5 ** 2 = 25"
    record = store.documents[model.document_id]
    assert record.plain_text == "Title\n\nGrowth was 3x (see note*) and 5 ** 2 = 25"
    stored = content_to_blocks(record.content, record.format)
    assert stored[1].text == "Growth was 3x (see note*) and 5 ** 2 = 25"


@pytest.mark.asyncio
async def test_reject_twice_is_a_no_op(ai_client):
    editor, model = _editor(ai_client)
    before = model.to_markdown()
    await editor.request_suggestion("This are a sentence.", model.blocks[1].id, EditOperation.IMPROVE)

    assert editor.reject().ok
    assert editor.reject().ok
    assert editor.state == SuggestionState.IDLE
    assert model.to_markdown() == before


@pytest.mark.asyncio
async def test_accept_after_block_removed_is_stale(ai_client):
    editor, model = _editor(ai_client)
    target_id = model.blocks[1].id
    await editor.request_suggestion("This are a sentence.", target_id, EditOperation.SIMPLIFY)
    model.remove_block(target_id)
    before = model.to_markdown()

    outcome = await editor.accept()

    assert outcome.kind == "stale_reference"
    assert model.to_markdown() == before
    assert editor.state == SuggestionState.IDLE


@pytest.mark.asyncio
async def test_second_request_while_pending_is_illegal(ai_client):
    editor, model = _editor(ai_client)
    target_id = model.blocks[1].id
    await editor.request_suggestion("This are a sentence.", target_id, EditOperation.EXPAND)

    outcome = await editor.request_suggestion("Title", model.blocks[0].id, EditOperation.EXPAND)

    assert outcome.kind == "illegal_transition"
    assert editor.pending.target_block_id == target_id
    assert len(ai_client.edit_calls) == 1


@pytest.mark.asyncio
async def test_request_validation(ai_client):
    editor, model = _editor(ai_client)

    assert (await editor.request_suggestion("  ", model.blocks[1].id, "improve")).kind == "validation"
    assert (await editor.request_suggestion("text", model.blocks[1].id, "shout")).kind == "validation"
    assert (await editor.request_suggestion("text", "gone", "improve")).kind == "stale_reference"
    assert (await editor.accept()).kind == "illegal_transition"
    assert ai_client.edit_calls == []


@pytest.mark.asyncio
async def test_failed_request_leaves_editor_idle(ai_client):
    editor, model = _editor(ai_client)
    ai_client.edit_text = UpstreamError("Rate limit exceeded")

    outcome = await editor.request_suggestion("This are a sentence.", model.blocks[1].id, "improve")

    assert outcome.kind == "upstream"
    assert editor.state == SuggestionState.IDLE


@pytest.mark.asyncio
async def test_accept_persists_and_requests_summary(store, ai_client):
    editor, model = _editor(ai_client, store=store)
    ai_client.edit_text = "This is **a** sentence."

    await editor.request_suggestion("This are a sentence.", model.blocks[1].id, "fix-grammar")
    assert (await editor.accept()).ok
    await drain_background()

    record = store.documents[model.document_id]
    assert record.format == DocumentFormat.BLOCKS
    assert record.plain_text == "Title\n\nThis is a sentence."
    assert content_to_markdown(record.content, record.format) == "# Title\nThis is **a** sentence."
    assert ai_client.summary_calls == [model.document_id]


@pytest.mark.asyncio
async def test_failed_save_restores_block(store, ai_client):
    editor, model = _editor(ai_client, store=store)
    before = model.to_markdown()
    store.fail_on["update_document"] = ValueError("write failed")

    await editor.request_suggestion("This are a sentence.", model.blocks[1].id, "improve")
    outcome = await editor.accept()

    assert outcome.kind == "upstream"
    assert model.to_markdown() == before
    assert editor.state == SuggestionState.SUGGESTION_PENDING
