"""Document content model: structured blocks, flat text, and selection edits.

Content lives in one of two encodings (see DocumentFormat). Blocks are
canonical; blocks -> markdown / plain text is always derivable, while
markdown -> blocks is a lossy line-based import used for model output and
legacy content.

``SuggestionEditor`` drives the selection-scoped edit workflow::

    idle --request_suggestion--> suggestion_pending --accept/reject--> idle

At most one suggestion is pending per editor.
"""

import json
import re
import uuid
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from expertise_engine.core.background import spawn_background
from expertise_engine.core.errors import (
    IllegalTransitionError,
    Outcome,
    StaleReferenceError,
    UpstreamError,
    ValidationError,
    guarded,
)
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_documents import (
    Block,
    BlockType,
    DocumentFormat,
    DocumentRecord,
    EditOperation,
    InlineRun,
    PendingSuggestion,
)

if TYPE_CHECKING:
    from expertise_engine.db.record_store import RecordStore
    from expertise_engine.services.ai_client import AIClient

logger = get_logger(__name__)

# Emphasis must hug its text ("*a*", not "* a *"). Escaped "\*" is a literal
# asterisk, and any asterisk that opens no emphasis stays plain text.
_INLINE_PATTERN = re.compile(
    r"\*\*(?P<bold>(?=[^\s*])(?:\\\*|[^*])+?(?<=\S))\*\*"
    r"|\*(?P<italic>(?=[^\s*])(?:\\\*|[^*])+?(?<=\S))\*"
    r"|(?P<plain>(?:\\\*|[^*])+|\*+)"
)
_NUMBERED_PATTERN = re.compile(r"^\d+\.\s")
_HEADING_PATTERN = re.compile(r"^(#{1,3}) (.*)$")


def new_block_id() -> str:
    """Fresh block id. Ids are never reused within a document."""
    return uuid.uuid4().hex


# ============================================================================
# Markdown -> blocks (lossy import)
# ============================================================================


def parse_inline_markdown(text: str) -> list[InlineRun]:
    """Split a line into plain, **bold** and *italic* runs."""
    runs: list[InlineRun] = []
    for match in _INLINE_PATTERN.finditer(text):
        if match.group("bold") is not None:
            runs.append(InlineRun(text=_unescape(match.group("bold")), styles={"bold": True}))
        elif match.group("italic") is not None:
            runs.append(InlineRun(text=_unescape(match.group("italic")), styles={"italic": True}))
        else:
            plain = _unescape(match.group("plain"))
            if runs and not runs[-1].styles:
                runs[-1] = InlineRun(text=runs[-1].text + plain)
            else:
                runs.append(InlineRun(text=plain))
    return runs


def _unescape(text: str) -> str:
    return text.replace("\\*", "*")


def _escape(text: str) -> str:
    return text.replace("*", "\\*")


def markdown_to_blocks(
    markdown: str,
    id_factory: Callable[[], str] = new_block_id,
) -> list[Block]:
    """Best-effort line-based conversion. One block per line, blank lines kept as empty paragraphs."""
    blocks: list[Block] = []
    for line in markdown.split("\n"):
        line = line.rstrip("\r")
        if not line.strip():
            blocks.append(Block(id=id_factory(), type=BlockType.PARAGRAPH.value))
            continue

        heading = _HEADING_PATTERN.match(line)
        if heading:
            blocks.append(
                Block(
                    id=id_factory(),
                    type=BlockType.HEADING.value,
                    props={"level": len(heading.group(1))},
                    content=parse_inline_markdown(heading.group(2)),
                )
            )
        elif line.startswith("- ") or line.startswith("* "):
            blocks.append(
                Block(
                    id=id_factory(),
                    type=BlockType.BULLET_LIST_ITEM.value,
                    content=parse_inline_markdown(line[2:]),
                )
            )
        elif _NUMBERED_PATTERN.match(line):
            blocks.append(
                Block(
                    id=id_factory(),
                    type=BlockType.NUMBERED_LIST_ITEM.value,
                    content=parse_inline_markdown(_NUMBERED_PATTERN.sub("", line, count=1)),
                )
            )
        else:
            blocks.append(
                Block(id=id_factory(), type=BlockType.PARAGRAPH.value, content=parse_inline_markdown(line))
            )
    return blocks


# ============================================================================
# Blocks -> flat text
# ============================================================================


def _runs_to_markdown(runs: list[InlineRun]) -> str:
    parts = []
    for run in runs:
        text = _escape(run.text)
        if text and run.styles.get("bold"):
            text = f"**{text}**"
        elif text and run.styles.get("italic"):
            text = f"*{text}*"
        parts.append(text)
    return "".join(parts)


def blocks_to_markdown(blocks: list[Block], _depth: int = 0) -> str:
    """Render blocks as markdown. Nested children are indented two spaces per level."""
    lines: list[str] = []
    indent = "  " * _depth
    number = 0
    for block in blocks:
        text = _runs_to_markdown(block.content)
        if block.type == BlockType.NUMBERED_LIST_ITEM.value:
            number += 1
        else:
            number = 0

        if block.type == BlockType.HEADING.value:
            lines.append(f"{'#' * (block.level or 1)} {text}")
        elif block.type == BlockType.BULLET_LIST_ITEM.value:
            lines.append(f"{indent}- {text}")
        elif block.type == BlockType.NUMBERED_LIST_ITEM.value:
            lines.append(f"{indent}{number}. {text}")
        else:
            lines.append(f"{indent}{text}" if text else "")

        if block.children:
            lines.append(blocks_to_markdown(block.children, _depth + 1))
    return "\n".join(lines)


def blocks_to_plain_text(blocks: list[Block]) -> str:
    """Unstyled text of every non-empty block, paragraphs separated by blank lines."""
    parts: list[str] = []
    for block in blocks:
        text = block.text.strip()
        if text:
            parts.append(text)
        if block.children:
            child_text = blocks_to_plain_text(block.children).strip()
            if child_text:
                parts.append(child_text)
    return "\n\n".join(parts)


# ============================================================================
# Serialization
# ============================================================================


def serialize_blocks(blocks: list[Block]) -> str:
    return json.dumps([block.model_dump(mode="json") for block in blocks])


def deserialize_blocks(raw: str) -> list[Block]:
    """Parse a stored block array. Raises ValueError for anything else."""
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("Block content must be a JSON array")
    return [Block.model_validate(item) for item in data]


def content_to_blocks(content: str, content_format: DocumentFormat | None = None) -> list[Block]:
    """Decode stored content. Without a known format, JSON arrays are tried first."""
    if content_format == DocumentFormat.BLOCKS:
        return deserialize_blocks(content)
    if content_format is None:
        try:
            return deserialize_blocks(content)
        except ValueError:
            pass
    return markdown_to_blocks(content)


def content_to_markdown(content: str, content_format: DocumentFormat | None = None) -> str:
    """Flatten stored content to markdown. Markdown content is returned untouched."""
    if content_format == DocumentFormat.MARKDOWN:
        return content
    try:
        return blocks_to_markdown(deserialize_blocks(content))
    except ValueError:
        # json.JSONDecodeError and pydantic errors are both ValueErrors
        return content


# ============================================================================
# DocumentModel
# ============================================================================


class DocumentModel:
    """In-memory block tree of one document."""

    def __init__(self, blocks: list[Block], document_id: str | None = None):
        self.document_id = document_id
        self.blocks = blocks

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentModel":
        return cls(content_to_blocks(record.content, record.format), document_id=record.id)

    @classmethod
    def from_markdown(cls, markdown: str, document_id: str | None = None) -> "DocumentModel":
        return cls(markdown_to_blocks(markdown), document_id=document_id)

    def find_block(self, block_id: str) -> Block | None:
        return _find(self.blocks, block_id)

    def block_ids(self) -> list[str]:
        ids: list[str] = []
        _collect_ids(self.blocks, ids)
        return ids

    def replace_block_text(self, block_id: str, text: str) -> Block:
        """Replace one block's inline content in place. The block keeps its id, type and props."""
        block = self.find_block(block_id)
        if block is None:
            raise StaleReferenceError(f"Block {block_id} no longer exists")
        block.content = parse_inline_markdown(text)
        return block

    def remove_block(self, block_id: str) -> bool:
        return _remove(self.blocks, block_id)

    def append_block(self, block_type: BlockType, text: str, **props) -> Block:
        block = Block(id=new_block_id(), type=block_type.value, props=props, content=parse_inline_markdown(text))
        self.blocks.append(block)
        return block

    def to_markdown(self) -> str:
        return blocks_to_markdown(self.blocks)

    def to_plain_text(self) -> str:
        return blocks_to_plain_text(self.blocks)

    def serialize(self) -> str:
        return serialize_blocks(self.blocks)


def _find(blocks: list[Block], block_id: str) -> Block | None:
    for block in blocks:
        if block.id == block_id:
            return block
        found = _find(block.children, block_id)
        if found is not None:
            return found
    return None


def _collect_ids(blocks: list[Block], ids: list[str]) -> None:
    for block in blocks:
        ids.append(block.id)
        _collect_ids(block.children, ids)


def _remove(blocks: list[Block], block_id: str) -> bool:
    for index, block in enumerate(blocks):
        if block.id == block_id:
            del blocks[index]
            return True
        if _remove(block.children, block_id):
            return True
    return False


# ============================================================================
# Selection-scoped suggestion workflow
# ============================================================================


class SuggestionState(str, Enum):
    IDLE = "idle"
    SUGGESTION_PENDING = "suggestion_pending"


class SuggestionEditor:
    """Propose -> accept/reject workflow for one open editor.

    When a store is given, accepted edits are saved and a summary
    regeneration is spawned in the background.
    """

    def __init__(
        self,
        document: DocumentModel,
        ai_client: "AIClient",
        store: "RecordStore | None" = None,
    ):
        self.document = document
        self.ai_client = ai_client
        self.store = store
        self._pending: PendingSuggestion | None = None
        self._requesting = False

    @property
    def state(self) -> SuggestionState:
        return SuggestionState.SUGGESTION_PENDING if self._pending else SuggestionState.IDLE

    @property
    def pending(self) -> PendingSuggestion | None:
        return self._pending

    @guarded
    async def request_suggestion(
        self,
        selected_text: str,
        target_block_id: str,
        operation: EditOperation | str,
    ) -> PendingSuggestion:
        if self._pending is not None or self._requesting:
            raise IllegalTransitionError("Accept or reject the current suggestion first")
        if not selected_text or not selected_text.strip():
            raise ValidationError("Select some text to edit")
        try:
            operation = EditOperation(operation)
        except ValueError:
            raise ValidationError(f"Unknown edit operation: {operation}") from None
        if self.document.find_block(target_block_id) is None:
            raise StaleReferenceError(f"Block {target_block_id} no longer exists")

        self._requesting = True
        try:
            suggested = await self.ai_client.suggest_edit(selected_text, operation)
        finally:
            self._requesting = False

        if not suggested or not suggested.strip():
            raise UpstreamError("The AI service returned an empty suggestion")

        self._pending = PendingSuggestion(
            original_text=selected_text,
            suggested_text=suggested.strip(),
            target_block_id=target_block_id,
            operation=operation,
        )
        logger.info(f"Suggestion pending for block {target_block_id} ({operation.value})")
        return self._pending

    @guarded
    async def accept(self) -> Block:
        suggestion = self._pending
        if suggestion is None:
            raise IllegalTransitionError("No suggestion to accept")

        block = self.document.find_block(suggestion.target_block_id)
        if block is None:
            self._pending = None
            raise StaleReferenceError("The document changed since you made this edit")

        previous_content = block.content
        self.document.replace_block_text(block.id, suggestion.suggested_text)
        if self.store is not None and self.document.document_id:
            try:
                await self._save()
            except Exception:
                block.content = previous_content
                raise

        self._pending = None
        logger.info(f"Accepted suggestion for block {block.id}")
        return block

    def reject(self) -> Outcome[None]:
        """Discard the pending suggestion. Rejecting with nothing pending is a no-op."""
        if self._pending is not None:
            logger.info(f"Rejected suggestion for block {self._pending.target_block_id}")
            self._pending = None
        return Outcome.success(None)

    async def _save(self) -> None:
        document_id = self.document.document_id
        await self.store.update_document(
            document_id,
            content=self.document.serialize(),
            format=DocumentFormat.BLOCKS.value,
            plain_text=self.document.to_plain_text(),
        )
        spawn_background(
            self.ai_client.request_summary(document_id),
            name=f"summary:{document_id}",
        )
