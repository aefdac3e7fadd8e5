"""
Graph Model - plain data describing a workflow.

A workflow is a list of typed, named nodes plus directed edges between
node ids. The visual editor produces these records; the engine only reads
them. Field names follow Python conventions, and the editor's camelCase
names (``topK``, ``systemPrompt``, ``selectedAttachments`` ...) are accepted
as aliases so saved flows load unchanged.

Example:
    flow = Flow(
        name="Summarize",
        nodes=[
            Node(id="1", type="textInput", name="Input", config={"text": "Hello"}),
            Node(id="2", type="summarizer", name="Summary", config={"text": "{{Input}}"}),
        ],
        edges=[Edge(source="1", target="2")],
    )
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NodeType(StrEnum):
    """Closed set of node type tags understood by the engine."""

    TEXT_INPUT = "textInput"
    PDF_INPUT = "pdfInput"
    IMAGE_INPUT = "imageInput"
    AUDIO_INPUT = "audioInput"
    WRITER = "writer"
    REWRITER = "rewriter"
    SUMMARIZER = "summarizer"
    PROMPT = "prompt"
    PROOFREADER = "proofreader"
    TRANSLATOR = "translator"


INPUT_NODE_TYPES = frozenset(
    {NodeType.TEXT_INPUT, NodeType.PDF_INPUT, NodeType.IMAGE_INPUT, NodeType.AUDIO_INPUT}
)
ATTACHMENT_NODE_TYPES = frozenset({NodeType.IMAGE_INPUT, NodeType.AUDIO_INPUT})
CAPABILITY_NODE_TYPES = frozenset(
    {
        NodeType.WRITER,
        NodeType.REWRITER,
        NodeType.SUMMARIZER,
        NodeType.PROMPT,
        NodeType.PROOFREADER,
        NodeType.TRANSLATOR,
    }
)

# Older editor builds saved text inputs under a different tag
LEGACY_TYPE_ALIASES = {"inputNode": NodeType.TEXT_INPUT.value}


class Attachment(BaseModel):
    """
    A binary (image/audio) reference forwarded between nodes.

    ``file_handle`` is opaque: the engine never reads, copies, or decodes it.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, arbitrary_types_allowed=True)

    kind: Literal["image", "audio"]
    name: str = ""
    size: int = 0
    mime_type: str = Field("", alias="mimeType")
    file_handle: Any = Field(
        None,
        validation_alias=AliasChoices("file_handle", "fileHandle", "file"),
        serialization_alias="fileHandle",
    )
    source_node: str | None = Field(None, alias="sourceNode")

    @property
    def has_file(self) -> bool:
        return self.file_handle is not None


class NodeConfig(BaseModel):
    """
    Type-specific configuration bag of a node.

    Only the fields a node's type uses are meaningful; unknown editor
    fields are kept as extras.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, arbitrary_types_allowed=True)

    # Input-bearing text fields
    text: str = ""
    context: str = ""
    instructions: str = ""
    context_hint: str = Field("", alias="contextHint")
    prompt: str = ""
    system_prompt: str = Field("", alias="systemPrompt")

    # Writer / rewriter / summarizer
    tone: str | None = None
    format: str | None = None
    length: str | None = None
    summary_type: str | None = Field(None, alias="type")
    shared_context: str = Field("", alias="sharedContext")

    # Prompt
    temperature: float | None = None
    top_k: int | None = Field(None, alias="topK")
    selected_attachments: list[Any] = Field(default_factory=list, alias="selectedAttachments")
    image_attachment_limit: Any = Field(None, alias="imageAttachmentLimit")
    audio_attachment_limit: Any = Field(None, alias="audioAttachmentLimit")

    # Translator
    source_language: str | None = Field(None, alias="sourceLanguage")
    target_language: str | None = Field(None, alias="targetLanguage")

    # Input nodes
    files: list[Any] = Field(default_factory=list)
    attachment: Attachment | None = None


class Node(BaseModel):
    """A single step in a workflow graph."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str = Field(description="Node type tag; see NodeType")
    name: str = Field(description="Unique, user-visible name; key in the result map")
    config: NodeConfig = Field(default_factory=NodeConfig)

    @property
    def node_type(self) -> NodeType | None:
        """The recognised type tag, or None for tags outside the closed set."""
        try:
            return NodeType(LEGACY_TYPE_ALIASES.get(self.type, self.type))
        except ValueError:
            return None

    @property
    def is_input(self) -> bool:
        return self.node_type in INPUT_NODE_TYPES


class Edge(BaseModel):
    """A directed dependency: ``source`` must run before ``target``."""

    model_config = ConfigDict(extra="allow")

    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    id: str | None = None


class Flow(BaseModel):
    """
    A stored workflow record: ``{name, description, nodes, edges}``.

    Storage itself lives outside the engine; this is only the shape the
    engine receives.
    """

    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    name: str = "Untitled flow"
    description: str = ""
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    @classmethod
    def from_editor(cls, record: Mapping[str, Any]) -> "Flow":
        """
        Build a Flow from an editor record.

        Editor nodes keep their name and configuration together under
        ``data``; canonical nodes (with ``config``) are accepted as-is.
        """
        nodes = []
        for raw in record.get("nodes") or []:
            if "data" not in raw:
                nodes.append(Node.model_validate(raw))
                continue
            data = dict(raw.get("data") or {})
            name = data.pop("name", None) or raw["id"]
            data.pop("label", None)
            node_type = LEGACY_TYPE_ALIASES.get(raw["type"], raw["type"])
            nodes.append(Node(id=str(raw["id"]), type=node_type, name=name, config=data))

        edges = [
            Edge(source=str(e["source"]), target=str(e["target"]), id=e.get("id"))
            for e in record.get("edges") or []
        ]
        return cls(
            id=record.get("id"),
            name=record.get("name") or "Untitled flow",
            description=record.get("description") or "",
            nodes=nodes,
            edges=edges,
        )

    def get_node(self, node_id: str) -> Node | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_node_by_name(self, name: str) -> Node | None:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == node_id]


@dataclass
class ResultPayload:
    """Normalized output of any executed node."""

    text: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    @classmethod
    def normalize(cls, value: Any) -> "ResultPayload":
        """
        Coerce a raw node/backend output into a ResultPayload.

        A bare string becomes text with no attachments; a mapping or object
        exposing ``text``/``attachments`` is coerced field by field.
        """
        if isinstance(value, ResultPayload):
            return cls(text=value.text, attachments=list(value.attachments))
        if not value:
            return cls()
        if isinstance(value, str):
            return cls(text=value)

        if isinstance(value, Mapping):
            text = value.get("text")
            raw_attachments = value.get("attachments")
        else:
            text = getattr(value, "text", None)
            raw_attachments = getattr(value, "attachments", None)

        attachments = []
        if isinstance(raw_attachments, list | tuple):
            for item in raw_attachments:
                if not item:
                    continue
                if isinstance(item, Attachment):
                    attachments.append(item)
                else:
                    attachments.append(Attachment.model_validate(item))

        return cls(text=text if isinstance(text, str) else "", attachments=attachments)

    @property
    def has_text(self) -> bool:
        return bool(self.text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "attachments": [a.model_dump(by_alias=True) for a in self.attachments],
        }
