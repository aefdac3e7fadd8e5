"""
Tests for static graph validation.
"""

from nodeflow.graph.models import Attachment, Edge, Node
from nodeflow.graph.validator import validate_graph


def text_input(node_id="1", name="Input", text="Hello"):
    return Node(id=node_id, type="textInput", name=name, config={"text": text})


def writer(node_id="2", name="Writer"):
    return Node(id=node_id, type="writer", name=name, config={"context": "{{Input}}"})


def test_valid_graph():
    result = validate_graph([text_input(), writer()], [Edge(source="1", target="2")])

    assert result.valid is True
    assert result.errors == []
    assert result.error == ""


def test_empty_graph_short_circuits():
    result = validate_graph([], [Edge(source="x", target="y")])

    assert result.valid is False
    assert len(result.errors) == 1
    assert "empty" in result.errors[0]


def test_duplicate_names_are_reported():
    nodes = [text_input("1", "Input"), text_input("2", "Input")]

    result = validate_graph(nodes, [])

    assert result.valid is False
    assert any("Duplicate node names" in e and "Input" in e for e in result.errors)


def test_duplicate_ids_are_reported():
    nodes = [text_input("1", "A"), text_input("1", "B")]

    result = validate_graph(nodes, [])

    assert [e for e in result.errors if "uplicate node ids" in e] == [
        "Duplicate node ids detected: 1."
    ]


def test_missing_input_node():
    nodes = [writer("1", "W1"), writer("2", "W2")]

    result = validate_graph(nodes, [Edge(source="1", target="2")])

    assert any("No input node" in e for e in result.errors)


def test_disconnected_nodes_exclude_inputs():
    nodes = [text_input(), writer("2", "Linked"), writer("3", "Orphan"), text_input("4", "Extra")]

    result = validate_graph(nodes, [Edge(source="1", target="2")])

    disconnected = [e for e in result.errors if "Disconnected" in e]
    assert len(disconnected) == 1
    assert "Orphan" in disconnected[0]
    assert "Extra" not in disconnected[0]


def test_cycle_is_reported_not_raised():
    nodes = [text_input(), writer("A", "A"), writer("B", "B")]
    edges = [
        Edge(source="1", target="A"),
        Edge(source="A", target="B"),
        Edge(source="B", target="A"),
    ]

    result = validate_graph(nodes, edges)

    assert result.valid is False
    assert any("Circular dependency" in e for e in result.errors)


def test_two_node_cycle_without_input():
    nodes = [writer("A", "A"), writer("B", "B")]
    edges = [Edge(source="A", target="B"), Edge(source="B", target="A")]

    result = validate_graph(nodes, edges)

    assert any("Circular dependency" in e for e in result.errors)
    assert any("No input node" in e for e in result.errors)


def test_dangling_edges_are_reported():
    result = validate_graph([text_input()], [Edge(source="1", target="ghost")])

    assert any("missing target node 'ghost'" in e for e in result.errors)


def test_unsupported_type():
    nodes = [text_input(), Node(id="2", type="teleporter", name="Beam")]

    result = validate_graph(nodes, [Edge(source="1", target="2")])

    assert any('unsupported type "teleporter"' in e for e in result.errors)


def test_blank_text_input():
    result = validate_graph([text_input(text="   ")], [])

    assert any('Input node "Input" is empty' in e for e in result.errors)


def test_pdf_input_without_files_or_text():
    pdf = Node(id="1", type="pdfInput", name="Doc", config={})

    result = validate_graph([pdf], [])

    assert any("has no files selected" in e for e in result.errors)
    assert any("has no extracted text" in e for e in result.errors)


def test_pdf_input_with_content_is_valid():
    pdf = Node(
        id="1", type="pdfInput", name="Doc", config={"files": ["a.pdf"], "text": "content"}
    )

    assert validate_graph([pdf], []).valid is True


def test_media_inputs_need_a_bound_file():
    image = Node(id="1", type="imageInput", name="Photo", config={})
    audio = Node(
        id="2",
        type="audioInput",
        name="Clip",
        config={"attachment": Attachment(kind="audio", name="a.wav")},
    )

    result = validate_graph([image, audio], [])

    assert any('Image Input node "Photo" has no image selected' in e for e in result.errors)
    assert any('Audio Input node "Clip" has no audio selected' in e for e in result.errors)


def test_media_input_with_file_is_valid():
    image = Node(
        id="1",
        type="imageInput",
        name="Photo",
        config={"attachment": {"kind": "image", "name": "a.png", "fileHandle": b"png"}},
    )

    assert validate_graph([image], []).valid is True


def test_all_problems_are_accumulated():
    nodes = [writer("1", "Same"), writer("2", "Same")]
    edges = [Edge(source="1", target="2"), Edge(source="2", target="1")]

    result = validate_graph(nodes, edges)

    assert len(result.errors) == 3
    assert result.error == "; ".join(result.errors)
