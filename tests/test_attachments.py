"""
Tests for prompt attachment selection and reconciliation.
"""

import math

import pytest

from nodeflow.graph.attachments import (
    collect_selected_attachments,
    normalize_attachment_limit,
    selected_names,
    sync_prompt_attachment_selections,
)
from nodeflow.graph.models import Attachment, Edge, Node, ResultPayload


def media(kind, name):
    return Attachment(kind=kind, name=name, file_handle=f"{name}-handle".encode())


def prompt(selected=None, **limits):
    config = {"selectedAttachments": selected or [], **limits}
    return Node(id="p", type="prompt", name="Ask", config=config)


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, 1),
        (True, 1),
        ("abc", 1),
        (-2, 1),
        (math.inf, 1),
        (float("nan"), 1),
        (0, 0),
        (3, 3),
        ("2", 2),
        (2.7, 2),
    ],
)
def test_normalize_attachment_limit(value, expected):
    assert normalize_attachment_limit(value) == expected


def test_selected_names_accepts_strings_and_dicts():
    node = prompt(["A", {"nodeName": "B"}, {"node_name": "C"}, {"other": 1}, 7, ""])

    assert selected_names(node) == ["A", "B", "C"]


def test_collect_honours_per_kind_limits():
    node = prompt(["Photos", "Clips"], imageAttachmentLimit=2, audioAttachmentLimit=1)
    results = {
        "Photos": ResultPayload(attachments=[media("image", f"{i}.png") for i in range(3)]),
        "Clips": ResultPayload(attachments=[media("audio", "a.wav"), media("audio", "b.wav")]),
    }

    collected = collect_selected_attachments(node, results)

    assert [a.name for a in collected] == ["0.png", "1.png", "a.wav"]
    assert {a.source_node for a in collected} == {"Photos", "Clips"}


def test_zero_limit_is_unlimited():
    node = prompt(["Photos"], imageAttachmentLimit=0)
    results = {
        "Photos": ResultPayload(attachments=[media("image", f"{i}.png") for i in range(5)]),
    }

    assert len(collect_selected_attachments(node, results)) == 5


def test_missing_limit_defaults_to_one():
    node = prompt(["Photos"])
    results = {
        "Photos": ResultPayload(attachments=[media("image", "a.png"), media("image", "b.png")]),
    }

    assert [a.name for a in collect_selected_attachments(node, results)] == ["a.png"]


def test_attachments_without_file_are_not_forwarded():
    node = prompt(["Photos"], imageAttachmentLimit=0)
    results = {
        "Photos": ResultPayload(
            attachments=[Attachment(kind="image", name="empty.png"), media("image", "ok.png")]
        ),
    }

    assert [a.name for a in collect_selected_attachments(node, results)] == ["ok.png"]


def test_collect_does_not_mutate_results():
    original = media("image", "a.png")
    results = {"Photos": ResultPayload(attachments=[original])}

    collected = collect_selected_attachments(prompt(["Photos"]), results)

    assert collected[0].source_node == "Photos"
    assert original.source_node is None


def test_unknown_selection_is_ignored():
    assert collect_selected_attachments(prompt(["Nowhere"]), {}) == []


# === RECONCILIATION ===


def graph_with_sources():
    nodes = [
        Node(id="i1", type="imageInput", name="Photo 1"),
        Node(id="i2", type="imageInput", name="Photo 2"),
        Node(id="a1", type="audioInput", name="Clip"),
        Node(id="t", type="textInput", name="Text"),
    ]
    edges = [Edge(source=n.id, target="p") for n in nodes]
    return nodes, edges


def test_sync_auto_selects_up_to_limits():
    sources, edges = graph_with_sources()
    nodes = [*sources, prompt()]

    updated = sync_prompt_attachment_selections(nodes, edges)

    assert updated[-1].config.selected_attachments == ["Photo 1", "Clip"]
    assert nodes[-1].config.selected_attachments == []


def test_sync_keeps_existing_choice_and_drops_stale_names():
    sources, edges = graph_with_sources()
    nodes = [*sources, prompt(["Photo 2", "Gone"], imageAttachmentLimit=1)]

    updated = sync_prompt_attachment_selections(nodes, edges)

    assert updated[-1].config.selected_attachments == ["Photo 2", "Clip"]


def test_sync_unlimited_selects_every_connected_source():
    sources, edges = graph_with_sources()
    nodes = [*sources, prompt(imageAttachmentLimit=0)]

    updated = sync_prompt_attachment_selections(nodes, edges)

    assert updated[-1].config.selected_attachments == ["Photo 1", "Photo 2", "Clip"]


def test_sync_returns_unchanged_nodes_as_is():
    sources, edges = graph_with_sources()
    node = prompt(["Photo 1", "Clip"])
    nodes = [*sources, node]

    updated = sync_prompt_attachment_selections(nodes, edges)

    assert updated[-1] is node
    assert updated[:-1] == sources
