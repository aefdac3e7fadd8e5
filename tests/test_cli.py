"""
Tests for the nodeflow command-line interface.
"""

import json

import pytest

from nodeflow import cli, config


@pytest.fixture(autouse=True)
def isolated_cli(tmp_path, monkeypatch):
    config_path = tmp_path / "configuration.json"
    config_path.write_text(json.dumps({"execution": {"node_delay_ms": 0}}))
    monkeypatch.setattr(config, "NODEFLOW_CONFIG_FILE", config_path)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


def write_flow(tmp_path, nodes, edges, name="flow.json"):
    path = tmp_path / name
    path.write_text(json.dumps({"name": "Demo", "nodes": nodes, "edges": edges}))
    return str(path)


@pytest.fixture
def chain_flow(tmp_path):
    nodes = [
        {"id": "1", "type": "textInput", "data": {"name": "Input", "text": "Hello world"}},
        {"id": "2", "type": "writer", "data": {"name": "Draft", "context": "{{Input}}"}},
        {"id": "3", "type": "summarizer", "data": {"name": "Summary", "text": "{{Draft}}"}},
    ]
    edges = [{"source": "1", "target": "2"}, {"source": "2", "target": "3"}]
    return write_flow(tmp_path, nodes, edges)


def test_validate_ok(chain_flow, capsys):
    assert cli.main(["validate", chain_flow]) == 0

    assert "Demo is valid" in capsys.readouterr().out


def test_validate_reports_every_problem(tmp_path, capsys):
    nodes = [
        {"id": "1", "type": "writer", "data": {"name": "Same"}},
        {"id": "2", "type": "writer", "data": {"name": "Same"}},
    ]
    path = write_flow(tmp_path, nodes, [])

    assert cli.main(["validate", path]) == 1

    out = capsys.readouterr().out
    assert "Duplicate node names" in out
    assert "No input node" in out


def test_order(chain_flow, capsys):
    assert cli.main(["order", chain_flow]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert [line.split()[1] for line in lines] == ["1", "2", "3"]


def test_order_with_cycle(tmp_path, capsys):
    nodes = [
        {"id": "a", "type": "writer", "data": {"name": "A"}},
        {"id": "b", "type": "writer", "data": {"name": "B"}},
    ]
    edges = [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}]

    assert cli.main(["order", write_flow(tmp_path, nodes, edges)]) == 1

    assert "Circular dependency" in capsys.readouterr().err


def test_run_with_mock_backend(chain_flow, capsys):
    assert cli.main(["run", chain_flow, "--mock", "--json"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["success"] is True
    assert output["path"] == ["1", "2", "3"]
    assert output["results"]["Draft"]["text"] == "[mock] Hello world"
    assert output["results"]["Summary"]["text"] == "[mock] [mock] Hello world"


def test_run_partial_with_seed(chain_flow, tmp_path, capsys):
    seed = tmp_path / "seed.json"
    seed.write_text(json.dumps({"Input": "ignored", "Draft": "Seeded draft"}))

    code = cli.main(["run", chain_flow, "--mock", "--json", "--start", "3", "--seed", str(seed)])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["path"] == ["3"]
    assert output["results"]["Summary"]["text"] == "[mock] Seeded draft"


def test_run_prints_progress_and_results(chain_flow, capsys):
    assert cli.main(["run", chain_flow, "--mock", "--stop-after", "2"]) == 0

    captured = capsys.readouterr()
    assert "=== Draft ===" in captured.out
    assert "=== Summary ===" not in captured.out
    assert "✓ Draft" in captured.err


def test_run_unknown_start_node(chain_flow, capsys):
    assert cli.main(["run", chain_flow, "--mock", "--start", "nope"]) == 1

    assert "Start node 'nope' not found" in capsys.readouterr().err


def test_run_invalid_flow(tmp_path, capsys):
    nodes = [{"id": "1", "type": "textInput", "data": {"name": "Input", "text": " "}}]

    assert cli.main(["run", write_flow(tmp_path, nodes, []), "--mock"]) == 1

    assert "is empty" in capsys.readouterr().err


def test_missing_flow_file(tmp_path, capsys):
    assert cli.main(["validate", str(tmp_path / "missing.json")]) == 1

    assert "Cannot read flow file" in capsys.readouterr().err


def test_load_flow_rejects_non_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[]")

    with pytest.raises(cli.FlowLoadError):
        cli.load_flow(path)
