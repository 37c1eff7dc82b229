import json

import pytest

from canvas_backend.cli import build_parser, main

FLOWCHART = "graph LR\nA --> B\nB --> C"


def run(capsys, *argv):
    with pytest.raises(SystemExit) as exc:
        main(list(argv))
    return exc.value.code, json.loads(capsys.readouterr().out)


def test_parse_command(capsys):
    code, data = run(capsys, "parse", "--text", FLOWCHART)
    assert code == 0
    assert data["status"] == "ok"
    assert [n["id"] for n in data["graph"]["nodes"]] == ["A", "B", "C"]


def test_layout_command(capsys):
    code, data = run(capsys, "layout", "--text", "- root\n  - child", "--format", "outline")
    assert code == 0
    assert data["layout"]["layers"] == [["node0"], ["node1"]]


def test_compile_command(capsys, tmp_path):
    source = tmp_path / "diagram.txt"
    source.write_text(FLOWCHART, encoding="utf-8")

    code, data = run(capsys, "compile", "--file", str(source), "--no-bend", "--style", "serious")

    assert code == 0
    assert data["count"] == 5
    arrows = [e for e in data["elements"] if e["type"] == "arrow"]
    assert all(e["arrow_curve"] == 0 for e in arrows)


def test_parse_error_exits_nonzero(capsys):
    code, data = run(capsys, "parse", "--text", "", "--format", "uml")
    assert code == 1
    assert data["status"] == "error"


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
