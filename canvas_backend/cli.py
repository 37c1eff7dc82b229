#!/usr/bin/env python3
"""Canvas CLI - parse, lay out and compile diagram text, push it to a backend, or serve one."""

import argparse
import json
import sys

import httpx

from canvas_core.compiler import CompileOptions, compile_graph
from canvas_core.config import get_settings
from canvas_core.errors import ParseError
from canvas_core.layout import choose_layout
from canvas_core.logging_config import setup_logging
from canvas_core.parsers import DiagramFormat, parse_diagram
from canvas_core.validation import validate_graph, validation_summary


def _api_base() -> str:
    settings = get_settings()
    return f"http://{settings.api_host}:{settings.api_port}/api"


def _json_out(data, code: int = 0):
    print(json.dumps(data))
    sys.exit(code)


def _read_text(args) -> str:
    """Diagram text from --text, --file, or stdin (in that order)."""
    if args.text is not None:
        return args.text
    if args.file:
        with open(args.file, 'r', encoding='utf-8') as f:
            return f.read()
    return sys.stdin.read()


def _parse(args):
    try:
        return parse_diagram(_read_text(args), args.format)
    except ParseError as e:
        _json_out({"status": "error", "error": str(e)}, code=1)


def _layout_kwargs() -> dict:
    settings = get_settings()
    return {"node_spacing": settings.node_spacing, "layer_spacing": settings.layer_spacing}


# ── Offline ──────────────────────────────────────────────────────────────────

def cmd_parse(args):
    graph = _parse(args)
    issues = validate_graph(graph)
    _json_out({
        "status": "ok",
        "graph": graph.to_json_dict(),
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues),
    })


def cmd_layout(args):
    graph = _parse(args)
    layout = choose_layout(graph, **_layout_kwargs())
    _json_out({"status": "ok", "layout": layout.to_json_dict()})


def cmd_compile(args):
    graph = _parse(args)
    layout = choose_layout(graph, **_layout_kwargs())
    options = CompileOptions(
        enable_bend=not args.no_bend,
        style_preset=args.style,
        **_layout_kwargs(),
    )
    elements = compile_graph(graph, layout, args.start_x, args.start_y, options)
    _json_out({
        "status": "ok",
        "count": len(elements),
        "elements": [e.model_dump(mode="json") for e in elements],
    })


# ── Backend ──────────────────────────────────────────────────────────────────

def cmd_push(args):
    payload = {
        "text": _read_text(args),
        "format": args.format,
        "start_x": args.start_x,
        "start_y": args.start_y,
        "enable_bend": not args.no_bend,
        "style_preset": args.style,
    }
    try:
        response = httpx.post(f"{_api_base()}/import", json=payload, timeout=30)
    except httpx.HTTPError as e:
        _json_out({"status": "error", "error": f"Connection failed: {e}. Is the canvas backend running?"},
                  code=1)

    if response.status_code != 200:
        try:
            detail = response.json().get("detail", "Unknown error")
        except ValueError:
            detail = response.text
        _json_out({"status": "error", "error": f"API error: {detail}"}, code=1)

    data = response.json()
    _json_out({"status": "ok", "imported": len(data.get("imported", []))})


def cmd_serve(args):
    import uvicorn

    from .main import create_app

    settings = get_settings()
    uvicorn.run(create_app(settings), host=args.host or settings.api_host,
                port=args.port or settings.api_port)


def _add_input_args(p):
    p.add_argument("--text", default=None, help="Diagram text (defaults to stdin)")
    p.add_argument("--file", default=None, help="Read diagram text from a file")
    p.add_argument("--format", default=None, choices=[f.value for f in DiagramFormat],
                   help="Grammar (auto-detected when omitted)")


def _add_compile_args(p):
    p.add_argument("--start-x", type=float, default=100)
    p.add_argument("--start-y", type=float, default=100)
    p.add_argument("--style", default="colorful", choices=["colorful", "serious"])
    p.add_argument("--no-bend", action="store_true", help="Draw edges straight")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="canvas", description="Diagram canvas tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("parse", help="Parse diagram text to graph JSON")
    _add_input_args(p)

    p = sub.add_parser("layout", help="Parse and lay out diagram text")
    _add_input_args(p)

    p = sub.add_parser("compile", help="Parse, lay out and compile to canvas elements")
    _add_input_args(p)
    _add_compile_args(p)

    p = sub.add_parser("push", help="Import diagram text into a running backend")
    _add_input_args(p)
    _add_compile_args(p)

    p = sub.add_parser("serve", help="Run the HTTP backend")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    # stdout carries JSON results; logs go to stderr
    setup_logging()

    cmd_map = {
        "parse": cmd_parse,
        "layout": cmd_layout,
        "compile": cmd_compile,
        "push": cmd_push,
        "serve": cmd_serve,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
