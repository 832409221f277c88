"""Tests for the provider-side JSON-RPC tool server."""

import io
import json

import pytest

from conductor.providers import analysis
from conductor.providers.server import ToolServer


@pytest.fixture
def server() -> ToolServer:
    srv = ToolServer("demo", version="1.2.3")

    @srv.tool(
        "add",
        "Add two integers",
        {"type": "object", "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}}},
    )
    def add(a: int, b: int) -> str:
        return str(a + b)

    @srv.tool("explode", "Always fails")
    def explode() -> str:
        raise RuntimeError("kaboom")

    return srv


def test_duplicate_tool_registration(server) -> None:
    with pytest.raises(ValueError):
        server.tool("add", "again")


def test_initialize_and_list(server) -> None:
    init = server.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
    assert init["result"]["serverInfo"] == {"name": "demo", "version": "1.2.3"}

    listing = server.handle({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    tools = listing["result"]["tools"]
    assert [t["name"] for t in tools] == ["add", "explode"]
    assert tools[0]["inputSchema"]["properties"]["a"] == {"type": "integer"}
    assert tools[1]["inputSchema"] == {"type": "object", "properties": {}}


def test_call_success_and_failures(server) -> None:
    def call(name, arguments=None):
        params = {"name": name, "arguments": arguments}
        return server.handle({"jsonrpc": "2.0", "id": 9, "method": "tools/call", "params": params})

    ok = call("add", {"a": 2, "b": 3})["result"]
    assert ok == {"content": [{"type": "text", "text": "5"}], "isError": False}

    bad_args = call("add", {"a": 2})["result"]
    assert bad_args["isError"] is True
    assert "Invalid arguments" in bad_args["content"][0]["text"]

    raised = call("explode")["result"]
    assert raised["isError"] is True
    assert "kaboom" in raised["content"][0]["text"]

    unknown = call("nope")["result"]
    assert unknown["content"][0]["text"] == "Unknown tool: nope"


def test_protocol_errors(server) -> None:
    assert server.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None
    assert server.handle({"jsonrpc": "2.0", "id": 3, "method": "bogus"})["error"]["code"] == -32601
    assert server.handle(["not", "an", "object"])["error"]["code"] == -32600


def test_serve_reads_lines_until_eof(server) -> None:
    requests = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": "add", "arguments": {"a": 1, "b": 1}},
        },
    ]
    instream = io.StringIO("\n".join(json.dumps(r) for r in requests) + "\n\nnot json\n")
    outstream = io.StringIO()

    server.serve(instream, outstream)

    responses = [json.loads(line) for line in outstream.getvalue().splitlines()]
    assert [r["id"] for r in responses] == [1, 2, None]
    assert responses[1]["result"]["content"][0]["text"] == "2"
    assert responses[2]["error"]["code"] == -32700


# ---------------------------------------------------------------------------
# Analysis provider
# ---------------------------------------------------------------------------
RECORDS = [
    {"id": "1", "title": "file taxes", "priority": "high", "completed": False},
    {"id": "2", "title": "buy milk", "priority": "low", "completed": True},
]


def test_analysis_guards_skip_the_model() -> None:
    def forbidden(prompt: str) -> str:
        raise AssertionError("model must not be called")

    assert analysis.analyze("summarize_items", [], ask=forbidden) == (
        "No items found. Add some first!"
    )
    done = [dict(RECORDS[1])]
    assert analysis.analyze("suggest_next_item", done, ask=forbidden).startswith(
        "All items are completed"
    )
    assert analysis.analyze("prioritize_items", done, ask=forbidden).startswith(
        "All items are completed"
    )


def test_analysis_prompts_use_the_right_records() -> None:
    prompts = []

    def ask(prompt: str) -> str:
        prompts.append(prompt)
        return "model says hi"

    assert analysis.analyze("prioritize_items", RECORDS, ask=ask) == "model says hi"
    assert "file taxes" in prompts[-1]
    assert "buy milk" not in prompts[-1]

    analysis.analyze("summarize_items", RECORDS, ask=ask)
    assert "2 total, 1 completed (50%), 1 pending" in prompts[-1]

    analysis.analyze("categorize_items", RECORDS, ask=ask)
    assert "buy milk" in prompts[-1]


def test_analysis_rejects_unknown_tool() -> None:
    with pytest.raises(ValueError):
        analysis.analyze("forecast_items", RECORDS, ask=lambda prompt: "")


def test_analysis_declares_its_tools() -> None:
    assert [t.name for t in analysis.server.tools] == list(analysis.PROMPTS)
