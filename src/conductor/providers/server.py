"""
Provider side of the stdio tool protocol.

A :class:`ToolServer` reads one JSON-RPC message per line from stdin and writes one response per
line to stdout.  It answers ``initialize``, ``tools/list`` and ``tools/call``; notifications are
ignored.  Tools are registered with a decorator and return plain text:

    server = ToolServer("record-store")

    @server.tool("create_item", "Create a new item", {"type": "object", ...})
    def create_item(title: str) -> str:
        ...

    server.serve()

stdout carries the protocol, so provider processes must log to stderr only.
"""

import json
import logging
import sys
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    TextIO,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601


def _rpc_result(req_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def _rpc_error(req_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": int(code), "message": str(message)}}


def _text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


@dataclass(frozen=True)
class ServerTool:
    """A tool registered on a :class:`ToolServer`."""

    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Callable[..., str]

    def declaration(self) -> Dict[str, Any]:
        """The ``tools/list`` entry for this tool."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolServer:
    """Blocking stdio JSON-RPC server exposing registered tools."""

    def __init__(self, name: str, version: str = "0.1.0"):
        self.name = name
        self.version = version
        self._tools: Dict[str, ServerTool] = {}

    def tool(
        self, name: str, description: str, input_schema: Optional[Dict[str, Any]] = None
    ) -> Callable[[Callable[..., str]], Callable[..., str]]:
        """
        Register the decorated function as tool *name*.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        schema = input_schema or {"type": "object", "properties": {}}

        def wrapper(fn: Callable[..., str]) -> Callable[..., str]:
            self._tools[name] = ServerTool(name, description, schema, fn)
            return fn

        return wrapper

    @property
    def tools(self) -> List[ServerTool]:
        """Registered tools, in registration order."""
        return list(self._tools.values())

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #
    def handle(self, message: Any) -> Optional[Dict[str, Any]]:
        """Answer one decoded message; ``None`` for notifications."""
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            req_id = message.get("id") if isinstance(message, dict) else None
            return _rpc_error(req_id, INVALID_REQUEST, "Invalid Request")

        method = message["method"]
        if "id" not in message:
            logger.debug("notification %s", method)
            return None

        req_id = message["id"]
        params = message.get("params") or {}
        if not isinstance(params, dict):
            params = {}

        if method == "initialize":
            return _rpc_result(
                req_id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "serverInfo": {"name": self.name, "version": self.version},
                    "capabilities": {"tools": {}},
                },
            )
        if method == "tools/list":
            return _rpc_result(req_id, {"tools": [t.declaration() for t in self._tools.values()]})
        if method == "tools/call":
            return _rpc_result(req_id, self.call(params.get("name"), params.get("arguments")))
        if method == "ping":
            return _rpc_result(req_id, {})
        return _rpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    def call(self, name: Any, arguments: Any) -> Dict[str, Any]:
        """Run tool *name*; failures are reported as ``isError`` results."""
        tool = self._tools.get(str(name))
        if tool is None:
            return _text_result(f"Unknown tool: {name}", is_error=True)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return _text_result(f"Arguments for '{name}' must be an object", is_error=True)

        try:
            return _text_result(tool.handler(**arguments))
        except TypeError as exc:
            logger.warning("Invalid arguments for tool '%s': %s", name, exc)
            return _text_result(f"Invalid arguments for tool '{name}': {exc}", is_error=True)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in tool '%s'", name)
            return _text_result(f"Tool '{name}' raised an error: {exc}", is_error=True)

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #
    def serve(self, instream: Optional[TextIO] = None, outstream: Optional[TextIO] = None) -> None:
        """Serve requests until *instream* reaches EOF."""
        instream = instream or sys.stdin
        outstream = outstream or sys.stdout
        logger.info("%s serving %d tools over stdio", self.name, len(self._tools))

        for line in instream:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                response: Optional[Dict[str, Any]] = _rpc_error(None, PARSE_ERROR, "Parse error")
            else:
                response = self.handle(message)
            if response is not None:
                outstream.write(json.dumps(response) + "\n")
                outstream.flush()

        logger.info("%s: input closed, exiting", self.name)


def init_provider_logging(level: str = "info") -> None:
    """Log to stderr; stdout belongs to the protocol."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
