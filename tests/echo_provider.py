"""
Line-oriented JSON-RPC peer used by the channel tests.

Methods:
    echo    -> writes a noise line, then {"echo": params}
    hold    -> answered only after the next request, so responses arrive out of order
    fail    -> JSON-RPC error with params["message"]
    silent  -> never answered
    exit    -> exits with params["code"]
"""

import json
import sys


def _write(message):
    sys.stdout.write(json.dumps(message) + "\n")


def main():
    held = []
    for line in sys.stdin:
        message = json.loads(line)
        if "id" not in message:
            continue
        method = message.get("method")
        params = message.get("params") or {}

        if method == "hold":
            held.append(message)
            continue
        if method == "silent":
            continue
        if method == "exit":
            sys.exit(int(params.get("code", 0)))

        if method == "echo":
            sys.stdout.write("not json, just noise\n")
            _write({"jsonrpc": "2.0", "id": message["id"], "result": {"echo": params}})
        elif method == "fail":
            _write(
                {
                    "jsonrpc": "2.0",
                    "id": message["id"],
                    "error": {"code": -32000, "message": params.get("message", "boom")},
                }
            )
        else:
            _write(
                {
                    "jsonrpc": "2.0",
                    "id": message["id"],
                    "error": {"code": -32601, "message": f"Method not found: {method}"},
                }
            )

        for waiting in held:
            _write({"jsonrpc": "2.0", "id": waiting["id"], "result": {"held": waiting["params"]}})
        held.clear()
        sys.stdout.flush()


if __name__ == "__main__":
    main()
