"""
Exception hierarchy shared by the transport, registry and agent loop.

Two families matter to callers:

* per-call failures (:class:`ToolInvocationError`, :class:`UnknownToolError`,
  :class:`TransportError` raised while invoking a tool) are folded into the
  conversation as tool results;
* turn-fatal failures (:class:`EngineQueryError`, :class:`LoopBoundExceeded`)
  end the turn with a single ``error`` event.

Startup failures (:class:`StartupError`) stop the orchestrator before it serves
any traffic.
"""


class ConductorError(RuntimeError):
    """Base class for every error raised by conductor."""


class TransportError(ConductorError):
    """The provider process has exited or its stream can no longer be used."""


class ToolInvocationError(ConductorError):
    """The provider ran the tool and reported a failure."""

    def __init__(self, message: str, *, tool: str | None = None, code: int | None = None):
        super().__init__(message)
        self.tool = tool
        self.code = code


class UnknownToolError(ConductorError):
    """The engine asked for a tool that no provider registered."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is not registered with any provider.")
        self.name = name


class EngineQueryError(ConductorError):
    """The reasoning engine was unreachable, rejected the request or replied malformed."""


class LoopBoundExceeded(ConductorError):
    """The engine kept requesting tools past the configured round limit."""

    def __init__(self, max_rounds: int):
        super().__init__(f"Agent loop exceeded the limit of {max_rounds} engine rounds.")
        self.max_rounds = max_rounds


class StartupError(ConductorError):
    """A tool provider could not be launched, connected or discovered."""


class ToolNameConflict(StartupError):
    """Two providers declared the same tool name."""

    def __init__(self, name: str, owner: str, challenger: str):
        super().__init__(
            f"Tool '{name}' from provider '{challenger}' is already registered by '{owner}'."
        )
        self.name = name
        self.owner = owner
        self.challenger = challenger
