"""
Tool registry for conductor.

Every provider announces its tools once at startup.  The registry merges them into one namespace
(name -> descriptor) and keeps a parallel route map (name -> owning provider handle) that the agent
loop uses to dispatch calls.  Tool names must be unique across providers.

The registry is filled during the sequential startup phase and only read afterwards, so it needs no
locking.
"""

from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Tuple,
)

from conductor.core.errors import (
    ToolNameConflict,
    UnknownToolError,
)
from conductor.core.schema import ToolDescriptor

if TYPE_CHECKING:
    from conductor.providers.supervisor import ProviderHandle

logger = logging.getLogger(__name__)


def _handle_name(handle: Any) -> str:
    return str(getattr(handle, "name", handle))


class ToolRegistry:
    """Merged tool namespace across all providers."""

    def __init__(self) -> None:
        self._descriptors: Dict[str, ToolDescriptor] = {}
        self._routes: Dict[str, "ProviderHandle"] = {}

    def register_provider(
        self, handle: "ProviderHandle", descriptors: Iterable[ToolDescriptor]
    ) -> None:
        """
        Register all tools announced by *handle*.

        The batch is validated before anything is inserted, so a conflict leaves the registry
        exactly as it was.

        Raises
        ------
        ToolNameConflict
            If a name is already owned by a different provider, or declared twice in the batch.
        """
        batch = list(descriptors)
        seen: set[str] = set()
        for descriptor in batch:
            owner = self._routes.get(descriptor.name)
            if owner is not None and owner is not handle:
                raise ToolNameConflict(descriptor.name, _handle_name(owner), _handle_name(handle))
            if descriptor.name in seen:
                raise ToolNameConflict(descriptor.name, _handle_name(handle), _handle_name(handle))
            seen.add(descriptor.name)

        for descriptor in batch:
            self._descriptors[descriptor.name] = descriptor
            self._routes[descriptor.name] = handle
            logger.debug("Registered tool '%s' -> %s", descriptor.name, _handle_name(handle))

        logger.info(
            "Provider '%s': %d tools -> %s",
            _handle_name(handle),
            len(batch),
            ", ".join(d.name for d in batch),
        )

    def resolve(self, name: str) -> Tuple["ProviderHandle", ToolDescriptor]:
        """Return the owning handle and descriptor for *name*."""
        try:
            return self._routes[name], self._descriptors[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def snapshot(self) -> List[Dict[str, Any]]:
        """
        Tool declarations for the engine.

        Ordered by provider registration, then by each provider's declaration order (dict insertion
        order gives us both).
        """
        return [descriptor.to_engine() for descriptor in self._descriptors.values()]

    def descriptors(self) -> List[ToolDescriptor]:
        """All registered descriptors, in snapshot order."""
        return list(self._descriptors.values())

    def names(self) -> List[str]:
        """All registered tool names, in snapshot order."""
        return list(self._descriptors)

    def owner(self, name: str) -> str:
        """Name of the provider that owns *name*."""
        handle, _ = self.resolve(name)
        return _handle_name(handle)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
