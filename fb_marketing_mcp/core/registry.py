"""Tool descriptors and the registry the dispatch server looks tools up in."""

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Sequence
import importlib

import mcp.types as types

from .utils import logger

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class DuplicateToolError(ValueError):
    """Raised when two tools are registered under the same name."""


@dataclass(frozen=True)
class ToolDescriptor:
    """A named, independently callable tool plus its parameter schema."""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler = field(repr=False, compare=False)
    path: Optional[str] = None

    @property
    def required(self) -> List[str]:
        return list(self.parameters.get("required") or [])

    @property
    def properties(self) -> Dict[str, Any]:
        return dict(self.parameters.get("properties") or {})

    def to_tool(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description, inputSchema=self.parameters)

    def with_path(self, path: str) -> "ToolDescriptor":
        return replace(self, path=path)

    async def __call__(self, arguments: Optional[Dict[str, Any]] = None) -> Any:
        return await self.handler(dict(arguments or {}))


class ToolRegistry:
    """
    Ordered, name-keyed collection of tool descriptors.

    Built once at startup and only read afterwards, so it is shared by every
    session without locking.
    """

    def __init__(self, tools: Iterable[ToolDescriptor] = ()):
        self._tools: Dict[str, ToolDescriptor] = {}
        self.load_errors: Dict[str, str] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDescriptor) -> None:
        if not tool.name:
            raise ValueError(f"Tool from {tool.path or 'unknown module'} has no name")
        if tool.name in self._tools:
            raise DuplicateToolError(
                f"Tool '{tool.name}' from {tool.path} is already registered by {self._tools[tool.name].path}"
            )
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)


def discover_tools(module_paths: Optional[Sequence[str]] = None) -> ToolRegistry:
    """
    Import every module in the manifest and register the tools it exports.

    Each module exposes ``TOOLS``, a list of ToolDescriptor. A module that
    fails to import or register is logged, recorded in ``load_errors`` and
    skipped; the remaining modules still load.

    Args:
        module_paths: Dotted module paths (defaults to the built-in tool manifest)

    Returns:
        The populated registry
    """
    if module_paths is None:
        from ..tools import TOOL_MODULES
        module_paths = TOOL_MODULES

    registry = ToolRegistry()
    for path in module_paths:
        try:
            module = importlib.import_module(path)
        except Exception as e:
            logger.error(f"Failed to load tool module {path}: {e}", exc_info=True)
            registry.load_errors[path] = f"{type(e).__name__}: {e}"
            continue

        tools = getattr(module, "TOOLS", None)
        if not tools:
            logger.error(f"Tool module {path} exports no TOOLS")
            registry.load_errors[path] = "Module exports no TOOLS"
            continue

        for tool in tools:
            if not isinstance(tool, ToolDescriptor):
                logger.error(f"Tool module {path} exported a non-tool object: {tool!r}")
                registry.load_errors[path] = f"Not a ToolDescriptor: {tool!r}"
                continue
            try:
                registry.register(tool.with_path(path))
            except (DuplicateToolError, ValueError) as e:
                logger.error(str(e))
                registry.load_errors[path] = str(e)

    logger.info(f"Discovered {len(registry)} tools from {len(module_paths)} modules")
    if registry.load_errors:
        logger.warning(f"Tool modules with load errors: {sorted(registry.load_errors)}")
    return registry
